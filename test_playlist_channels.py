import json
import re

import pytest

from merge_config import PlaylistSettings
from playlist_channels import (
    PlaylistChannel,
    load_channels,
    prepare_channels,
    remove_blocked_channels,
    replace_groups,
    sort_channels,
)


def test_load_channels_from_json(tmp_path):
    path = tmp_path / "playlist.json"
    path.write_text(json.dumps([
        {"name": "Name 1", "group": "News", "url": "http://a"},
        {"name": "Name 2", "url": "http://b"},
    ]), encoding="utf-8")

    assert load_channels(path) == [
        PlaylistChannel("Name 1", "News", "http://a"),
        PlaylistChannel("Name 2", "", "http://b"),
    ]


def test_load_channels_from_yaml_mapping(tmp_path):
    path = tmp_path / "playlist.yaml"
    path.write_text("channels:\n  - name: A\n    group: G\n    url: http://a\n", encoding="utf-8")
    assert load_channels(path) == [PlaylistChannel("A", "G", "http://a")]


def test_load_channels_rejects_scalars(tmp_path):
    path = tmp_path / "playlist.yaml"
    path.write_text("42\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_channels(path)


def test_sort_channels_is_stable():
    channels = [PlaylistChannel("b", "", "1"), PlaylistChannel("a", "", "2"), PlaylistChannel("b", "", "3")]
    assert [ch.url for ch in sort_channels(channels)] == ["2", "1", "3"]


def test_replace_groups():
    channels = [PlaylistChannel("A", "Old", "1"), PlaylistChannel("B", "Keep", "2")]
    out = replace_groups(channels, {"Old": "New"})
    assert [ch.group for ch in out] == ["New", "Keep"]
    assert channels[0].group == "Old"


def test_remove_blocked_channels():
    playlist = PlaylistSettings(
        chann_name_blacklist=[re.compile("^Adult")],
        chann_group_blacklist=[re.compile("^Radio$")],
        chann_url_blacklist=[re.compile("blocked")],
    )
    channels = [
        PlaylistChannel("Adult 1", "G", "http://a"),
        PlaylistChannel("Music", "Radio", "http://b"),
        PlaylistChannel("News", "G", "http://blocked/c"),
        PlaylistChannel("News 2", "G", "http://d"),
    ]
    assert [ch.name for ch in remove_blocked_channels(channels, playlist)] == ["News 2"]


def test_prepare_channels_checks_group_blacklist_after_replacement():
    playlist = PlaylistSettings(
        chann_group_blacklist=[re.compile("^Hidden$")],
        chann_group_map={"Secret": "Hidden"},
    )
    channels = [PlaylistChannel("B", "Secret", "1"), PlaylistChannel("A", "Open", "2")]
    assert prepare_channels(channels, playlist) == [PlaylistChannel("A", "Open", "2")]
