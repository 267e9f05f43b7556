"""
playlist_channels.py
Playlist channel records and the clean-up passes applied to them before
they are merged into Astra streams.

The playlist text itself is parsed elsewhere; this module reads the
already-lexed records (name, group, url) from a JSON or YAML list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List

import yaml


@dataclass(frozen=True)
class PlaylistChannel:
    name: str
    group: str
    url: str

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "PlaylistChannel":
        return PlaylistChannel(
            name=str(data.get('name') or ''),
            group=str(data.get('group') or ''),
            url=str(data.get('url') or ''),
        )


def load_channels(path) -> List[PlaylistChannel]:
    """Read a list of {name, group, url} records from a JSON or YAML file."""
    with open(Path(path), 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get('channels') or []
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of channel records")
    channels = [PlaylistChannel.from_dict(item) for item in data if isinstance(item, dict)]
    logging.info(f"Loaded {len(channels)} playlist channels from {path}")
    return channels


def sort_channels(channels: List[PlaylistChannel]) -> List[PlaylistChannel]:
    logging.info("Sorting playlist channels")
    return sorted(channels, key=lambda ch: ch.name)


def replace_groups(channels: List[PlaylistChannel], group_map: Dict[str, str]) -> List[PlaylistChannel]:
    """Rename channel groups according to group_map."""
    if not group_map:
        return list(channels)
    logging.info("Replacing groups of playlist channels")
    out = []
    for ch in channels:
        new_group = group_map.get(ch.group)
        if new_group is not None and new_group != ch.group:
            logging.info(
                f'Replacing group of channel: name "{ch.name}", old group "{ch.group}", new group "{new_group}"'
            )
            ch = replace(ch, group=new_group)
        out.append(ch)
    return out


def _blocked_reason(ch, playlist):
    for rx in playlist.chann_name_blacklist:
        if rx.search(ch.name):
            return f'name matches "{rx.pattern}"'
    for rx in playlist.chann_group_blacklist:
        if rx.search(ch.group):
            return f'group matches "{rx.pattern}"'
    for rx in playlist.chann_url_blacklist:
        if rx.search(ch.url):
            return f'URL matches "{rx.pattern}"'
    return None


def remove_blocked_channels(channels: List[PlaylistChannel], playlist) -> List[PlaylistChannel]:
    logging.info("Removing blocked playlist channels")
    out = []
    for ch in channels:
        reason = _blocked_reason(ch, playlist)
        if reason:
            logging.info(
                f'Removing blocked channel: name "{ch.name}", group "{ch.group}", URL "{ch.url}", reason: {reason}'
            )
            continue
        out.append(ch)
    return out


def prepare_channels(channels: List[PlaylistChannel], playlist) -> List[PlaylistChannel]:
    """Sort, regroup and filter channels using PlaylistSettings."""
    channels = sort_channels(channels)
    channels = replace_groups(channels, playlist.chann_group_map)
    return remove_blocked_channels(channels, playlist)
