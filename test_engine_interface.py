import copy
import re
from unittest import mock

from astra_streams import AstraConfig, Category, Group, Stream
from engine.interface import run_engine
from merge_config import HashRule, default_settings
from playlist_channels import PlaylistChannel

PASSES = [
    "remove_name_prefixes",
    "sort_streams",
    "rename_streams",
    "remove_blocked_inputs",
    "remove_duplicated_inputs",
    "remove_duplicated_inputs_by_rx",
    "update_inputs",
    "remove_inputs_by_update_map",
    "add_new_inputs",
    "unite_inputs",
    "sort_inputs",
    "add_new_streams",
    "add_new_groups",
    "remove_dead_inputs",
    "disable_dead_inputs",
    "add_hashes",
    "remove_without_inputs",
    "disable_without_inputs",
    "add_name_prefixes",
]


def _run_with_mocks(settings, **kwargs):
    calls = []
    patches = []
    for name in PASSES:
        def _record(*args, _name=name, **_kwargs):
            calls.append(_name)
            return args[0]
        patches.append(mock.patch(f"engine.interface.{name}", side_effect=_record))
    for p in patches:
        p.start()
    try:
        run_engine(AstraConfig(), [], settings, **kwargs)
    finally:
        for p in patches:
            p.stop()
    return calls


def test_run_engine_default_pass_order():
    calls = _run_with_mocks(default_settings())

    assert calls == [
        "remove_name_prefixes",
        "sort_streams",
        "remove_duplicated_inputs",
        "add_new_inputs",
        "unite_inputs",
        "sort_inputs",
        "add_new_streams",
        "add_new_groups",
        "disable_without_inputs",
        "add_name_prefixes",
    ]


def test_run_engine_runs_every_enabled_pass_in_order():
    settings = default_settings()
    rules = settings.streams
    rules.rename = True
    rules.input_blacklist = [re.compile("x")]
    rules.remove_duplicated_inputs_by_rx_list = [re.compile("(x)")]
    rules.update_inputs = True
    rules.remove_inputs_by_update_map = True
    rules.remove_dead_inputs = True
    rules.name_to_input_hash_map = [HashRule(re.compile("x"), "h")]
    rules.remove_without_inputs = True

    calls = _run_with_mocks(settings, http_client=mock.Mock())

    expected = [name for name in PASSES if name not in ("disable_dead_inputs", "disable_without_inputs")]
    assert calls == expected


def test_run_engine_uses_disable_variants():
    settings = default_settings()
    settings.streams.disable_dead_inputs = True
    client = mock.Mock()

    calls = _run_with_mocks(settings, http_client=client)

    assert "disable_dead_inputs" in calls
    assert "remove_dead_inputs" not in calls
    client.close.assert_not_called()


def test_run_engine_builds_and_closes_own_http_client():
    settings = default_settings()
    settings.streams.remove_dead_inputs = True

    with mock.patch("engine.interface.HttpClient") as http_client_cls:
        with mock.patch("engine.interface.remove_dead_inputs", side_effect=lambda s, *a, **k: s) as remove_dead:
            run_engine(AstraConfig(), [], settings)

    http_client_cls.assert_called_once_with(10.0, False)
    assert remove_dead.call_args[0][2] is http_client_cls.return_value
    http_client_cls.return_value.close.assert_called_once_with()


def test_run_engine_end_to_end():
    settings = default_settings()
    settings.streams.add_groups_to_new = True
    astra_cfg = AstraConfig(
        categories=[Category(name="All", groups=[Group(name="News")])],
        streams=[
            Stream(id="b001", name="_ADDED: Name B", enabled=True, type="spts",
                   groups={"All": "News"}, inputs=["http://b/1", "http://a/1"]),
            Stream(id="a001", name="Name A", enabled=True, type="spts", inputs=["http://a/1"]),
            Stream(id="c001", name="_DISABLED: Name C", enabled=False, type="spts", inputs=[]),
            Stream(id="d001", name="Name D", enabled=True, type="spts", inputs=[]),
        ],
    )
    channels = [
        PlaylistChannel("Name A", "News", "http://a/2"),
        PlaylistChannel("НОВЫЙ", "Movies", "http://new/1"),
    ]
    before = copy.deepcopy(astra_cfg)

    result = run_engine(astra_cfg, channels, settings)

    by_id = {s.id: s for s in result.streams}
    assert [s.name for s in result.streams][:4] == [
        "Name A", "_ADDED: Name B", "_DISABLED: Name C", "_DISABLED: Name D",
    ]
    assert by_id["a001"].inputs == ["http://a/2", "http://a/1"]
    assert by_id["b001"].inputs == ["http://b/1"]
    assert by_id["d001"].enabled is False

    added = result.streams[4]
    assert added.name == "_ADDED: НОВЫЙ"
    assert added.inputs == ["http://new/1"]
    assert added.groups == {"All": "Movies"}
    assert [g.name for g in result.categories[0].groups] == ["News", "Movies"]
    assert astra_cfg == before
