import logging

import pytest
import yaml

from merge_config import Config, ConfigError, Settings, default_settings


def test_missing_config_file_is_created_with_defaults(tmp_path):
    config = Config("astra_maid.yaml", working_dir=tmp_path)

    assert config.is_new
    assert (tmp_path / "astra_maid.yaml").exists()
    written = yaml.safe_load((tmp_path / "astra_maid.yaml").read_text(encoding="utf-8"))
    assert written["streams"]["added_prefix"] == "_ADDED: "
    assert written["general"]["full_translit_map"]["щ"] == "shh"


def test_missing_fields_are_filled_from_defaults(tmp_path, caplog):
    path = tmp_path / "astra_maid.yaml"
    path.write_text("streams:\n  add_new: false\n", encoding="utf-8")

    with caplog.at_level(logging.INFO):
        config = Config(str(path))

    assert not config.is_new
    assert config.get("streams", "add_new") is False
    assert config.get("streams", "unknown_input_weight") == 50
    assert config.get("general", "similar_translit") is True
    assert "Adding missing field to config: streams.sort_inputs" in caplog.text


def test_get_set_and_save(tmp_path):
    config = Config("astra_maid.yaml", working_dir=tmp_path)
    config.set("streams", "rename", True)
    config.save()

    reloaded = Config("astra_maid.yaml", working_dir=tmp_path)
    assert reloaded.get("streams", "rename") is True
    assert reloaded.get("nope", "x", default=3) == 3


def test_default_settings_match_documented_defaults():
    settings = default_settings()
    streams = settings.streams

    assert settings.general.full_translit and settings.general.similar_translit
    assert settings.general.name_aliases
    assert streams.added_prefix == "_ADDED: "
    assert streams.disabled_prefix == "_DISABLED: "
    assert streams.add_new and not streams.add_groups_to_new
    assert streams.groups_category_for_new == "All"
    assert streams.new_type == "spts"
    assert streams.disable_without_inputs and not streams.remove_without_inputs
    assert streams.unknown_input_weight == 50
    assert streams.input_max_conns == 1
    assert streams.input_resp_timeout == 10
    assert streams.keep_input_hash
    assert not streams.has_hash_rules()


def test_rule_tables_are_compiled_in_order():
    settings = Settings.from_dict({
        "general": {"name_alias_list": [["Name 1", "Name_1 Var"]]},
        "streams": {
            "input_update_map": [{"from": "^http://old/", "to": "^http://new/"}],
            "name_to_input_hash_map": [{"by": "HD$", "hash": "hd"}],
            "input_weight_to_type_map": {30: "udp://", 10: "http://"},
            "remove_duplicated_inputs_by_rx_list": ["://([^/]*)"],
        },
    })
    streams = settings.streams

    assert settings.general.simple_name_alias_list == [["name1", "name1var"]]
    assert streams.input_update_map[0].from_rx.search("http://old/1")
    assert streams.name_to_input_hash_map[0].hash == "hd"
    assert [rule.weight for rule in streams.input_weight_to_type_map] == [10, 30]
    assert streams.has_hash_rules()


def test_weight_list_keeps_configured_order():
    settings = Settings.from_dict({"streams": {"input_weight_to_type_map": [
        {"weight": 30, "rx": "a"}, {"weight": 10, "rx": "b"},
    ]}})
    assert [rule.weight for rule in settings.streams.input_weight_to_type_map] == [30, 10]


@pytest.mark.parametrize("data", [
    {"streams": {"input_blacklist": ["("]}},
    {"streams": {"remove_duplicated_inputs_by_rx_list": ["no-group"]}},
    {"streams": {"new_type": "other"}},
    {"streams": {"input_max_conns": 0}},
    {"streams": {"unknown_field": 1}},
    {"streams": {"input_update_map": [{"from": "a"}]}},
    {"playlist": {"chann_group_map": ["x"]}},
    {"streams": {"add_new": "false"}},
    {"general": {"full_translit": 1}},
])
def test_invalid_config_raises(data):
    with pytest.raises(ConfigError):
        Settings.from_dict(data)


def test_non_mapping_section_is_rejected(tmp_path):
    path = tmp_path / "astra_maid.yaml"
    path.write_text("streams: 3\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        Config(str(path))


def test_quoted_boolean_is_rejected_with_field_name():
    with pytest.raises(ConfigError, match=r"streams\.remove_dead_inputs"):
        Settings.from_dict({"streams": {"remove_dead_inputs": "false"}})


def test_empty_boolean_falls_back_to_default():
    settings = Settings.from_dict({"streams": {"keep_input_hash": None}})
    assert settings.streams.keep_input_hash is True
