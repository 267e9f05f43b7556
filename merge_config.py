"""
merge_config.py
Configuration for Astra-Maid: the YAML file layer and the typed settings
the merge passes read.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from re import Pattern
from typing import Dict, List

import yaml

from channel_matching import simplify_aliases

STREAM_TYPES = ("spts", "mpts")

FULL_TRANSLIT_MAP = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "yo",
    "ж": "zh", "з": "z", "и": "i", "й": "j", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "h", "ц": "c", "ч": "ch", "ш": "sh", "щ": "shh", "ъ": "",
    "ы": "y", "ь": "", "э": "eh", "ю": "yu", "я": "ya",
}

SIMILAR_TRANSLIT_MAP = {
    "а": "a", "б": "6", "в": "b", "е": "e", "з": "3", "к": "k", "м": "m",
    "н": "h", "о": "o", "р": "p", "с": "c", "т": "t", "у": "y", "х": "x",
}


class ConfigError(ValueError):
    """Raised when the configuration cannot be turned into settings."""


def default_config():
    """Get default configuration"""
    return {
        'general': {
            'full_translit': True,
            'full_translit_map': dict(FULL_TRANSLIT_MAP),
            'similar_translit': True,
            'similar_translit_map': dict(SIMILAR_TRANSLIT_MAP),
            'name_aliases': True,
            'name_alias_list': [],
        },
        'playlist': {
            'chann_name_blacklist': [],
            'chann_group_blacklist': [],
            'chann_url_blacklist': [],
            'chann_group_map': {},
        },
        'streams': {
            'added_prefix': '_ADDED: ',
            'disabled_prefix': '_DISABLED: ',
            'add_new': True,
            'add_groups_to_new': False,
            'groups_category_for_new': 'All',
            'add_new_with_known_inputs': False,
            'make_new_enabled': False,
            'new_type': 'spts',
            'remove_without_inputs': False,
            'disable_without_inputs': True,
            'enable_on_input_update': False,
            'rename': False,
            'add_new_inputs': True,
            'unite_inputs': True,
            'hash_check_on_add_new_inputs': False,
            'sort_inputs': True,
            'input_weight_to_type_map': [],
            'unknown_input_weight': 50,
            'input_blacklist': [],
            'remove_duplicated_inputs': True,
            'remove_duplicated_inputs_by_rx_list': [],
            'remove_dead_inputs': False,
            'disable_dead_inputs': False,
            'dead_inputs_check_blacklist': [],
            'input_max_conns': 1,
            'input_resp_timeout': 10,
            'input_verify_tls': False,
            'input_update_map': [],
            'update_inputs': False,
            'keep_input_hash': True,
            'remove_inputs_by_update_map': False,
            'input_to_input_hash_map': [],
            'name_to_input_hash_map': [],
            'group_to_input_hash_map': [],
        },
    }


class Config:
    """Configuration management"""

    def __init__(self, config_file='astra_maid.yaml', working_dir=None):
        self.working_dir = Path(working_dir) if working_dir else Path(config_file).parent
        self.config_file = Path(self.working_dir, Path(config_file).name)
        self.is_new = False
        self.config = self._load_config()

    def _load_config(self):
        """Load configuration from YAML file"""
        if not os.path.exists(self.config_file):
            config = default_config()
            Path(self.config_file).parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                yaml.dump(config, f, default_flow_style=False, allow_unicode=True)
            logging.info(f"New config is written to {self.config_file}")
            self.is_new = True
            return config

        with open(self.config_file, 'r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{self.config_file} must contain a mapping")
        return self._fill_missing(loaded)

    def _fill_missing(self, loaded):
        """Add fields present in the defaults but missing from the file."""
        for section, defaults in default_config().items():
            current = loaded.get(section)
            if not isinstance(current, dict):
                if current is not None:
                    raise ConfigError(f"Section '{section}' must be a mapping")
                current = loaded[section] = {}
            for key, value in defaults.items():
                if key not in current:
                    logging.info(f"Adding missing field to config: {section}.{key}")
                    current[key] = value
        return loaded

    def get(self, section, key=None, default=None):
        """Get configuration value"""
        if key is None:
            return self.config.get(section, default if default is not None else {})
        section_data = self.config.get(section, {})
        if not isinstance(section_data, dict):
            return default
        return section_data.get(key, default)

    def set(self, section, key, value):
        """Set configuration value"""
        if section not in self.config:
            self.config[section] = {}
        self.config[section][key] = value

    def save(self):
        """Save configuration to file"""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            yaml.dump(self.config, f, default_flow_style=False, allow_unicode=True)

    def resolve_path(self, relative_path):
        """Resolve a path within the working directory"""
        return str(Path(self.working_dir, relative_path))


@dataclass(frozen=True)
class UpdateRule:
    from_rx: Pattern
    to_rx: Pattern


@dataclass(frozen=True)
class HashRule:
    by: Pattern
    hash: str


@dataclass(frozen=True)
class WeightRule:
    weight: int
    rx: Pattern


@dataclass
class MatchSettings:
    full_translit: bool = True
    full_translit_map: Dict[str, str] = field(default_factory=lambda: dict(FULL_TRANSLIT_MAP))
    similar_translit: bool = True
    similar_translit_map: Dict[str, str] = field(default_factory=lambda: dict(SIMILAR_TRANSLIT_MAP))
    name_aliases: bool = True
    name_alias_list: List[List[str]] = field(default_factory=list)
    simple_name_alias_list: List[List[str]] = field(init=False, default_factory=list)

    def __post_init__(self):
        self.simple_name_alias_list = simplify_aliases(self.name_alias_list)


@dataclass
class PlaylistSettings:
    chann_name_blacklist: List[Pattern] = field(default_factory=list)
    chann_group_blacklist: List[Pattern] = field(default_factory=list)
    chann_url_blacklist: List[Pattern] = field(default_factory=list)
    chann_group_map: Dict[str, str] = field(default_factory=dict)


@dataclass
class StreamSettings:
    added_prefix: str = "_ADDED: "
    disabled_prefix: str = "_DISABLED: "
    add_new: bool = True
    add_groups_to_new: bool = False
    groups_category_for_new: str = "All"
    add_new_with_known_inputs: bool = False
    make_new_enabled: bool = False
    new_type: str = "spts"
    remove_without_inputs: bool = False
    disable_without_inputs: bool = True
    enable_on_input_update: bool = False
    rename: bool = False
    add_new_inputs: bool = True
    unite_inputs: bool = True
    hash_check_on_add_new_inputs: bool = False
    sort_inputs: bool = True
    input_weight_to_type_map: List[WeightRule] = field(default_factory=list)
    unknown_input_weight: int = 50
    input_blacklist: List[Pattern] = field(default_factory=list)
    remove_duplicated_inputs: bool = True
    remove_duplicated_inputs_by_rx_list: List[Pattern] = field(default_factory=list)
    remove_dead_inputs: bool = False
    disable_dead_inputs: bool = False
    dead_inputs_check_blacklist: List[Pattern] = field(default_factory=list)
    input_max_conns: int = 1
    input_resp_timeout: float = 10
    input_verify_tls: bool = False
    input_update_map: List[UpdateRule] = field(default_factory=list)
    update_inputs: bool = False
    keep_input_hash: bool = True
    remove_inputs_by_update_map: bool = False
    input_to_input_hash_map: List[HashRule] = field(default_factory=list)
    name_to_input_hash_map: List[HashRule] = field(default_factory=list)
    group_to_input_hash_map: List[HashRule] = field(default_factory=list)

    def has_hash_rules(self) -> bool:
        return bool(
            self.input_to_input_hash_map
            or self.name_to_input_hash_map
            or self.group_to_input_hash_map
        )


@dataclass
class Settings:
    general: MatchSettings = field(default_factory=MatchSettings)
    playlist: PlaylistSettings = field(default_factory=PlaylistSettings)
    streams: StreamSettings = field(default_factory=StreamSettings)

    @staticmethod
    def from_config(config: Config) -> "Settings":
        return Settings.from_dict(config.config)

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Settings":
        return Settings(
            general=_build_general(data.get('general') or {}),
            playlist=_build_playlist(data.get('playlist') or {}),
            streams=_build_streams(data.get('streams') or {}),
        )


def _compile(pattern, where) -> Pattern:
    try:
        return re.compile(str(pattern))
    except re.error as exc:
        raise ConfigError(f"{where}: invalid regular expression {pattern!r}: {exc}") from exc


def _compile_list(values, where) -> List[Pattern]:
    if values is None:
        return []
    if not isinstance(values, list):
        raise ConfigError(f"{where}: expected a list")
    return [_compile(v, where) for v in values]


def _check_keys(section_name, section, known):
    unknown = sorted(set(section) - set(known))
    if unknown:
        raise ConfigError(f"Unknown fields in section '{section_name}': {', '.join(unknown)}")


def _flag(section, name, default, where):
    value = section.get(name, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"{where}.{name}: expected true or false, got {value!r}")
    return value


def _build_general(section) -> MatchSettings:
    _check_keys('general', section, MatchSettings.__dataclass_fields__.keys() - {'simple_name_alias_list'})
    aliases = section.get('name_alias_list') or []
    if not all(isinstance(group, list) for group in aliases):
        raise ConfigError("general.name_alias_list: expected a list of name lists")
    defaults = MatchSettings()
    return MatchSettings(
        full_translit=_flag(section, 'full_translit', defaults.full_translit, 'general'),
        full_translit_map=dict(section.get('full_translit_map', defaults.full_translit_map) or {}),
        similar_translit=_flag(section, 'similar_translit', defaults.similar_translit, 'general'),
        similar_translit_map=dict(section.get('similar_translit_map', defaults.similar_translit_map) or {}),
        name_aliases=_flag(section, 'name_aliases', defaults.name_aliases, 'general'),
        name_alias_list=[[str(name) for name in group] for group in aliases],
    )


def _build_playlist(section) -> PlaylistSettings:
    _check_keys('playlist', section, PlaylistSettings.__dataclass_fields__)
    group_map = section.get('chann_group_map') or {}
    if not isinstance(group_map, dict):
        raise ConfigError("playlist.chann_group_map: expected a mapping")
    return PlaylistSettings(
        chann_name_blacklist=_compile_list(section.get('chann_name_blacklist'), 'playlist.chann_name_blacklist'),
        chann_group_blacklist=_compile_list(section.get('chann_group_blacklist'), 'playlist.chann_group_blacklist'),
        chann_url_blacklist=_compile_list(section.get('chann_url_blacklist'), 'playlist.chann_url_blacklist'),
        chann_group_map={str(k): str(v) for k, v in group_map.items()},
    )


def _build_weights(raw, where) -> List[WeightRule]:
    if not raw:
        return []
    if isinstance(raw, dict):
        items = sorted(raw.items(), key=lambda item: int(item[0]))
        return [WeightRule(int(weight), _compile(rx, where)) for weight, rx in items]
    rules = []
    for entry in raw:
        if not isinstance(entry, dict) or 'weight' not in entry or 'rx' not in entry:
            raise ConfigError(f"{where}: each entry needs 'weight' and 'rx'")
        rules.append(WeightRule(int(entry['weight']), _compile(entry['rx'], where)))
    return rules


def _build_update_rules(raw, where) -> List[UpdateRule]:
    rules = []
    for entry in raw or []:
        if not isinstance(entry, dict) or 'from' not in entry or 'to' not in entry:
            raise ConfigError(f"{where}: each entry needs 'from' and 'to'")
        rules.append(UpdateRule(_compile(entry['from'], where), _compile(entry['to'], where)))
    return rules


def _build_hash_rules(raw, where) -> List[HashRule]:
    rules = []
    for entry in raw or []:
        if not isinstance(entry, dict) or 'by' not in entry or 'hash' not in entry:
            raise ConfigError(f"{where}: each entry needs 'by' and 'hash'")
        rules.append(HashRule(_compile(entry['by'], where), str(entry['hash'])))
    return rules


def _build_streams(section) -> StreamSettings:
    _check_keys('streams', section, StreamSettings.__dataclass_fields__)
    defaults = StreamSettings()
    values = {}
    for name in ('added_prefix', 'disabled_prefix', 'groups_category_for_new', 'new_type'):
        value = section.get(name, getattr(defaults, name))
        values[name] = "" if value is None else str(value)
    for name in (
        'add_new', 'add_groups_to_new', 'add_new_with_known_inputs', 'make_new_enabled',
        'remove_without_inputs', 'disable_without_inputs', 'enable_on_input_update',
        'rename', 'add_new_inputs', 'unite_inputs', 'hash_check_on_add_new_inputs',
        'sort_inputs', 'remove_duplicated_inputs', 'remove_dead_inputs',
        'disable_dead_inputs', 'input_verify_tls', 'update_inputs', 'keep_input_hash',
        'remove_inputs_by_update_map',
    ):
        values[name] = _flag(section, name, getattr(defaults, name), 'streams')

    if values['new_type'] not in STREAM_TYPES:
        raise ConfigError(f"streams.new_type must be one of {', '.join(STREAM_TYPES)}")

    try:
        values['unknown_input_weight'] = int(section.get('unknown_input_weight', defaults.unknown_input_weight))
        values['input_max_conns'] = int(section.get('input_max_conns', defaults.input_max_conns))
        values['input_resp_timeout'] = float(section.get('input_resp_timeout', defaults.input_resp_timeout))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"streams: invalid number: {exc}") from exc
    if values['input_max_conns'] < 1:
        raise ConfigError("streams.input_max_conns must be at least 1")

    by_rx = _compile_list(
        section.get('remove_duplicated_inputs_by_rx_list'), 'streams.remove_duplicated_inputs_by_rx_list'
    )
    for rx in by_rx:
        if rx.groups < 1:
            raise ConfigError(
                f"streams.remove_duplicated_inputs_by_rx_list: {rx.pattern!r} has no capture group"
            )

    return StreamSettings(
        input_weight_to_type_map=_build_weights(
            section.get('input_weight_to_type_map'), 'streams.input_weight_to_type_map'
        ),
        input_blacklist=_compile_list(section.get('input_blacklist'), 'streams.input_blacklist'),
        remove_duplicated_inputs_by_rx_list=by_rx,
        dead_inputs_check_blacklist=_compile_list(
            section.get('dead_inputs_check_blacklist'), 'streams.dead_inputs_check_blacklist'
        ),
        input_update_map=_build_update_rules(section.get('input_update_map'), 'streams.input_update_map'),
        input_to_input_hash_map=_build_hash_rules(
            section.get('input_to_input_hash_map'), 'streams.input_to_input_hash_map'
        ),
        name_to_input_hash_map=_build_hash_rules(
            section.get('name_to_input_hash_map'), 'streams.name_to_input_hash_map'
        ),
        group_to_input_hash_map=_build_hash_rules(
            section.get('group_to_input_hash_map'), 'streams.group_to_input_hash_map'
        ),
        **values,
    )


def default_settings() -> Settings:
    """Settings equal to what a freshly written config file produces."""
    return Settings.from_dict(default_config())
