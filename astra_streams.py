"""
astra_streams.py
Data model for the Astra server configuration (streams and categories).

Records are treated as values: every helper that changes a stream returns a
new Stream and leaves the original untouched. Fields the tool does not know
about are kept in ``extra`` and written back as-is.
"""

from __future__ import annotations

import logging
import random
import string
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from url_hash import links_equal

_STREAM_KEYS = ("id", "name", "enable", "type", "groups", "input", "_input")
_UID_ALPHABET = string.ascii_lowercase + string.digits


def _log_url_error(url, err):
    logging.debug(f'Failed to parse URL "{url}": {err}')


@dataclass
class Stream:
    id: str = ""
    name: str = ""
    enabled: bool = False
    type: str = ""
    groups: Dict[str, str] = field(default_factory=dict)
    inputs: List[str] = field(default_factory=list)
    disabled_inputs: List[str] = field(default_factory=list)
    mark_added: bool = False
    mark_disabled: bool = False
    extra: Dict[str, object] = field(default_factory=dict)

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Stream":
        return Stream(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            enabled=bool(data.get("enable", False)),
            type=str(data.get("type") or ""),
            groups=dict(data.get("groups") or {}),
            inputs=list(data.get("input") or []),
            disabled_inputs=list(data.get("_input") or []),
            extra={k: v for k, v in data.items() if k not in _STREAM_KEYS},
        )

    def to_dict(self) -> Dict[str, object]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "name": self.name,
            "enable": self.enabled,
            "type": self.type,
            "input": list(self.inputs),
        })
        if self.groups:
            data["groups"] = dict(self.groups)
        if self.disabled_inputs:
            data["_input"] = list(self.disabled_inputs)
        return data

    def first_group(self) -> str:
        """Alphabetically first "Category: Group" pair, or an empty string."""
        pairs = sorted(f"{category}: {group}" for category, group in self.groups.items())
        return pairs[0] if pairs else ""

    def has_input(self, url: str, with_hash: bool) -> bool:
        for inp in self.inputs:
            equal, err = links_equal(inp, url, with_hash)
            if err is not None:
                _log_url_error(url, err)
            if equal:
                return True
        return False

    def add_input(self, url: str) -> "Stream":
        """Put url in front of the inputs."""
        return replace(self, inputs=[url] + self.inputs)

    def remove_inputs(self, url: str) -> "Stream":
        """Drop every occurrence of url from both input lists."""
        return replace(
            self,
            inputs=[inp for inp in self.inputs if inp != url],
            disabled_inputs=[inp for inp in self.disabled_inputs if inp != url],
        )

    def known_inputs(self, update_map) -> List[str]:
        """Inputs matched by the "from" side of any update rule."""
        return [
            inp for inp in self.inputs
            if any(rule.from_rx.search(inp) for rule in update_map)
        ]

    def enable(self) -> "Stream":
        return replace(self, enabled=True, mark_disabled=False)

    def disable(self) -> "Stream":
        return replace(self, enabled=False, mark_disabled=True)

    def inputs_update_note(self, enable_on_input_update: bool) -> str:
        if self.enabled or enable_on_input_update:
            return ""
        return "Stream is disabled"

    def same_content(self, other: "Stream") -> bool:
        """Compare the server-visible fields, ignoring marks."""
        return self.to_dict() == other.to_dict()


@dataclass
class Group:
    name: str = ""
    extra: Dict[str, object] = field(default_factory=dict)

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Group":
        return Group(
            name=str(data.get("name") or ""),
            extra={k: v for k, v in data.items() if k != "name"},
        )

    def to_dict(self) -> Dict[str, object]:
        data = dict(self.extra)
        data["name"] = self.name
        return data


@dataclass
class Category:
    name: str = ""
    groups: List[Group] = field(default_factory=list)
    extra: Dict[str, object] = field(default_factory=dict)

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Category":
        return Category(
            name=str(data.get("name") or ""),
            groups=[Group.from_dict(g) for g in data.get("groups") or []],
            extra={k: v for k, v in data.items() if k not in ("name", "groups")},
        )

    def to_dict(self) -> Dict[str, object]:
        data = dict(self.extra)
        data["name"] = self.name
        data["groups"] = [g.to_dict() for g in self.groups]
        return data

    def find_group(self, name: str) -> Optional[Group]:
        for group in self.groups:
            if group.name == name:
                return group
        return None


@dataclass
class AstraConfig:
    """Whole server configuration as returned by the "load" command."""

    categories: List[Category] = field(default_factory=list)
    streams: List[Stream] = field(default_factory=list)
    extra: Dict[str, object] = field(default_factory=dict)

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "AstraConfig":
        return AstraConfig(
            categories=[Category.from_dict(c) for c in data.get("categories") or []],
            streams=[Stream.from_dict(s) for s in data.get("make_stream") or []],
            extra={k: v for k, v in data.items() if k not in ("categories", "make_stream")},
        )

    def to_dict(self) -> Dict[str, object]:
        data = dict(self.extra)
        data["categories"] = [c.to_dict() for c in self.categories]
        data["make_stream"] = [s.to_dict() for s in self.streams]
        return data


def generate_uid(streams: List[Stream], rng=random) -> str:
    """Return a 4 character id not used by any stream."""
    taken = {s.id for s in streams}
    while True:
        uid = "".join(rng.choice(_UID_ALPHABET) for _ in range(4))
        if uid not in taken:
            return uid
