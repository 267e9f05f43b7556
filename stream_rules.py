"""
stream_rules.py
Passes over Astra streams that need nothing but the streams themselves and
the settings.

Every pass takes a list of streams and returns a new list; input streams are
never modified.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Tuple

from astra_streams import Category, Group, Stream
from channel_matching import is_name_same
from url_hash import add_hash


def describe(stream: Stream) -> str:
    return f'ID "{stream.id}", name "{stream.name}", group "{stream.first_group()}"'


def _strip_prefixes(stream, settings):
    name = stream.name
    mark_added = stream.mark_added
    mark_disabled = stream.mark_disabled
    # Twice, so both orders of the two prefixes are undone.
    for _ in range(2):
        if settings.disabled_prefix and name.startswith(settings.disabled_prefix):
            name = name[len(settings.disabled_prefix):]
            mark_disabled = True
        if settings.added_prefix and name.startswith(settings.added_prefix):
            name = name[len(settings.added_prefix):]
            mark_added = True
    return replace(stream, name=name, mark_added=mark_added, mark_disabled=mark_disabled)


def remove_name_prefixes(streams: List[Stream], settings) -> List[Stream]:
    """Turn name prefixes into marks so the bare names can be matched."""
    logging.info("Temporarily removing name prefixes from streams")
    out = []
    for s in streams:
        stripped = _strip_prefixes(s, settings)
        if stripped.name != s.name:
            logging.info(
                f'Temporarily removing name prefix from stream: ID "{s.id}", old name "{s.name}", '
                f'new name "{stripped.name}", group "{s.first_group()}"'
            )
        out.append(stripped)
    return out


def add_name_prefixes(streams: List[Stream], settings) -> List[Stream]:
    """Write the marks back as name prefixes (disabled prefix first)."""
    logging.info("Adding name prefixes to streams")
    out = []
    for s in streams:
        name = s.name
        if s.mark_added:
            name = settings.added_prefix + name
        if s.mark_disabled:
            name = settings.disabled_prefix + name
        if name != s.name:
            logging.info(
                f'Adding name prefix to stream: ID "{s.id}", old name "{s.name}", '
                f'new name "{name}", group "{s.first_group()}"'
            )
            s = replace(s, name=name)
        out.append(s)
    return out


def sort_streams(streams: List[Stream]) -> List[Stream]:
    logging.info("Sorting streams")
    return sorted(streams, key=lambda s: s.name)


def remove_blocked_inputs(streams: List[Stream], settings) -> List[Stream]:
    """Drop inputs matching input_blacklist from inputs and disabled inputs."""
    logging.info("Removing blocked inputs from streams")

    def blocked(url):
        return any(rx.search(url) for rx in settings.input_blacklist)

    out = []
    for s in streams:
        removed = [inp for inp in s.inputs + s.disabled_inputs if blocked(inp)]
        if removed:
            for inp in removed:
                logging.info(f'Removing blocked input from stream: {describe(s)}, input "{inp}"')
            s = replace(
                s,
                inputs=[inp for inp in s.inputs if not blocked(inp)],
                disabled_inputs=[inp for inp in s.disabled_inputs if not blocked(inp)],
            )
        out.append(s)
    return out


def _without_last(items, value):
    idx = len(items) - 1 - items[::-1].index(value)
    return items[:idx] + items[idx + 1:]


def remove_duplicated_inputs(streams: List[Stream]) -> List[Stream]:
    """Keep only the earliest occurrence of every input across all streams."""
    logging.info("Removing duplicated inputs from streams")
    seen = set()
    out = []
    for s in streams:
        inputs = list(s.inputs)
        for inp in s.inputs:
            if inp in seen:
                logging.info(f'Removing duplicated input from stream: {describe(s)}, input "{inp}"')
                inputs = _without_last(inputs, inp)
            else:
                seen.add(inp)
        out.append(replace(s, inputs=inputs) if inputs != s.inputs else s)
    return out


def remove_duplicated_inputs_by_rx(streams: List[Stream], settings) -> List[Stream]:
    """Within a stream, keep one input per value of each regex's first group."""
    logging.info("Removing duplicated inputs from streams by regular expressions")
    out = []
    for s in streams:
        inputs = list(s.inputs)
        for rx in settings.remove_duplicated_inputs_by_rx_list:
            seen = set()
            kept = []
            for inp in inputs:
                match = rx.search(inp)
                key = match.group(1) if match else None
                if key is None:
                    kept.append(inp)
                    continue
                if key in seen:
                    logging.info(
                        f'Removing duplicated input from stream by "{rx.pattern}": {describe(s)}, input "{inp}"'
                    )
                    continue
                seen.add(key)
                kept.append(inp)
            inputs = kept
        out.append(replace(s, inputs=inputs) if inputs != s.inputs else s)
    return out


def unite_inputs(streams: List[Stream], general, settings) -> List[Stream]:
    """Move inputs of later same-named streams into the earliest one."""
    logging.info("Uniting inputs of streams with similar names")
    out = list(streams)
    for i in range(len(out)):
        for j in range(i + 1, len(out)):
            if not out[j].inputs or not is_name_same(general, out[i].name, out[j].name):
                continue
            for inp in out[j].inputs:
                out[j] = out[j].remove_inputs(inp)
                if out[i].has_input(inp, True):
                    continue
                logging.info(
                    f'Moving input of stream: from ID "{out[j].id}", name "{out[j].name}", '
                    f'to ID "{out[i].id}", name "{out[i].name}", input "{inp}", '
                    f'note "{out[i].inputs_update_note(settings.enable_on_input_update)}"'
                )
                out[i] = out[i].add_input(inp)
                if settings.enable_on_input_update and not out[i].enabled:
                    logging.info(
                        f'Enabling the stream (uniting inputs of streams, enable_on_input_update is on): '
                        f'ID "{out[i].id}", name "{out[i].name}"'
                    )
                    out[i] = out[i].enable()
    return out


def input_weight(url: str, settings) -> int:
    """Weight of the first matching rule, or unknown_input_weight."""
    for rule in settings.input_weight_to_type_map:
        if rule.rx.search(url):
            return rule.weight
    return settings.unknown_input_weight


def sort_inputs(streams: List[Stream], settings) -> List[Stream]:
    logging.info("Sorting inputs of streams")
    out = []
    for s in streams:
        inputs = sorted(s.inputs, key=lambda url: input_weight(url, settings))
        if inputs != s.inputs:
            logging.info(f'Sorting inputs of stream: {describe(s)}')
            s = replace(s, inputs=inputs)
        out.append(s)
    return out


def _apply_hash_rules(s, inp, rules, subject=None):
    """Apply matching rules in order; without a subject each rule sees the current input."""
    for rule in rules:
        if not rule.by.search(inp if subject is None else subject):
            continue
        result, changed, err = add_hash(rule.hash, inp)
        if err is not None:
            logging.debug(f'Failed to add hash "{rule.hash}" to input "{inp}": {err}')
            continue
        if changed:
            logging.info(
                f'Adding hash to input of stream: {describe(s)}, hash "{rule.hash}", result "{result}"'
            )
            inp = result
    return inp


def add_hashes(streams: List[Stream], settings) -> List[Stream]:
    """Tag inputs by input, stream name and first group rules, in that order."""
    logging.info("Adding hashes to inputs of streams")
    out = []
    for s in streams:
        group = s.first_group()
        inputs = []
        for inp in s.inputs:
            inp = _apply_hash_rules(s, inp, settings.input_to_input_hash_map)
            inp = _apply_hash_rules(s, inp, settings.name_to_input_hash_map, s.name)
            inp = _apply_hash_rules(s, inp, settings.group_to_input_hash_map, group)
            inputs.append(inp)
        out.append(replace(s, inputs=inputs) if inputs != s.inputs else s)
    return out


def remove_without_inputs(streams: List[Stream]) -> List[Stream]:
    logging.info("Removing streams without inputs")
    out = []
    for s in streams:
        if not s.inputs:
            logging.info(f'Removing stream without inputs: {describe(s)}')
            continue
        out.append(s)
    return out


def disable_without_inputs(streams: List[Stream]) -> List[Stream]:
    logging.info("Disabling streams without inputs")
    out = []
    for s in streams:
        if not s.inputs and s.enabled:
            logging.info(f'Disabling stream without inputs: {describe(s)}')
            s = s.disable()
        out.append(s)
    return out


def add_new_groups(categories: List[Category], streams: List[Stream]) -> List[Category]:
    """Create categories and groups referenced by streams but missing on the server."""
    logging.info("Adding new groups to categories")
    out = list(categories)
    for s in streams:
        for category_name, group_name in s.groups.items():
            idx = next((i for i, c in enumerate(out) if c.name == category_name), None)
            if idx is None:
                logging.info(f'Adding new category: name "{category_name}"')
                out.append(Category(name=category_name))
                idx = len(out) - 1
            category = out[idx]
            if group_name and category.find_group(group_name) is None:
                logging.info(f'Adding new group to category: category "{category_name}", group "{group_name}"')
                out[idx] = replace(category, groups=category.groups + [Group(name=group_name)])
    return out


def changed_streams(old: List[Stream], new: List[Stream]) -> List[Stream]:
    """Streams of new that are not in old or differ from their old version."""
    by_id = {s.id: s for s in old}
    out = []
    for s in new:
        previous = by_id.get(s.id)
        if previous is None or not previous.same_content(s):
            out.append(s)
    return out


def removed_streams(old: List[Stream], new: List[Stream]) -> List[Stream]:
    """Streams of old whose ID no longer exists in new."""
    kept = {s.id for s in new}
    return [s for s in old if s.id not in kept]


def changed_categories(old: List[Category], new: List[Category]) -> List[Tuple[int, Category]]:
    """(index, category) pairs to send; index -1 means a category to create."""
    out = []
    for idx, category in enumerate(new):
        if idx < len(old):
            if old[idx] != category:
                out.append((idx, category))
        else:
            out.append((-1, category))
    return out
