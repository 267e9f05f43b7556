"""
merge_rules.py
Passes that merge playlist channels into Astra streams.

Channels are matched to streams by name (see channel_matching); inputs are
compared with or without their '#' options depending on the pass.
"""

from __future__ import annotations

import logging
import random
from dataclasses import replace
from typing import List

from astra_streams import Stream, generate_uid
from channel_matching import every_similar, find_named, get_similar, has_any_similar
from playlist_channels import PlaylistChannel
from stream_rules import describe
from url_hash import add_hash, get_hash, links_equal


def _has_url(channels, url, with_hash):
    for ch in channels:
        equal, err = links_equal(ch.url, url, with_hash)
        if err is not None:
            logging.debug(f'Failed to compare URLs "{ch.url}" and "{url}": {err}')
        if equal:
            return True
    return False


def _maybe_enable(s, settings, reason):
    if settings.enable_on_input_update and not s.enabled:
        logging.info(
            f'Enabling the stream ({reason}, enable_on_input_update is on): ID "{s.id}", name "{s.name}"'
        )
        return s.enable()
    return s


def rename_streams(streams: List[Stream], channels: List[PlaylistChannel], general) -> List[Stream]:
    """Give every stream the exact name of its first matching channel."""
    logging.info("Renaming streams")
    out = []
    for s in streams:
        ch = find_named(general, channels, s.name)
        if ch is not None and ch.name != s.name:
            logging.info(f'Renaming stream: {describe(s)}, new name "{ch.name}"')
            s = replace(s, name=ch.name)
        out.append(s)
    return out


def update_input(s: Stream, new_url: str, settings) -> Stream:
    """
    Replace the first input that an update rule maps to new_url.

    A rule applies when its "from" regex matches the old input and its "to"
    regex matches new_url. The old input's hash is carried over when
    keep_input_hash is on. At most one input is replaced.
    """
    for idx, old in enumerate(s.inputs):
        for rule in settings.input_update_map:
            if not (rule.from_rx.search(old) and rule.to_rx.search(new_url)):
                continue
            candidate = new_url
            if settings.keep_input_hash:
                old_hash, err = get_hash(old)
                if err is not None:
                    logging.debug(f'Failed to get hash of input "{old}": {err}')
                candidate, _, err = add_hash(old_hash, candidate)
                if err is not None:
                    logging.debug(f'Failed to add hash "{old_hash}" to URL "{new_url}": {err}')
            if candidate == old:
                continue
            logging.info(
                f'Updating input of stream: ID "{s.id}", name "{s.name}", old URL "{old}", '
                f'new URL "{candidate}", note "{s.inputs_update_note(settings.enable_on_input_update)}"'
            )
            inputs = list(s.inputs)
            inputs[idx] = candidate
            s = replace(s, inputs=inputs)
            return _maybe_enable(s, settings, "updating inputs of streams")
    return s


def update_inputs(streams: List[Stream], channels: List[PlaylistChannel], general, settings) -> List[Stream]:
    logging.info("Updating inputs of streams")
    out = []
    for s in streams:
        for ch in every_similar(general, channels, s.name):
            if not s.has_input(ch.url, True):
                s = update_input(s, ch.url, settings)
        out.append(s)
    return out


def remove_inputs_by_update_map(
    streams: List[Stream], channels: List[PlaylistChannel], general, settings
) -> List[Stream]:
    """Drop known inputs that no matching channel offers anymore."""
    logging.info("Removing inputs of streams by update map")
    out = []
    for s in streams:
        similar = get_similar(general, channels, s.name)
        for known in dict.fromkeys(s.known_inputs(settings.input_update_map)):
            if _has_url(similar, known, False):
                continue
            logging.info(f'Removing input of stream by update map: {describe(s)}, input "{known}"')
            s = s.remove_inputs(known)
        out.append(s)
    return out


def add_new_inputs(streams: List[Stream], channels: List[PlaylistChannel], general, settings) -> List[Stream]:
    logging.info("Adding new inputs to streams")
    out = []
    for s in streams:
        for ch in every_similar(general, channels, s.name):
            if s.has_input(ch.url, settings.hash_check_on_add_new_inputs):
                continue
            logging.info(
                f'Adding new input to stream: {describe(s)}, URL "{ch.url}", '
                f'note "{s.inputs_update_note(settings.enable_on_input_update)}"'
            )
            s = s.add_input(ch.url)
            s = _maybe_enable(s, settings, "adding new inputs")
        out.append(s)
    return out


def new_stream(channel: PlaylistChannel, uid: str, settings) -> Stream:
    groups = {}
    if settings.add_groups_to_new and channel.group:
        groups[settings.groups_category_for_new] = channel.group
    return Stream(
        id=uid,
        name=channel.name,
        enabled=settings.make_new_enabled,
        type=settings.new_type,
        groups=groups,
        inputs=[channel.url],
        disabled_inputs=[],
        mark_added=True,
    )


def add_new_streams(
    streams: List[Stream], channels: List[PlaylistChannel], general, settings, rng=random
) -> List[Stream]:
    """Create a stream for every channel whose name no stream matches."""
    logging.info("Adding new streams")
    out = list(streams)
    for ch in channels:
        if not settings.add_new_with_known_inputs and any(s.has_input(ch.url, False) for s in out):
            continue
        if has_any_similar(general, out, ch.name):
            continue
        s = new_stream(ch, generate_uid(out, rng), settings)
        logging.info(f'Adding new stream: {describe(s)}, URL "{ch.url}"')
        out.append(s)
    return out
