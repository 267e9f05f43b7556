"""Merge engine interface for Astra-Maid.

This module defines the stable, deterministic boundary for the merge engine.
The passes imported from :mod:`stream_rules`, :mod:`merge_rules` and
:mod:`input_liveness` are the processing steps; the CLI and any other
front end should depend on :func:`run_engine` only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from astra_streams import AstraConfig, Category, Stream
from input_liveness import HttpClient, disable_dead_inputs, remove_dead_inputs
from merge_config import Settings
from merge_rules import (
    add_new_inputs,
    add_new_streams,
    remove_inputs_by_update_map,
    rename_streams,
    update_inputs,
)
from stream_rules import (
    add_hashes,
    add_name_prefixes,
    add_new_groups,
    disable_without_inputs,
    remove_blocked_inputs,
    remove_duplicated_inputs,
    remove_duplicated_inputs_by_rx,
    remove_name_prefixes,
    remove_without_inputs,
    sort_inputs,
    sort_streams,
    unite_inputs,
)


@dataclass
class MergeResult:
    streams: List[Stream] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)


def run_engine(
    astra_cfg: AstraConfig,
    channels,
    settings: Settings,
    *,
    http_client=None,
    progress_callback=None,
):
    """Run every enabled pass over the server streams in the fixed order.

    The input configuration and channel list are left untouched. An HTTP
    client is created from the settings only when a dead-input check is
    enabled and none was given.
    """
    general = settings.general
    rules = settings.streams

    streams = list(astra_cfg.streams)
    streams = remove_name_prefixes(streams, rules)
    streams = sort_streams(streams)
    if rules.rename:
        streams = rename_streams(streams, channels, general)
    if rules.input_blacklist:
        streams = remove_blocked_inputs(streams, rules)
    if rules.remove_duplicated_inputs:
        streams = remove_duplicated_inputs(streams)
    if rules.remove_duplicated_inputs_by_rx_list:
        streams = remove_duplicated_inputs_by_rx(streams, rules)
    if rules.update_inputs:
        streams = update_inputs(streams, channels, general, rules)
    if rules.remove_inputs_by_update_map:
        streams = remove_inputs_by_update_map(streams, channels, general, rules)
    if rules.add_new_inputs:
        streams = add_new_inputs(streams, channels, general, rules)
    if rules.unite_inputs:
        streams = unite_inputs(streams, general, rules)
    if rules.sort_inputs:
        streams = sort_inputs(streams, rules)
    if rules.add_new:
        streams = add_new_streams(streams, channels, general, rules)
    categories = add_new_groups(astra_cfg.categories, streams)

    if rules.remove_dead_inputs or rules.disable_dead_inputs:
        own_client = http_client is None
        if own_client:
            http_client = HttpClient(rules.input_resp_timeout, rules.input_verify_tls)
        try:
            if rules.remove_dead_inputs:
                streams = remove_dead_inputs(streams, rules, http_client, progress_callback)
            else:
                streams = disable_dead_inputs(streams, rules, http_client, progress_callback)
        finally:
            if own_client:
                http_client.close()

    if rules.has_hash_rules():
        streams = add_hashes(streams, rules)
    if rules.remove_without_inputs:
        streams = remove_without_inputs(streams)
    elif rules.disable_without_inputs:
        streams = disable_without_inputs(streams)
    streams = add_name_prefixes(streams, rules)

    logging.info(f"Merge finished: {len(streams)} streams, {len(categories)} categories")
    return MergeResult(streams=streams, categories=categories)


__all__ = [
    "MergeResult",
    "Settings",
    "run_engine",
]
