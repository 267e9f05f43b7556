#!/usr/bin/env python3
"""
sync_astra.py
Merge a playlist into the stream configuration of an Astra server.
"""

import argparse
import logging
import sys

from api_utils import AstraAPI, AstraAPIError, AstraAuthError, AstraConnectionError
from engine import run_engine
from merge_config import Config, ConfigError, Settings
from playlist_channels import load_channels, prepare_channels
from stream_rules import changed_categories, changed_streams, removed_streams


def _build_parser():
    parser = argparse.ArgumentParser(
        description="Merge playlist channels into Astra streams."
    )
    parser.add_argument(
        '--config',
        default='astra_maid.yaml',
        help='Path to the config file (default: astra_maid.yaml)'
    )
    parser.add_argument(
        '--playlist',
        required=True,
        help='JSON or YAML file with playlist channel records (name, group, url)'
    )
    parser.add_argument('--astra-addr', default=None, help='Astra address (overrides ASTRA_ADDR)')
    parser.add_argument('--astra-user', default=None, help='Astra user (overrides ASTRA_USER)')
    parser.add_argument('--astra-pass', default=None, help='Astra password (overrides ASTRA_PASS)')
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)'
    )
    parser.add_argument(
        '-n', '--non-interactive',
        action='store_true',
        help='Apply changes without asking for confirmation'
    )
    return parser


def _prompt_yes_no(label: str, *, default: bool = False) -> bool:
    d = "Y/n" if default else "y/N"
    while True:
        raw = input(f"{label} [{d}]: ").strip().lower()
        if raw == "":
            return bool(default)
        if raw in {"y", "yes"}:
            return True
        if raw in {"n", "no"}:
            return False
        print("  -> Please answer y or n.")


def main(argv=None):
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), stream=sys.stdout)

    try:
        config = Config(args.config)
        if config.is_new:
            logging.info(f"Verify the new config at {config.config_file} and start again")
            return 0
        settings = Settings.from_config(config)
    except ConfigError as exc:
        logging.error(f"Invalid config: {exc}")
        return 1

    try:
        api = AstraAPI(args.astra_addr, args.astra_user, args.astra_pass)
        astra_cfg = api.fetch_config()
    except (ValueError, AstraAuthError, AstraConnectionError, AstraAPIError) as exc:
        logging.error(f"Failed to fetch Astra config: {exc}")
        return 1

    try:
        channels = load_channels(args.playlist)
    except (OSError, ValueError) as exc:
        logging.error(f"Failed to load playlist: {exc}")
        return 1
    channels = prepare_channels(channels, settings.playlist)

    result = run_engine(astra_cfg, channels, settings)

    category_changes = changed_categories(astra_cfg.categories, result.categories)
    stream_changes = changed_streams(astra_cfg.streams, result.streams)
    stream_removals = removed_streams(astra_cfg.streams, result.streams)
    if not (category_changes or stream_changes or stream_removals):
        logging.info("Nothing to change")
        return 0

    logging.info(
        "Changes: %s categories, %s streams to set, %s streams to remove",
        len(category_changes),
        len(stream_changes),
        len(stream_removals)
    )
    if not args.non_interactive and not _prompt_yes_no("Apply the changes?"):
        logging.info("Changes are not applied")
        return 0

    failed = api.set_categories(category_changes)
    failed += api.set_streams(stream_changes)
    failed += api.remove_streams(stream_removals)
    if failed:
        logging.error(f"{failed} changes failed")
        return 1
    logging.info("All changes are applied")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
