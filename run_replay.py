"""
CLI entry point for replaying difficulty validation over a header store.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from retarget.config import ConfigError, load_config
from retarget.core.chainview import StoreIOError
from retarget.logging import parse_level, setup_logging
from retarget.replay import replay_headers
from retarget.storage import HeaderStore


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay difficulty validation over stored headers")
    parser.add_argument("--config", type=Path, help="Path to config JSON")
    parser.add_argument("--data-dir", type=Path, help="Override data directory")
    parser.add_argument("--header-db", type=Path, help="Override header database path")
    parser.add_argument("--network", help="Network name (mainnet, testnet, regtest)")
    parser.add_argument("--start", type=int, help="First height to validate")
    parser.add_argument("--end", type=int, help="Last height to validate")
    parser.add_argument("--log-level", help="Log level (debug, info, warning, error)")
    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> dict:
    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = str(args.data_dir)
    if args.header_db:
        overrides["header_db"] = str(args.header_db)
    if args.network:
        overrides["network"] = args.network
    if args.log_level:
        overrides["log_level"] = args.log_level
    return overrides


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    overrides = build_overrides(args)
    config_path = args.config.resolve() if args.config else None

    try:
        config = load_config(config_path, overrides=overrides)
        params = config.network_params()
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 1

    logger = setup_logging(config.log_file, level=parse_level(config.log_level))
    logger.info("Replaying %s headers from %s", params.name, config.header_db)
    try:
        with HeaderStore(config.header_db) as store:
            report = replay_headers(params, store, args.start, args.end)
    except StoreIOError as exc:
        logger.error("Header store failure: %s", exc)
        return 1

    if not report.ok:
        print(f"Rejected at height {report.failed_height}: {report.error}", file=sys.stderr)
        return 1
    print(f"Validated {report.checked} headers ({report.trusted} accepted on trust)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
