#!/usr/bin/env python3
"""
Backfill images for rows that lack one.

For every table in scope (never ``places``):
  - list rows whose image_url is empty (or every row with --refetch)
  - search Pexels with the row's name
  - download the photo, upload it to Supabase Storage at
    ``{table}/{sanitized-name}_{id}.jpg`` (upsert)
  - patch the row's image_url with the public URL

A single run always finishes with status 200 unless configuration is
missing, in which case nothing is processed and the status is 500.

Usage:
    python -m image_backfill
    python -m image_backfill --tables neighborhoods --chunk-size 1 --delay 5
    python -m image_backfill --max-chunks 1 --json      # bounded single invocation
    python -m image_backfill --refetch --selection random
    python -m image_backfill --dry-run

Requirements (add to .env):
    PEXELS_API_KEY=...
    SUPABASE_URL=...
    SUPABASE_SERVICE_ROLE_KEY=...
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import httpx
from supabase import create_client

from .config import SELECTION_MODES, BackfillConfig, ConfigError, parse_list
from .orchestrator import Backfill, check_config
from .report import RunReport

DEFAULT_LOG_FILE = Path("data") / "image_backfill.log"

# ─── Logging ─────────────────────────────────────────────────────────────────


def setup_logging(log_file: Optional[Path] = DEFAULT_LOG_FILE, verbose: bool = False) -> logging.Logger:
    logger = logging.getLogger("image_backfill")
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    fmt = logging.Formatter(
        "%(asctime)s %(levelname)-8s %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    )
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(fmt)
    logger.addHandler(ch)
    return logger


# ─── Single-shot trigger ─────────────────────────────────────────────────────


async def run_once(
    config: BackfillConfig,
    supabase=None,
    http: Optional[httpx.AsyncClient] = None,
    **kwargs,
) -> RunReport:
    """One full pass over the configured tables. Never raises for row/table errors."""
    fatal = check_config(config)
    if fatal is not None:
        return fatal

    if supabase is None:
        try:
            supabase = create_client(config.supabase_url, config.supabase_key)
        except Exception as e:
            return RunReport().fail_fatal(f"Could not create Supabase client: {e}")

    if http is not None:
        return await Backfill.from_clients(config, supabase, http, **kwargs).run()

    async with httpx.AsyncClient(
        timeout=httpx.Timeout(config.request_timeout, connect=10),
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
    ) as client:
        return await Backfill.from_clients(config, supabase, client, **kwargs).run()


# ─── CLI ─────────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-backfill",
        description="Backfill image_url for rows lacking an image via Pexels + Supabase Storage",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--tables", type=str, help="Comma-separated tables (default: BACKFILL_TABLES or built-in list)")
    parser.add_argument("--chunk-size", type=int, help="Rows per chunk")
    parser.add_argument("--max-chunks", type=int, help="Stop each table after N chunks; repeated runs resume only without --refetch")
    parser.add_argument("--delay", type=float, help="Seconds to wait after each updated row")
    parser.add_argument("--per-page", type=int, help="Pexels results requested per search")
    parser.add_argument("--selection", choices=SELECTION_MODES, help="Pick first or a random result")
    parser.add_argument("--table-concurrency", type=int, help="Tables processed in parallel")
    parser.add_argument("--refetch", action="store_true", help="Replace images on every row, not just empty ones")
    parser.add_argument("--dry-run", action="store_true", help="Resolve images but skip download, upload and DB updates")
    parser.add_argument("--json", action="store_true", help="Print the run report as JSON")
    parser.add_argument("--log-file", type=Path, default=DEFAULT_LOG_FILE, help="Debug log file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output on the console")
    return parser


def load_config(args: argparse.Namespace) -> BackfillConfig:
    config = BackfillConfig.from_env()
    return config.with_overrides(
        tables=tuple(parse_list(args.tables)) if args.tables else None,
        chunk_size=args.chunk_size,
        max_chunks=args.max_chunks,
        inter_row_delay=args.delay,
        per_page=args.per_page,
        selection=args.selection,
        table_concurrency=args.table_concurrency,
        only_missing=False if args.refetch else None,
        dry_run=True if args.dry_run else None,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_file, verbose=args.verbose)

    try:
        config = load_config(args)
    except ConfigError as e:
        report = RunReport().fail_fatal(f"Invalid configuration: {e}")
    else:
        report = asyncio.run(run_once(config))

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.status == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
