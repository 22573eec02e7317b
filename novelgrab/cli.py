#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Command line entry point: ``novelgrab <catalog_url>``."""

from __future__ import annotations

import argparse
import logging
import pathlib
from typing import Optional, Sequence

from .errors import FatalError
from .logsetup import setup_logging
from .settings import load_settings
from .traversal import run_fetch_job

LOG = logging.getLogger("novelgrab.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="novelgrab",
        description="Download a novel catalog (volumes, chapters, images) into JSON chapter records.",
    )
    parser.add_argument("catalog_url", help="Catalog page, e.g. https://tw.example.com/novel/2139/catalog")
    parser.add_argument("--out", type=pathlib.Path, default=None, help="Output directory (default: current).")
    parser.add_argument("--env-file", type=pathlib.Path, default=None, help="Explicit .env file to load.")
    headless = parser.add_mutually_exclusive_group()
    headless.add_argument("--headless", dest="headless", action="store_true", default=None)
    headless.add_argument("--headed", dest="headless", action="store_false")
    parser.add_argument("--workers", type=int, default=None, help="Chapters fetched in parallel per volume.")
    parser.add_argument("--max-volumes", type=int, default=None)
    parser.add_argument("--max-chapters", type=int, default=None, help="Chapters per volume.")
    parser.add_argument(
        "--refetch-incomplete",
        action="store_true",
        default=None,
        help="Fetch again chapters whose saved record does not pass validation.",
    )
    parser.add_argument("--log-dir", type=pathlib.Path, default=None)
    parser.add_argument("--no-progress", dest="progress", action="store_false", default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(
            args.env_file,
            out_dir=args.out,
            headless=args.headless,
            chapter_workers=args.workers,
            max_volumes=args.max_volumes,
            max_chapters=args.max_chapters,
            refetch_incomplete=args.refetch_incomplete,
            progress=args.progress,
        )
    except ValueError as err:
        parser.error(str(err))

    log_path = setup_logging(args.log_dir, verbose=args.verbose)
    LOG.debug("Logging to %s", log_path)

    try:
        summary = run_fetch_job(args.catalog_url, settings)
    except FatalError as err:
        LOG.error("Fatal error: %s", err)
        return 1
    except KeyboardInterrupt:
        LOG.info("Interrupted; saved chapters are complete, the current one will restart next run.")
        return 130

    print(
        f"Saved under {summary.root}: {summary.written} written, {summary.skipped} skipped, "
        f"{len(summary.degraded)} degraded."
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
