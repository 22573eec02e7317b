#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Check every chapter record (*.json) under a folder and list the ones that do not
follow the {"chapterTitle", "contents"} schema.

Exit codes: 0 all files valid, 2 some files invalid, 1 usage error.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from .storage import validate_record

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_INVALID = 2


@dataclass
class FileReport:
    path: Path
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def list_json_paths(base: Path) -> List[Path]:
    if base.is_file():
        return [base] if base.suffix.lower() == ".json" else []
    return sorted(p for p in base.rglob("*") if p.is_file() and p.suffix.lower() == ".json")


def check_file(path: Path) -> FileReport:
    report = FileReport(path=path)
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        report.errors.append(f"unreadable file ({exc})")
        return report
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        report.errors.append(f"invalid JSON ({exc})")
        return report
    report.errors.extend(validate_record(parsed))
    return report


def check_tree(base: Path) -> List[FileReport]:
    return [check_file(p) for p in list_json_paths(base)]


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="novelgrab-check",
        description="Validate chapter JSON records recursively.",
    )
    parser.add_argument("root", help="Folder (or single file) to check.")
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return EXIT_USAGE if exc.code else EXIT_OK

    base = Path(args.root).expanduser().resolve()
    if not base.exists():
        print(f"Error: the path '{base}' does not exist.", file=sys.stderr)
        return EXIT_USAGE

    bad = [r for r in check_tree(base) if not r.ok]
    if not bad:
        print("All JSON files passed validation.")
        return EXIT_OK

    print("Files with schema issues:")
    for report in bad:
        print(report.path)
        for err in report.errors:
            print(f"  - {err}")
    return EXIT_INVALID


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
