# -*- coding: utf-8 -*-
# Chapter record persistence and resume checks.
#
# Layout under the catalog root:
#   <volume>/<chapter>.json
#   <volume>/pictures/<chapter>/<asset_id>.<ext>
#   <volume>/cover.<ext>

from __future__ import annotations

import json
import logging
import os
import pathlib
import tempfile
from typing import Any, List, Optional

from .errors import PersistenceError
from .models import (
    CAPTION_CLOSE,
    CAPTION_OPEN,
    IMAGE_CLOSE,
    IMAGE_OPEN,
    Caption,
    Chapter,
    ContentToken,
    ImageRef,
    TextLine,
)

LOG = logging.getLogger("novelgrab.storage")

RECORD_SUFFIX = ".json"
PICTURES_DIR = "pictures"


def encode_contents(chapter: Chapter) -> List[List[str]]:
    return [[tok.encode() for tok in para] for para in chapter.paragraphs if para]


def decode_item(item: str) -> ContentToken:
    if item.startswith(IMAGE_OPEN) and item.endswith(IMAGE_CLOSE) and len(item) > len(IMAGE_OPEN + IMAGE_CLOSE):
        asset_id = item[len(IMAGE_OPEN) : -len(IMAGE_CLOSE)]
        # asset ids never contain parentheses
        if "(" not in asset_id and ")" not in asset_id:
            return ImageRef(asset_id)
    if item.startswith(CAPTION_OPEN) and item.endswith(CAPTION_CLOSE) and len(item) > len(CAPTION_OPEN + CAPTION_CLOSE):
        return Caption(item[len(CAPTION_OPEN) : -len(CAPTION_CLOSE)])
    return TextLine(item)


def record_for(chapter: Chapter) -> dict:
    return {"chapterTitle": chapter.title, "contents": encode_contents(chapter)}


def decode_contents(contents: List[List[str]]) -> List[List[ContentToken]]:
    return [[decode_item(str(item)) for item in sub] for sub in contents or [] if isinstance(sub, list)]


def chapter_from_record(obj: dict) -> Chapter:
    return Chapter(title=obj.get("chapterTitle", ""), paragraphs=decode_contents(obj.get("contents")))


def validate_record(obj: Any) -> List[str]:
    """Return the list of schema problems of a parsed record (empty when valid)."""
    errs: List[str] = []
    if not isinstance(obj, dict):
        errs.append("root is not an object")
        return errs

    if "chapterTitle" not in obj:
        errs.append('missing "chapterTitle" property')
    elif not isinstance(obj["chapterTitle"], str):
        errs.append('"chapterTitle" is not a string')
    elif obj["chapterTitle"].strip() == "":
        errs.append('"chapterTitle" is empty')

    if "contents" not in obj:
        errs.append('missing "contents" property')
    elif not isinstance(obj["contents"], list):
        errs.append('"contents" is not an array')
    elif not obj["contents"]:
        errs.append('"contents" is an empty array')
    else:
        for i, sub in enumerate(obj["contents"]):
            if not isinstance(sub, list):
                errs.append(f"contents[{i}] is not an array")
            elif not sub:
                errs.append(f"contents[{i}] is an empty array")
    return errs


def write_bytes_atomic(path: pathlib.Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class ChapterStore:
    def __init__(self, root: pathlib.Path, refetch_incomplete: bool = False):
        self.root = pathlib.Path(root)
        self.refetch_incomplete = refetch_incomplete

    def volume_dir(self, volume_folder: str) -> pathlib.Path:
        path = self.root / volume_folder
        path.mkdir(parents=True, exist_ok=True)
        return path

    def chapter_path(self, volume_folder: str, chapter_file: str) -> pathlib.Path:
        return self.root / volume_folder / f"{chapter_file}{RECORD_SUFFIX}"

    def pictures_dir(self, volume_folder: str, chapter_file: str) -> pathlib.Path:
        return self.root / volume_folder / PICTURES_DIR / chapter_file

    def exists(self, volume_folder: str, chapter_file: str) -> bool:
        path = self.chapter_path(volume_folder, chapter_file)
        if not path.is_file():
            return False
        if not self.refetch_incomplete:
            return True
        problems = self.check(path)
        if problems:
            LOG.info("Existing record %s is incomplete (%s); fetching again.", path.name, "; ".join(problems))
            return False
        return True

    def check(self, path: pathlib.Path) -> List[str]:
        try:
            obj = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            return [f"invalid JSON ({exc})"]
        return validate_record(obj)

    def load(self, volume_folder: str, chapter_file: str) -> Optional[Chapter]:
        path = self.chapter_path(volume_folder, chapter_file)
        try:
            return chapter_from_record(json.loads(path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return None

    def write(self, volume_folder: str, chapter_file: str, chapter: Chapter) -> pathlib.Path:
        path = self.chapter_path(volume_folder, chapter_file)
        payload = json.dumps(record_for(chapter), ensure_ascii=False, indent=2).encode("utf-8")
        try:
            write_bytes_atomic(path, payload)
        except OSError as exc:
            raise PersistenceError(f"Failed to write {path}: {exc}") from exc
        LOG.info("Saved chapter record: %s", path)
        return path
