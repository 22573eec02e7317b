# -*- coding: utf-8 -*-
from __future__ import annotations

import pathlib
from dataclasses import dataclass, field
from typing import List, Optional, Union

CAPTION_OPEN, CAPTION_CLOSE = "((", "))"
IMAGE_OPEN, IMAGE_CLOSE = "(((", ")))"


def _wrapped(text: str) -> bool:
    if len(text) < 2 or not (text.startswith("(") and text.endswith(")")):
        return False
    depth = 0
    for i, ch in enumerate(text):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0 and i < len(text) - 1:
                return False
    return True


def caption_text(text: str) -> str:
    """Caption text without parentheses wrapping the whole of it.

    A caption such as ``(注)`` would otherwise encode as ``(((注)))`` and read
    back as an image marker.
    """
    text = text.strip()
    while _wrapped(text):
        text = text[1:-1].strip()
    return text


@dataclass(frozen=True)
class TextLine:
    text: str

    def encode(self) -> str:
        return self.text


@dataclass(frozen=True)
class Caption:
    text: str

    def encode(self) -> str:
        return f"{CAPTION_OPEN}{caption_text(self.text)}{CAPTION_CLOSE}"


@dataclass(frozen=True)
class ImageRef:
    asset_id: str
    source_url: str = ""

    def encode(self) -> str:
        return f"{IMAGE_OPEN}{self.asset_id}{IMAGE_CLOSE}"


ContentToken = Union[TextLine, Caption, ImageRef]


@dataclass
class AssetRef:
    asset_id: str
    source_url: str
    captured: bool = False
    path: Optional[pathlib.Path] = None
    strategy: Optional[str] = None


@dataclass
class ChapterEntry:
    index: int
    title: str
    url: Optional[str] = None


@dataclass
class Volume:
    index: int
    title: str
    folder: str
    cover: Optional[AssetRef] = None
    chapters: List[ChapterEntry] = field(default_factory=list)


@dataclass
class Catalog:
    source_id: str
    url: str
    volumes: List[Volume] = field(default_factory=list)


@dataclass
class Chapter:
    """Chapter content; paragraphs only group tokens for the persisted form."""

    title: str
    paragraphs: List[List[ContentToken]] = field(default_factory=list)

    @property
    def tokens(self) -> List[ContentToken]:
        return [tok for para in self.paragraphs for tok in para]

    def extend(self, paragraphs: List[List[ContentToken]]) -> None:
        for para in paragraphs:
            if para:
                self.paragraphs.append(list(para))


@dataclass
class PaginationState:
    current_url: str
    page_index: int = 0
    has_next: bool = False
    sentinel_text: str = ""
    next_chapter_url: Optional[str] = None


@dataclass
class ChapterOutcome:
    volume: str
    title: str
    status: str  # written | skipped | degraded | failed
    path: Optional[pathlib.Path] = None
    pages: int = 0
    tokens: int = 0
    message: str = ""


@dataclass
class RunSummary:
    catalog_id: str
    root: pathlib.Path
    volumes: int = 0
    covers: int = 0
    outcomes: List[ChapterOutcome] = field(default_factory=list)
    catalog: Optional[Catalog] = None

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def written(self) -> int:
        return self.count("written")

    @property
    def skipped(self) -> int:
        return self.count("skipped")

    @property
    def degraded(self) -> List[ChapterOutcome]:
        return [o for o in self.outcomes if o.status in ("degraded", "failed")]
