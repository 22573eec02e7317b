# -*- coding: utf-8 -*-
# URL and filename helpers shared by the crawler and the asset capturer.

from __future__ import annotations

import re
import time
from typing import Optional
from urllib.parse import urljoin, urlparse

CATALOG_ID_RE = re.compile(r"/(\d+)/catalog/?")
DIGITS_RE = re.compile(r"\d+")
WS_RE = re.compile(r"\s+")
UNSAFE_UNICODE_RE = re.compile(r"[^\w\-.()\[\] ]+")
UNSAFE_ASCII_RE = re.compile(r"[^A-Za-z0-9_\-.()\[\] ]+")
EXT_RE = re.compile(r"\.([A-Za-z0-9]{1,5})$")
MAX_NAME_LEN = 240


def collapse_ws(text: Optional[str]) -> str:
    return WS_RE.sub(" ", text or "").strip()


def sanitize_name(name: Optional[str], allow_unicode: bool = True, default: str = "untitled") -> str:
    if not name:
        return default
    name = collapse_ws(name)
    name = name.strip(". ")
    pattern = UNSAFE_UNICODE_RE if allow_unicode else UNSAFE_ASCII_RE
    name = pattern.sub("", name).strip(". ")
    if not name:
        return default
    return name[:MAX_NAME_LEN]


def abs_url(u: Optional[str], base: str) -> str:
    if not u:
        return ""
    u = u.strip()
    if not u or u.startswith("data:"):
        return ""
    if u.startswith("//"):
        return "https:" + u
    if u.startswith("http"):
        return u
    return urljoin(base, u)


def last_segment(url: str) -> str:
    try:
        path = urlparse(url).path
    except ValueError:
        path = url
    return path.rstrip("/").rsplit("/", 1)[-1]


def ext_from_url(url: str) -> Optional[str]:
    m = EXT_RE.search(last_segment(url))
    return m.group(1).lower() if m else None


def timestamp_id() -> str:
    return str(int(time.time() * 1000))


def asset_id_from_url(url: str) -> str:
    """Digit groups of the last path segment, joined; a timestamp when there are none."""
    digits = DIGITS_RE.findall(last_segment(url or ""))
    return "".join(digits) or timestamp_id()


def catalog_id_from_url(url: str) -> str:
    m = CATALOG_ID_RE.search(url or "")
    if m:
        return m.group(1)
    try:
        p = urlparse(url)
    except ValueError:
        return "novel_download"
    if not p.netloc:
        return "novel_download"
    raw = p.netloc + re.sub(r"[/:]", "_", p.path)
    return sanitize_name(raw, allow_unicode=False, default="novel_download")
