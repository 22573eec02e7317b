# -*- coding: utf-8 -*-
"""Runtime configuration.

Defaults mirror the values the downloader has always used. Every knob can be
set from the environment (``NOVELGRAB_<FIELD>`` in upper case) or from a
``.env`` file next to the working directory, and then overridden from the
command line. The resulting :class:`FetchSettings` is passed explicitly to the
crawler; nothing reads module globals at run time.
"""

from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

ENV_PREFIX = "NOVELGRAB_"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124 Safari/537.36"
)


@dataclass(frozen=True)
class FetchSettings:
    out_dir: pathlib.Path = pathlib.Path(".")
    headless: bool = True
    slow_mo: int = 0
    user_agent: str = DEFAULT_USER_AGENT

    # navigation
    navigation_timeout_ms: int = 30_000
    catalog_settle_ms: int = 500
    footer_settle_ms: int = 200
    delay_between_requests_ms: int = 1_000
    scroll_step: int = 800
    scroll_delay_ms: int = 500
    max_pages_per_chapter: int = 200

    # asset capture
    scroll_settle_ms: int = 300
    ready_interval_ms: int = 100
    ready_timeout_ms: int = 5_000
    stable_interval_ms: int = 100
    stable_timeout_ms: int = 3_000
    stable_samples: int = 3
    stable_tolerance_px: float = 1.0
    capture_timeout_ms: int = 15_000
    loaded_class: str = "loaded"
    image_source_attrs: Tuple[str, ...] = ("data-src", "data-original", "data-lazy-src", "src")

    # traversal
    chapter_workers: int = 1
    max_volumes: Optional[int] = None
    max_chapters: Optional[int] = None
    refetch_incomplete: bool = False
    progress: bool = True

    # site markup
    next_page_text: str = "下一頁"
    next_chapter_text: str = "下一章"
    volume_selector: str = "div.catalog-volume"
    volume_title_selector: str = "h3"
    chapter_selector: str = "li.chapter-li.jsChapter"
    content_selector: str = "#acontent"
    block_selector: str = "p"
    footer_selector: str = "div#footlink"
    caption_class: str = "caption"

    @property
    def navigation_timeout(self) -> float:
        return self.navigation_timeout_ms / 1000

    @property
    def capture_timeout(self) -> float:
        return self.capture_timeout_ms / 1000


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _coerce(name: str, default: Any, raw: str) -> Any:
    if isinstance(default, bool):
        return _parse_bool(raw)
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, tuple):
        return tuple(part.strip() for part in raw.split(",") if part.strip())
    if isinstance(default, pathlib.Path):
        return pathlib.Path(raw).expanduser()
    if default is None and name in ("max_volumes", "max_chapters"):
        return int(raw) if raw.strip() else None
    return raw


def settings_from_env(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    defaults = FetchSettings()
    for f in fields(FetchSettings):
        raw = env.get(ENV_PREFIX + f.name.upper())
        if raw is None or raw == "":
            continue
        try:
            values[f.name] = _coerce(f.name, getattr(defaults, f.name), raw)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}") from exc
    return values


def load_settings(env_file: Optional[pathlib.Path] = None, **overrides: Any) -> FetchSettings:
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()
    values = settings_from_env()
    values.update({k: v for k, v in overrides.items() if v is not None})
    settings = replace(FetchSettings(), **values)
    if settings.chapter_workers < 1:
        raise ValueError("chapter_workers must be at least 1")
    return settings
