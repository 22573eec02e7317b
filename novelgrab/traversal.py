# -*- coding: utf-8 -*-
"""Catalog traversal: Catalog -> Volume -> Chapter.

For each ``div.catalog-volume``:
  - the folder name comes from the first ``h3`` text;
  - the first ``img`` is captured as the volume cover;
  - ``li.chapter-li.jsChapter`` entries are the chapters, in catalog order.

Each chapter is skipped when its record already exists; otherwise it gets a
fresh page, is walked page by page and written as one JSON record. Only a
failure to open the catalog page aborts the run.
"""

from __future__ import annotations

import asyncio
import logging
import pathlib
from typing import List, Optional, Set

from playwright.async_api import BrowserContext, ElementHandle, Page, async_playwright
from tqdm import tqdm

from .assets import AssetCapturer
from .errors import FatalError, PersistenceError
from .models import Catalog, Chapter, ChapterEntry, ChapterOutcome, RunSummary, Volume
from .naming import abs_url, catalog_id_from_url, collapse_ws, sanitize_name
from .pagination import WalkResult, walk_chapter
from .settings import FetchSettings
from .storage import ChapterStore
from .tokens import extract_tokens

LOG = logging.getLogger("novelgrab.traversal")

UNTITLED_VOLUME = "untitled_volume"


def unique_name(base: str, used: Set[str]) -> str:
    name = base
    n = 2
    while name.lower() in used:
        name = f"{base} ({n})"
        n += 1
    used.add(name.lower())
    return name


class CatalogCrawler:
    def __init__(
        self,
        ctx: BrowserContext,
        settings: FetchSettings,
        capturer: Optional[AssetCapturer] = None,
    ):
        self.ctx = ctx
        self.settings = settings
        self.capturer = capturer or AssetCapturer(settings)

    async def run(self, catalog_url: str) -> RunSummary:
        s = self.settings
        catalog_id = catalog_id_from_url(catalog_url)
        store = ChapterStore(pathlib.Path(s.out_dir) / catalog_id, refetch_incomplete=s.refetch_incomplete)
        store.root.mkdir(parents=True, exist_ok=True)
        catalog = Catalog(source_id=catalog_id, url=catalog_url)
        summary = RunSummary(catalog_id=catalog_id, root=store.root, catalog=catalog)

        page = await self.ctx.new_page()
        try:
            LOG.info("Opening catalog page: %s", catalog_url)
            try:
                await page.goto(catalog_url, wait_until="domcontentloaded", timeout=s.navigation_timeout_ms)
            except Exception as exc:
                raise FatalError(f"Could not open catalog page {catalog_url}: {exc}") from exc
            await page.wait_for_timeout(s.catalog_settle_ms)

            handles = await page.query_selector_all(s.volume_selector)
            LOG.info("Found %d catalog volumes", len(handles))
            if s.max_volumes is not None:
                handles = handles[: s.max_volumes]

            used_folders: Set[str] = set()
            for vi, handle in enumerate(handles, start=1):
                try:
                    volume = await self.read_volume(page, handle, vi, used_folders)
                except Exception as exc:
                    LOG.warning("Could not read volume %d: %s", vi, exc)
                    summary.outcomes.append(ChapterOutcome(f"volume {vi}", "", "failed", message=str(exc)))
                    continue
                catalog.volumes.append(volume)
                summary.volumes += 1
                vol_dir = store.volume_dir(volume.folder)
                LOG.info("[%d/%d] Volume folder: %s", vi, len(handles), vol_dir)

                volume.cover = await self.capture_cover(page, handle, vol_dir)
                if volume.cover is not None and volume.cover.captured:
                    summary.covers += 1

                summary.outcomes.extend(await self.process_volume(volume, store))
        finally:
            await self.close_page(page)

        self.log_summary(summary)
        return summary

    async def read_volume(
        self, page: Page, handle: ElementHandle, index: int, used_folders: Set[str]
    ) -> Volume:
        s = self.settings
        title = ""
        heading = await handle.query_selector(s.volume_title_selector)
        if heading is not None:
            title = collapse_ws(await heading.text_content())
        title = title or UNTITLED_VOLUME
        folder = unique_name(sanitize_name(title, default=UNTITLED_VOLUME), used_folders)
        volume = Volume(index=index, title=title, folder=folder)

        items = await handle.query_selector_all(s.chapter_selector)
        for ci, li in enumerate(items, start=1):
            chap_title = collapse_ws(await li.text_content()) or f"chapter_{ci}"
            url: Optional[str] = None
            anchor = await li.query_selector("a")
            if anchor is not None:
                url = abs_url(await anchor.get_attribute("href"), page.url) or None
            volume.chapters.append(ChapterEntry(index=ci, title=chap_title, url=url))
        LOG.info("  Found %d chapters in %s", len(volume.chapters), title)
        return volume

    async def capture_cover(self, page: Page, handle: ElementHandle, vol_dir: pathlib.Path):
        img = await handle.query_selector("img")
        if img is None:
            LOG.warning("  No img found in volume for cover")
            return None
        try:
            ref = await self.capturer.capture(img, page, vol_dir, asset_id="cover")
        except Exception as exc:
            LOG.warning("  Unexpected error capturing cover: %s", exc)
            return None
        if ref is None:
            LOG.warning("  No cover src found")
        elif not ref.captured:
            LOG.warning("  Failed to capture cover from %s", ref.source_url)
        return ref

    async def process_volume(self, volume: Volume, store: ChapterStore) -> List[ChapterOutcome]:
        s = self.settings
        entries = volume.chapters
        if s.max_chapters is not None:
            entries = entries[: s.max_chapters]
        if not entries:
            LOG.warning("  No chapters found for this volume, skipping.")
            return []

        used: Set[str] = set()
        names = [unique_name(sanitize_name(e.title, default=f"chapter_{e.index}"), used) for e in entries]
        sem = asyncio.Semaphore(s.chapter_workers)
        bar = tqdm(total=len(entries), ncols=80, desc=volume.folder[:20], disable=not s.progress)

        async def worker(entry: ChapterEntry, file_base: str) -> ChapterOutcome:
            try:
                return await self.process_chapter(volume, entry, file_base, store, sem)
            except Exception as exc:
                LOG.warning("  [Chapter %d] %s failed: %s", entry.index, entry.title, exc)
                return ChapterOutcome(volume.folder, entry.title, "failed", message=str(exc))
            finally:
                bar.update(1)

        try:
            return list(await asyncio.gather(*(worker(e, n) for e, n in zip(entries, names))))
        finally:
            bar.close()

    async def process_chapter(
        self,
        volume: Volume,
        entry: ChapterEntry,
        file_base: str,
        store: ChapterStore,
        sem: asyncio.Semaphore,
    ) -> ChapterOutcome:
        s = self.settings
        outcome = ChapterOutcome(volume=volume.folder, title=entry.title, status="written")

        if store.exists(volume.folder, file_base):
            LOG.info("  [Chapter %d] %s already saved, skipping", entry.index, entry.title)
            outcome.status = "skipped"
            outcome.path = store.chapter_path(volume.folder, file_base)
            return outcome

        chapter = Chapter(title=entry.title)
        if not entry.url:
            LOG.warning("  Chapter %d has no anchor; writing empty record", entry.index)
            outcome.status = "degraded"
            outcome.message = "no chapter link"
            return self.persist(store, volume, file_base, chapter, outcome)

        async with sem:
            LOG.info("  [Chapter %d/%d] %s", entry.index, len(volume.chapters), entry.title)
            LOG.info("    Opening: %s", entry.url)
            try:
                page = await self.ctx.new_page()
            except Exception as exc:
                LOG.warning("    Could not open a page for chapter %s: %s", entry.title, exc)
                outcome.status = "failed"
                outcome.message = str(exc)
                return outcome
            walk: Optional[WalkResult] = None
            try:
                page.set_default_navigation_timeout(s.navigation_timeout_ms)
                pictures = store.pictures_dir(volume.folder, file_base)

                async def extract(p: Page, container: ElementHandle):
                    return await extract_tokens(p, container, s, self.capturer, pictures)

                walk = await walk_chapter(page, entry.url, s, extract)
            except Exception as exc:
                # Nothing is written so the next run starts this chapter over.
                LOG.warning("    Chapter %s failed: %s", entry.title, exc)
                outcome.status = "failed"
                outcome.message = str(exc)
            finally:
                await self.close_page(page)

            if walk is not None:
                chapter.extend(walk.paragraphs)
                outcome.pages = walk.pages
                outcome.tokens = len(chapter.tokens)
                if walk.error is not None:
                    outcome.status = "degraded"
                    outcome.message = str(walk.error)
                elif not chapter.paragraphs:
                    outcome.status = "degraded"
                    outcome.message = "no content extracted"
                outcome = self.persist(store, volume, file_base, chapter, outcome)
            await asyncio.sleep(s.delay_between_requests_ms / 1000)
        return outcome

    async def close_page(self, page: Page) -> None:
        try:
            await page.close()
        except Exception as exc:
            LOG.debug("    page.close failed: %s", exc)

    def persist(
        self, store: ChapterStore, volume: Volume, file_base: str, chapter: Chapter, outcome: ChapterOutcome
    ) -> ChapterOutcome:
        try:
            outcome.path = store.write(volume.folder, file_base, chapter)
        except PersistenceError as exc:
            LOG.warning("    %s", exc)
            outcome.status = "failed"
            outcome.message = str(exc)
        return outcome

    def log_summary(self, summary: RunSummary) -> None:
        LOG.info(
            "Done: volumes=%d covers=%d written=%d skipped=%d degraded=%d",
            summary.volumes,
            summary.covers,
            summary.written,
            summary.skipped,
            len(summary.degraded),
        )
        for o in summary.degraded:
            LOG.warning("  %s %s / %s: %s", o.status, o.volume, o.title, o.message)


def run_fetch_job(catalog_url: str, settings: FetchSettings) -> RunSummary:
    async def runner() -> RunSummary:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=settings.headless, slow_mo=settings.slow_mo)
            ctx: BrowserContext = await browser.new_context(user_agent=settings.user_agent)
            ctx.set_default_navigation_timeout(settings.navigation_timeout_ms)
            try:
                return await CatalogCrawler(ctx, settings).run(catalog_url)
            finally:
                await ctx.close()
                await browser.close()

    return asyncio.run(runner())
