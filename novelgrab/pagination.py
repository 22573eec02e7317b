# -*- coding: utf-8 -*-
# Multi-page chapter walker: LOADING -> EXTRACTING -> CHECKING_NEXT -> (EXTRACTING | DONE).

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from playwright.async_api import ElementHandle, Page

from .errors import NavigationError
from .models import ContentToken, PaginationState
from .naming import abs_url
from .polling import poll_until
from .settings import FetchSettings

LOG = logging.getLogger("novelgrab.pagination")

SCROLL_HEIGHT_JS = "() => document.documentElement.scrollHeight"
SCROLL_TO_JS = "(y) => window.scrollTo(0, y)"
MARKUP_JS = "(sel) => { const el = document.querySelector(sel); return el ? el.innerHTML : null; }"
NAV_POLL_INTERVAL = 0.1

Extractor = Callable[[Page, ElementHandle], Awaitable[List[List[ContentToken]]]]


class WalkState(Enum):
    LOADING = "loading"
    EXTRACTING = "extracting"
    CHECKING_NEXT = "checking_next"
    DONE = "done"


@dataclass
class WalkResult:
    paragraphs: List[List[ContentToken]] = field(default_factory=list)
    pages: int = 0
    next_chapter_url: Optional[str] = None
    error: Optional[NavigationError] = None


async def full_scroll(page: Page, step: int, delay_ms: int) -> None:
    """Scroll top to bottom so lazy images get a chance to start loading."""
    height = await page.evaluate(SCROLL_HEIGHT_JS) or 0
    pos = 0
    while pos < height:
        pos += step
        await page.evaluate(SCROLL_TO_JS, pos)
        await page.wait_for_timeout(delay_ms)
    await page.evaluate(SCROLL_TO_JS, height)
    await page.wait_for_timeout(delay_ms)
    await page.evaluate(SCROLL_TO_JS, 0)
    await page.wait_for_timeout(delay_ms)


async def markup_fingerprint(page: Page, selector: str) -> Optional[str]:
    return await page.evaluate(MARKUP_JS, selector)


async def read_footer(page: Page, settings: FetchSettings) -> Tuple[Optional[ElementHandle], str, str]:
    footer = await page.query_selector(settings.footer_selector)
    if footer is None:
        return None, "", ""
    links = await footer.query_selector_all("a")
    if not links:
        return None, "", ""
    last = links[-1]
    text = ((await last.text_content()) or "").strip()
    href = (await last.get_attribute("href")) or ""
    return last, text, href


async def follow_next(page: Page, link: ElementHandle, settings: FetchSettings) -> bool:
    """Click the next-page link and wait for the page to change.

    Returns False when the click went nowhere. Browser errors before or during
    the click raise :class:`NavigationError`.
    """
    old_url = page.url
    try:
        old_markup = await markup_fingerprint(page, settings.content_selector)
        await link.click(timeout=settings.navigation_timeout_ms)
    except Exception as exc:
        raise NavigationError(f"Failed to click {settings.next_page_text} on {old_url}: {exc}") from exc

    async def changed():
        if page.url != old_url:
            return True
        return await markup_fingerprint(page, settings.content_selector) != old_markup

    res = await poll_until(changed, NAV_POLL_INTERVAL, settings.navigation_timeout)
    if not res.ok:
        LOG.warning("    %s did not lead to a new page within %ss", settings.next_page_text, settings.navigation_timeout)
        return False
    try:
        await page.wait_for_load_state("domcontentloaded", timeout=settings.navigation_timeout_ms)
    except Exception as exc:
        LOG.debug("    wait_for_load_state after click: %s", exc)
    return True


async def walk_chapter(page: Page, url: str, settings: FetchSettings, extract: Extractor) -> WalkResult:
    result = WalkResult()
    state = PaginationState(current_url=url)
    step = WalkState.LOADING

    while step is not WalkState.DONE:
        if step is WalkState.LOADING:
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=settings.navigation_timeout_ms)
            except Exception as exc:
                result.error = NavigationError(f"Failed to open chapter page {url}: {exc}")
                LOG.warning("    %s", result.error)
                step = WalkState.DONE
                continue
            step = WalkState.EXTRACTING

        elif step is WalkState.EXTRACTING:
            state.page_index += 1
            state.current_url = page.url
            LOG.info("    Processing page %d of chapter", state.page_index)
            try:
                await full_scroll(page, settings.scroll_step, settings.scroll_delay_ms)
                container = await page.query_selector(settings.content_selector)
                if container is None:
                    LOG.warning("    No %s found on this page", settings.content_selector)
                else:
                    result.paragraphs.extend(await extract(page, container))
            except Exception as exc:
                result.error = NavigationError(f"Page {state.page_index} of {url} broke during extraction: {exc}")
                LOG.warning("    %s", result.error)
                step = WalkState.DONE
                continue
            step = WalkState.CHECKING_NEXT

        elif step is WalkState.CHECKING_NEXT:
            step = WalkState.DONE
            try:
                await page.wait_for_timeout(settings.footer_settle_ms)
                link, text, href = await read_footer(page, settings)
            except Exception as exc:
                LOG.warning("    Could not read footer links: %s", exc)
                continue
            state.sentinel_text = text
            state.has_next = link is not None and text == settings.next_page_text
            if state.has_next:
                if state.page_index >= settings.max_pages_per_chapter:
                    LOG.warning("    Page limit %d reached, finishing this chapter", settings.max_pages_per_chapter)
                else:
                    LOG.info("    %s found, clicking to next page", settings.next_page_text)
                    try:
                        moved = await follow_next(page, link, settings)
                    except NavigationError as exc:
                        result.error = exc
                        LOG.warning("    %s", exc)
                        continue
                    if moved:
                        step = WalkState.EXTRACTING
            elif text == settings.next_chapter_text:
                state.next_chapter_url = abs_url(href, page.url) or None
                LOG.info("    %s found (%s), finishing this chapter", text, state.next_chapter_url)
            else:
                LOG.info("    No %s found, finishing this chapter", settings.next_page_text)

    result.pages = state.page_index
    result.next_chapter_url = state.next_chapter_url
    return result
