# -*- coding: utf-8 -*-
# Image capture: lazy-load readiness, layout stability and the capture fallback chain.

from __future__ import annotations

import asyncio
import base64
import io
import logging
import pathlib
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError
from playwright.async_api import ElementHandle, Page

from .errors import AssetCaptureError
from .models import AssetRef
from .naming import abs_url, asset_id_from_url, ext_from_url
from .polling import poll_until, wait_stable
from .settings import FetchSettings
from .storage import write_bytes_atomic

LOG = logging.getLogger("novelgrab.assets")

IMAGE_EXTS = {"jpg", "jpeg", "png", "gif", "webp", "avif", "bmp", "svg"}
PIL_FORMAT_EXT = {"JPEG": "jpg", "MPO": "jpg", "TIFF": "tif"}
DEFAULT_EXT = "png"

FORCE_EAGER_JS = """
(img, attrs) => {
  img.loading = 'eager';
  for (const name of attrs) {
    if (name === 'src') continue;
    const want = img.getAttribute(name);
    if (want && !want.startsWith('data:') && img.getAttribute('src') !== want) {
      img.setAttribute('src', want);
      break;
    }
  }
}
"""

READY_JS = """
(img, loadedClass) => {
  if (loadedClass && img.classList && img.classList.contains(loadedClass)) return true;
  const src = img.getAttribute('src') || '';
  if (src && !src.startsWith('data:') && img.complete) return true;
  return (img.naturalWidth || 0) > 0;
}
"""

PAGE_FETCH_JS = """
async (url) => {
  const res = await fetch(url, { credentials: 'include' });
  if (!res.ok) throw new Error('HTTP ' + res.status);
  const blob = await res.blob();
  return await new Promise((resolve, reject) => {
    const reader = new FileReader();
    reader.onloadend = () => resolve(String(reader.result).split(',')[1] || '');
    reader.onerror = reject;
    reader.readAsDataURL(blob);
  });
}
"""

Strategy = Callable[[ElementHandle, Page, str, float], Awaitable[bytes]]


@dataclass
class CaptureResult:
    data: bytes
    ext: str
    strategy: str


def sniff_ext(data: bytes) -> Optional[str]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format or ""
    except (UnidentifiedImageError, OSError, ValueError):
        return None
    if not fmt:
        return None
    return PIL_FORMAT_EXT.get(fmt, fmt.lower())


def choose_ext(data: bytes, url: str, strategy: str) -> str:
    if strategy == "snapshot":
        return "png"
    sniffed = sniff_ext(data)
    if sniffed:
        return sniffed
    from_url = ext_from_url(url)
    if from_url in IMAGE_EXTS:
        return "jpg" if from_url == "jpeg" else from_url
    return DEFAULT_EXT


def find_existing(asset_dir: pathlib.Path, asset_id: str) -> Optional[pathlib.Path]:
    if not asset_dir.is_dir():
        return None
    for candidate in sorted(asset_dir.glob(f"{asset_id}.*")):
        if candidate.is_file() and candidate.stem == asset_id:
            return candidate
    return None


async def snapshot_strategy(handle: ElementHandle, page: Page, url: str, timeout: float) -> bytes:
    return await handle.screenshot(timeout=timeout * 1000)


async def page_fetch_strategy(handle: ElementHandle, page: Page, url: str, timeout: float) -> bytes:
    b64 = await page.evaluate(PAGE_FETCH_JS, url)
    if not b64:
        raise AssetCaptureError("empty body from in-page fetch")
    return base64.b64decode(b64)


async def context_request_strategy(handle: ElementHandle, page: Page, url: str, timeout: float) -> bytes:
    resp = await page.context.request.get(
        url,
        headers={
            "Referer": page.url,
            "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
        },
        timeout=timeout * 1000,
    )
    if not resp.ok:
        raise AssetCaptureError(f"HTTP {resp.status}")
    return await resp.body()


DEFAULT_STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("snapshot", snapshot_strategy),
    ("page_fetch", page_fetch_strategy),
    ("context_request", context_request_strategy),
)


class AssetCapturer:
    def __init__(
        self,
        settings: FetchSettings,
        strategies: Optional[Sequence[Tuple[str, Strategy]]] = None,
    ):
        self.settings = settings
        self.strategies: List[Tuple[str, Strategy]] = list(
            DEFAULT_STRATEGIES if strategies is None else strategies
        )

    async def resolve_source(self, handle: ElementHandle, page: Page) -> str:
        for name in self.settings.image_source_attrs:
            try:
                raw = await handle.get_attribute(name)
            except Exception as exc:
                LOG.debug("get_attribute(%s) failed: %s", name, exc)
                continue
            url = abs_url(raw, page.url)
            if url:
                return url
        return ""

    async def wait_ready(self, handle: ElementHandle) -> bool:
        s = self.settings
        try:
            await handle.evaluate(FORCE_EAGER_JS, list(s.image_source_attrs))
        except Exception as exc:
            LOG.debug("Could not force eager load: %s", exc)

        async def probe():
            return await handle.evaluate(READY_JS, s.loaded_class)

        res = await poll_until(probe, s.ready_interval_ms / 1000, s.ready_timeout_ms / 1000)
        return res.ok

    async def wait_geometry(self, handle: ElementHandle) -> Optional[Tuple[float, ...]]:
        s = self.settings

        async def probe():
            box = await handle.bounding_box()
            if not box:
                return None
            return (box["x"], box["y"], box["width"], box["height"])

        res = await wait_stable(
            probe,
            s.stable_interval_ms / 1000,
            s.stable_timeout_ms / 1000,
            samples=s.stable_samples,
            tolerance=s.stable_tolerance_px,
        )
        if not res.ok:
            LOG.debug("Bounding box did not settle after %d samples; last=%s", res.attempts, res.value)
        return res.value

    async def run_chain(self, handle: ElementHandle, page: Page, url: str) -> Optional[CaptureResult]:
        timeout = self.settings.capture_timeout
        for name, strategy in self.strategies:
            try:
                data = await asyncio.wait_for(strategy(handle, page, url, timeout), timeout)
            except asyncio.TimeoutError:
                LOG.warning("      %s timed out for %s", name, url)
                continue
            except Exception as exc:
                LOG.warning("      %s failed for %s: %s", name, url, exc)
                continue
            if not data:
                LOG.warning("      %s returned no data for %s", name, url)
                continue
            return CaptureResult(data=data, ext=choose_ext(data, url, name), strategy=name)
        return None

    async def capture(
        self,
        handle: ElementHandle,
        page: Page,
        asset_dir: pathlib.Path,
        asset_id: Optional[str] = None,
    ) -> Optional[AssetRef]:
        """Capture one image into ``asset_dir``.

        Returns ``None`` when the element has no resolvable source. When every
        strategy fails the reference is still returned with ``captured=False``.
        """
        url = await self.resolve_source(handle, page)
        if not url:
            return None
        asset_id = asset_id or asset_id_from_url(url)

        existing = find_existing(asset_dir, asset_id)
        if existing is not None:
            LOG.debug("      Asset %s already on disk: %s", asset_id, existing.name)
            return AssetRef(asset_id, url, captured=True, path=existing, strategy="existing")

        s = self.settings
        try:
            await handle.scroll_into_view_if_needed(timeout=s.capture_timeout_ms)
        except Exception as exc:
            LOG.debug("      scroll_into_view_if_needed failed: %s", exc)
        await asyncio.sleep(s.scroll_settle_ms / 1000)

        if not await self.wait_ready(handle):
            LOG.warning("      Image not ready after %sms, capturing anyway: %s", s.ready_timeout_ms, url)
        await self.wait_geometry(handle)

        result = await self.run_chain(handle, page, url)
        if result is None:
            LOG.warning("      Could not capture image with any strategy: %s", url)
            return AssetRef(asset_id, url, captured=False)

        path = asset_dir / f"{asset_id}.{result.ext}"
        try:
            write_bytes_atomic(path, result.data)
        except OSError as exc:
            LOG.warning("      Failed saving image %s: %s", path, exc)
            return AssetRef(asset_id, url, captured=False, strategy=result.strategy)
        LOG.info("      Saved image (%s): %s", result.strategy, path)
        return AssetRef(asset_id, url, captured=True, path=path, strategy=result.strategy)
