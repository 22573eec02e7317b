# -*- coding: utf-8 -*-
"""Content token classification.

The page side walks the content container once and describes every child
node (text, line break, image, caption, other inline element, hidden
element). The Python side turns those descriptors into an ordered token
list with a single line buffer:

* text and other inline elements are appended to the buffer;
* a line break flushes the buffer as a :class:`TextLine`;
* an image flushes the buffer, then is captured and emitted as an
  :class:`ImageRef`;
* a caption flushes the buffer and is emitted whole;
* hidden elements are dropped.

Empty or whitespace-only buffers are never emitted, so consecutive breaks
separate lines but never produce blank ones.
"""

from __future__ import annotations

import logging
import pathlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Optional

from playwright.async_api import ElementHandle, Page

from .assets import AssetCapturer
from .errors import ExtractionError
from .models import Caption, ContentToken, ImageRef, TextLine, caption_text
from .naming import abs_url
from .settings import FetchSettings

LOG = logging.getLogger("novelgrab.tokens")

WALK_JS = r"""
(root, opts) => {
  const isHidden = (el) => {
    const st = window.getComputedStyle(el);
    return st.display === 'none' || st.visibility === 'hidden';
  };
  const isCentered = (el) => {
    if (el.tagName.toLowerCase() === 'center') return true;
    if (opts.captionClass && el.classList && el.classList.contains(opts.captionClass)) return true;
    const st = window.getComputedStyle(el);
    return st.textAlign === 'center' && st.display !== 'inline';
  };
  const allImgs = Array.from(root.querySelectorAll('img'));
  const srcOf = (img) => {
    for (const name of opts.attrs) {
      const v = img.getAttribute(name);
      if (v && !v.startsWith('data:')) return v;
    }
    return '';
  };
  const describe = (node, out) => {
    for (const n of node.childNodes) {
      if (n.nodeType === Node.TEXT_NODE) {
        out.push({kind: 'text', text: n.nodeValue || ''});
        continue;
      }
      if (n.nodeType !== Node.ELEMENT_NODE) continue;
      const tag = n.tagName.toLowerCase();
      if (isHidden(n)) { out.push({kind: 'hidden'}); continue; }
      if (tag === 'br') { out.push({kind: 'br'}); continue; }
      if (tag === 'img') {
        out.push({kind: 'img', src: srcOf(n), ordinal: allImgs.indexOf(n)});
        continue;
      }
      const hasImg = n.querySelector('img') !== null;
      if (!hasImg && isCentered(n)) {
        out.push({kind: 'caption', text: n.textContent || ''});
        continue;
      }
      if (hasImg || n.querySelector('br') !== null) { describe(n, out); continue; }
      out.push({kind: 'other', text: n.textContent || ''});
    }
    return out;
  };
  let blocks = opts.blockSelector ? Array.from(root.querySelectorAll(opts.blockSelector)) : [];
  if (!blocks.length) blocks = [root];
  const result = [];
  for (const block of blocks) {
    if (block !== root && isHidden(block)) continue;
    if (block !== root && block.querySelector('img') === null && isCentered(block)) {
      result.push([{kind: 'caption', text: block.textContent || ''}]);
      continue;
    }
    result.push(describe(block, []));
  }
  return result;
}
"""


class NodeKind(str, Enum):
    TEXT = "text"
    LINE_BREAK = "br"
    IMAGE = "img"
    CAPTION = "caption"
    OTHER = "other"
    HIDDEN = "hidden"


@dataclass(frozen=True)
class NodeInfo:
    kind: NodeKind
    text: str = ""
    src: str = ""
    ordinal: int = -1


def node_from_raw(raw: Any) -> NodeInfo:
    if not isinstance(raw, dict):
        raise ExtractionError(f"node descriptor is not a mapping: {raw!r}")
    try:
        kind = NodeKind(raw.get("kind"))
    except ValueError as exc:
        raise ExtractionError(f"unknown node kind {raw.get('kind')!r}") from exc
    ordinal = raw.get("ordinal")
    return NodeInfo(
        kind=kind,
        text=str(raw.get("text") or ""),
        src=str(raw.get("src") or ""),
        ordinal=ordinal if isinstance(ordinal, int) else -1,
    )


def parse_nodes(raw_nodes: Iterable[Any]) -> List[NodeInfo]:
    nodes: List[NodeInfo] = []
    for raw in raw_nodes or []:
        try:
            nodes.append(node_from_raw(raw))
        except ExtractionError as exc:
            LOG.debug("Treating node as plain text: %s", exc)
            text = raw.get("text", "") if isinstance(raw, dict) else ""
            nodes.append(NodeInfo(NodeKind.OTHER, text=str(text or "")))
    return nodes


class LineBuffer:
    def __init__(self):
        self._parts: List[str] = []

    def add(self, text: str) -> None:
        if text:
            self._parts.append(text)

    def flush(self) -> Optional[TextLine]:
        line = "".join(self._parts).strip("\r\n")
        self._parts = []
        if not line.strip():
            return None
        return TextLine(line)


ImageHandler = Callable[[NodeInfo], Awaitable[Optional[ImageRef]]]


async def classify_nodes(nodes: Iterable[NodeInfo], on_image: ImageHandler) -> List[ContentToken]:
    out: List[ContentToken] = []
    buf = LineBuffer()

    def flush():
        line = buf.flush()
        if line is not None:
            out.append(line)

    for node in nodes:
        if node.kind is NodeKind.HIDDEN:
            continue
        if node.kind in (NodeKind.TEXT, NodeKind.OTHER):
            buf.add(node.text)
        elif node.kind is NodeKind.LINE_BREAK:
            flush()
        elif node.kind is NodeKind.IMAGE:
            flush()
            ref = await on_image(node)
            if ref is not None:
                out.append(ref)
        elif node.kind is NodeKind.CAPTION:
            flush()
            text = caption_text(node.text)
            if text:
                out.append(Caption(text))
    flush()
    return out


async def extract_tokens(
    page: Page,
    container: ElementHandle,
    settings: FetchSettings,
    capturer: AssetCapturer,
    asset_dir: pathlib.Path,
) -> List[List[ContentToken]]:
    """Tokens of one content container, grouped by paragraph block."""
    raw_blocks = await container.evaluate(
        WALK_JS,
        {
            "blockSelector": settings.block_selector,
            "captionClass": settings.caption_class,
            "attrs": list(settings.image_source_attrs),
        },
    )
    images = await container.query_selector_all("img")

    async def on_image(node: NodeInfo) -> Optional[ImageRef]:
        url = abs_url(node.src, page.url)
        if not url:
            LOG.warning("      img without src found; skipping")
            return None
        if not 0 <= node.ordinal < len(images):
            LOG.warning("      img handle %d not found; skipping %s", node.ordinal, url)
            return None
        ref = await capturer.capture(images[node.ordinal], page, asset_dir)
        if ref is None:
            LOG.warning("      img source could not be resolved; skipping %s", url)
            return None
        return ImageRef(ref.asset_id, ref.source_url)

    paragraphs: List[List[ContentToken]] = []
    for raw_nodes in raw_blocks or []:
        tokens = await classify_nodes(parse_nodes(raw_nodes), on_image)
        if tokens:
            paragraphs.append(tokens)
    return paragraphs
