import asyncio

import pytest

from fakes import FakeContext, FakeElement, FakeSite, img, png_bytes
from novelgrab.assets import AssetCapturer
from novelgrab.errors import ExtractionError
from novelgrab.models import Caption, ImageRef, TextLine
from novelgrab.tokens import LineBuffer, NodeInfo, NodeKind, classify_nodes, extract_tokens, node_from_raw, parse_nodes


async def fake_capture(node):
    digits = "".join(ch for ch in node.src if ch.isdigit())
    return ImageRef(digits, node.src)


def classify(raw):
    return asyncio.run(classify_nodes(parse_nodes(raw), fake_capture))


class TestNodeParsing:
    def test_known_kinds(self):
        node = node_from_raw({"kind": "img", "src": "a/12.jpg", "ordinal": 0})
        assert node == NodeInfo(NodeKind.IMAGE, src="a/12.jpg", ordinal=0)

    def test_unknown_kind_raises(self):
        with pytest.raises(ExtractionError):
            node_from_raw({"kind": "svg", "text": "x"})
        with pytest.raises(ExtractionError):
            node_from_raw("text")

    def test_unknown_kind_degrades_to_text(self):
        assert parse_nodes([{"kind": "svg", "text": "abc"}, 5]) == [
            NodeInfo(NodeKind.OTHER, text="abc"),
            NodeInfo(NodeKind.OTHER, text=""),
        ]


class TestLineBuffer:
    def test_whitespace_only_is_dropped(self):
        buf = LineBuffer()
        buf.add("  \n ")
        assert buf.flush() is None

    def test_strips_line_endings_only(self):
        buf = LineBuffer()
        buf.add("\n　indented ")
        buf.add("text\r\n")
        assert buf.flush() == TextLine("　indented text")
        assert buf.flush() is None


class TestClassify:
    def test_text_image_text(self):
        tokens = classify(
            [
                {"kind": "text", "text": "a"},
                {"kind": "br"},
                {"kind": "img", "src": "https://img.example/pic/12.jpg", "ordinal": 0},
                {"kind": "text", "text": "b"},
            ]
        )
        assert tokens == [TextLine("a"), ImageRef("12", "https://img.example/pic/12.jpg"), TextLine("b")]

    def test_image_flushes_pending_text(self):
        tokens = classify(
            [{"kind": "text", "text": "before"}, {"kind": "img", "src": "/3.png", "ordinal": 0}, {"kind": "text", "text": "after"}]
        )
        assert tokens == [TextLine("before"), ImageRef("3", "/3.png"), TextLine("after")]

    def test_consecutive_breaks_never_make_blank_lines(self):
        tokens = classify(
            [
                {"kind": "text", "text": "one"},
                {"kind": "br"},
                {"kind": "br"},
                {"kind": "br"},
                {"kind": "text", "text": "two"},
                {"kind": "br"},
            ]
        )
        assert tokens == [TextLine("one"), TextLine("two")]

    def test_inline_elements_join_the_line(self):
        tokens = classify(
            [{"kind": "text", "text": "he said "}, {"kind": "other", "text": "hello"}, {"kind": "text", "text": "!"}]
        )
        assert tokens == [TextLine("he said hello!")]

    def test_caption_and_hidden(self):
        tokens = classify(
            [
                {"kind": "text", "text": "x"},
                {"kind": "hidden"},
                {"kind": "caption", "text": "  插圖一  "},
                {"kind": "caption", "text": "   "},
                {"kind": "text", "text": "y"},
            ]
        )
        assert tokens == [TextLine("x"), Caption("插圖一"), TextLine("y")]

    def test_failed_image_is_left_out(self):
        async def no_capture(node):
            return None

        tokens = asyncio.run(
            classify_nodes(
                parse_nodes([{"kind": "text", "text": "a"}, {"kind": "img", "src": "", "ordinal": 0}]), no_capture
            )
        )
        assert tokens == [TextLine("a")]


def test_extract_tokens_groups_blocks_and_captures_images(settings, tmp_path):
    site = FakeSite()
    ctx = FakeContext(site)
    page = asyncio.run(ctx.new_page())
    page.url = "https://novel.example/novel/2139/1.html"

    picture = img("/pic/12.jpg", shot=png_bytes())
    container = FakeElement(
        children={"img": [picture]},
        walk=[
            [{"kind": "text", "text": "first"}],
            [{"kind": "img", "src": "/pic/12.jpg", "ordinal": 0}, {"kind": "text", "text": "second"}],
            [{"kind": "br"}],
            [{"kind": "caption", "text": "插圖"}],
        ],
    )
    capturer = AssetCapturer(settings)
    asset_dir = tmp_path / "pictures" / "ch1"

    paragraphs = asyncio.run(extract_tokens(page, container, settings, capturer, asset_dir))

    assert paragraphs == [
        [TextLine("first")],
        [ImageRef("12", "https://novel.example/pic/12.jpg"), TextLine("second")],
        [Caption("插圖")],
    ]
    assert (asset_dir / "12.png").is_file()


def test_extract_tokens_skips_image_without_handle(settings, tmp_path):
    site = FakeSite()
    page = asyncio.run(FakeContext(site).new_page())
    page.url = "https://novel.example/novel/2139/1.html"
    container = FakeElement(walk=[[{"kind": "text", "text": "a"}, {"kind": "img", "src": "/pic/7.jpg", "ordinal": 3}]])

    paragraphs = asyncio.run(extract_tokens(page, container, settings, AssetCapturer(settings), tmp_path))

    assert paragraphs == [[TextLine("a")]]


def test_parenthesised_caption_is_unwrapped():
    assert classify([{"kind": "caption", "text": "(插圖)"}]) == [Caption("插圖")]
