import asyncio
from dataclasses import replace

from fakes import FakeContext, FakeDocument, FakeElement, FakeSite, footer_link
from novelgrab.errors import NavigationError
from novelgrab.models import TextLine
from novelgrab.pagination import walk_chapter

BASE = "https://novel.example/novel/2139/"


def chapter_page(site, url, footer_links):
    footer = FakeElement(children={"a": footer_links})
    return site.add(
        url,
        FakeDocument(elements={"#acontent": [FakeElement()], "div#footlink": [footer]}, markup=f"<p>{url}</p>"),
    )


def three_page_site():
    site = FakeSite()
    urls = [BASE + "100.html", BASE + "100_2.html", BASE + "100_3.html"]
    chapter_page(site, urls[0], [footer_link(site, "上一章", BASE + "99.html"), footer_link(site, "下一頁", urls[1])])
    chapter_page(site, urls[1], [footer_link(site, "上一頁", urls[0]), footer_link(site, "下一頁", urls[2])])
    chapter_page(site, urls[2], [footer_link(site, "上一頁", urls[1]), footer_link(site, "目錄", BASE + "catalog")])
    return site, urls


class Recorder:
    def __init__(self):
        self.seen = []

    async def __call__(self, page, container):
        self.seen.append(page.url)
        return [[TextLine(page.url)]]


def walk(site, url, settings, extract):
    page = asyncio.run(FakeContext(site).new_page())
    return asyncio.run(walk_chapter(page, url, settings, extract))


def test_follows_next_page_until_sentinel_disappears(settings):
    site, urls = three_page_site()
    extract = Recorder()

    result = walk(site, urls[0], settings, extract)

    assert extract.seen == urls
    assert result.pages == 3
    assert result.error is None
    assert [p[0].text for p in result.paragraphs] == urls
    assert result.next_chapter_url is None


def test_next_chapter_sentinel_is_recorded_not_followed(settings):
    site = FakeSite()
    url = BASE + "100.html"
    chapter_page(site, url, [footer_link(site, "下一章", "/novel/2139/101.html")])
    extract = Recorder()

    result = walk(site, url, settings, extract)

    assert result.pages == 1
    assert extract.seen == [url]
    assert result.next_chapter_url == BASE + "101.html"


def test_load_failure_keeps_nothing(settings):
    site = FakeSite()
    site.unreachable.add(BASE + "100.html")
    extract = Recorder()

    result = walk(site, BASE + "100.html", settings, extract)

    assert isinstance(result.error, NavigationError)
    assert result.pages == 0
    assert result.paragraphs == []
    assert extract.seen == []


def test_link_that_goes_nowhere_stops_the_chapter(settings):
    site = FakeSite()
    url = BASE + "100.html"
    chapter_page(site, url, [footer_link(site, "下一頁", url)])
    extract = Recorder()

    result = walk(site, url, settings, extract)

    assert result.pages == 1
    assert extract.seen == [url]
    assert result.error is None


def test_page_limit(settings):
    site, urls = three_page_site()
    extract = Recorder()

    result = walk(site, urls[0], replace(settings, max_pages_per_chapter=2), extract)

    assert result.pages == 2
    assert extract.seen == urls[:2]


def test_extraction_failure_keeps_earlier_pages(settings):
    site, urls = three_page_site()
    calls = []

    async def extract(page, container):
        calls.append(page.url)
        if len(calls) == 2:
            raise RuntimeError("Target closed")
        return [[TextLine(page.url)]]

    result = walk(site, urls[0], settings, extract)

    assert isinstance(result.error, NavigationError)
    assert result.pages == 2
    assert [p[0].text for p in result.paragraphs] == [urls[0]]


def test_missing_container_and_footer(settings):
    site = FakeSite()
    url = BASE + "100.html"
    site.add(url, FakeDocument())
    extract = Recorder()

    result = walk(site, url, settings, extract)

    assert result.pages == 1
    assert result.paragraphs == []
    assert extract.seen == []


def test_script_error_before_click_keeps_gathered_page(settings):
    site, urls = three_page_site()
    site.documents[urls[0]].markup_error = "Execution context was destroyed, most likely because of a navigation"
    extract = Recorder()

    result = walk(site, urls[0], settings, extract)

    assert isinstance(result.error, NavigationError)
    assert "Execution context was destroyed" in str(result.error)
    assert result.pages == 1
    assert [p[0].text for p in result.paragraphs] == [urls[0]]
