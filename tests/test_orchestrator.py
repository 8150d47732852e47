import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest
import respx

from newsfeed.config import Settings
from newsfeed.http_client import DocumentFetcher
from newsfeed.models.feed import Decision, Stage
from newsfeed.services.orchestrator import (
    PLACEHOLDER_TITLE,
    FeedOrchestrator,
    SourceResult,
    decide,
    next_stage,
)
from newsfeed.storage import FeedStore

LISTING_URL = "https://www.childsafety.gov.au/news"
SECONDARY_URL = "https://feeds.example.org/childsafety.xml"
NOW = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)

LISTING_HTML = """
<main>
  <article>
    <a href="/news/foo">Foo Title</a>
    <time datetime="2024-01-01">Jan 1</time>
    <p>Foo Title</p>
    <p>A short summary.</p>
  </article>
</main>
"""

SECONDARY_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel>
  <item>
    <title>From the secondary feed</title>
    <link>https://www.childsafety.gov.au/news/secondary</link>
  </item>
</channel></rss>
"""


async def _no_sleep(seconds: float) -> None:
    return None


def _settings(tmp_path: Path, **overrides: object) -> Settings:
    values: dict[str, object] = {
        "output_path": tmp_path / "feeds" / "news.xml",
        "secondary_feed_url": SECONDARY_URL,
    }
    values.update(overrides)
    return Settings(**values)


def _orchestrator(settings: Settings, client: httpx.AsyncClient) -> FeedOrchestrator:
    return FeedOrchestrator(
        settings=settings,
        fetcher=DocumentFetcher(settings=settings, client=client, sleep=_no_sleep),
        clock=lambda: NOW,
    )


def _items(path: Path) -> list[ET.Element]:
    root = ET.fromstring(path.read_bytes())
    return root.findall("channel/item")


@pytest.mark.asyncio
async def test_publishes_primary_items(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    async with httpx.AsyncClient() as client:
        with respx.mock(assert_all_called=False) as mock:
            mock.get(LISTING_URL).respond(200, html=LISTING_HTML)
            secondary = mock.get(SECONDARY_URL).respond(200, text=SECONDARY_RSS)
            report = await _orchestrator(settings, client).run()

    assert not secondary.called
    assert report.decision is Decision.PUBLISH
    assert report.source == "primary"
    assert report.item_count == 1
    assert report.stages == [Stage.TRY_PRIMARY, Stage.DONE]
    items = _items(settings.output_path)
    assert len(items) == 1
    assert items[0].findtext("title") == "Foo Title"
    assert items[0].findtext("link") == f"{LISTING_URL}/foo"
    assert items[0].findtext("pubDate") == "2024-01-01"
    assert items[0].findtext("description") == "A short summary."


@pytest.mark.asyncio
async def test_falls_back_to_secondary_feed(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    async with httpx.AsyncClient() as client:
        with respx.mock(assert_all_called=True) as mock:
            primary = mock.get(LISTING_URL).respond(403, text="Access denied")
            mock.get(SECONDARY_URL).respond(200, text=SECONDARY_RSS)
            report = await _orchestrator(settings, client).run()

    assert primary.call_count == 3
    assert report.source == "secondary"
    assert "403" in report.errors["primary"]
    assert report.stages == [Stage.TRY_PRIMARY, Stage.TRY_SECONDARY, Stage.DONE]
    items = _items(settings.output_path)
    assert [item.findtext("title") for item in items] == ["From the secondary feed"]
    assert items[0].findtext("guid") == (
        "childsafety:https://www.childsafety.gov.au/news/secondary"
    )


@pytest.mark.asyncio
async def test_preserves_existing_feed_when_all_sources_fail(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    settings.output_path.parent.mkdir(parents=True)
    settings.output_path.write_text("X", encoding="utf-8")

    async with httpx.AsyncClient() as client:
        with respx.mock(assert_all_called=True) as mock:
            mock.get(LISTING_URL).mock(side_effect=httpx.ConnectError("unreachable"))
            mock.get(SECONDARY_URL).respond(500, text="oops")
            report = await _orchestrator(settings, client).run()

    assert settings.output_path.read_text(encoding="utf-8") == "X"
    assert report.decision is Decision.PRESERVE
    assert report.source is None
    assert report.stages == [
        Stage.TRY_PRIMARY,
        Stage.TRY_SECONDARY,
        Stage.TRY_PLACEHOLDER,
        Stage.DONE,
    ]
    assert set(report.errors) == {"primary", "secondary"}


@pytest.mark.asyncio
async def test_publishes_placeholder_when_nothing_exists(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    async with httpx.AsyncClient() as client:
        with respx.mock(assert_all_called=True) as mock:
            mock.get(LISTING_URL).respond(503, text="maintenance " * 200)
            mock.get(SECONDARY_URL).respond(404, text="gone")
            report = await _orchestrator(settings, client).run()

    assert report.decision is Decision.PUBLISH
    assert report.source == "placeholder"
    items = _items(settings.output_path)
    assert len(items) == 1
    placeholder = items[0]
    assert placeholder.findtext("title") == PLACEHOLDER_TITLE
    assert placeholder.findtext("link") == LISTING_URL
    assert placeholder.findtext("pubDate") == "Sat, 01 Jun 2024 09:30:00 GMT"
    assert placeholder.findtext("guid") == (
        f"childsafety:placeholder:{int(NOW.timestamp() * 1000)}"
    )
    description = placeholder.findtext("description") or ""
    assert description.startswith("primary: Fetch failed 503")
    assert len(description) <= 800


@pytest.mark.asyncio
async def test_placeholder_without_secondary_source(tmp_path: Path) -> None:
    settings = _settings(tmp_path, secondary_feed_url=None)
    async with httpx.AsyncClient() as client:
        with respx.mock(assert_all_called=True) as mock:
            mock.get(LISTING_URL).respond(200, json={"not": "html"})
            report = await _orchestrator(settings, client).run()

    assert report.stages == [Stage.TRY_PRIMARY, Stage.TRY_PLACEHOLDER, Stage.DONE]
    assert report.source == "placeholder"
    assert "Not HTML" in report.errors["primary"]


@pytest.mark.asyncio
async def test_empty_listing_publishes_empty_feed_by_default(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    async with httpx.AsyncClient() as client:
        with respx.mock(assert_all_called=False) as mock:
            mock.get(LISTING_URL).respond(200, html="<main><p>Nothing yet</p></main>")
            secondary = mock.get(SECONDARY_URL).respond(200, text=SECONDARY_RSS)
            report = await _orchestrator(settings, client).run()

    assert not secondary.called
    assert report.source == "primary"
    assert report.item_count == 0
    assert _items(settings.output_path) == []


@pytest.mark.asyncio
async def test_empty_listing_falls_back_when_configured(tmp_path: Path) -> None:
    settings = _settings(tmp_path, empty_result_is_failure=True)
    async with httpx.AsyncClient() as client:
        with respx.mock(assert_all_called=True) as mock:
            mock.get(LISTING_URL).respond(200, html="<main><p>Nothing yet</p></main>")
            mock.get(SECONDARY_URL).respond(200, text=SECONDARY_RSS)
            report = await _orchestrator(settings, client).run()

    assert report.source == "secondary"
    assert report.errors == {"primary": "no items extracted"}


@pytest.mark.asyncio
async def test_write_failure_propagates(tmp_path: Path) -> None:
    settings = _settings(tmp_path, secondary_feed_url=None)
    blocked = tmp_path / "blocked"
    blocked.mkdir()
    async with httpx.AsyncClient() as client:
        orchestrator = _orchestrator(settings, client)
        orchestrator.store = FeedStore(blocked)
        with respx.mock(assert_all_called=True) as mock:
            mock.get(LISTING_URL).respond(200, html=LISTING_HTML)
            with pytest.raises(OSError):
                await orchestrator.run()


def test_next_stage_transitions() -> None:
    ok = SourceResult(source="primary", items=())
    failed = SourceResult(source="primary", error="boom")
    with_secondary = Settings(secondary_feed_url=SECONDARY_URL)
    without_secondary = Settings(secondary_feed_url=None)
    strict = Settings(secondary_feed_url=SECONDARY_URL, empty_result_is_failure=True)

    assert next_stage(Stage.TRY_PRIMARY, ok, with_secondary) is Stage.DONE
    assert next_stage(Stage.TRY_PRIMARY, ok, strict) is Stage.TRY_SECONDARY
    assert next_stage(Stage.TRY_PRIMARY, failed, with_secondary) is Stage.TRY_SECONDARY
    assert next_stage(Stage.TRY_PRIMARY, failed, without_secondary) is Stage.TRY_PLACEHOLDER
    assert next_stage(Stage.TRY_SECONDARY, failed, with_secondary) is Stage.TRY_PLACEHOLDER
    assert next_stage(Stage.TRY_PLACEHOLDER, failed, with_secondary) is Stage.DONE


def test_decide_publish_or_preserve() -> None:
    failed = SourceResult(source="secondary", error="boom")
    empty = SourceResult(source="secondary")

    assert decide(failed, output_exists=True, empty_is_failure=False) is Decision.PRESERVE
    assert decide(failed, output_exists=False, empty_is_failure=False) is Decision.PUBLISH
    assert decide(empty, output_exists=True, empty_is_failure=False) is Decision.PUBLISH
    assert decide(empty, output_exists=True, empty_is_failure=True) is Decision.PRESERVE
    assert decide(None, output_exists=True, empty_is_failure=False) is Decision.PRESERVE
