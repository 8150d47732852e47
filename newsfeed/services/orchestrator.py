"""Degradation chain: listing page, then secondary feed, then placeholder.

The run is a small state machine::

    TRY_PRIMARY -> TRY_SECONDARY -> TRY_PLACEHOLDER -> DONE

``next_stage`` is the only transition function and ``decide`` the only place
that chooses between writing a new file and leaving the existing one alone.
Retrieval failures never escape :meth:`FeedOrchestrator.run`; errors from
writing the output file do.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from ..config import Settings, get_settings
from ..http_client import DocumentFetcher, ExpectedContent, RetrievalError
from ..models.feed import Decision, Feed, FeedItem, RunReport, Stage
from ..rss import render_rss, rfc1123
from ..storage import FeedStore
from .feed_extractor import FeedItemExtractor
from .html_extractor import HtmlItemExtractor
from .items import truncate

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE = "Feed temporarily unavailable"
PLACEHOLDER_DETAIL_LIMIT = 800


@dataclass(frozen=True, slots=True)
class SourceResult:
    source: str
    items: tuple[FeedItem, ...] = ()
    error: str | None = None

    @property
    def retrieved(self) -> bool:
        return self.error is None


def is_usable(result: SourceResult | None, empty_is_failure: bool) -> bool:
    if result is None or not result.retrieved:
        return False
    return bool(result.items) or not empty_is_failure


def next_stage(
    stage: Stage, result: SourceResult | None, settings: Settings
) -> Stage:
    if stage is Stage.TRY_PRIMARY:
        if is_usable(result, settings.empty_result_is_failure):
            return Stage.DONE
        if settings.secondary_feed_url is not None:
            return Stage.TRY_SECONDARY
        return Stage.TRY_PLACEHOLDER
    if stage is Stage.TRY_SECONDARY:
        if is_usable(result, settings.empty_result_is_failure):
            return Stage.DONE
        return Stage.TRY_PLACEHOLDER
    return Stage.DONE


def decide(
    result: SourceResult | None, output_exists: bool, empty_is_failure: bool
) -> Decision:
    """Publish real content always, a placeholder only over nothing."""
    if is_usable(result, empty_is_failure):
        return Decision.PUBLISH
    return Decision.PRESERVE if output_exists else Decision.PUBLISH


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class FeedOrchestrator:
    settings: Settings | None = None
    fetcher: DocumentFetcher | None = None
    store: FeedStore | None = None
    clock: Callable[[], datetime] = _utcnow

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()
        if self.fetcher is None:
            self.fetcher = DocumentFetcher(settings=self.settings)
        if self.store is None:
            self.store = FeedStore(self.settings.output_path)

    async def run(self) -> RunReport:
        settings = self.settings or get_settings()
        store = self.store or FeedStore(settings.output_path)

        stages: list[Stage] = []
        attempts: dict[str, SourceResult] = {}
        result: SourceResult | None = None
        stage = Stage.TRY_PRIMARY
        while stage is not Stage.DONE:
            stages.append(stage)
            if stage is not Stage.TRY_PLACEHOLDER:
                result = await self._try_source(stage, settings)
                attempts[result.source] = result
            stage = next_stage(stage, result, settings)
        stages.append(Stage.DONE)

        errors = {
            name: attempt.error or "no items extracted"
            for name, attempt in attempts.items()
            if not is_usable(attempt, settings.empty_result_is_failure)
        }
        decision = decide(result, store.exists(), settings.empty_result_is_failure)
        report = RunReport(
            stages=stages,
            decision=decision,
            output_path=str(store.path),
            errors=errors,
        )

        if decision is Decision.PRESERVE:
            logger.warning(
                "All sources failed; leaving existing %s untouched (%s)",
                store.path,
                errors,
            )
            return report

        if result is not None and is_usable(result, settings.empty_result_is_failure):
            source, items = result.source, list(result.items)
        else:
            source, items = "placeholder", [self._placeholder_item(errors, settings)]
            logger.warning("All sources failed; publishing placeholder feed")

        feed = Feed(
            title=settings.channel_title,
            link=settings.listing_url,
            built_at=self.clock(),
            items=items,
        )
        store.write_text(
            render_rss(feed.title, feed.link, feed.items, built_at=feed.built_at)
        )
        logger.info("Published %d items from %s source", len(items), source)
        return report.model_copy(update={"source": source, "item_count": len(items)})

    async def _try_source(self, stage: Stage, settings: Settings) -> SourceResult:
        if stage is Stage.TRY_PRIMARY:
            return await self._collect(
                "primary",
                settings.listing_url,
                ExpectedContent.HTML,
                HtmlItemExtractor(settings=settings).extract,
            )
        return await self._collect(
            "secondary",
            str(settings.secondary_feed_url),
            ExpectedContent.FEED,
            FeedItemExtractor(settings=settings).extract,
        )

    async def _collect(
        self,
        source: str,
        url: str,
        expected: ExpectedContent,
        extract: Callable[[str], list[FeedItem]],
    ) -> SourceResult:
        fetcher = self.fetcher or DocumentFetcher(settings=self.settings)
        try:
            document = await fetcher.fetch(url, expected)
        except RetrievalError as exc:
            logger.warning("%s source %s unavailable: %s", source.capitalize(), url, exc)
            return SourceResult(source=source, error=str(exc))

        items = extract(document)
        if not items:
            logger.warning("%s source %s yielded no items", source.capitalize(), url)
        else:
            logger.info("Extracted %d items from %s", len(items), url)
        return SourceResult(source=source, items=tuple(items))

    def _placeholder_item(self, errors: dict[str, str], settings: Settings) -> FeedItem:
        now = self.clock()
        detail = "; ".join(f"{name}: {error}" for name, error in errors.items())
        return FeedItem(
            title=PLACEHOLDER_TITLE,
            link=settings.listing_url,
            pub_date=rfc1123(now),
            description=truncate(detail or "no source available", PLACEHOLDER_DETAIL_LIMIT),
            guid=f"{settings.source_name}:placeholder:{int(now.timestamp() * 1000)}",
        )
