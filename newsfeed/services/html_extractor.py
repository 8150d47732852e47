from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup
from bs4.element import Tag

from ..config import Settings, get_settings
from ..models.feed import FeedItem
from .items import dedupe_and_cap, namespaced_guid, normalize_whitespace, truncate

logger = logging.getLogger(__name__)

MAIN_REGION_SELECTORS: tuple[str, ...] = ("main", "[role=main]")

# Nearest match of an earlier group wins over a closer match of a later one.
CONTAINER_PRIORITY: tuple[frozenset[str], ...] = (
    frozenset({"article"}),
    frozenset({"li"}),
    frozenset({"div", "section"}),
)


class TreeNode(Protocol):
    name: Any
    parent: Any


def closest(node: TreeNode | None, names: frozenset[str]) -> TreeNode | None:
    current = node
    while current is not None:
        if current.name in names:
            return current
        current = current.parent
    return None


def find_container(
    node: TreeNode,
    priority: tuple[frozenset[str], ...] = CONTAINER_PRIORITY,
) -> TreeNode | None:
    """Pick the element holding a link's date and teaser.

    Walks up from ``node`` once per priority group and returns the first hit,
    falling back to the immediate parent.
    """
    for names in priority:
        match = closest(node, names)
        if match is not None:
            return match
    return node.parent


@dataclass(slots=True)
class HtmlItemExtractor:
    settings: Settings | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    def extract(self, html: str) -> list[FeedItem]:
        settings = self.settings or get_settings()
        try:
            soup = BeautifulSoup(html, "lxml")
        except ParserRejectedMarkup as exc:
            logger.warning("Listing page rejected by parser: %s", exc)
            return []
        region = self._main_region(soup)
        prefix = settings.listing_prefix
        article_path = re.compile(rf"^{re.escape(prefix)}/[^/?#]+/?$")

        candidates: list[FeedItem] = []
        for anchor in region.select(f'a[href^="{prefix}/"]'):
            item = self._build_item(anchor, article_path, settings)
            if item is not None:
                candidates.append(item)
        return dedupe_and_cap(candidates, settings.max_items)

    def _main_region(self, soup: BeautifulSoup) -> Tag:
        for selector in MAIN_REGION_SELECTORS:
            region = soup.select_one(selector)
            if region is not None:
                return region
        return soup

    def _build_item(
        self, anchor: Tag, article_path: re.Pattern[str], settings: Settings
    ) -> FeedItem | None:
        href = str(anchor.get("href") or "").strip()
        title = normalize_whitespace(anchor.get_text())
        if not href or not title:
            return None
        if href.rstrip("/") == settings.listing_prefix:
            return None
        if not article_path.match(href):
            return None

        link = urljoin(f"{settings.origin}/", href)
        container = find_container(anchor)
        pub_date = None
        description = None
        if isinstance(container, Tag):
            pub_date = _container_date(container)
            description = _container_summary(container, title)

        return FeedItem(
            title=title,
            link=link,
            pub_date=pub_date,
            description=description,
            guid=namespaced_guid(settings.source_name, link),
        )


def _container_date(container: Tag) -> str | None:
    time_tag = container.find("time")
    if not isinstance(time_tag, Tag):
        return None
    machine = str(time_tag.get("datetime") or "").strip()
    return machine or normalize_whitespace(time_tag.get_text()) or None


def _container_summary(container: Tag, title: str) -> str | None:
    for paragraph in container.find_all("p"):
        text = normalize_whitespace(paragraph.get_text())
        if text and text != title:
            return truncate(text)
    return None
