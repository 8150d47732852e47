from __future__ import annotations

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup
from bs4.element import Tag

from ..config import Settings, get_settings
from ..models.feed import FeedItem
from .items import dedupe_and_cap, namespaced_guid, normalize_whitespace, truncate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FeedItemExtractor:
    """Reads an RSS 2.0 or Atom document into :class:`FeedItem` records."""

    settings: Settings | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    def extract(self, document: str) -> list[FeedItem]:
        settings = self.settings or get_settings()
        if not document.strip():
            return []
        try:
            soup = BeautifulSoup(document, "xml")
        except ParserRejectedMarkup as exc:
            logger.warning("Feed document rejected by parser: %s", exc)
            return []
        entries = soup.find_all("item") or soup.find_all("entry")

        candidates: list[FeedItem] = []
        for entry in entries:
            item = self._build_item(entry, settings)
            if item is not None:
                candidates.append(item)
        return dedupe_and_cap(candidates, settings.max_items)

    def _build_item(self, entry: Tag, settings: Settings) -> FeedItem | None:
        title = normalize_whitespace(_text(entry, "title"))
        link = _link(entry)
        if not title or not link:
            return None

        pub_date = (
            _text(entry, "pubDate")
            or _text(entry, "published")
            or _text(entry, "updated")
            or _text(entry, "dc:date")
        )
        description = _text(entry, "description") or _text(entry, "summary")
        guid = _text(entry, "guid") or _text(entry, "id")
        return FeedItem(
            title=title,
            link=link,
            pub_date=pub_date or None,
            description=truncate(description) if description else None,
            guid=guid or namespaced_guid(settings.source_name, link),
        )


def _text(entry: Tag, name: str) -> str:
    tag = entry.find(name, recursive=False)
    if not isinstance(tag, Tag):
        return ""
    return tag.get_text(strip=True)


def _link(entry: Tag) -> str:
    links = [
        tag for tag in entry.find_all("link", recursive=False) if isinstance(tag, Tag)
    ]
    for tag in links:
        text = tag.get_text(strip=True)
        if text:
            return text
    # Atom: <link href="..."/>, rel defaults to "alternate"
    for tag in links:
        href = str(tag.get("href") or "").strip()
        if href and tag.get("rel", "alternate") == "alternate":
            return href
    return ""
