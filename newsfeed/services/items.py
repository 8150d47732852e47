from __future__ import annotations

from collections.abc import Iterable

from ..models.feed import FeedItem

DESCRIPTION_LIMIT = 500
TRUNCATION_MARKER = "..."


def normalize_whitespace(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(value.split())


def truncate(value: str, limit: int = DESCRIPTION_LIMIT) -> str:
    """Cut ``value`` to ``limit`` characters, marker included."""
    if len(value) <= limit:
        return value
    return value[: limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def namespaced_guid(source: str, link: str) -> str:
    return f"{source}:{link}"


def dedupe_and_cap(items: Iterable[FeedItem], limit: int) -> list[FeedItem]:
    """Keep the first item per link, in discovery order, up to ``limit``."""
    kept: list[FeedItem] = []
    seen: set[str] = set()
    for item in items:
        if item.link in seen:
            continue
        kept.append(item)
        seen.add(item.link)
        if len(kept) >= limit:
            break
    return kept
