from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime, timezone
from email.utils import format_datetime
from xml.sax.saxutils import escape

from .models.feed import FeedItem

_ENTITIES = {'"': "&quot;", "'": "&apos;"}

# Control characters XML 1.0 forbids even when escaped.
_INVALID_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def escape_xml(value: str) -> str:
    return escape(_INVALID_XML_CHARS.sub("", value), _ENTITIES)


def rfc1123(moment: datetime) -> str:
    """``Tue, 02 Jan 2024 03:04:05 GMT``"""
    return format_datetime(moment.astimezone(timezone.utc), usegmt=True)


def _element(tag: str, value: str | None, indent: str) -> str | None:
    if not value:
        return None
    return f"{indent}<{tag}>{escape_xml(value)}</{tag}>"


def _render_item(item: FeedItem) -> str:
    lines = [
        "    <item>",
        f"      <title>{escape_xml(item.title)}</title>",
        f"      <link>{escape_xml(item.link)}</link>",
        f'      <guid isPermaLink="false">{escape_xml(item.guid)}</guid>',
    ]
    for line in (
        _element("pubDate", item.pub_date, "      "),
        _element("description", item.description, "      "),
    ):
        if line is not None:
            lines.append(line)
    lines.append("    </item>")
    return "\n".join(lines)


def render_rss(
    channel_title: str,
    channel_link: str,
    items: Sequence[FeedItem],
    *,
    built_at: datetime | None = None,
) -> str:
    built_at = built_at or datetime.now(timezone.utc)
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0">',
        "  <channel>",
        f"    <title>{escape_xml(channel_title)}</title>",
        f"    <link>{escape_xml(channel_link)}</link>",
        f"    <description>{escape_xml(channel_title)}</description>",
        f"    <lastBuildDate>{escape_xml(rfc1123(built_at))}</lastBuildDate>",
    ]
    parts.extend(_render_item(item) for item in items)
    parts.extend(["  </channel>", "</rss>", ""])
    return "\n".join(parts)
