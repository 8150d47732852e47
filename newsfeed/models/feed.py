from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class FeedItem(BaseModel):
    title: str = Field(min_length=1, description="Whitespace-normalized headline")
    link: str = Field(min_length=1, description="Absolute article URL, identity key")
    pub_date: str | None = Field(
        default=None, description="Publication date exactly as the source wrote it"
    )
    description: str | None = Field(default=None, description="Short teaser")
    guid: str = Field(min_length=1, description="Source-namespaced identifier")


class Feed(BaseModel):
    title: str = Field(description="Channel title")
    link: str = Field(description="Channel link, the listing page")
    built_at: datetime = Field(description="UTC timestamp of the build")
    items: list[FeedItem] = Field(default_factory=list)


class Stage(str, Enum):
    TRY_PRIMARY = "try_primary"
    TRY_SECONDARY = "try_secondary"
    TRY_PLACEHOLDER = "try_placeholder"
    DONE = "done"


class Decision(str, Enum):
    PUBLISH = "publish"
    PRESERVE = "preserve"


class RunReport(BaseModel):
    stages: list[Stage] = Field(default_factory=list, description="Stages visited")
    decision: Decision
    source: str | None = Field(
        default=None,
        description="primary, secondary or placeholder; None when preserved",
    )
    item_count: int = Field(default=0, ge=0)
    output_path: str
    errors: dict[str, str] = Field(
        default_factory=dict, description="Failure detail per source"
    )
