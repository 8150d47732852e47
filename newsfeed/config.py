from functools import lru_cache
from pathlib import Path

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="", extra="ignore", populate_by_name=True
    )

    http_timeout: float = Field(15.0, gt=0, alias="HTTP_TIMEOUT")
    http_timeout_growth: float = Field(1.75, ge=1, alias="HTTP_TIMEOUT_GROWTH")
    http_retry_attempts: int = Field(3, ge=1, alias="HTTP_RETRY_ATTEMPTS")
    http_backoff: float = Field(2.0, ge=0, alias="HTTP_BACKOFF")
    http_backoff_growth: float = Field(2.0, ge=1, alias="HTTP_BACKOFF_GROWTH")
    http_max_connections: int = Field(4, ge=1, alias="HTTP_MAX_CONNECTIONS")
    http_max_keepalive: int = Field(2, ge=1, alias="HTTP_MAX_KEEPALIVE")
    http_user_agent: str = Field(
        "rss-feeds-bot/1.0 (scheduled job; contact via repo issues)",
        alias="HTTP_USER_AGENT",
    )
    http_accept_language: str = Field("en-AU,en;q=0.9", alias="HTTP_ACCEPT_LANGUAGE")
    http_referer: str = Field("https://www.google.com/", alias="HTTP_REFERER")

    source_name: str = Field("childsafety", min_length=1, alias="SOURCE_NAME")
    site_origin: HttpUrl = Field(
        "https://www.childsafety.gov.au", alias="SITE_ORIGIN"
    )
    # interpolated into a CSS attribute selector, so no quotes or whitespace
    listing_path: str = Field(
        "/news", pattern=r'^/[^?#"\s]*$', alias="LISTING_PATH"
    )
    secondary_feed_url: HttpUrl | None = Field(
        default=None, alias="SECONDARY_FEED_URL"
    )
    channel_title: str = Field(
        "ChildSafety.gov.au - News (Latest)", alias="CHANNEL_TITLE"
    )
    output_path: Path = Field(
        Path("public/feeds/childsafety/news.xml"), alias="OUTPUT_PATH"
    )
    max_items: int = Field(15, ge=1, alias="MAX_ITEMS")
    empty_result_is_failure: bool = Field(False, alias="EMPTY_RESULT_IS_FAILURE")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @property
    def origin(self) -> str:
        return str(self.site_origin).rstrip("/")

    @property
    def listing_prefix(self) -> str:
        """Listing path without a trailing slash, e.g. ``/news`` (empty for ``/``)."""
        return self.listing_path.rstrip("/")

    @property
    def listing_url(self) -> str:
        return f"{self.origin}{self.listing_prefix or '/'}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
