"""Entry point: ``python -m newsfeed.run``

Runs one refresh of the published feed and exits.  A run that falls back to
the secondary feed, keeps the previous file, or publishes a placeholder still
exits 0; only an unexpected error (e.g. the output path is not writable)
exits 1.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from .config import get_settings
from .http_client import shutdown_http_client
from .services.orchestrator import FeedOrchestrator

logger = logging.getLogger(__name__)


async def _refresh() -> None:
    try:
        report = await FeedOrchestrator().run()
    finally:
        await shutdown_http_client()
    logger.info(
        "Run finished: decision=%s source=%s items=%d path=%s",
        report.decision.value,
        report.source,
        report.item_count,
        report.output_path,
    )


def main() -> int:
    try:
        settings = get_settings()
        logging.basicConfig(
            level=settings.log_level.upper(),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            stream=sys.stderr,
        )
        asyncio.run(_refresh())
    except Exception:
        logger.exception("Feed refresh failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
