from __future__ import annotations

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import ORJSONResponse, Response
from mangum import Mangum

from newsfeed.config import get_settings
from newsfeed.http_client import shutdown_http_client
from newsfeed.models import RunReport
from newsfeed.services import FeedOrchestrator
from newsfeed.storage import FeedStore

app = FastAPI(
    title="News Listing RSS Bridge",
    version="0.1.0",
    description=(
        "Publishes an RSS 2.0 feed scraped from a news listing page, with "
        "fallback to a secondary feed and to the last published file."
    ),
    default_response_class=ORJSONResponse,
)


def get_orchestrator() -> FeedOrchestrator:
    return FeedOrchestrator()


def get_feed_store() -> FeedStore:
    return FeedStore(get_settings().output_path)


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/feed.xml", tags=["feed"], response_class=Response)
async def published_feed(store: FeedStore = Depends(get_feed_store)) -> Response:
    if not store.exists():
        raise HTTPException(status_code=404, detail="Feed has not been published yet")
    return Response(
        content=store.read_text(), media_type="application/rss+xml; charset=utf-8"
    )


@app.post("/feed/refresh", tags=["feed"], response_model=RunReport)
async def refresh_feed(
    orchestrator: FeedOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.run()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await shutdown_http_client()


handler = Mangum(app)
