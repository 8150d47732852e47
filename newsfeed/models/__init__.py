from .feed import Decision, Feed, FeedItem, RunReport, Stage

__all__ = ["Decision", "Feed", "FeedItem", "RunReport", "Stage"]
