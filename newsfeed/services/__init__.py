from .feed_extractor import FeedItemExtractor
from .html_extractor import HtmlItemExtractor
from .orchestrator import FeedOrchestrator

__all__ = ["FeedItemExtractor", "FeedOrchestrator", "HtmlItemExtractor"]
