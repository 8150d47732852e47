"""Turn a news listing page into an RSS 2.0 feed."""

__version__ = "0.1.0"
