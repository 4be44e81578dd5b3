from .college import CollegeNewsFeed, extract_items
from .fetcher import PageFetcher
from .base import BaseFeed

__all__ = ["CollegeNewsFeed", "PageFetcher", "BaseFeed", "extract_items"]
