"""doccrawl - background crawl orchestration for a documentation index."""

__app_name__ = "doccrawl"
__version__ = "0.3.0"
