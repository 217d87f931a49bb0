"""Background tasks run by the scheduler.

Each task exposes ``run_once()``, a coroutine that raises on failure.
"""

from doccrawl.tasks.crawl import CrawlOrchestrator
from doccrawl.tasks.github_updates import UpdatePoller
from doccrawl.tasks.suppress import SuppressionEvaluator

__all__ = ["CrawlOrchestrator", "UpdatePoller", "SuppressionEvaluator"]
