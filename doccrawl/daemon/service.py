"""Crawl daemon service.

This module provides the long-running doccrawl process:
- Wiring of the catalog, HTTP collaborators and background tasks
- Service lifecycle management (start/stop)
- Signal handling for graceful shutdown
- Background daemon mode with process forking
"""

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine

from doccrawl.catalog import Catalog
from doccrawl.config import DocCrawlConfig, GitHubAuth, parse_github_auth
from doccrawl.database.connection import (
    create_db_engine,
    create_session_factory,
    create_tables,
    get_db_path,
)
from doccrawl.exceptions import ConfigurationError
from doccrawl.scheduler.task_scheduler import TaskScheduler
from doccrawl.sources.documents import Crawler, HttpDocumentSource
from doccrawl.sources.github import GitHubClient
from doccrawl.sources.scoring import SuppressionScorer
from doccrawl.tasks import CrawlOrchestrator, SuppressionEvaluator, UpdatePoller

logger = logging.getLogger(__name__)

# Command line names of the background tasks, mapped to their display names
TASK_NAMES = {
    "github": "GitHub updates",
    "crawl": "Crawl",
    "suppress": "Suppress packages",
}


class CrawlDaemon:
    """Main daemon service for doccrawl.

    The CrawlDaemon builds the catalog and the HTTP collaborators from
    configuration, registers the three background tasks with a
    TaskScheduler and manages their lifecycle.

    Attributes:
        _config: doccrawl configuration
        _engine: Database engine, owned by the daemon
        _catalog: Package catalog
        _scheduler: Task scheduler with every task registered
        _running: Whether the tick loop is running
        _shutdown_event: Event to signal shutdown

    Example:
        daemon = CrawlDaemon(config)

        await daemon.start()
        await daemon.run_until_shutdown()
        await daemon.stop()
    """

    def __init__(self, config: DocCrawlConfig, catalog: Optional[Catalog] = None):
        """Initialize the daemon service.

        Args:
            config: doccrawl configuration
            catalog: Catalog to use instead of one built from database_url
        """
        self._config = config
        self._engine: Optional[Engine] = None
        self._catalog = catalog
        self._documents: Optional[HttpDocumentSource] = None
        self._github: Optional[GitHubClient] = None
        self._scheduler: Optional[TaskScheduler] = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    def _default_auth(self) -> Optional[GitHubAuth]:
        try:
            return parse_github_auth(self._config.github.credentials)
        except ConfigurationError as e:
            logger.error(f"Ignoring GitHub credentials for the update feed: {e}")
            return None

    async def setup(self) -> TaskScheduler:
        """Build every component and register the tasks.

        Safe to call more than once.

        Malformed GitHub credentials do not stop the setup. The feed client
        then runs unauthenticated and the suppression task fails each run.

        Returns:
            The task scheduler, not yet started
        """
        if self._scheduler is not None:
            return self._scheduler

        config = self._config

        if self._catalog is None:
            db_path = get_db_path(config)
            if db_path is not None:
                db_path.parent.mkdir(parents=True, exist_ok=True)
            self._engine = create_db_engine(config.database_url)
            create_tables(self._engine)
            self._catalog = Catalog(create_session_factory(self._engine))

        self._documents = HttpDocumentSource(
            config.crawl.document_service_url,
            timeout=config.crawl.request_timeout,
            user_agent=config.crawl.user_agent,
        )
        self._github = GitHubClient(
            api_url=config.github.api_url,
            search_query=config.github.search_query,
            timeout=config.github.request_timeout,
            user_agent=config.crawl.user_agent,
            auth=self._default_auth(),
        )

        crawler = Crawler(self._catalog, self._documents, config.crawl.max_age)
        orchestrator = CrawlOrchestrator(
            self._catalog,
            crawler,
            config.crawl.max_age,
            backoff_divisor=config.crawl.failure_backoff_divisor,
        )
        poller = UpdatePoller(self._catalog, self._github, path_prefix=config.github.path_prefix)
        evaluator = SuppressionEvaluator(
            self._catalog,
            SuppressionScorer(self._github, max_concurrent=config.github.max_concurrent),
            credentials=config.github.credentials,
        )

        scheduler = TaskScheduler()
        scheduler.register(TASK_NAMES["github"], poller.run_once, config.tasks.github_interval)
        scheduler.register(TASK_NAMES["crawl"], orchestrator.run_once, config.tasks.crawl_interval)
        scheduler.register(
            TASK_NAMES["suppress"], evaluator.run_once, config.tasks.suppress_interval
        )
        self._scheduler = scheduler
        return scheduler

    async def start(self) -> None:
        """Start the daemon services."""
        logger.info("Starting doccrawl daemon...")

        scheduler = await self.setup()
        if not self._config.tasks.any_enabled:
            logger.warning("All background tasks are disabled")

        await scheduler.start()
        self._running = True
        logger.info("doccrawl daemon started successfully")

    async def stop(self) -> None:
        """Stop the daemon services and release their resources."""
        logger.info("Stopping doccrawl daemon...")

        self._running = False

        if self._scheduler:
            try:
                await self._scheduler.stop()
            except Exception as e:
                logger.warning(f"Error stopping scheduler: {e}")

        await self.close()
        logger.info("doccrawl daemon stopped")

    async def close(self) -> None:
        """Close HTTP clients and dispose of the owned database engine."""
        for client in (self._documents, self._github):
            if client is None:
                continue
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Error closing HTTP client: {e}")

        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    async def run_until_shutdown(self) -> None:
        """Block until request_shutdown() is called."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request daemon shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def catalog(self) -> Optional[Catalog]:
        return self._catalog

    @property
    def scheduler(self) -> Optional[TaskScheduler]:
        """The task scheduler, or None before setup."""
        return self._scheduler


async def run_daemon(config: DocCrawlConfig) -> None:
    """Run the crawl daemon until SIGTERM or SIGINT is received."""
    daemon = CrawlDaemon(config)

    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        daemon.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda signum, frame: handle_signal(signal.Signals(signum)))

    try:
        await daemon.start()
        await daemon.run_until_shutdown()
    finally:
        await daemon.stop()


def daemonize(log_file: Optional[Path] = None) -> None:
    """Detach the current process into the background.

    Forks twice and redirects the standard file descriptors to ``log_file``
    (or /dev/null). Does nothing on Windows.
    """
    if sys.platform == "win32":
        logger.warning("Daemon mode not supported on Windows")
        return

    if os.fork() > 0:
        sys.exit(0)

    os.setsid()

    if os.fork() > 0:
        sys.exit(0)

    sys.stdout.flush()
    sys.stderr.flush()

    with open(os.devnull, "r") as devnull:
        os.dup2(devnull.fileno(), sys.stdin.fileno())

    target = log_file or Path(os.devnull)
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "a+") as out:
        os.dup2(out.fileno(), sys.stdout.fileno())
        os.dup2(out.fileno(), sys.stderr.fileno())

    logger.info(f"Daemon process started (PID: {os.getpid()})")
