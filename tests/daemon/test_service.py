"""Tests for daemon service."""

import asyncio
import logging
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, Mock, mock_open, patch

import pytest

from doccrawl.config import DocCrawlConfig
from doccrawl.daemon.service import TASK_NAMES, CrawlDaemon, daemonize, run_daemon
from doccrawl.exceptions import ConfigurationError


@pytest.fixture
def config(tmp_path) -> DocCrawlConfig:
    """Configuration with every task enabled, rooted in a temp directory."""
    config = DocCrawlConfig(config_dir=tmp_path / "config", data_dir=tmp_path / "data")
    config.tasks.crawl_interval = timedelta(seconds=10)
    config.tasks.github_interval = timedelta(minutes=5)
    config.tasks.suppress_interval = timedelta(hours=24)
    return config


class TestCrawlDaemon:
    """Tests for CrawlDaemon class."""

    @pytest.mark.asyncio
    async def test_daemon_initialization(self, config):
        daemon = CrawlDaemon(config)

        assert daemon._config == config
        assert daemon.scheduler is None
        assert daemon.is_running is False

    @pytest.mark.asyncio
    async def test_setup_registers_tasks_in_order(self, config, catalog):
        daemon = CrawlDaemon(config, catalog=catalog)

        scheduler = await daemon.setup()

        assert [t.name for t in scheduler.tasks] == list(TASK_NAMES.values())
        assert scheduler.get_task("Crawl").interval == timedelta(seconds=10)
        assert scheduler.get_task("GitHub updates").interval == timedelta(minutes=5)
        assert scheduler.tick_period() == timedelta(seconds=10)
        await daemon.close()

    @pytest.mark.asyncio
    async def test_setup_is_idempotent(self, config, catalog):
        daemon = CrawlDaemon(config, catalog=catalog)

        assert await daemon.setup() is await daemon.setup()
        await daemon.close()

    @pytest.mark.asyncio
    async def test_setup_creates_database(self, config):
        daemon = CrawlDaemon(config)

        await daemon.setup()

        assert (config.data_dir / "doccrawl.db").exists()
        assert daemon.catalog.package_count() == 0
        await daemon.close()
        assert daemon._engine is None

    @pytest.mark.asyncio
    async def test_bad_credentials_fail_only_suppression(self, config, catalog, caplog):
        config.github.credentials = "client_id=only"
        daemon = CrawlDaemon(config, catalog=catalog)

        scheduler = await daemon.setup()

        assert [t.name for t in scheduler.tasks] == list(TASK_NAMES.values())
        assert daemon._github.auth is None
        assert "Ignoring GitHub credentials" in caplog.text
        assert await scheduler.run_task("Crawl") is True
        assert await scheduler.run_task("Suppress packages") is False
        assert "Malformed GitHub credentials" in scheduler.get_task("Suppress packages").last_error
        await daemon.close()

    @pytest.mark.asyncio
    async def test_valid_credentials_reach_feed_client(self, config, catalog):
        config.github.credentials = "client_id=a&client_secret=b"
        daemon = CrawlDaemon(config, catalog=catalog)

        await daemon.setup()

        assert daemon._github.auth.client_id == "a"
        await daemon.close()

    @pytest.mark.asyncio
    async def test_crawl_task_runs_on_empty_catalog(self, config, catalog):
        daemon = CrawlDaemon(config, catalog=catalog)
        scheduler = await daemon.setup()

        assert await scheduler.run_task("Crawl") is True
        await daemon.close()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, config, catalog):
        daemon = CrawlDaemon(config, catalog=catalog)
        mock_scheduler = Mock()
        mock_scheduler.start = AsyncMock()
        mock_scheduler.stop = AsyncMock()

        with patch("doccrawl.daemon.service.TaskScheduler", return_value=mock_scheduler):
            await daemon.start()
            assert daemon.is_running is True
            mock_scheduler.start.assert_called_once()

            await daemon.stop()

        assert daemon.is_running is False
        mock_scheduler.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_start_warns_when_all_disabled(self, tmp_path, catalog, caplog):
        daemon = CrawlDaemon(DocCrawlConfig(data_dir=tmp_path), catalog=catalog)

        with caplog.at_level(logging.WARNING):
            await daemon.start()
        await daemon.stop()

        assert "All background tasks are disabled" in caplog.text

    @pytest.mark.asyncio
    async def test_stop_without_setup(self, config):
        daemon = CrawlDaemon(config)
        await daemon.stop()
        assert daemon.is_running is False

    @pytest.mark.asyncio
    async def test_stop_survives_scheduler_error(self, config, catalog, caplog):
        daemon = CrawlDaemon(config, catalog=catalog)
        await daemon.setup()
        daemon._scheduler.stop = AsyncMock(side_effect=RuntimeError("boom"))

        with caplog.at_level(logging.WARNING):
            await daemon.stop()

        assert "Error stopping scheduler" in caplog.text

    @pytest.mark.asyncio
    async def test_request_shutdown(self, config):
        daemon = CrawlDaemon(config)

        waiter = asyncio.create_task(daemon.run_until_shutdown())
        await asyncio.sleep(0)
        daemon.request_shutdown()

        await asyncio.wait_for(waiter, timeout=1)


class TestRunDaemon:
    """Tests for run_daemon function."""

    @pytest.mark.asyncio
    async def test_run_daemon_starts_and_stops(self, config):
        mock_daemon = AsyncMock()
        mock_daemon.request_shutdown = MagicMock()

        with patch("doccrawl.daemon.service.CrawlDaemon", return_value=mock_daemon):
            await run_daemon(config)

        mock_daemon.start.assert_called_once()
        mock_daemon.run_until_shutdown.assert_called_once()
        mock_daemon.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_run_daemon_stops_after_start_failure(self, config):
        mock_daemon = AsyncMock()
        mock_daemon.start.side_effect = ConfigurationError("bad credentials")

        with patch("doccrawl.daemon.service.CrawlDaemon", return_value=mock_daemon):
            with pytest.raises(ConfigurationError):
                await run_daemon(config)

        mock_daemon.stop.assert_called_once()


class TestDaemonize:
    """Tests for daemonize function."""

    @patch("sys.platform", "win32")
    def test_daemonize_on_windows(self, caplog):
        with caplog.at_level(logging.WARNING):
            daemonize()

        assert "not supported on Windows" in caplog.text

    @patch("sys.platform", "linux")
    @patch("os.fork")
    @patch("os.setsid")
    @patch("os.dup2")
    @patch("sys.stdout")
    @patch("sys.stderr")
    @patch("sys.stdin")
    def test_daemonize_on_linux(self, mock_stdin, mock_stderr, mock_stdout,
                                mock_dup2, mock_setsid, mock_fork):
        # Both forks return 0: we are the grandchild
        mock_fork.side_effect = [0, 0]

        with patch("builtins.open", mock_open()):
            daemonize()

        assert mock_fork.call_count == 2
        mock_setsid.assert_called_once()

    @patch("sys.platform", "linux")
    @patch("os.fork", return_value=1234)
    def test_daemonize_parent_exits(self, mock_fork):
        with pytest.raises(SystemExit):
            daemonize()
