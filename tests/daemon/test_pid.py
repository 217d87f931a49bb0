"""Tests for PID file management."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from doccrawl.daemon.pid import PID_FILE_NAME, PIDFile, default_pid_path


# Far above any default pid_max, so never a live process
DEAD_PID = 2 ** 22 + 12345


class TestPIDFile:
    """Tests for PIDFile class."""

    def test_default_path(self, tmp_path):
        assert default_pid_path(tmp_path) == tmp_path / PID_FILE_NAME

    def test_create_pid_file(self, tmp_path):
        """Test creating a PID file."""
        pid_file = PIDFile(tmp_path / "test.pid")

        pid_file.create()

        assert pid_file.path.exists()
        assert pid_file.read() == os.getpid()

    def test_create_creates_parent_directories(self, tmp_path):
        pid_file = PIDFile(tmp_path / "subdir" / "test.pid")

        pid_file.create()

        assert pid_file.path.parent.exists()

    def test_read_nonexistent_file(self, tmp_path):
        assert PIDFile(tmp_path / "nonexistent.pid").read() is None

    def test_read_invalid_content(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.path.write_text("invalid")

        assert pid_file.read() is None

    def test_remove_pid_file(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create()

        pid_file.remove()

        assert not pid_file.path.exists()

    def test_remove_nonexistent_file(self, tmp_path):
        """Removing a missing file is not an error."""
        PIDFile(tmp_path / "nonexistent.pid").remove()

    def test_is_running_current_process(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create()

        assert pid_file.is_running() is True
        assert pid_file.get_pid() == os.getpid()

    def test_is_running_dead_process(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create(DEAD_PID)

        assert pid_file.is_running() is False
        assert pid_file.get_pid() is None

    def test_permission_error_counts_as_running(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create(1)

        with patch("doccrawl.daemon.pid.os.kill", side_effect=PermissionError):
            assert pid_file.is_running() is True

    def test_clear_if_stale(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create(DEAD_PID)

        assert pid_file.clear_if_stale() is True
        assert not pid_file.path.exists()

    def test_clear_if_stale_keeps_live(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create()

        assert pid_file.clear_if_stale() is False
        assert pid_file.path.exists()


class TestAcquire:
    """Tests for PIDFile.acquire."""

    def test_acquire_fresh(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")

        assert pid_file.acquire() is True
        assert pid_file.read() == os.getpid()

    def test_acquire_replaces_stale(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create(DEAD_PID)

        assert pid_file.acquire() is True
        assert pid_file.read() == os.getpid()

    def test_acquire_held_by_other_process(self, tmp_path):
        pid_file = PIDFile(tmp_path / "test.pid")
        pid_file.create(os.getppid())

        assert pid_file.acquire() is False
        assert pid_file.read() == os.getppid()
