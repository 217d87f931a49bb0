"""PID file tracking for the crawl daemon."""

import os
from pathlib import Path
from typing import Optional

PID_FILE_NAME = "doccrawl.pid"


def default_pid_path(data_dir: Path) -> Path:
    """PID file location inside a data directory."""
    return data_dir / PID_FILE_NAME


def _process_alive(pid: int) -> bool:
    try:
        # Signal 0 only checks that the process exists
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user
        return True
    except OSError:
        return False
    return True


class PIDFile:
    """Records the PID of the running daemon.

    Example:
        pid_file = PIDFile(default_pid_path(config.data_dir))

        if not pid_file.acquire():
            print(f"Daemon already running (PID {pid_file.get_pid()})")
        else:
            try:
                ...
            finally:
                pid_file.remove()
    """

    def __init__(self, path: Path):
        self.path = path

    def create(self, pid: Optional[int] = None) -> None:
        """Write a PID (the current process by default), creating parent dirs."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(f"{pid if pid is not None else os.getpid()}\n")

    def acquire(self) -> bool:
        """Claim the PID file for the current process.

        A stale file left by a dead process is replaced.

        Returns:
            False if another live process holds the file
        """
        pid = self.get_pid()
        if pid is not None and pid != os.getpid():
            return False
        self.create()
        return True

    def remove(self) -> None:
        """Remove the PID file; a missing file is fine."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def read(self) -> Optional[int]:
        """Read the recorded PID.

        Returns:
            The PID, or None if the file is missing or unreadable
        """
        try:
            return int(self.path.read_text().strip())
        except (ValueError, OSError):
            return None

    def is_running(self) -> bool:
        """Whether the recorded PID belongs to a live process."""
        pid = self.read()
        return pid is not None and _process_alive(pid)

    def get_pid(self) -> Optional[int]:
        """The running daemon's PID, or None if it is not running."""
        pid = self.read()
        if pid is not None and _process_alive(pid):
            return pid
        return None

    def clear_if_stale(self) -> bool:
        """Remove the file if its process is gone.

        Returns:
            True if a stale file was removed
        """
        pid = self.read()
        if pid is None or _process_alive(pid):
            return False
        self.remove()
        return True
