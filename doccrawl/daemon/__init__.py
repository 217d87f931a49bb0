"""Daemon module for doccrawl.

Runs the background tasks as a long-lived service.
"""

from doccrawl.daemon.pid import PIDFile, default_pid_path
from doccrawl.daemon.service import (
    TASK_NAMES,
    CrawlDaemon,
    daemonize,
    run_daemon,
)

__all__ = [
    "CrawlDaemon",
    "PIDFile",
    "TASK_NAMES",
    "daemonize",
    "default_pid_path",
    "run_daemon",
]
