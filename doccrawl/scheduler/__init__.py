"""Background task scheduling for doccrawl."""

from doccrawl.scheduler.task_scheduler import BackgroundTask, TaskScheduler

__all__ = ["BackgroundTask", "TaskScheduler"]
