"""
Logging Configuration - Structured logging with task context
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional
from contextvars import ContextVar

# Context variables for task tracking
current_task_id: ContextVar[Optional[str]] = ContextVar('current_task_id', default=None)
current_video_id: ContextVar[Optional[str]] = ContextVar('current_video_id', default=None)


class StructuredFormatter(logging.Formatter):
    """
    JSON-structured log formatter with task context.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        task_id = current_task_id.get()
        video_id = current_video_id.get()

        if task_id:
            log_data["task_id"] = task_id
        if video_id:
            log_data["video_id"] = video_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(level: str = "INFO", structured: bool = True):
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        structured: Use JSON format (True) or human-readable (False)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
        ))

    root_logger.addHandler(handler)


class JobContext:
    """
    Context manager for setting task context in logs.

    Usage:
        with JobContext(task_id="abc123", video_id="xyz"):
            logger.info("Downloading...")  # Will include task_id and video_id
    """
    def __init__(self, task_id: Optional[str] = None, video_id: Optional[str] = None):
        self.task_id = task_id
        self.video_id = video_id
        self._tokens = []

    def __enter__(self):
        if self.task_id:
            self._tokens.append((current_task_id, current_task_id.set(self.task_id)))
        if self.video_id:
            self._tokens.append((current_video_id, current_video_id.set(self.video_id)))
        return self

    def __exit__(self, *args):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
