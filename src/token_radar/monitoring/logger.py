"""Process logging: JSON or plain lines tagged with the token being worked on."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from ..config.settings import MonitoringConfig, get_app_config

# Enrichment sets this to the token uri so every line from one fetch can be grouped.
_CORRELATION_ID: ContextVar[str] = ContextVar("correlation_id", default="-")
_CONFIGURED_WITH: Optional[MonitoringConfig] = None

_RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "correlation_id",
    "task",
    "message",
    "asctime",
}
_PLAIN_FORMAT = "%(asctime)s %(levelname)-7s %(task)s [%(correlation_id)s] %(name)s: %(message)s"
_NOISY_LOGGERS = ("websockets", "urllib3", "uvicorn.access")


def _current_task_name() -> str:
    try:
        task = asyncio.current_task()
    except RuntimeError:
        return "main"
    return task.get_name() if task is not None else "main"


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _CORRELATION_ID.get()
        record.task = _current_task_name()
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields land under ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
        }
        task = getattr(record, "task", None)
        if task:
            payload["task"] = task
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: Optional[MonitoringConfig] = None, *, force: bool = False) -> None:
    """Install the stdout handler once; ``force`` re-applies a changed config."""

    global _CONFIGURED_WITH
    if _CONFIGURED_WITH is not None and not force:
        return
    cfg = config or get_app_config().monitoring
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_ContextFilter())
    handler.setFormatter(StructuredFormatter() if cfg.json_logs else logging.Formatter(_PLAIN_FORMAT))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, cfg.log_level.upper(), logging.INFO))
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.INFO))
    logging.captureWarnings(True)
    _CONFIGURED_WITH = cfg


def get_logger(name: str) -> logging.Logger:
    if _CONFIGURED_WITH is None:
        configure_logging()
    return logging.getLogger(name)


def current_correlation_id() -> str:
    return _CORRELATION_ID.get()


@contextmanager
def correlation_scope(correlation_id: Optional[str]) -> Iterator[None]:
    token = _CORRELATION_ID.set(correlation_id or "-")
    try:
        yield
    finally:
        _CORRELATION_ID.reset(token)


__all__ = [
    "StructuredFormatter",
    "configure_logging",
    "correlation_scope",
    "current_correlation_id",
    "get_logger",
]
