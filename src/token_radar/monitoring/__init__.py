"""Monitoring package exports and helpers."""

from __future__ import annotations

from typing import Optional

from ..config.settings import AppConfig, get_app_config
from .logger import configure_logging, get_logger
from .metrics import METRICS


def bootstrap_observability(config: Optional[AppConfig] = None) -> None:
    """Configure logging for the process and note the active profile."""

    app_config = config or get_app_config()
    configure_logging(app_config.monitoring, force=True)
    get_logger(__name__).info(
        "Observability ready",
        extra={"mode": app_config.mode.active.value, "config_file": str(app_config.mode.config_file)},
    )


__all__ = ["bootstrap_observability", "METRICS"]
