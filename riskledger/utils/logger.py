from __future__ import annotations

import logging
import os
import sys
from typing import Any, Optional

import structlog

from riskledger.utils.config import get_settings


def setup_logging(level: Optional[str] = None, console: bool = False) -> None:
    """Stdout + file logging. ``console`` renders key=value lines for the CLI instead of JSON."""
    settings = get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    os.makedirs(os.path.dirname(settings.log_file) or ".", exist_ok=True)

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=[
            logging.StreamHandler(sys.stderr if console else sys.stdout),
            logging.FileHandler(settings.log_file, mode="a"),
        ],
        force=True,
    )

    renderer = (
        structlog.dev.ConsoleRenderer(colors=False) if console
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def summarize_snapshot(data: dict[str, Any]) -> dict[str, Any]:
    """Log-friendly view of a backup snapshot: counts instead of full trade lists."""
    summary: dict[str, Any] = {}
    for key, value in data.items():
        if key == "trades" and isinstance(value, list):
            summary["trade_count"] = len(value)
        elif isinstance(value, dict):
            summary[key] = summarize_snapshot(value)
        else:
            summary[key] = value
    return summary
