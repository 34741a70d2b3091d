from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_LOGGING_CONFIGURED = False


def setup_logging(
    filename: str | Path | None = None,
    level: int = logging.INFO,
    *,
    force: bool = False,
) -> structlog.BoundLogger:
    """Configure structured JSON logging for fit_repo.

    Importing this module configures logging once, to stderr at INFO. Later
    calls are no-ops unless ``force`` is set, in which case handlers and level
    are replaced. The shared ``logger`` is not cached, so a forced call also
    applies to it.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        level: Minimum stdlib level, e.g. ``logging.DEBUG`` for per-module chunk plans.
        force: Reconfigure even if logging was already set up.

    Returns:
        A structlog logger named ``fit_repo``.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if force or not _LOGGING_CONFIGURED:
        handler: logging.Handler
        if filename:
            handler = logging.FileHandler(str(filename), encoding="utf-8")
        else:
            handler = logging.StreamHandler(sys.stderr)

        logging.basicConfig(level=level, handlers=[handler], format="%(message)s", force=force)
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )
        _LOGGING_CONFIGURED = True

    return structlog.get_logger("fit_repo")


logger = setup_logging()
