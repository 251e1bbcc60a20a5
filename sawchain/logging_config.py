from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog
from structlog.typing import Processor

from sawchain.config import SawchainSettings

LOG_FILE_NAME = "sawchain.log"
TELEMETRY_LOG_FILE_NAME = "sawchain-telemetry.log"


def configure_logging(settings: SawchainSettings) -> Path | None:
    """Route `sawchain.*` loggers through structlog; returns the log file, if any."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logger = _reset_logger("sawchain", logging.DEBUG)
    console_handler = logging.StreamHandler(stream=sys.stderr)
    console_handler.setLevel(
        logging.getLevelNamesMapping().get(settings.log_level.strip().upper(), logging.INFO)
    )
    console_handler.setFormatter(
        _formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    )
    logger.addHandler(console_handler)

    if settings.log_dir is None:
        return None

    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / LOG_FILE_NAME
    logger.addHandler(_json_file_handler(log_file))
    # Telemetry events go to their own file only.
    telemetry_logger = _reset_logger("sawchain.telemetry", logging.INFO)
    telemetry_logger.addHandler(_json_file_handler(settings.log_dir / TELEMETRY_LOG_FILE_NAME))

    logger.debug(
        "logging configured console_level=%s path=%s", settings.log_level.upper(), log_file
    )
    return log_file


@contextmanager
def bound_test_context(test_id: str) -> Iterator[None]:
    """Tag every Sawchain log line emitted inside the block with the running test."""
    with structlog.contextvars.bound_contextvars(test_id=test_id):
        yield


def _reset_logger(name: str, level: int) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    return logger


def _json_file_handler(path: Path) -> logging.FileHandler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        _formatter(
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        )
    )
    return handler


def _formatter(*renderers: Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        ],
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
    )
