"""Structured logging setup for WsForge."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import MutableMapping

_HUMAN_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"


class _JsonFormatter(logging.Formatter):
    """One-line JSON formatter.

    Emits objects with keys: timestamp, level, logger, message, and ``vu``
    when the record was logged through a :class:`VULoggerAdapter`.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A single-line JSON string.
        """
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        vu = getattr(record, "vu", None)
        if vu is not None:
            log_entry["vu"] = vu
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


class VULoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that tags every record with a worker ordinal.

    Human-readable output gets a ``VU <n>:`` prefix; JSON output gets a
    ``vu`` key.
    """

    def __init__(self, logger: logging.Logger, vu: int) -> None:
        super().__init__(logger, {"vu": vu})

    def process(
        self,
        msg: object,
        kwargs: MutableMapping[str, Any],
    ) -> tuple[object, MutableMapping[str, Any]]:
        kwargs.setdefault("extra", {}).update(self.extra or {})
        return f"VU {self.extra['vu']}: {msg}", kwargs  # type: ignore[index]


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the root ``wsforge`` logger.

    Repeated calls only update the level of the existing handler, so the
    host and the CLI can both call this without duplicating output.

    Args:
        level: Logging level (e.g., ``logging.DEBUG``). Defaults to INFO.
        json_format: If True, emit structured JSON logs.

    Returns:
        The configured ``wsforge`` logger.
    """
    logger = logging.getLogger("wsforge")
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(_HUMAN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``wsforge`` namespace.

    Args:
        name: Logger name, appended to the ``wsforge.`` prefix, e.g.
            ``get_logger("engine.session")``.

    Returns:
        The child logger.
    """
    return logging.getLogger(f"wsforge.{name}")


def get_vu_logger(name: str, vu: int) -> VULoggerAdapter:
    """Return a :class:`VULoggerAdapter` for worker *vu* under ``wsforge.<name>``."""
    return VULoggerAdapter(get_logger(name), vu)
