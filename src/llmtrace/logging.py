"""Diagnostic logging for the telemetry pipeline.

Every llmtrace module logs through ``logging.getLogger(__name__)``. Export
failures, dropped batches and span usage errors only surface here, so
services should route the ``llmtrace`` logger somewhere visible.

Formats:
    - console: human-readable, colored on a TTY
    - json: one JSON object per line for log aggregation
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

ROOT_LOGGER = "llmtrace"

# Attributes every LogRecord has; anything else came in through ``extra``.
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """JSON log formatter.

    Example output:
        {"timestamp":"2024-01-15T10:30:00+00:00","level":"warning","logger":"llmtrace.tracing.exporter","message":"..."}
    """

    def __init__(self, *, sort_keys: bool = False, ensure_ascii: bool = False) -> None:
        super().__init__()
        self._sort_keys = sort_keys
        self._ensure_ascii = ensure_ascii

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                data[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(
            data,
            sort_keys=self._sort_keys,
            ensure_ascii=self._ensure_ascii,
            separators=(",", ":"),
            default=str,
        )


class ConsoleFormatter(logging.Formatter):
    """Human-readable console formatter.

    Example output:
        2024-01-15 10:30:00 WARNING [llmtrace.tracing.exporter] Collector rejected 2 spans
    """

    COLORS = {
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *, color: bool = True, stream: TextIO | None = None) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        target = stream or sys.stderr
        self._color = color and hasattr(target, "isatty") and target.isatty()

    def format(self, record: logging.LogRecord) -> str:
        result = super().format(record)
        if self._color:
            color = self.COLORS.get(record.levelno, "")
            result = f"{color}{result}{self.RESET}"
        return result


def configure_logging(
    *,
    level: int | str = logging.INFO,
    format: str = "console",
    stream: TextIO | None = None,
) -> logging.Logger:
    """Route llmtrace diagnostics to a stream.

    Replaces handlers previously installed by this function, so calling it
    twice does not duplicate output.

    Args:
        level: Log level name or number.
        format: "console" or "json".
        stream: Output stream (default: sys.stderr).

    Returns:
        The configured ``llmtrace`` logger.
    """
    if format not in ("console", "json"):
        raise ValueError(f"Unknown log format: {format}")

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_llmtrace_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        JSONFormatter() if format == "json" else ConsoleFormatter(stream=stream)
    )
    handler._llmtrace_handler = True  # type: ignore[attr-defined]

    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
