"""Failure-containing exporter wrapper.

Telemetry must never become load-bearing for the request it describes.
ResilientSpanExporter wraps any exporter and converts every exception it
raises into a logged ``False`` result.
"""

from __future__ import annotations

import logging

from llmtrace.tracing.exporter import ExportBatch, SpanExporter

logger = logging.getLogger(__name__)


class ResilientSpanExporter(SpanExporter):
    """Exporter that logs and swallows the errors of a wrapped exporter.

    Example:
        >>> exporter = ResilientSpanExporter(OTLPSpanExporter(transport))
        >>> exporter.export(batch)  # never raises
        False
    """

    def __init__(self, exporter: SpanExporter) -> None:
        """Initialize with the exporter to protect.

        Args:
            exporter: The wrapped exporter.
        """
        self._exporter = exporter

    @property
    def wrapped(self) -> SpanExporter:
        return self._exporter

    def export(self, batch: ExportBatch) -> bool:
        try:
            return bool(self._exporter.export(batch))
        except Exception as e:
            logger.exception("Span export of %d spans failed: %s", len(batch), e)
            return False

    def shutdown(self) -> bool:
        try:
            return bool(self._exporter.shutdown())
        except Exception as e:
            logger.exception("Span exporter shutdown failed: %s", e)
            return False

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        try:
            return bool(self._exporter.force_flush(timeout_millis))
        except Exception as e:
            logger.exception("Span exporter flush failed: %s", e)
            return False
