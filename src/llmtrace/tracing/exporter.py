"""Span exporters for sending trace data to a collector.

Exporters serialize batches of ended spans and transmit them. Every
operation reports success as a boolean instead of raising for expected
failures.

Exporters:
    - OTLPSpanExporter: OTLP/JSON over HTTP (production)
    - InMemorySpanExporter: keeps batches in memory (testing)
    - ConsoleSpanExporter: prints OTLP/JSON documents (debugging)
"""

from __future__ import annotations

import logging
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, TextIO

from llmtrace.tracing.encoding import dumps_batch
from llmtrace.tracing.resource import Resource
from llmtrace.tracing.span import SpanData
from llmtrace.tracing.transport import Transport

logger = logging.getLogger(__name__)


# =============================================================================
# Export Batch
# =============================================================================


@dataclass(frozen=True)
class ExportBatch:
    """Ordered spans plus the resource that produced them."""

    spans: tuple[SpanData, ...]
    resource: Resource

    @classmethod
    def of(cls, spans: Iterable[SpanData], resource: Resource) -> "ExportBatch":
        return cls(tuple(spans), resource)

    def __len__(self) -> int:
        return len(self.spans)

    def __iter__(self) -> Iterator[SpanData]:
        return iter(self.spans)


# =============================================================================
# Exporter Interface
# =============================================================================


class SpanExporter(ABC):
    """Abstract base class for span exporters."""

    @abstractmethod
    def export(self, batch: ExportBatch) -> bool:
        """Export a batch of spans.

        Args:
            batch: Spans to export.

        Returns:
            True if the destination accepted the batch.
        """
        pass

    @abstractmethod
    def shutdown(self) -> bool:
        """Shutdown the exporter.

        Returns:
            True on the first shutdown, False if already shut down.
        """
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Force flush pending exports.

        Args:
            timeout_millis: Maximum time to wait.

        Returns:
            True if flush completed.
        """
        return True


class _ShutdownFlag:
    """Once-only shutdown flag shared by the concrete exporters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._set = False

    @property
    def is_set(self) -> bool:
        return self._set

    def set(self) -> bool:
        with self._lock:
            if self._set:
                return False
            self._set = True
            return True


# =============================================================================
# OTLP Exporter
# =============================================================================


class OTLPSpanExporter(SpanExporter):
    """OpenTelemetry Protocol exporter using JSON over HTTP.

    Only HTTP 200 counts as success. Transport errors and other status
    codes are logged and reported as False; nothing is retried.

    Example:
        >>> transport = HTTPTransport(
        ...     "https://collector.example.com/v1/traces",
        ...     headers={"X-API-Key": "...", "X-Repository-Id": "..."},
        ... )
        >>> exporter = OTLPSpanExporter(transport)
    """

    def __init__(self, transport: Transport) -> None:
        """Initialize OTLP exporter.

        Args:
            transport: Transport used to POST payloads.
        """
        self._transport = transport
        self._shutdown = _ShutdownFlag()

    @property
    def transport(self) -> Transport:
        return self._transport

    def export(self, batch: ExportBatch) -> bool:
        """Export spans via OTLP/JSON."""
        if self._shutdown.is_set:
            logger.warning("OTLP exporter is shut down, dropping %d spans", len(batch))
            return False

        if not batch.spans:
            return True

        body = dumps_batch(batch)
        response = self._transport.post(body)

        if response.error is not None:
            logger.warning(
                "Failed to export %d spans to %s: %s",
                len(batch), self._transport.endpoint, response.error,
            )
            return False

        if response.status_code != 200:
            logger.warning(
                "Collector at %s rejected %d spans with HTTP %s",
                self._transport.endpoint, len(batch), response.status_code,
            )
            return False

        logger.debug("Exported %d spans to %s", len(batch), self._transport.endpoint)
        return True

    def shutdown(self) -> bool:
        """Shutdown exporter and close the transport."""
        if not self._shutdown.set():
            return False
        self._transport.close()
        return True


# =============================================================================
# In-Memory Exporter
# =============================================================================


class InMemorySpanExporter(SpanExporter):
    """Exporter that stores batches in memory.

    Useful for testing and debugging.

    Example:
        >>> exporter = InMemorySpanExporter()
        >>> tracer = Tracer(SimpleSpanProcessor(exporter))
        >>> # ... run traced code ...
        >>> spans = exporter.get_finished_spans()
    """

    def __init__(self) -> None:
        self._batches: list[ExportBatch] = []
        self._lock = threading.Lock()
        self._shutdown = _ShutdownFlag()

    def export(self, batch: ExportBatch) -> bool:
        """Store the batch."""
        if self._shutdown.is_set:
            return False

        with self._lock:
            self._batches.append(batch)

        return True

    @property
    def batches(self) -> list[ExportBatch]:
        """All exported batches, oldest first."""
        with self._lock:
            return list(self._batches)

    def get_finished_spans(self) -> list[SpanData]:
        """All exported spans across batches."""
        with self._lock:
            return [span for batch in self._batches for span in batch.spans]

    def clear(self) -> None:
        """Clear stored batches."""
        with self._lock:
            self._batches.clear()

    def shutdown(self) -> bool:
        return self._shutdown.set()


# =============================================================================
# Console Exporter
# =============================================================================


class ConsoleSpanExporter(SpanExporter):
    """Exporter that writes OTLP/JSON documents to a stream.

    Example:
        >>> exporter = ConsoleSpanExporter(pretty=True)
    """

    def __init__(self, *, output: TextIO | None = None, pretty: bool = True) -> None:
        """Initialize console exporter.

        Args:
            output: Output stream (default: sys.stdout).
            pretty: Indent the JSON output.
        """
        self._output: Any = output or sys.stdout
        self._pretty = pretty
        self._lock = threading.Lock()
        self._shutdown = _ShutdownFlag()

    def export(self, batch: ExportBatch) -> bool:
        """Print the batch."""
        if self._shutdown.is_set:
            return False

        text = dumps_batch(batch, indent=2 if self._pretty else None).decode("utf-8")
        with self._lock:
            self._output.write(text + "\n")
            self._output.flush()

        return True

    def shutdown(self) -> bool:
        if not self._shutdown.set():
            return False
        self._output.flush()
        return True
