"""Span processors for trace data handling.

Span processors receive spans as they end and decide when to hand them to
an exporter.

Processor Types:
    - SimpleSpanProcessor: Synchronous export on span end
    - BatchSpanProcessor: Buffered export from a background thread

Batches that fail to export are dropped, not retried or re-buffered.
Losing telemetry is preferred over holding request threads or growing
memory while a collector is down; the number of dropped spans is
available from ``BatchSpanProcessor.dropped_spans`` and every drop is
logged.
"""

from __future__ import annotations

import atexit
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Sequence, TYPE_CHECKING

from llmtrace.tracing.exporter import ExportBatch
from llmtrace.tracing.resource import Resource

if TYPE_CHECKING:
    from llmtrace.tracing.exporter import SpanExporter
    from llmtrace.tracing.span import Span, SpanData

logger = logging.getLogger(__name__)


# =============================================================================
# Processor Interface
# =============================================================================


class SpanProcessor(ABC):
    """Abstract base class for span processors.

    Span processors receive notifications when spans start and end,
    and are responsible for forwarding spans to exporters.
    """

    def __init__(self, exporter: "SpanExporter", resource: Resource | None = None) -> None:
        """Initialize with exporter.

        Args:
            exporter: The span exporter to use.
            resource: Resource attached to every exported batch.
        """
        self._exporter = exporter
        self._resource = resource or Resource.create()

    @property
    def exporter(self) -> "SpanExporter":
        return self._exporter

    @property
    def resource(self) -> Resource:
        return self._resource

    def on_start(self, span: "Span") -> None:
        """Called when a span starts."""

    @abstractmethod
    def on_end(self, span: "SpanData") -> bool:
        """Called when a span ends.

        Args:
            span: The ended span.

        Returns:
            True if the span was exported or accepted for later export.
        """
        pass

    @abstractmethod
    def shutdown(self, timeout_millis: int = 30000) -> bool:
        """Flush remaining spans and shut down the exporter.

        Returns:
            True if shutdown completed; False if already shut down.
        """
        pass

    @abstractmethod
    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Force flush all pending spans.

        Returns:
            True if every pending span was exported.
        """
        pass

    def _export(self, spans: Sequence["SpanData"]) -> bool:
        batch = ExportBatch.of(spans, self._resource)
        try:
            return bool(self._exporter.export(batch))
        except Exception:
            logger.exception("Exporter raised while exporting %d spans", len(batch))
            return False


# =============================================================================
# Simple Span Processor
# =============================================================================


class SimpleSpanProcessor(SpanProcessor):
    """Synchronous span processor.

    Exports each span immediately when it ends, blocking the calling
    thread for the duration of the export.

    Best for:
        - Development and testing
        - Low-volume services
        - When immediate export is required

    Example:
        >>> processor = SimpleSpanProcessor(InMemorySpanExporter())
        >>> tracer = Tracer(processor)
    """

    def __init__(self, exporter: "SpanExporter", resource: Resource | None = None) -> None:
        super().__init__(exporter, resource)
        self._shutdown = False
        self._lock = threading.Lock()

    def on_end(self, span: "SpanData") -> bool:
        """Export span immediately on end."""
        with self._lock:
            if self._shutdown:
                logger.warning("Span processor is shut down, dropping span %s", span.name)
                return False
            return self._export([span])

    def shutdown(self, timeout_millis: int = 30000) -> bool:
        """Shutdown processor and exporter."""
        with self._lock:
            if self._shutdown:
                return False
            self._shutdown = True

        try:
            return bool(self._exporter.shutdown())
        except Exception:
            logger.exception("Exporter shutdown failed")
            return False

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Nothing is buffered; delegates to the exporter."""
        if self._shutdown:
            return False
        try:
            return bool(self._exporter.force_flush(timeout_millis))
        except Exception:
            logger.exception("Exporter flush failed")
            return False


# =============================================================================
# Batch Span Processor
# =============================================================================


@dataclass
class BatchConfig:
    """Configuration for batch span processor."""

    max_queue_size: int = 2048
    max_export_batch_size: int = 512
    scheduled_delay_millis: int = 5000

    def __post_init__(self) -> None:
        if self.max_export_batch_size <= 0:
            raise ValueError("max_export_batch_size must be positive")
        if self.max_queue_size < self.max_export_batch_size:
            raise ValueError("max_queue_size must be >= max_export_batch_size")
        if self.scheduled_delay_millis <= 0:
            raise ValueError("scheduled_delay_millis must be positive")

    @classmethod
    def default(cls) -> "BatchConfig":
        """Get default configuration."""
        return cls()

    @classmethod
    def development(cls) -> "BatchConfig":
        """Get development configuration (faster flush)."""
        return cls(
            max_queue_size=256,
            max_export_batch_size=32,
            scheduled_delay_millis=1000,
        )


class BatchSpanProcessor(SpanProcessor):
    """Batching span processor for low-latency request paths.

    Collects ended spans in a buffer. A background thread exports up to
    ``max_export_batch_size`` spans at a time, as soon as that many are
    buffered or once ``scheduled_delay_millis`` has passed since the last
    flush. Spans leave in the order they ended.

    Example:
        >>> processor = BatchSpanProcessor(
        ...     exporter,
        ...     config=BatchConfig(
        ...         max_export_batch_size=256,
        ...         scheduled_delay_millis=2000,
        ...     ),
        ... )
        >>> tracer = Tracer(processor)
    """

    def __init__(
        self,
        exporter: "SpanExporter",
        config: BatchConfig | None = None,
        resource: Resource | None = None,
    ) -> None:
        """Initialize batch processor.

        Args:
            exporter: The span exporter to use.
            config: Batch configuration.
            resource: Resource attached to every exported batch.
        """
        super().__init__(exporter, resource)
        self._config = config or BatchConfig.default()

        self._buffer: deque["SpanData"] = deque()
        self._condition = threading.Condition(threading.Lock())
        # Taken before the buffer lock; keeps batches leaving in order.
        self._export_lock = threading.Lock()
        self._shutdown = False
        self._next_flush = time.monotonic() + self._delay_seconds

        # Stats
        self._dropped_spans = 0
        self._exported_spans = 0

        self._worker = threading.Thread(
            target=self._export_loop,
            daemon=True,
            name="BatchSpanProcessor-Worker",
        )
        self._worker.start()

        atexit.register(self._atexit_handler)

    @property
    def config(self) -> BatchConfig:
        return self._config

    @property
    def dropped_spans(self) -> int:
        """Spans lost to a full buffer or a failed export."""
        with self._condition:
            return self._dropped_spans

    @property
    def exported_spans(self) -> int:
        with self._condition:
            return self._exported_spans

    @property
    def pending_spans(self) -> int:
        with self._condition:
            return len(self._buffer)

    @property
    def _delay_seconds(self) -> float:
        return self._config.scheduled_delay_millis / 1000

    def _atexit_handler(self) -> None:
        """Handle process exit."""
        self.shutdown(timeout_millis=5000)

    def on_end(self, span: "SpanData") -> bool:
        """Add span to the buffer."""
        with self._condition:
            if self._shutdown:
                logger.warning("Span processor is shut down, dropping span %s", span.name)
                return False

            if len(self._buffer) >= self._config.max_queue_size:
                self._dropped_spans += 1
                logger.warning(
                    "Span buffer full (%d), dropping span %s",
                    self._config.max_queue_size, span.name,
                )
                return False

            self._buffer.append(span)
            if len(self._buffer) >= self._config.max_export_batch_size:
                self._condition.notify()

        return True

    def _export_loop(self) -> None:
        """Background export loop."""
        while True:
            with self._condition:
                while (
                    not self._shutdown
                    and len(self._buffer) < self._config.max_export_batch_size
                ):
                    remaining = self._next_flush - time.monotonic()
                    if remaining <= 0:
                        break
                    self._condition.wait(remaining)
                if self._shutdown:
                    # shutdown() drains what is left
                    return

            self._export_batch()

    def _export_batch(self) -> bool:
        """Export up to one batch from the front of the buffer."""
        with self._export_lock:
            with self._condition:
                batch: list["SpanData"] = []
                while self._buffer and len(batch) < self._config.max_export_batch_size:
                    batch.append(self._buffer.popleft())
                self._next_flush = time.monotonic() + self._delay_seconds

            if not batch:
                return True

            exported = self._export(batch)
            # Counters share the buffer lock with on_end.
            with self._condition:
                if exported:
                    self._exported_spans += len(batch)
                else:
                    self._dropped_spans += len(batch)

            if exported:
                return True

            logger.warning("Dropping batch of %d spans after failed export", len(batch))
            return False

    def _drain(self, timeout_millis: int) -> bool:
        deadline = time.monotonic() + timeout_millis / 1000
        success = True

        while True:
            with self._condition:
                if not self._buffer:
                    return success
            if time.monotonic() >= deadline:
                logger.warning("Timed out flushing %d spans", self.pending_spans)
                return False
            if not self._export_batch():
                success = False

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Export all buffered spans now."""
        with self._condition:
            if self._shutdown:
                return False
        return self._drain(timeout_millis)

    def shutdown(self, timeout_millis: int = 30000) -> bool:
        """Stop the worker, flush remaining spans and shut down the exporter."""
        with self._condition:
            if self._shutdown:
                return False
            self._shutdown = True
            self._condition.notify_all()

        atexit.unregister(self._atexit_handler)
        self._worker.join(timeout=timeout_millis / 1000)

        flushed = self._drain(timeout_millis)

        try:
            exporter_ok = bool(self._exporter.shutdown())
        except Exception:
            logger.exception("Exporter shutdown failed")
            exporter_ok = False

        return flushed and exporter_ok
