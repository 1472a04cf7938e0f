"""Tracer: the entry point for creating traces.

Architecture:
    Tracer (scoped by instrumentation name/version)
        -> TraceSession (one per request)
            -> Span
        -> SpanProcessor -> SpanExporter -> Transport

The tracer holds no hidden "current span" state; each request gets its
own TraceSession and passes it (or its spans) around explicitly.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, TYPE_CHECKING

from llmtrace.tracing.resource import Resource
from llmtrace.tracing.session import TraceSession
from llmtrace.tracing.span import (
    InstrumentationScope,
    Span,
    SpanData,
    SpanKind,
    SpanLimits,
)

if TYPE_CHECKING:
    from llmtrace.tracing.processor import SpanProcessor

logger = logging.getLogger(__name__)


class Tracer:
    """Creates trace sessions and routes ended spans to a processor.

    Example:
        >>> exporter = InMemorySpanExporter()
        >>> tracer = Tracer(SimpleSpanProcessor(exporter))
        >>> with tracer.span("query", kind=SpanKind.SERVER) as root:
        ...     root.set_attribute("http.route", "/query")
    """

    def __init__(
        self,
        processor: "SpanProcessor",
        *,
        name: str = "llmtrace",
        version: str = "",
        span_limits: SpanLimits | None = None,
    ) -> None:
        """Initialize tracer.

        Args:
            processor: Processor receiving ended spans.
            name: Instrumentation scope name.
            version: Instrumentation scope version.
            span_limits: Limits for spans.
        """
        if not version:
            from llmtrace import __version__

            version = __version__
        self._processor = processor
        self._scope = InstrumentationScope(name, version)
        self._span_limits = span_limits or SpanLimits()
        self._shutdown = False
        self._lock = threading.Lock()

    @property
    def processor(self) -> "SpanProcessor":
        return self._processor

    @property
    def resource(self) -> Resource:
        return self._processor.resource

    @property
    def scope(self) -> InstrumentationScope:
        return self._scope

    @property
    def span_limits(self) -> SpanLimits:
        return self._span_limits

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def start_session(self) -> TraceSession:
        """Create a session for one logical operation."""
        return TraceSession(self)

    @contextmanager
    def span(
        self,
        name: str,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
    ) -> Iterator[Span]:
        """Start a root span in a fresh session.

        Child spans are created through ``span.session``.
        """
        session = self.start_session()
        with session.span(name, kind=kind, attributes=attributes) as root:
            yield root

    def _on_start(self, span: Span) -> None:
        try:
            self._processor.on_start(span)
        except Exception:
            logger.exception("Span processor failed on start of %s", span.name)

    def _on_end(self, data: SpanData) -> bool:
        if self._shutdown:
            logger.warning("Tracer is shut down, dropping span %s", data.name)
            return False
        try:
            return bool(self._processor.on_end(data))
        except Exception:
            logger.exception("Span processor failed on end of %s", data.name)
            return False

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Flush spans buffered by the processor."""
        try:
            return self._processor.force_flush(timeout_millis)
        except Exception:
            logger.exception("Span processor flush failed")
            return False

    def shutdown(self, timeout_millis: int = 30000) -> bool:
        """Shut down the processor.

        Returns:
            True on the first successful shutdown, False afterwards.
        """
        with self._lock:
            if self._shutdown:
                return False
            self._shutdown = True
        try:
            return self._processor.shutdown(timeout_millis)
        except Exception:
            logger.exception("Span processor shutdown failed")
            return False
