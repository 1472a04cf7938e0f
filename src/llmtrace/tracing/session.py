"""Trace sessions: the active-span stack of one logical operation.

A TraceSession owns the spans of one request. Spans started in a session
become children of the explicitly passed parent or, when none is given,
of the innermost active span. Spans must end in last-in-first-out order.

Example:
    >>> session = tracer.start_session()
    >>> with session.span("query", kind=SpanKind.SERVER) as root:
    ...     with session.span("llm.call", kind=SpanKind.CLIENT) as child:
    ...         child.set_attribute("gen_ai.usage.input_tokens", 3000)
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, TYPE_CHECKING

from llmtrace.tracing.span import (
    Span,
    SpanKind,
    StatusCode,
    generate_span_id,
    generate_trace_id,
)

if TYPE_CHECKING:
    from llmtrace.tracing.provider import Tracer

logger = logging.getLogger(__name__)


class SpanUsageError(Exception):
    """Raised when spans are used out of order."""


class TraceSession:
    """LIFO stack of active spans for one operation."""

    def __init__(self, tracer: "Tracer") -> None:
        self._tracer = tracer
        self._stack: list[Span] = []
        self._lock = threading.Lock()
        # Result of every processor hand-off, for callers that need to know
        # whether the whole trace was accepted.
        self._all_accepted = True

    @property
    def tracer(self) -> "Tracer":
        return self._tracer

    @property
    def current_span(self) -> Span | None:
        """The innermost active span, if any."""
        with self._lock:
            return self._stack[-1] if self._stack else None

    @property
    def depth(self) -> int:
        with self._lock:
            return len(self._stack)

    @property
    def active_spans(self) -> list[Span]:
        """Active spans from outermost to innermost."""
        with self._lock:
            return list(self._stack)

    @property
    def all_accepted(self) -> bool:
        """True if every span ended so far was accepted by the processor."""
        return self._all_accepted

    def start_span(
        self,
        name: str,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
        parent: Span | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> Span:
        """Start a span and make it the innermost active span.

        Args:
            name: Span name.
            kind: Span kind.
            parent: Parent span; defaults to the current span of this session.
            attributes: Initial attributes.

        Returns:
            The started Span.

        Raises:
            SpanUsageError: If the parent has already ended.
        """
        with self._lock:
            if parent is None and self._stack:
                parent = self._stack[-1]

            if parent is not None and not parent.is_recording():
                logger.error("Cannot start span %r under ended parent %s", name, parent.span_id)
                raise SpanUsageError(
                    f"Parent span {parent.name!r} ({parent.span_id}) has already ended"
                )

            span = Span(
                name,
                session=self,
                trace_id=parent.trace_id if parent is not None else generate_trace_id(),
                span_id=generate_span_id(),
                parent_span_id=parent.span_id if parent is not None else None,
                kind=kind,
                scope=self._tracer.scope,
                limits=self._tracer.span_limits,
                attributes=attributes,
            )
            self._stack.append(span)

        self._tracer._on_start(span)
        return span

    def end(self, span: Span) -> bool:
        """End a span and hand it to the processor.

        Returns:
            True if the processor accepted the span. Processor failures are
            logged and reported as False.

        Raises:
            SpanUsageError: If the span is active but not the innermost span.
        """
        with self._lock:
            if not span.is_recording():
                logger.warning("Span %s (%s) already ended", span.name, span.span_id)
                return False

            if not self._stack or self._stack[-1] is not span:
                top = self._stack[-1].name if self._stack else None
                logger.error(
                    "Out-of-order end of span %r; innermost active span is %r",
                    span.name, top,
                )
                raise SpanUsageError(
                    f"Span {span.name!r} is not the innermost active span (top: {top!r})"
                )

            data = span._finish()
            self._stack.pop()

        accepted = self._tracer._on_end(data)
        if not accepted:
            self._all_accepted = False
        return accepted

    @contextmanager
    def span(
        self,
        name: str,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
        parent: Span | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> Iterator[Span]:
        """Start a span and end it when the block exits.

        Exceptions are recorded on the span and re-raised. A span still
        UNSET at a clean exit is marked OK.
        """
        span = self.start_span(name, kind=kind, parent=parent, attributes=attributes)
        try:
            yield span
        except BaseException as e:
            span.record_exception(e)
            raise
        else:
            if span.status.code is StatusCode.UNSET:
                span.set_status(StatusCode.OK)
        finally:
            if span.is_recording():
                self.end(span)
