"""Span implementation for LLM request tracing.

A Span represents a single timed operation within a trace. Spans are
created through a :class:`~llmtrace.tracing.session.TraceSession`, which
links them into a parent/child tree and hands them to a span processor
once they end.

Two representations exist:
    - Span: the mutable handle used while the operation runs
    - SpanData: the frozen snapshot produced by ``end()`` and exported
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, TYPE_CHECKING

from llmtrace.tracing.attributes import Attributes

if TYPE_CHECKING:
    from llmtrace.tracing.session import TraceSession

logger = logging.getLogger(__name__)

_INVALID_TRACE_ID = "0" * 32
_INVALID_SPAN_ID = "0" * 16


# =============================================================================
# IDs
# =============================================================================


def generate_trace_id() -> str:
    """Generate a random 128-bit trace ID as 32 lowercase hex chars."""
    while True:
        trace_id = secrets.token_hex(16)
        if trace_id != _INVALID_TRACE_ID:
            return trace_id


def generate_span_id() -> str:
    """Generate a random 64-bit span ID as 16 lowercase hex chars."""
    while True:
        span_id = secrets.token_hex(8)
        if span_id != _INVALID_SPAN_ID:
            return span_id


# =============================================================================
# Enums
# =============================================================================


class SpanKind(Enum):
    """Relationship between the span and its parent/children."""

    INTERNAL = "SPAN_KIND_INTERNAL"
    SERVER = "SPAN_KIND_SERVER"
    CLIENT = "SPAN_KIND_CLIENT"
    PRODUCER = "SPAN_KIND_PRODUCER"
    CONSUMER = "SPAN_KIND_CONSUMER"


class StatusCode(Enum):
    """Status of a span, following OpenTelemetry status conventions."""

    UNSET = "STATUS_CODE_UNSET"
    OK = "STATUS_CODE_OK"
    ERROR = "STATUS_CODE_ERROR"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Status:
    """Span status with an optional message for errors."""

    code: StatusCode = StatusCode.UNSET
    message: str | None = None

    def to_otlp(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": self.code.value}
        if self.message:
            data["message"] = self.message
        return data


@dataclass(frozen=True)
class InstrumentationScope:
    """Name and version of the library that produced a span."""

    name: str
    version: str = ""

    def to_otlp(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.version:
            data["version"] = self.version
        return data


@dataclass(frozen=True)
class SpanLimits:
    """Limits applied to span attributes.

    Prevents unbounded memory growth from runaway attribute writes.
    ``max_attribute_length`` of None leaves string values untouched.
    """

    max_attributes: int = 128
    max_attribute_length: int | None = None


@dataclass(frozen=True)
class SpanData:
    """Immutable snapshot of an ended span.

    This is what processors buffer and exporters serialize.
    """

    trace_id: str
    span_id: str
    parent_span_id: str | None
    name: str
    kind: SpanKind
    start_time_ns: int
    end_time_ns: int
    status: Status
    attributes: Attributes
    scope: InstrumentationScope

    @property
    def duration_ns(self) -> int:
        return self.end_time_ns - self.start_time_ns

    @property
    def duration_ms(self) -> float:
        return self.duration_ns / 1_000_000

    @property
    def is_root(self) -> bool:
        return self.parent_span_id is None


# =============================================================================
# Span
# =============================================================================


class Span:
    """Mutable handle for a running span.

    Spans are not constructed directly; use ``TraceSession.start_span``.
    After ``end()`` every mutating call is ignored with a warning.

    Example:
        >>> span = session.start_span("llm.call", kind=SpanKind.CLIENT)
        >>> span.set_attribute("gen_ai.request.model", "gpt-4o")
        >>> span.end()
    """

    def __init__(
        self,
        name: str,
        *,
        session: "TraceSession",
        trace_id: str,
        span_id: str,
        parent_span_id: str | None = None,
        kind: SpanKind = SpanKind.INTERNAL,
        scope: InstrumentationScope,
        limits: SpanLimits | None = None,
        attributes: Mapping[str, Any] | None = None,
        start_time_ns: int | None = None,
    ) -> None:
        self._name = name
        self._session = session
        self._trace_id = trace_id
        self._span_id = span_id
        self._parent_span_id = parent_span_id
        self._kind = kind
        self._scope = scope
        self._limits = limits or SpanLimits()

        self._start_time_ns = start_time_ns if start_time_ns is not None else time.time_ns()
        self._end_time_ns: int | None = None

        self._attributes = Attributes()
        self._status = Status()

        self._lock = threading.Lock()
        self._ended = False

        if attributes:
            self.set_attributes(attributes)

    @property
    def name(self) -> str:
        return self._name

    @property
    def trace_id(self) -> str:
        return self._trace_id

    @property
    def span_id(self) -> str:
        return self._span_id

    @property
    def parent_span_id(self) -> str | None:
        return self._parent_span_id

    @property
    def kind(self) -> SpanKind:
        return self._kind

    @property
    def session(self) -> "TraceSession":
        return self._session

    @property
    def start_time_ns(self) -> int:
        return self._start_time_ns

    @property
    def end_time_ns(self) -> int | None:
        return self._end_time_ns

    @property
    def status(self) -> Status:
        return self._status

    @property
    def attributes(self) -> dict[str, Any]:
        """Current attributes as native values."""
        with self._lock:
            return self._attributes.to_dict()

    def is_recording(self) -> bool:
        """True until the span ends."""
        return not self._ended

    def set_attribute(self, key: str, value: Any) -> "Span":
        """Set a span attribute.

        Ignored with a warning after the span has ended, when the value
        type is unsupported, or when the attribute limit is reached.
        """
        if not self.is_recording():
            logger.warning(
                "Ignoring attribute %r on ended span %s (%s)",
                key, self._name, self._span_id,
            )
            return self

        limit = self._limits.max_attribute_length
        if limit is not None and isinstance(value, str) and len(value) > limit:
            value = value[:limit]

        with self._lock:
            if key not in self._attributes and len(self._attributes) >= self._limits.max_attributes:
                logger.warning(
                    "Attribute limit (%d) reached on span %s, dropping %r",
                    self._limits.max_attributes, self._name, key,
                )
                return self
            try:
                self._attributes.set(key, value)
            except (TypeError, ValueError) as e:
                logger.warning("Rejected attribute %r on span %s: %s", key, self._name, e)

        return self

    def set_attributes(self, attributes: Mapping[str, Any]) -> "Span":
        """Set multiple attributes."""
        for key, value in attributes.items():
            self.set_attribute(key, value)
        return self

    def set_status(self, code: StatusCode, message: str | None = None) -> "Span":
        """Set span status.

        Once ERROR is set, it cannot be changed. The message is only kept
        for ERROR statuses.
        """
        if not self.is_recording():
            logger.warning("Ignoring status on ended span %s (%s)", self._name, self._span_id)
            return self

        with self._lock:
            if self._status.code is StatusCode.ERROR:
                return self
            self._status = Status(code, message if code is StatusCode.ERROR else None)

        return self

    def record_exception(self, exception: BaseException) -> "Span":
        """Record an exception and mark the span as failed.

        Does not end the span.
        """
        self.set_attributes({
            "exception.type": type(exception).__name__,
            "exception.message": str(exception),
            "exception.stacktrace": "".join(
                traceback.format_exception(
                    type(exception), exception, exception.__traceback__
                )
            ),
        })
        self.set_status(StatusCode.ERROR, str(exception) or type(exception).__name__)
        return self

    def end(self) -> bool:
        """End the span through its session.

        Returns:
            True if the processor accepted the span.

        Raises:
            SpanUsageError: If the span is not the innermost active span.
        """
        return self._session.end(self)

    def _finish(self, end_time_ns: int | None = None) -> SpanData:
        """Freeze the span. Called by the owning session only."""
        with self._lock:
            end = end_time_ns if end_time_ns is not None else time.time_ns()
            # The wall clock may step backwards between start and end.
            self._end_time_ns = max(end, self._start_time_ns)
            self._ended = True
            return SpanData(
                trace_id=self._trace_id,
                span_id=self._span_id,
                parent_span_id=self._parent_span_id,
                name=self._name,
                kind=self._kind,
                start_time_ns=self._start_time_ns,
                end_time_ns=self._end_time_ns,
                status=self._status,
                attributes=self._attributes.freeze(),
                scope=self._scope,
            )

    def __repr__(self) -> str:
        return (
            f"Span(name={self._name!r}, trace_id={self._trace_id}, "
            f"span_id={self._span_id}, ended={self._ended})"
        )
