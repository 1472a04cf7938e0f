"""OTLP trace export for instrumented LLM requests.

Architecture:
    Tracer -> TraceSession -> Span
       |
    SpanProcessor (Simple/Batch) -> ResilientSpanExporter
       |
    OTLPSpanExporter -> HTTPTransport

Usage:
    >>> from llmtrace.tracing import TracingConfig, SpanKind, configure_tracing
    >>>
    >>> tracer = configure_tracing(TracingConfig.from_env())
    >>> session = tracer.start_session()
    >>> with session.span("query", kind=SpanKind.SERVER):
    ...     with session.span("llm.call", kind=SpanKind.CLIENT) as llm:
    ...         llm.set_attribute("gen_ai.usage.input_tokens", 3000)
    >>> tracer.shutdown()
"""

from llmtrace.tracing.attributes import (
    AttributeValue,
    Attributes,
    ValueKind,
)

from llmtrace.tracing.span import (
    InstrumentationScope,
    Span,
    SpanData,
    SpanKind,
    SpanLimits,
    Status,
    StatusCode,
    generate_span_id,
    generate_trace_id,
)

from llmtrace.tracing.resource import Resource

from llmtrace.tracing.session import SpanUsageError, TraceSession

from llmtrace.tracing.provider import Tracer

from llmtrace.tracing.processor import (
    BatchConfig,
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanProcessor,
)

from llmtrace.tracing.exporter import (
    ConsoleSpanExporter,
    ExportBatch,
    InMemorySpanExporter,
    OTLPSpanExporter,
    SpanExporter,
)

from llmtrace.tracing.encoding import dumps_batch, encode_batch, encode_span

from llmtrace.tracing.resilient import ResilientSpanExporter

from llmtrace.tracing.transport import (
    HTTPTransport,
    Transport,
    TransportError,
    TransportErrorKind,
    TransportResponse,
)

from llmtrace.tracing.semconv import (
    GenAIAttributes,
    HTTPAttributes,
    OpenInferenceAttributes,
)

from llmtrace.tracing.config import TracingConfig, configure_tracing

__all__ = [
    # Attributes
    "AttributeValue",
    "Attributes",
    "ValueKind",
    # Span
    "InstrumentationScope",
    "Span",
    "SpanData",
    "SpanKind",
    "SpanLimits",
    "Status",
    "StatusCode",
    "generate_span_id",
    "generate_trace_id",
    # Resource
    "Resource",
    # Session / Tracer
    "SpanUsageError",
    "TraceSession",
    "Tracer",
    # Processor
    "BatchConfig",
    "BatchSpanProcessor",
    "SimpleSpanProcessor",
    "SpanProcessor",
    # Exporter
    "ConsoleSpanExporter",
    "ExportBatch",
    "InMemorySpanExporter",
    "OTLPSpanExporter",
    "ResilientSpanExporter",
    "SpanExporter",
    "dumps_batch",
    "encode_batch",
    "encode_span",
    # Transport
    "HTTPTransport",
    "Transport",
    "TransportError",
    "TransportErrorKind",
    "TransportResponse",
    # Semantic conventions
    "GenAIAttributes",
    "HTTPAttributes",
    "OpenInferenceAttributes",
    # Config
    "TracingConfig",
    "configure_tracing",
]
