"""llmtrace: OTLP tracing for LLM-backed request handlers.

Instruments a request, attaches LLM call metadata (model, token counts,
cost, prompt and response) to spans and ships them as OTLP/JSON to a
telemetry collector without letting export failures reach the request.
"""

__version__ = "0.1.0"

from llmtrace.tracing import (
    SpanKind,
    StatusCode,
    Tracer,
    TracingConfig,
    configure_tracing,
)
from llmtrace.instrumentation import (
    LLMCompletion,
    QueryHandler,
    QueryResult,
    SimulatedLLMClient,
)

__all__ = [
    "__version__",
    "SpanKind",
    "StatusCode",
    "Tracer",
    "TracingConfig",
    "configure_tracing",
    "LLMCompletion",
    "QueryHandler",
    "QueryResult",
    "SimulatedLLMClient",
]
