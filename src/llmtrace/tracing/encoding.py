"""OTLP/JSON encoding of export batches.

Produces the ``ExportTraceServiceRequest`` JSON shape:

    {"resourceSpans": [{
        "resource": {"attributes": [...]},
        "scopeSpans": [{"scope": {...}, "spans": [...]}]
    }]}
"""

from __future__ import annotations

import json
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from llmtrace.tracing.exporter import ExportBatch
    from llmtrace.tracing.span import InstrumentationScope, SpanData


def encode_span(span: "SpanData") -> dict[str, Any]:
    """Convert one span to its OTLP/JSON object."""
    data: dict[str, Any] = {
        "traceId": span.trace_id,
        "spanId": span.span_id,
    }
    if span.parent_span_id:
        data["parentSpanId"] = span.parent_span_id
    data.update({
        "name": span.name,
        "kind": span.kind.value,
        # nanosecond timestamps are 64-bit, so strings like intValue
        "startTimeUnixNano": str(span.start_time_ns),
        "endTimeUnixNano": str(span.end_time_ns),
        "status": span.status.to_otlp(),
        "attributes": span.attributes.to_otlp(),
    })
    return data


def encode_batch(batch: "ExportBatch") -> dict[str, Any]:
    """Convert a batch to the OTLP/JSON request document.

    Spans are grouped by instrumentation scope in first-seen order; span
    order within a scope follows the batch.
    """
    scopes: dict["InstrumentationScope", list[dict[str, Any]]] = {}
    for span in batch.spans:
        scopes.setdefault(span.scope, []).append(encode_span(span))

    return {
        "resourceSpans": [{
            "resource": batch.resource.to_otlp(),
            "scopeSpans": [
                {"scope": scope.to_otlp(), "spans": spans}
                for scope, spans in scopes.items()
            ],
        }],
    }


def dumps_batch(batch: "ExportBatch", *, indent: int | None = None) -> bytes:
    """Serialize a batch to UTF-8 JSON bytes."""
    separators = None if indent else (",", ":")
    return json.dumps(
        encode_batch(batch),
        indent=indent,
        separators=separators,
        ensure_ascii=False,
    ).encode("utf-8")
