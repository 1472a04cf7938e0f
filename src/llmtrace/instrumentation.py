"""Instrumented query operation.

The query handler answers one request by calling an LLM client, and
traces it as a SERVER root span ``query`` with a CLIENT child span
``llm.call`` carrying the call's model, token usage, cost, prompt and
response.

Example:
    >>> tracer = configure_tracing(TracingConfig.from_env())
    >>> handler = QueryHandler(tracer)
    >>> result = handler.handle("What is OTLP?")
    >>> result.to_dict()
    {'status': 'success', 'trace_id': '4bf92f3577b34da6a3ce929d0e0e4736'}
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

from llmtrace.tracing.provider import Tracer
from llmtrace.tracing.semconv import GenAIAttributes, HTTPAttributes, OpenInferenceAttributes
from llmtrace.tracing.session import TraceSession
from llmtrace.tracing.span import Span, SpanKind, StatusCode

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "Summarize the latest deployment logs."


@dataclass(frozen=True)
class LLMCompletion:
    """Outcome of one LLM call."""

    system: str
    model: str
    prompt: str
    response: str
    input_tokens: int
    output_tokens: int
    cost_usd: float

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def span_attributes(self) -> dict[str, Any]:
        """GenAI and OpenInference attributes describing the call."""
        return {
            GenAIAttributes.SYSTEM: self.system,
            GenAIAttributes.OPERATION_NAME: "chat",
            GenAIAttributes.REQUEST_MODEL: self.model,
            GenAIAttributes.USAGE_INPUT_TOKENS: self.input_tokens,
            GenAIAttributes.USAGE_OUTPUT_TOKENS: self.output_tokens,
            GenAIAttributes.USAGE_COST: self.cost_usd,
            OpenInferenceAttributes.SPAN_KIND: OpenInferenceAttributes.SPAN_KIND_LLM,
            OpenInferenceAttributes.LLM_MODEL_NAME: self.model,
            OpenInferenceAttributes.LLM_PROVIDER: self.system,
            OpenInferenceAttributes.INPUT_VALUE: self.prompt,
            OpenInferenceAttributes.OUTPUT_VALUE: self.response,
            OpenInferenceAttributes.LLM_TOKEN_COUNT_PROMPT: self.input_tokens,
            OpenInferenceAttributes.LLM_TOKEN_COUNT_COMPLETION: self.output_tokens,
            OpenInferenceAttributes.LLM_TOKEN_COUNT_TOTAL: self.total_tokens,
        }


class LLMClient(Protocol):
    """Anything that can complete a prompt."""

    def complete(self, prompt: str) -> LLMCompletion:
        ...


class SimulatedLLMClient:
    """Stand-in LLM client with a fixed delay and canned usage numbers."""

    def __init__(
        self,
        *,
        delay_seconds: float = 0.1,
        model: str = "gpt-4o",
        input_tokens: int = 3000,
        output_tokens: int = 300,
        cost_usd: float = 0.0105,
        response: str = "The deployment completed without errors.",
    ) -> None:
        self._delay = delay_seconds
        self._model = model
        self._input_tokens = input_tokens
        self._output_tokens = output_tokens
        self._cost = cost_usd
        self._response = response

    def complete(self, prompt: str) -> LLMCompletion:
        if self._delay > 0:
            time.sleep(self._delay)
        return LLMCompletion(
            system="openai",
            model=self._model,
            prompt=prompt,
            response=self._response,
            input_tokens=self._input_tokens,
            output_tokens=self._output_tokens,
            cost_usd=self._cost,
        )


@dataclass(frozen=True)
class QueryResult:
    """What the caller of the query operation receives.

    ``trace_id`` is set on every path so failures can be matched with the
    diagnostic log and the collector.
    """

    status: str
    trace_id: str
    exported: bool = True
    error: str | None = None
    completion: LLMCompletion | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status, "trace_id": self.trace_id}
        if self.error:
            data["error"] = self.error
        return data


class QueryHandler:
    """Handles the query operation and traces it.

    The result's ``exported`` flag reports what happened to this request's
    own spans when they were handed to the processor. With immediate export
    that is the collector's answer; with batch export it only means the
    spans were buffered, and the worker thread ships them later.

    Args:
        tracer: Tracer receiving the spans.
        llm_client: LLM client (defaults to SimulatedLLMClient).
        flush_on_complete: Force-flush the tracer before returning. This
            drains every buffered span, including other requests', on the
            calling thread; use it only in one-shot processes such as the
            CLI, where the result should reflect the collector's answer.
    """

    def __init__(
        self,
        tracer: Tracer,
        llm_client: LLMClient | None = None,
        *,
        flush_on_complete: bool = False,
    ) -> None:
        self._tracer = tracer
        self._llm = llm_client or SimulatedLLMClient()
        self._flush_on_complete = flush_on_complete

    def handle(self, prompt: str = DEFAULT_PROMPT) -> QueryResult:
        """Run the query and return its result; never raises."""
        session = self._tracer.start_session()
        root = session.start_span(
            "query",
            kind=SpanKind.SERVER,
            attributes={
                HTTPAttributes.REQUEST_METHOD: "GET",
                HTTPAttributes.ROUTE: "/query",
            },
        )
        trace_id = root.trace_id
        completion: LLMCompletion | None = None
        error: str | None = None

        try:
            completion = self._call_llm(session, root, prompt)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error("Query %s failed: %s", trace_id, error)
            root.record_exception(e)
            root.set_attribute(HTTPAttributes.RESPONSE_STATUS_CODE, 500)
        else:
            root.set_attribute(HTTPAttributes.RESPONSE_STATUS_CODE, 200)
            root.set_status(StatusCode.OK)
        finally:
            session.end(root)

        exported = session.all_accepted
        if self._flush_on_complete and not self._tracer.force_flush():
            exported = False

        if not exported:
            logger.warning("Trace %s was not exported", trace_id)

        if error is not None:
            return QueryResult("error", trace_id, exported=exported, error=error)
        if not exported:
            return QueryResult(
                "error", trace_id, exported=False,
                error="trace export failed", completion=completion,
            )
        return QueryResult("success", trace_id, completion=completion)

    def _call_llm(self, session: TraceSession, root: Span, prompt: str) -> LLMCompletion:
        with session.span("llm.call", kind=SpanKind.CLIENT, parent=root) as span:
            completion = self._llm.complete(prompt)
            span.set_attributes(completion.span_attributes())
            return completion
