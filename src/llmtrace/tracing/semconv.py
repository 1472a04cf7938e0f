"""Attribute keys for describing LLM calls on spans.

Covers the OpenTelemetry GenAI semantic conventions and the OpenInference
vocabulary used by LLM analytics backends, plus the HTTP keys set on
server spans.
"""


class GenAIAttributes:
    """OpenTelemetry GenAI semantic convention keys."""

    SYSTEM = "gen_ai.system"
    OPERATION_NAME = "gen_ai.operation.name"
    REQUEST_MODEL = "gen_ai.request.model"
    REQUEST_TEMPERATURE = "gen_ai.request.temperature"
    REQUEST_MAX_TOKENS = "gen_ai.request.max_tokens"
    RESPONSE_MODEL = "gen_ai.response.model"
    RESPONSE_FINISH_REASONS = "gen_ai.response.finish_reasons"
    USAGE_INPUT_TOKENS = "gen_ai.usage.input_tokens"
    USAGE_OUTPUT_TOKENS = "gen_ai.usage.output_tokens"
    # Not part of the upstream conventions; analytics backends read it.
    USAGE_COST = "gen_ai.usage.cost"
    PROMPT = "gen_ai.prompt"
    COMPLETION = "gen_ai.completion"


class OpenInferenceAttributes:
    """OpenInference semantic convention keys."""

    SPAN_KIND = "openinference.span.kind"
    INPUT_VALUE = "input.value"
    INPUT_MIME_TYPE = "input.mime_type"
    OUTPUT_VALUE = "output.value"
    OUTPUT_MIME_TYPE = "output.mime_type"
    LLM_MODEL_NAME = "llm.model_name"
    LLM_PROVIDER = "llm.provider"
    LLM_TOKEN_COUNT_PROMPT = "llm.token_count.prompt"
    LLM_TOKEN_COUNT_COMPLETION = "llm.token_count.completion"
    LLM_TOKEN_COUNT_TOTAL = "llm.token_count.total"

    SPAN_KIND_LLM = "LLM"
    SPAN_KIND_CHAIN = "CHAIN"


class HTTPAttributes:
    """HTTP server semantic convention keys."""

    REQUEST_METHOD = "http.request.method"
    ROUTE = "http.route"
    RESPONSE_STATUS_CODE = "http.response.status_code"
