"""Configuration and setup utilities for tracing.

The configuration is built once at process start and passed explicitly to
:func:`configure_tracing`; nothing is read from the environment at import
time.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, TextIO

from llmtrace.tracing.exporter import ConsoleSpanExporter, OTLPSpanExporter, SpanExporter
from llmtrace.tracing.processor import (
    BatchConfig,
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanProcessor,
)
from llmtrace.tracing.provider import Tracer
from llmtrace.tracing.resilient import ResilientSpanExporter
from llmtrace.tracing.resource import Resource
from llmtrace.tracing.transport import Compression, HTTPTransport

logger = logging.getLogger(__name__)

PLACEHOLDER_ENDPOINT = "https://collector.example.com/v1/traces"
PLACEHOLDER_API_KEY = "your-api-key"
PLACEHOLDER_REPOSITORY_ID = "your-repository-id"


# =============================================================================
# Tracing Configuration
# =============================================================================


@dataclass
class TracingConfig:
    """Configuration for the trace export pipeline.

    Example:
        >>> config = TracingConfig(
        ...     endpoint="https://collector.example.com/v1/traces",
        ...     api_key="secret",
        ...     repository_id="repo-123",
        ...     batch_export=True,
        ... )
        >>> tracer = configure_tracing(config)
    """

    # Collector and authentication
    endpoint: str = PLACEHOLDER_ENDPOINT
    api_key: str = PLACEHOLDER_API_KEY
    repository_id: str = PLACEHOLDER_REPOSITORY_ID
    api_key_header: str = "X-API-Key"
    repository_id_header: str = "X-Repository-Id"
    extra_headers: dict[str, str] = field(default_factory=dict)

    # Service identification
    service_name: str = "llm-query-service"
    service_version: str = "1.0.0"

    # Transport settings
    export_timeout_seconds: float = 10.0
    compression: Compression = "none"

    # Batch processor settings
    batch_export: bool = False
    max_queue_size: int = 2048
    max_export_batch_size: int = 512
    scheduled_delay_millis: int = 5000

    # Debug settings
    console_export: bool = False

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "TracingConfig":
        """Create configuration from environment variables.

        Environment variables:
            - LLMTRACE_ENDPOINT: Collector URL
            - LLMTRACE_API_KEY: API key header value
            - LLMTRACE_REPOSITORY_ID: Repository id header value
            - LLMTRACE_BATCH_EXPORT: "true" to buffer spans
            - LLMTRACE_CONSOLE_EXPORT: "true" to print spans instead
            - OTEL_SERVICE_NAME / OTEL_SERVICE_VERSION: Service identity
            - OTEL_BSP_MAX_EXPORT_BATCH_SIZE, OTEL_BSP_SCHEDULE_DELAY,
              OTEL_BSP_MAX_QUEUE_SIZE: Batch processor tuning
            - OTEL_EXPORTER_OTLP_TIMEOUT: Request timeout in milliseconds
            - OTEL_EXPORTER_OTLP_COMPRESSION: "gzip" or "none"

        Missing values fall back to placeholders and defaults.

        Returns:
            TracingConfig from environment.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        timeout_ms = _int_env(env, "OTEL_EXPORTER_OTLP_TIMEOUT", int(defaults.export_timeout_seconds * 1000))
        compression = env.get("OTEL_EXPORTER_OTLP_COMPRESSION", "none").strip().lower()
        if compression not in ("none", "gzip"):
            logger.warning("Unsupported OTEL_EXPORTER_OTLP_COMPRESSION=%r, using none", compression)
            compression = "none"

        max_queue_size = _int_env(env, "OTEL_BSP_MAX_QUEUE_SIZE", defaults.max_queue_size)
        max_export_batch_size = _int_env(
            env, "OTEL_BSP_MAX_EXPORT_BATCH_SIZE", defaults.max_export_batch_size
        )
        if max_export_batch_size > max_queue_size:
            logger.warning(
                "OTEL_BSP_MAX_EXPORT_BATCH_SIZE=%d exceeds OTEL_BSP_MAX_QUEUE_SIZE=%d, using %d",
                max_export_batch_size, max_queue_size, max_queue_size,
            )
            max_export_batch_size = max_queue_size

        return cls(
            endpoint=env.get("LLMTRACE_ENDPOINT") or PLACEHOLDER_ENDPOINT,
            api_key=env.get("LLMTRACE_API_KEY") or PLACEHOLDER_API_KEY,
            repository_id=env.get("LLMTRACE_REPOSITORY_ID") or PLACEHOLDER_REPOSITORY_ID,
            service_name=env.get("OTEL_SERVICE_NAME") or defaults.service_name,
            service_version=env.get("OTEL_SERVICE_VERSION") or defaults.service_version,
            export_timeout_seconds=timeout_ms / 1000,
            compression=compression,  # type: ignore[arg-type]
            batch_export=_bool_env(env, "LLMTRACE_BATCH_EXPORT", defaults.batch_export),
            max_queue_size=max_queue_size,
            max_export_batch_size=max_export_batch_size,
            scheduled_delay_millis=_int_env(
                env, "OTEL_BSP_SCHEDULE_DELAY", defaults.scheduled_delay_millis
            ),
            console_export=_bool_env(env, "LLMTRACE_CONSOLE_EXPORT", defaults.console_export),
        )

    @classmethod
    def development(cls, service_name: str = "dev-service") -> "TracingConfig":
        """Create development configuration.

        Prints spans to the console and exports each span immediately.
        """
        return cls(
            service_name=service_name,
            batch_export=False,
            console_export=True,
        )

    @property
    def uses_placeholders(self) -> bool:
        """True if any credential is still a placeholder."""
        return (
            self.endpoint == PLACEHOLDER_ENDPOINT
            or self.api_key == PLACEHOLDER_API_KEY
            or self.repository_id == PLACEHOLDER_REPOSITORY_ID
        )

    def headers(self) -> dict[str, str]:
        """Authentication headers sent with every export."""
        return {
            **self.extra_headers,
            self.api_key_header: self.api_key,
            self.repository_id_header: self.repository_id,
        }

    def batch_config(self) -> BatchConfig:
        return BatchConfig(
            max_queue_size=self.max_queue_size,
            max_export_batch_size=self.max_export_batch_size,
            scheduled_delay_millis=self.scheduled_delay_millis,
        )

    def resource(self) -> Resource:
        return Resource.create(
            service_name=self.service_name,
            service_version=self.service_version,
        )

    def redacted(self) -> "TracingConfig":
        """Copy with the API key masked, for display."""
        key = self.api_key
        masked = key[:4] + "*" * max(len(key) - 4, 0) if len(key) > 8 else "*" * len(key)
        return replace(self, api_key=masked)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "endpoint": self.endpoint,
            "api_key": self.api_key,
            "repository_id": self.repository_id,
            "api_key_header": self.api_key_header,
            "repository_id_header": self.repository_id_header,
            "service_name": self.service_name,
            "service_version": self.service_version,
            "export_timeout_seconds": self.export_timeout_seconds,
            "compression": self.compression,
            "batch_export": self.batch_export,
            "max_queue_size": self.max_queue_size,
            "max_export_batch_size": self.max_export_batch_size,
            "scheduled_delay_millis": self.scheduled_delay_millis,
            "console_export": self.console_export,
        }


def _int_env(env: Any, name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using %d", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Non-positive value for %s=%r, using %d", name, raw, default)
        return default
    return value


def _bool_env(env: Any, name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Pipeline Setup
# =============================================================================


def create_exporter(config: TracingConfig, *, output: TextIO | None = None) -> SpanExporter:
    """Build the resilient exporter described by the configuration."""
    if config.console_export:
        inner: SpanExporter = ConsoleSpanExporter(output=output)
    else:
        transport = HTTPTransport(
            config.endpoint,
            headers=config.headers(),
            timeout_seconds=config.export_timeout_seconds,
            compression=config.compression,
        )
        inner = OTLPSpanExporter(transport)
    return ResilientSpanExporter(inner)


def create_processor(
    config: TracingConfig,
    exporter: SpanExporter,
) -> SpanProcessor:
    """Build the span processor described by the configuration."""
    if config.batch_export:
        return BatchSpanProcessor(
            exporter,
            config=config.batch_config(),
            resource=config.resource(),
        )
    return SimpleSpanProcessor(exporter, resource=config.resource())


def configure_tracing(
    config: TracingConfig | None = None,
    *,
    exporter: SpanExporter | None = None,
    output: TextIO | None = None,
) -> Tracer:
    """Wire transport, exporter, processor and tracer.

    Args:
        config: Pipeline configuration (defaults to placeholders).
        exporter: Exporter to use instead of the configured one; it is
            wrapped in a ResilientSpanExporter.
        output: Stream for console export.

    Returns:
        Configured Tracer.
    """
    config = config or TracingConfig()

    if config.uses_placeholders and not config.console_export and exporter is None:
        logger.warning("Tracing configured with placeholder endpoint or credentials")

    if exporter is None:
        exporter = create_exporter(config, output=output)
    elif not isinstance(exporter, ResilientSpanExporter):
        exporter = ResilientSpanExporter(exporter)

    processor = create_processor(config, exporter)
    logger.debug(
        "Tracing configured: service=%s processor=%s",
        config.service_name, type(processor).__name__,
    )
    return Tracer(processor)
