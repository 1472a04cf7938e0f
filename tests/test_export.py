"""Tests for span processing and export.

Tests cover:
- SimpleSpanProcessor and BatchSpanProcessor
- InMemory, Console and OTLP exporters
- ResilientSpanExporter failure containment
- HTTPTransport request building and error classification
"""

from __future__ import annotations

import gzip
import io
import json
import logging
import socket
import threading
import time
import urllib.error
from typing import Mapping
from unittest.mock import MagicMock, patch

import pytest

from llmtrace.tracing import (
    BatchConfig,
    BatchSpanProcessor,
    ConsoleSpanExporter,
    ExportBatch,
    HTTPTransport,
    InMemorySpanExporter,
    OTLPSpanExporter,
    ResilientSpanExporter,
    Resource,
    SimpleSpanProcessor,
    SpanExporter,
    SpanKind,
    Tracer,
    Transport,
    TransportError,
    TransportErrorKind,
    TransportResponse,
)
from llmtrace.tracing.resilient import logger as resilient_logger


# =============================================================================
# Test Fixtures
# =============================================================================


class FakeTransport(Transport):
    """Transport that records requests and returns a canned response."""

    def __init__(self, status_code: int | None = 200, error: TransportError | None = None) -> None:
        self.status_code = status_code
        self.error = error
        self.requests: list[tuple[bytes, Mapping[str, str] | None]] = []
        self.closed = False

    @property
    def endpoint(self) -> str:
        return "https://collector.test/v1/traces"

    def post(self, body, headers=None):
        self.requests.append((body, headers))
        if self.error is not None:
            return TransportResponse(error=self.error)
        return TransportResponse(status_code=self.status_code)

    def close(self):
        self.closed = True


class RaisingExporter(SpanExporter):
    """Exporter whose every operation raises."""

    def export(self, batch):
        raise ConnectionError("collector unreachable")

    def shutdown(self):
        raise RuntimeError("shutdown failed")

    def force_flush(self, timeout_millis=30000):
        raise RuntimeError("flush failed")


class FailingExporter(InMemorySpanExporter):
    """Exporter that records batches but reports failure."""

    def export(self, batch):
        super().export(batch)
        return False


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def end_spans(tracer: Tracer, names: list[str]) -> None:
    session = tracer.start_session()
    for name in names:
        session.start_span(name).end()


def make_batch(count: int = 2) -> ExportBatch:
    exporter = InMemorySpanExporter()
    tracer = Tracer(SimpleSpanProcessor(exporter))
    session = tracer.start_session()
    with session.span("query", kind=SpanKind.SERVER):
        for i in range(count - 1):
            session.start_span(f"child-{i}").end()
    return ExportBatch.of(exporter.get_finished_spans(), Resource.create(service_name="svc"))


# =============================================================================
# Processor Tests
# =============================================================================


class TestSimpleSpanProcessor:
    """Tests for SimpleSpanProcessor."""

    def test_export_on_end(self):
        """Test spans are exported immediately, one per batch."""
        exporter = InMemorySpanExporter()
        resource = Resource.create(service_name="svc")
        tracer = Tracer(SimpleSpanProcessor(exporter, resource=resource))

        end_spans(tracer, ["a", "b"])

        batches = exporter.batches
        assert [len(b) for b in batches] == [1, 1]
        assert batches[0].resource is resource

    def test_returns_exporter_result(self):
        """Test on_end reports export failure."""
        tracer = Tracer(SimpleSpanProcessor(FailingExporter()))
        span = tracer.start_session().start_span("a")
        assert span.end() is False

    def test_shutdown(self):
        """Test shutdown is idempotent and rejects later spans."""
        exporter = InMemorySpanExporter()
        processor = SimpleSpanProcessor(exporter)
        tracer = Tracer(processor)

        assert processor.shutdown() is True
        assert processor.shutdown() is False

        span = tracer.start_session().start_span("late")
        assert span.end() is False
        assert exporter.batches == []


class TestBatchSpanProcessor:
    """Tests for BatchSpanProcessor."""

    def test_size_triggered_flush(self):
        """Test N+1 spans trigger exactly one flush of the first N."""
        exporter = InMemorySpanExporter()
        processor = BatchSpanProcessor(
            exporter,
            config=BatchConfig(max_export_batch_size=3, scheduled_delay_millis=60_000),
        )
        tracer = Tracer(processor)

        end_spans(tracer, ["s0", "s1", "s2", "s3"])

        assert wait_for(lambda: len(exporter.batches) >= 1)
        time.sleep(0.05)

        batches = exporter.batches
        assert len(batches) == 1
        assert [s.name for s in batches[0]] == ["s0", "s1", "s2"]
        assert processor.pending_spans == 1

        processor.shutdown()
        assert [s.name for s in exporter.batches[1]] == ["s3"]

    def test_time_triggered_flush(self):
        """Test the scheduled delay flushes a partial batch."""
        exporter = InMemorySpanExporter()
        processor = BatchSpanProcessor(
            exporter,
            config=BatchConfig(max_export_batch_size=100, scheduled_delay_millis=50),
        )
        tracer = Tracer(processor)

        end_spans(tracer, ["only"])

        assert wait_for(lambda: len(exporter.get_finished_spans()) == 1)
        processor.shutdown()

    def test_force_flush(self):
        """Test force_flush exports everything in order."""
        exporter = InMemorySpanExporter()
        processor = BatchSpanProcessor(
            exporter,
            config=BatchConfig(max_export_batch_size=2, max_queue_size=10, scheduled_delay_millis=60_000),
        )
        tracer = Tracer(processor)
        names = [f"s{i}" for i in range(5)]

        end_spans(tracer, names)
        assert processor.force_flush() is True

        assert [s.name for s in exporter.get_finished_spans()] == names
        assert all(len(b) <= 2 for b in exporter.batches)
        assert processor.exported_spans == 5
        processor.shutdown()

    def test_failed_export_drops_batch(self, caplog):
        """Test failed batches are dropped, not re-buffered."""
        exporter = FailingExporter()
        processor = BatchSpanProcessor(
            exporter,
            config=BatchConfig(max_export_batch_size=10, scheduled_delay_millis=60_000),
        )
        tracer = Tracer(processor)

        end_spans(tracer, ["a", "b"])
        with caplog.at_level(logging.WARNING, logger="llmtrace"):
            assert processor.force_flush() is False

        assert processor.dropped_spans == 2
        assert processor.pending_spans == 0
        assert "Dropping batch of 2 spans" in caplog.text

        # Nothing left to retry
        assert processor.force_flush() is True
        assert len(exporter.batches) == 1
        processor.shutdown()

    def test_queue_overflow(self):
        """Test spans beyond max_queue_size are dropped."""
        exporter = InMemorySpanExporter()
        processor = BatchSpanProcessor(
            exporter,
            config=BatchConfig(max_queue_size=2, max_export_batch_size=2, scheduled_delay_millis=60_000),
        )
        # Hold the export lock so the worker cannot drain the buffer.
        with processor._export_lock:
            tracer = Tracer(processor)
            session = tracer.start_session()
            results = [session.start_span(n).end() for n in ["a", "b", "c"]]

        assert results == [True, True, False]
        assert processor.dropped_spans == 1
        processor.shutdown()

    def test_shutdown_flushes_and_is_idempotent(self):
        """Test shutdown exports pending spans once."""
        exporter = InMemorySpanExporter()
        processor = BatchSpanProcessor(
            exporter,
            config=BatchConfig(max_export_batch_size=100, scheduled_delay_millis=60_000),
        )
        tracer = Tracer(processor)
        end_spans(tracer, ["a", "b"])

        assert processor.shutdown() is True
        assert not processor._worker.is_alive()
        assert len(exporter.get_finished_spans()) == 2

        assert processor.shutdown() is False
        assert len(exporter.get_finished_spans()) == 2

    def test_on_end_after_shutdown(self):
        """Test spans are rejected after shutdown."""
        exporter = InMemorySpanExporter()
        processor = BatchSpanProcessor(exporter)
        processor.shutdown()

        tracer = Tracer(processor)
        assert tracer.start_session().start_span("late").end() is False
        assert processor.force_flush() is False

    def test_concurrent_on_end(self):
        """Test concurrent producers lose no spans."""
        exporter = InMemorySpanExporter()
        processor = BatchSpanProcessor(
            exporter,
            config=BatchConfig(max_export_batch_size=7, max_queue_size=1000, scheduled_delay_millis=20),
        )
        tracer = Tracer(processor)

        def produce():
            end_spans(tracer, [f"s{i}" for i in range(50)])

        threads = [threading.Thread(target=produce) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        processor.shutdown()
        assert len(exporter.get_finished_spans()) == 200
        assert all(len(b) <= 7 for b in exporter.batches)

    def test_drop_accounting_under_contention(self):
        """Test overflow and failed-export drops are all counted."""
        exporter = FailingExporter()
        processor = BatchSpanProcessor(
            exporter,
            config=BatchConfig(max_export_batch_size=3, max_queue_size=5, scheduled_delay_millis=5),
        )
        tracer = Tracer(processor)

        def produce():
            end_spans(tracer, [f"s{i}" for i in range(200)])

        threads = [threading.Thread(target=produce) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        processor.shutdown()
        assert processor.exported_spans == 0
        assert processor.dropped_spans == 800

    def test_invalid_config(self):
        """Test config validation."""
        with pytest.raises(ValueError):
            BatchConfig(max_export_batch_size=0)
        with pytest.raises(ValueError):
            BatchConfig(max_queue_size=10, max_export_batch_size=20)


# =============================================================================
# Exporter Tests
# =============================================================================


class TestInMemorySpanExporter:
    """Tests for InMemorySpanExporter."""

    def test_export_and_clear(self):
        exporter = InMemorySpanExporter()
        assert exporter.export(make_batch(2)) is True
        assert len(exporter.get_finished_spans()) == 2

        exporter.clear()
        assert exporter.get_finished_spans() == []

    def test_shutdown(self):
        exporter = InMemorySpanExporter()
        assert exporter.shutdown() is True
        assert exporter.shutdown() is False
        assert exporter.export(make_batch(1)) is False


class TestConsoleSpanExporter:
    """Tests for ConsoleSpanExporter."""

    def test_export_json(self):
        """Test output is an OTLP/JSON document."""
        output = io.StringIO()
        exporter = ConsoleSpanExporter(output=output, pretty=False)

        assert exporter.export(make_batch(2)) is True

        doc = json.loads(output.getvalue())
        assert len(doc["resourceSpans"][0]["scopeSpans"][0]["spans"]) == 2


class TestOTLPSpanExporter:
    """Tests for OTLPSpanExporter."""

    def test_success(self):
        """Test HTTP 200 is success and the body is OTLP/JSON."""
        transport = FakeTransport(200)
        exporter = OTLPSpanExporter(transport)

        assert exporter.export(make_batch(2)) is True

        body, _ = transport.requests[0]
        doc = json.loads(body)
        spans = doc["resourceSpans"][0]["scopeSpans"][0]["spans"]
        assert len(spans) == 2
        assert spans[0]["traceId"] == spans[1]["traceId"]

    @pytest.mark.parametrize("status", [202, 400, 401, 500, 503])
    def test_non_200_is_failure(self, status, caplog):
        """Test any status other than 200 fails without raising."""
        exporter = OTLPSpanExporter(FakeTransport(status))
        with caplog.at_level(logging.WARNING, logger="llmtrace"):
            assert exporter.export(make_batch(1)) is False
        assert f"HTTP {status}" in caplog.text

    def test_transport_error_is_failure(self, caplog):
        """Test transport errors fail without raising."""
        transport = FakeTransport(error=TransportError(TransportErrorKind.DNS, "no such host"))
        exporter = OTLPSpanExporter(transport)

        with caplog.at_level(logging.WARNING, logger="llmtrace"):
            assert exporter.export(make_batch(1)) is False
        assert "dns: no such host" in caplog.text

    def test_empty_batch(self):
        """Test empty batches are not sent."""
        transport = FakeTransport(200)
        exporter = OTLPSpanExporter(transport)

        assert exporter.export(ExportBatch.of([], Resource.create())) is True
        assert transport.requests == []

    def test_shutdown(self):
        """Test shutdown closes the transport once and stops exports."""
        transport = FakeTransport(200)
        exporter = OTLPSpanExporter(transport)

        assert exporter.shutdown() is True
        assert transport.closed
        assert exporter.shutdown() is False
        assert exporter.export(make_batch(1)) is False
        assert transport.requests == []


class TestResilientSpanExporter:
    """Tests for ResilientSpanExporter."""

    def test_export_exception_contained(self):
        """Test a raising exporter yields False and one log call."""
        exporter = ResilientSpanExporter(RaisingExporter())

        with patch.object(resilient_logger, "exception") as log:
            result = exporter.export(make_batch(1))

        assert result is False
        assert log.call_count == 1

    def test_traceback_logged(self, caplog):
        """Test the stack trace reaches the diagnostic log."""
        exporter = ResilientSpanExporter(RaisingExporter())
        with caplog.at_level(logging.ERROR, logger="llmtrace"):
            exporter.export(make_batch(1))

        assert "collector unreachable" in caplog.text
        assert caplog.records[0].exc_info is not None

    def test_shutdown_and_flush_contained(self):
        exporter = ResilientSpanExporter(RaisingExporter())
        assert exporter.shutdown() is False
        assert exporter.force_flush() is False

    def test_passes_through_results(self):
        inner = MagicMock(spec=SpanExporter)
        inner.export.return_value = True
        inner.shutdown.return_value = True
        inner.force_flush.return_value = True
        exporter = ResilientSpanExporter(inner)
        batch = make_batch(1)

        assert exporter.export(batch) is True
        assert exporter.shutdown() is True
        assert exporter.force_flush(10) is True
        inner.export.assert_called_once_with(batch)
        inner.force_flush.assert_called_once_with(10)

    def test_processor_never_sees_exception(self):
        """Test the full pipeline survives a raising exporter."""
        tracer = Tracer(SimpleSpanProcessor(ResilientSpanExporter(RaisingExporter())))
        session = tracer.start_session()
        with session.span("query"):
            pass
        assert not session.all_accepted


# =============================================================================
# Transport Tests
# =============================================================================


def _response(status: int = 200) -> MagicMock:
    response = MagicMock()
    response.status = status
    response.read.return_value = b"{}"
    response.__enter__.return_value = response
    return response


class TestHTTPTransport:
    """Tests for HTTPTransport."""

    def test_headers(self):
        """Test content type, auth and per-call headers are merged."""
        transport = HTTPTransport(
            "https://collector.test/v1/traces",
            headers={"X-API-Key": "secret", "X-Repository-Id": "repo-1"},
        )
        headers = transport.build_headers({"X-Request": "1"})

        assert headers == {
            "Content-Type": "application/json",
            "X-API-Key": "secret",
            "X-Repository-Id": "repo-1",
            "X-Request": "1",
        }

    def test_post(self):
        """Test a single POST with timeout and verified TLS."""
        transport = HTTPTransport(
            "https://collector.test/v1/traces",
            headers={"X-API-Key": "secret"},
            timeout_seconds=3.0,
        )

        with patch("urllib.request.urlopen", return_value=_response(200)) as urlopen:
            response = transport.post(b'{"resourceSpans":[]}')

        assert response.ok
        assert urlopen.call_count == 1
        request = urlopen.call_args.args[0]
        assert request.get_method() == "POST"
        assert request.full_url == "https://collector.test/v1/traces"
        assert request.get_header("X-api-key") == "secret"
        assert request.get_header("Content-type") == "application/json"
        assert urlopen.call_args.kwargs["timeout"] == 3.0
        assert urlopen.call_args.kwargs["context"].verify_mode.name == "CERT_REQUIRED"

    def test_gzip(self):
        """Test gzip compression of the body."""
        transport = HTTPTransport("https://collector.test", compression="gzip")

        with patch("urllib.request.urlopen", return_value=_response(200)) as urlopen:
            transport.post(b"payload")

        request = urlopen.call_args.args[0]
        assert gzip.decompress(request.data) == b"payload"
        assert request.get_header("Content-encoding") == "gzip"

    def test_http_error_status(self):
        """Test HTTP error responses are returned as status codes."""
        transport = HTTPTransport("https://collector.test")
        error = urllib.error.HTTPError(
            "https://collector.test", 500, "Internal Server Error", {}, io.BytesIO(b"oops")
        )

        with patch("urllib.request.urlopen", side_effect=error):
            response = transport.post(b"{}")

        assert response.status_code == 500
        assert response.error is None
        assert not response.ok

    @pytest.mark.parametrize(
        "reason, kind",
        [
            (socket.gaierror(-2, "Name or service not known"), TransportErrorKind.DNS),
            (ConnectionRefusedError(111, "Connection refused"), TransportErrorKind.CONNECTION),
            (TimeoutError("timed out"), TransportErrorKind.TIMEOUT),
        ],
    )
    def test_url_errors_classified(self, reason, kind):
        """Test network failures become typed transport errors."""
        transport = HTTPTransport("https://collector.test")

        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError(reason)):
            response = transport.post(b"{}")

        assert response.status_code is None
        assert response.error is not None
        assert response.error.kind is kind

    def test_read_timeout(self):
        """Test socket timeouts raised outside URLError."""
        transport = HTTPTransport("https://collector.test", timeout_seconds=0.5)

        with patch("urllib.request.urlopen", side_effect=TimeoutError("read timed out")):
            response = transport.post(b"{}")

        assert response.error.kind is TransportErrorKind.TIMEOUT

    def test_malformed_endpoint(self):
        """Test an endpoint without a scheme is reported, not raised."""
        transport = HTTPTransport("collector.example.com/v1/traces")

        with patch("urllib.request.urlopen") as urlopen:
            response = transport.post(b"{}")

        urlopen.assert_not_called()
        assert response.status_code is None
        assert response.error.kind is TransportErrorKind.OTHER
        assert "unknown url type" in response.error.message

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            HTTPTransport("https://collector.test", timeout_seconds=0)
        with pytest.raises(ValueError):
            HTTPTransport("https://collector.test", compression="brotli")  # type: ignore[arg-type]
