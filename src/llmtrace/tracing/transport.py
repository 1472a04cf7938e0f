"""HTTP transport for OTLP/JSON payloads.

The transport performs exactly one POST per call and reports the outcome
as a value: either an HTTP status code or a :class:`TransportError`.
It never retries and never raises for network failures.
"""

from __future__ import annotations

import gzip
import logging
import socket
import ssl
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Mapping

logger = logging.getLogger(__name__)

Compression = Literal["none", "gzip"]


class TransportErrorKind(Enum):
    """Category of a transport-level failure."""

    DNS = "dns"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    TLS = "tls"
    OTHER = "other"


@dataclass(frozen=True)
class TransportError:
    """A failure that prevented an HTTP response from being received."""

    kind: TransportErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class TransportResponse:
    """Outcome of a POST: a status code, or an error."""

    status_code: int | None = None
    error: TransportError | None = None
    body: bytes = field(default=b"", repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None and self.status_code == 200


class Transport(ABC):
    """Abstract base class for transports."""

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Target URL."""
        pass

    @abstractmethod
    def post(self, body: bytes, headers: Mapping[str, str] | None = None) -> TransportResponse:
        """POST a JSON body.

        Args:
            body: Serialized JSON payload.
            headers: Extra headers merged over the configured ones.

        Returns:
            TransportResponse with a status code or an error.
        """
        pass

    def close(self) -> None:
        """Release resources held by the transport."""


class HTTPTransport(Transport):
    """urllib-based HTTPS transport with bounded timeouts.

    Example:
        >>> transport = HTTPTransport(
        ...     "https://collector.example.com/v1/traces",
        ...     headers={"X-API-Key": "secret"},
        ...     timeout_seconds=5.0,
        ... )
        >>> response = transport.post(b'{"resourceSpans": []}')
    """

    def __init__(
        self,
        endpoint: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout_seconds: float = 10.0,
        compression: Compression = "none",
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        """Initialize transport.

        Args:
            endpoint: Collector URL.
            headers: Headers sent with every request (authentication).
            timeout_seconds: Connect/read timeout per request.
            compression: Request body compression.
            ssl_context: TLS context; the default verifies certificates.
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if compression not in ("none", "gzip"):
            raise ValueError(f"Unsupported compression: {compression}")

        self._endpoint = endpoint
        self._headers = dict(headers or {})
        self._timeout = timeout_seconds
        self._compression = compression
        self._ssl_context = ssl_context or ssl.create_default_context()

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def build_headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        """Merge content headers, configured headers and per-call headers."""
        headers = {"Content-Type": "application/json", **self._headers}
        if extra:
            headers.update(extra)
        if self._compression == "gzip":
            headers["Content-Encoding"] = "gzip"
        return headers

    def post(self, body: bytes, headers: Mapping[str, str] | None = None) -> TransportResponse:
        """POST the body once."""
        if self._compression == "gzip":
            body = gzip.compress(body)

        try:
            request = urllib.request.Request(
                self._endpoint,
                data=body,
                headers=self.build_headers(headers),
                method="POST",
            )
        except ValueError as e:
            # Malformed endpoint, e.g. a missing scheme
            return TransportResponse(error=TransportError(TransportErrorKind.OTHER, str(e)))

        try:
            with urllib.request.urlopen(
                request, timeout=self._timeout, context=self._ssl_context
            ) as response:
                return TransportResponse(status_code=response.status, body=response.read())
        except urllib.error.HTTPError as e:
            # Non-2xx responses still carry a status code.
            try:
                payload = e.read()
            except OSError:
                payload = b""
            return TransportResponse(status_code=e.code, body=payload)
        except urllib.error.URLError as e:
            return TransportResponse(error=_classify(e.reason))
        except (TimeoutError, socket.timeout) as e:
            return TransportResponse(error=TransportError(TransportErrorKind.TIMEOUT, str(e) or "timed out"))
        except OSError as e:
            return TransportResponse(error=_classify(e))


def _classify(reason: object) -> TransportError:
    message = str(reason)
    if isinstance(reason, socket.gaierror):
        return TransportError(TransportErrorKind.DNS, message)
    if isinstance(reason, ssl.SSLError):
        return TransportError(TransportErrorKind.TLS, message)
    if isinstance(reason, (TimeoutError, socket.timeout)):
        return TransportError(TransportErrorKind.TIMEOUT, message or "timed out")
    if isinstance(reason, (ConnectionError, OSError)):
        return TransportError(TransportErrorKind.CONNECTION, message)
    return TransportError(TransportErrorKind.OTHER, message)
