"""Resource describing the process that emits telemetry.

One Resource exists per process lifetime and is attached to every
exported batch.

Resource Semantic Conventions:
    - service.name: Name of the service
    - service.version: Version of the service
    - telemetry.sdk.name: SDK name
    - telemetry.sdk.language: SDK language
    - telemetry.sdk.version: SDK version
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from llmtrace.tracing.attributes import Attributes

SERVICE_NAME = "service.name"
SERVICE_VERSION = "service.version"
TELEMETRY_SDK_NAME = "telemetry.sdk.name"
TELEMETRY_SDK_LANGUAGE = "telemetry.sdk.language"
TELEMETRY_SDK_VERSION = "telemetry.sdk.version"


def _sdk_attributes() -> dict[str, Any]:
    from llmtrace import __version__

    return {
        TELEMETRY_SDK_NAME: "llmtrace",
        TELEMETRY_SDK_LANGUAGE: "python",
        TELEMETRY_SDK_VERSION: __version__,
    }


@dataclass(frozen=True)
class Resource:
    """Immutable representation of the entity producing telemetry.

    Example:
        >>> resource = Resource.create({
        ...     "service.name": "query-api",
        ...     "service.version": "1.0.0",
        ... })
    """

    attributes: Attributes = field(default_factory=lambda: Attributes().freeze())

    def __post_init__(self) -> None:
        if not self.attributes.frozen:
            object.__setattr__(self, "attributes", self.attributes.freeze())

    @classmethod
    def create(
        cls,
        attributes: Mapping[str, Any] | None = None,
        *,
        service_name: str | None = None,
        service_version: str | None = None,
    ) -> "Resource":
        """Create a resource with SDK and service attributes filled in.

        ``service.name`` and ``service.version`` default to
        ``"unknown_service"`` and ``"unknown"``.

        Args:
            attributes: Extra resource attributes.
            service_name: Shortcut for ``service.name``.
            service_version: Shortcut for ``service.version``.

        Returns:
            New Resource.
        """
        merged: dict[str, Any] = dict(_sdk_attributes())
        merged[SERVICE_NAME] = "unknown_service"
        merged[SERVICE_VERSION] = "unknown"
        if attributes:
            merged.update(attributes)
        if service_name:
            merged[SERVICE_NAME] = service_name
        if service_version:
            merged[SERVICE_VERSION] = service_version
        return cls(Attributes(merged))

    @classmethod
    def empty(cls) -> "Resource":
        """Create an empty resource."""
        return cls()

    def merge(self, other: "Resource") -> "Resource":
        """Merge with another resource; the other side wins on conflicts."""
        merged = Attributes(self.attributes)
        for key, value in other.attributes.items():
            merged.set(key, value)
        return Resource(merged)

    def get(self, key: str, default: Any = None) -> Any:
        """Get an attribute as a native value."""
        value = self.attributes.get(key)
        return value.to_python() if value is not None else default

    @property
    def service_name(self) -> str | None:
        return self.get(SERVICE_NAME)

    @property
    def service_version(self) -> str | None:
        return self.get(SERVICE_VERSION)

    def to_otlp(self) -> dict[str, Any]:
        return {"attributes": self.attributes.to_otlp()}
