"""Typed attribute values for spans and resources.

Attributes are the key-value metadata attached to spans and resources.
Each value is one of the OTLP primitive kinds (string, 64-bit integer,
double, boolean) or an array of those values.

Example:
    >>> attrs = Attributes()
    >>> attrs.set("gen_ai.usage.input_tokens", 3000)
    >>> attrs["gen_ai.usage.input_tokens"].to_otlp()
    {'intValue': '3000'}
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Mapping

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class ValueKind(Enum):
    """Variant tag of an attribute value."""

    STRING = "stringValue"
    INT = "intValue"
    DOUBLE = "doubleValue"
    BOOL = "boolValue"
    ARRAY = "arrayValue"


@dataclass(frozen=True)
class AttributeValue:
    """Immutable tagged attribute value.

    Use :meth:`of` to build a value from a native Python object rather
    than calling the constructor directly.
    """

    kind: ValueKind
    value: Any

    @classmethod
    def of(cls, value: Any) -> "AttributeValue":
        """Convert a native Python value.

        Args:
            value: str, int, float, bool, or a list/tuple of those.

        Returns:
            AttributeValue wrapping the value.

        Raises:
            TypeError: If the value type is not supported.
            ValueError: If an integer does not fit in 64 bits.
        """
        if isinstance(value, AttributeValue):
            return value
        # bool is a subclass of int
        if isinstance(value, bool):
            return cls(ValueKind.BOOL, value)
        if isinstance(value, int):
            if not INT64_MIN <= value <= INT64_MAX:
                raise ValueError(f"Integer attribute out of int64 range: {value}")
            return cls(ValueKind.INT, value)
        if isinstance(value, float):
            return cls(ValueKind.DOUBLE, value)
        if isinstance(value, str):
            return cls(ValueKind.STRING, value)
        if isinstance(value, (list, tuple)):
            return cls(ValueKind.ARRAY, tuple(cls.of(v) for v in value))
        raise TypeError(
            f"Unsupported attribute value type: {type(value).__name__}"
        )

    def to_python(self) -> Any:
        """Unwrap to a native Python value (arrays become lists)."""
        if self.kind is ValueKind.ARRAY:
            return [v.to_python() for v in self.value]
        return self.value

    def to_otlp(self) -> dict[str, Any]:
        """Encode as an OTLP/JSON ``AnyValue`` object."""
        if self.kind is ValueKind.INT:
            # 64-bit integers travel as decimal strings in OTLP/JSON
            return {"intValue": str(self.value)}
        if self.kind is ValueKind.DOUBLE:
            return {"doubleValue": _encode_double(self.value)}
        if self.kind is ValueKind.ARRAY:
            return {"arrayValue": {"values": [v.to_otlp() for v in self.value]}}
        return {self.kind.value: self.value}


def _encode_double(value: float) -> float | str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


class Attributes(Mapping[str, AttributeValue]):
    """Ordered attribute mapping keyed by dotted attribute names.

    Overwriting an existing key keeps its original position, so the
    serialized order always matches first insertion.
    """

    __slots__ = ("_data", "_frozen")

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, AttributeValue] = {}
        self._frozen = False
        if initial:
            for key, value in initial.items():
                self.set(key, value)

    def set(self, key: str, value: Any) -> None:
        """Set an attribute, converting native values.

        Raises:
            TypeError: If the mapping is frozen, the key is not a non-empty
                string, or the value type is unsupported.
        """
        if self._frozen:
            raise TypeError("Attributes are frozen")
        if not isinstance(key, str) or not key:
            raise TypeError("Attribute key must be a non-empty string")
        self._data[key] = AttributeValue.of(value)

    def freeze(self) -> "Attributes":
        """Return an immutable copy."""
        copy = Attributes()
        copy._data = dict(self._data)
        copy._frozen = True
        return copy

    @property
    def frozen(self) -> bool:
        return self._frozen

    def to_dict(self) -> dict[str, Any]:
        """Unwrap into a plain dict of native values."""
        return {k: v.to_python() for k, v in self._data.items()}

    def to_otlp(self) -> list[dict[str, Any]]:
        """Encode as an OTLP/JSON ``KeyValue`` list."""
        return [{"key": k, "value": v.to_otlp()} for k, v in self._data.items()]

    def __getitem__(self, key: str) -> AttributeValue:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Attributes({self.to_dict()!r})"
