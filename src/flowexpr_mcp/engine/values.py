"""Tagged values and system properties.

Value carries a raw payload plus a ``sensitive`` taint flag. The taint only
ever propagates forward: nothing in this package turns a sensitive Value
into a non-sensitive one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SENSITIVE_VALUE_MASK = "********"


@dataclass(frozen=True, eq=True)
class Value:
    """
    Immutable tagged value produced and consumed by expression evaluation.

    Attributes:
        raw: The underlying payload (any Python object)
        sensitive: True when the payload must not be exposed in logs or results

    Example:
        password = Value("hunter2", sensitive=True)
        repr(password)  # "Value(raw='********', sensitive=True)"
    """

    raw: Any = None
    sensitive: bool = False

    @classmethod
    def create(cls, raw: Any, sensitive: bool = False) -> Value:
        """Wrap ``raw`` in a Value, keeping the taint of an already-wrapped input."""
        if isinstance(raw, Value):
            return cls(raw.raw, raw.sensitive or sensitive)
        return cls(raw, sensitive)

    def derive(self, raw: Any, sensitive: bool = False) -> Value:
        """Create a Value computed from this one; taint is inherited."""
        return Value(raw, self.sensitive or sensitive)

    def __repr__(self) -> str:
        shown = SENSITIVE_VALUE_MASK if self.sensitive else self.raw
        return f"Value(raw={shown!r}, sensitive={self.sensitive})"

    def __str__(self) -> str:
        return SENSITIVE_VALUE_MASK if self.sensitive else str(self.raw)


class SystemProperty(BaseModel):
    """A named configuration value referenceable via ``get_sp('a.b.c')``.

    Frozen so that properties can live in sets and be shared read-only
    across concurrent evaluations.
    """

    model_config = ConfigDict(frozen=True)

    fully_qualified_name: str = Field(min_length=1, description="Name like 'domain.subdomain.key'")
    value: str | None = Field(default=None, description="Property value (None when unset)")
    sensitive: bool = Field(default=False, description="Whether the value is confidential")

    @property
    def namespace(self) -> str:
        """Everything before the last dot ('' for an unqualified name)."""
        namespace, _, _ = self.fully_qualified_name.rpartition(".")
        return namespace

    @property
    def key(self) -> str:
        """Last segment of the fully qualified name."""
        return self.fully_qualified_name.rpartition(".")[2]

    def to_value(self) -> Value:
        return Value(self.value, self.sensitive)

    def __repr__(self) -> str:
        shown = SENSITIVE_VALUE_MASK if self.sensitive else self.value
        return (
            f"SystemProperty(fully_qualified_name={self.fully_qualified_name!r}, "
            f"value={shown!r}, sensitive={self.sensitive})"
        )

    def __str__(self) -> str:
        return repr(self)


__all__ = ["SENSITIVE_VALUE_MASK", "SystemProperty", "Value"]
