"""Dependency analysis result."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .functions import ScriptFunction


@dataclass(frozen=True)
class Accumulator:
    """
    Immutable set-pair describing what an expression depends on.

    Attributes:
        system_property_dependencies: Fully qualified names passed to get_sp
        function_dependencies: Helper functions the expression calls
    """

    system_property_dependencies: frozenset[str] = field(default_factory=frozenset)
    function_dependencies: frozenset[ScriptFunction] = field(default_factory=frozenset)

    @classmethod
    def empty(cls) -> Accumulator:
        return cls()

    @classmethod
    def union(cls, accumulators: Iterable[Accumulator]) -> Accumulator:
        """Merge any number of accumulators by set union."""
        properties: set[str] = set()
        functions: set[ScriptFunction] = set()
        for accumulator in accumulators:
            properties |= accumulator.system_property_dependencies
            functions |= accumulator.function_dependencies
        return cls(frozenset(properties), frozenset(functions))

    def merge(self, other: Accumulator) -> Accumulator:
        return Accumulator(
            self.system_property_dependencies | other.system_property_dependencies,
            self.function_dependencies | other.function_dependencies,
        )

    __or__ = merge

    def is_empty(self) -> bool:
        return not self.system_property_dependencies and not self.function_dependencies
