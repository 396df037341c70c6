"""
Sensitivity (taint) classification of evaluation results.

Two strategies:

classify(context, accessed_names)
    Used when the backend reports which context names the evaluation read.
    The result is sensitive iff at least one *read* entry is sensitive. An
    accessed nested map name (e.g. ``sys_prop``) counts as reading every entry
    of that map.

classify_without_access_tracking(context)
    Used for the embedded backend, which cannot report reads. The result is
    sensitive iff *any* entry in the context is sensitive.

The second strategy over-marks outputs (unrelated sensitive inputs taint the
result) but never under-marks them.
"""

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from ..values import Value


def _entries(context: Mapping[str, Any]) -> Iterator[tuple[str, Any]]:
    """Yield context entries, flattening nested mappings one level."""
    for name, entry in context.items():
        if isinstance(entry, Mapping):
            yield from entry.items()
        else:
            yield name, entry


def _is_sensitive(value: Any) -> bool:
    return isinstance(value, Value) and value.sensitive


def classify(context: Mapping[str, Any], accessed_names: Iterable[str] | None) -> bool:
    """
    Decide whether an evaluation result must be marked sensitive.

    Args:
        context: Tagged evaluation context (name -> Value or sub-map of Values)
        accessed_names: Names the backend reports as read

    Returns:
        True if any accessed entry, or any entry of an accessed map, holds a
        sensitive Value
    """
    accessed = set(accessed_names or ())
    if not accessed:
        return False
    for name, entry in context.items():
        if isinstance(entry, Mapping):
            if name in accessed and any(_is_sensitive(value) for value in entry.values()):
                return True
            if any(key in accessed and _is_sensitive(value) for key, value in entry.items()):
                return True
        elif name in accessed and _is_sensitive(entry):
            return True
    return False


def classify_without_access_tracking(context: Mapping[str, Any]) -> bool:
    """Conservative fallback: any sensitive Value anywhere in the context."""
    return any(_is_sensitive(value) for _, value in _entries(context))


__all__ = ["classify", "classify_without_access_tracking"]
