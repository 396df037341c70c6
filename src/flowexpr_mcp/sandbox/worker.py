"""Out-of-process evaluation worker.

Protocol (one request per process, JSON over stdio):

    stdin:  {"functions": str, "expression": str, "context": {name: value}}
    stdout: {"result": <json value>, "accessed": [name, ...]}
        or  {"error": {"type": str, "message": str}}

Accessed names are collected three ways: reads of context entries through the
globals mapping, reads of the system properties map (per key, or the map's own
name when the whole map is exposed), and explicit ``accessed(key)`` calls made
by helper functions.

Run with ``python -m flowexpr_mcp.sandbox.worker``.
"""

import json
import sys
from typing import Any

from .restricted import SYSTEM_PROPERTIES_MAP, describe_error, round_trip, run


class TrackedPropertyMap(dict):
    """System properties map that records which entries get read.

    Single-key reads record the key. Anything exposing the whole map
    (iteration, views, repr, copies, comparisons) records the map's own name.
    """

    def __init__(self, name: str, entries: dict[str, Any], accessed: set[str]):
        super().__init__(entries)
        self._name = name
        self._accessed = accessed

    def _read_all(self) -> None:
        self._accessed.add(self._name)

    def __getitem__(self, key: str) -> Any:
        self._accessed.add(key)
        return super().__getitem__(key)

    def get(self, key: str, default: Any = None) -> Any:
        self._accessed.add(key)
        return super().get(key, default)

    def pop(self, key: str, *default: Any) -> Any:
        self._accessed.add(key)
        return super().pop(key, *default)

    def setdefault(self, key: str, default: Any = None) -> Any:
        self._accessed.add(key)
        return super().setdefault(key, default)

    def __iter__(self):
        self._read_all()
        return super().__iter__()

    def keys(self):
        self._read_all()
        return super().keys()

    def values(self):
        self._read_all()
        return super().values()

    def items(self):
        self._read_all()
        return super().items()

    def popitem(self):
        self._read_all()
        return super().popitem()

    def copy(self):
        self._read_all()
        return dict(super().items())

    def __repr__(self) -> str:
        self._read_all()
        return super().__repr__()

    def __eq__(self, other: object) -> bool:
        self._read_all()
        return super().__eq__(other)

    def __ne__(self, other: object) -> bool:
        self._read_all()
        return super().__ne__(other)

    def __or__(self, other: Any) -> Any:
        self._read_all()
        return super().__or__(other)

    def __ror__(self, other: Any) -> Any:
        self._read_all()
        return super().__ror__(other)

    __hash__ = None


class AccessTrackingNamespace(dict):
    """Globals mapping that records reads of the caller's context entries.

    The system properties entry is wrapped in a TrackedPropertyMap instead,
    so reading the name alone (as ``get_sp`` does) exposes nothing.
    """

    def __init__(self, context: dict[str, Any], accessed: set[str]):
        entries = dict(context)
        properties = entries.get(SYSTEM_PROPERTIES_MAP)
        if isinstance(properties, dict):
            entries[SYSTEM_PROPERTIES_MAP] = TrackedPropertyMap(
                SYSTEM_PROPERTIES_MAP, properties, accessed
            )
        super().__init__(entries)
        self._context_names = frozenset(context) - {SYSTEM_PROPERTIES_MAP}
        self._accessed = accessed

    def __getitem__(self, key: str) -> Any:
        if key in self._context_names:
            self._accessed.add(key)
        return super().__getitem__(key)


def evaluate_request(request: dict[str, Any]) -> dict[str, Any]:
    """Evaluate one decoded request and build the response payload."""
    accessed: set[str] = set()
    try:
        result = run(
            request.get("functions") or "",
            request["expression"],
            request.get("context") or {},
            namespace_factory=lambda context: AccessTrackingNamespace(context, accessed),
            access_hook=accessed.add,
        )
        # Serializing may read the properties map, so it happens before reporting
        result = round_trip(result, "Result")
    except Exception as e:
        return {"error": {"type": type(e).__name__, "message": describe_error(e)}}
    return {"result": result, "accessed": sorted(accessed)}


def main() -> None:
    try:
        request = json.loads(sys.stdin.read())
    except json.JSONDecodeError as e:
        response = {"error": {"type": "ProtocolError", "message": f"Invalid request: {e}"}}
    else:
        response = evaluate_request(request)
    sys.stdout.write(json.dumps(response))
    sys.stdout.flush()


if __name__ == "__main__":
    main()
