"""In-memory cache of compiled flow dependencies, keyed by source path."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .compiler import FlowDependencies

logger = logging.getLogger(__name__)

# (modification time in ns, size in bytes) of the source when it was compiled
SourceStamp = tuple[int, int]


class PrecompileCache:
    """
    Path -> FlowDependencies cache used by DependencyCompiler while enabled.

    Every entry carries the stamp of the file it was compiled from; a lookup
    with a different stamp misses, so an edited flow is compiled again.

    Lifecycle (driven by the compiler):
        enable  -> clean_up, caching on
        compile -> get(path, stamp), then put(path, stamp, result) on a miss
        disable -> caching off, clean_up
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[SourceStamp, FlowDependencies]] = {}
        self._lock = threading.Lock()

    def get(self, path: str, stamp: SourceStamp) -> FlowDependencies | None:
        with self._lock:
            entry = self._entries.get(path)
        if entry is None:
            return None
        cached_stamp, result = entry
        if cached_stamp != stamp:
            logger.debug(f"Precompiled entry for {path} is stale")
            return None
        return result

    def put(self, path: str, stamp: SourceStamp, result: FlowDependencies) -> None:
        with self._lock:
            self._entries[path] = (stamp, result)

    def clean_up(self) -> None:
        with self._lock:
            if self._entries:
                logger.debug(f"Clearing {len(self._entries)} precompiled entries")
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["PrecompileCache", "SourceStamp"]
