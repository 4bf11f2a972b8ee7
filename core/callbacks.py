import logging
from typing import Callable, Dict, List, Optional, Protocol

from network.protocol import File

logger = logging.getLogger(__name__)


class FileCallback(Protocol):
    def on_update(self, file: File) -> bool:
        """Handle a new canonical snapshot. Return False once no longer interested."""
        ...


class FunctionCallback:
    """Adapts a plain ``fn(file)`` plus a relevance predicate to FileCallback."""

    def __init__(self, fn: Callable[[File], None], still_relevant: Callable[[File], bool]):
        self.fn = fn
        self.still_relevant = still_relevant

    def on_update(self, file: File) -> bool:
        self.fn(file)
        return self.still_relevant(file)

    def __repr__(self):
        return f"FunctionCallback({getattr(self.fn, '__qualname__', self.fn)!r})"


class CallbackMultiplexer:
    """Per-file-id ordered lists of pending callbacks, fanned out on update."""

    def __init__(self, registry):
        self.registry = registry
        self._lock = registry.lock
        self._callbacks: Dict[int, List[FileCallback]] = {}

    def register(self, file_id: int, callback: FileCallback) -> None:
        with self._lock:
            self._callbacks.setdefault(file_id, []).append(callback)

    def pending(self, file_id: Optional[int] = None) -> int:
        with self._lock:
            if file_id is not None:
                return len(self._callbacks.get(file_id, []))
            return sum(len(callbacks) for callbacks in self._callbacks.values())

    def watched_ids(self) -> List[int]:
        with self._lock:
            return list(self._callbacks)

    def discard(self, file_id: int) -> int:
        """Drop every callback waiting on *file_id*; returns how many were dropped."""
        with self._lock:
            return len(self._callbacks.pop(file_id, []))

    def dispatch(self, file: File) -> File:
        """Install *file* in the registry, then notify its callbacks in order.

        Callbacks registered while this runs are kept for the next update.
        """
        with self._lock:
            canonical = self.registry.ensure(file)
            current = self._callbacks.pop(canonical.id, [])
            retained: List[FileCallback] = []
            for callback in current:
                try:
                    if callback.on_update(canonical):
                        retained.append(callback)
                except Exception as e:
                    # why: one failing observer must not starve the rest of the list
                    logger.error(f"Error in file callback {callback!r} for file {canonical.id}: {e}", exc_info=True)
            added = self._callbacks.pop(canonical.id, [])
            if retained or added:
                self._callbacks[canonical.id] = retained + added
            dropped = len(current) - len(retained)
        if dropped:
            logger.debug(f"File {canonical.id}: dropped {dropped} finished callback(s)")
        return canonical
