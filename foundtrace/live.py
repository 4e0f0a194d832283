"""Tracking of live objects and of the trace roots that are still active."""

from __future__ import annotations

import threading
import weakref
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from .event_output import spans_to_trace_events

T = TypeVar("T")


class _SlotTable:
    """Slot storage shared by a set and the handles it gave out."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._slots: dict[int, weakref.ref] = {}
        self._free: list[int] = []
        self._next_slot = 0

    def insert(self, handle: Any) -> int:
        with self._lock:
            if self._free:
                slot = self._free.pop()
            else:
                slot = self._next_slot
                self._next_slot += 1
            self._slots[slot] = weakref.ref(handle)
            return slot

    def remove(self, slot: int) -> None:
        with self._lock:
            if self._slots.pop(slot, None) is not None:
                self._free.append(slot)

    def live(self) -> list[Any]:
        with self._lock:
            refs = sorted(self._slots.items())
        return [handle for _, ref in refs if (handle := ref()) is not None]


class LiveReferenceHandle(Generic[T]):
    """Wraps an object whose lifetime is tracked by a LiveReferenceSet.

    The wrapped object is available as ``value``. Once the handle is no longer
    referenced anywhere, it disappears from the set it came from.
    """

    __slots__ = ("value", "_slot", "__weakref__")

    def __init__(self, value: T, table: _SlotTable) -> None:
        self.value = value
        self._slot = table.insert(self)
        weakref.finalize(self, table.remove, self._slot)

    def __repr__(self) -> str:
        return repr(self.value)


class LiveReferenceSet(Generic[T]):
    """A set of objects that stay listed only while someone holds them."""

    def __init__(self) -> None:
        self._table = _SlotTable()

    def track(self, value: T) -> LiveReferenceHandle[T]:
        """Wrap ``value`` in a handle and track the handle's lifetime."""
        return LiveReferenceHandle(value, self._table)

    def get_live_references(self) -> list[LiveReferenceHandle[T]]:
        """Return handles to every tracked object that is still alive."""
        return self._table.live()


class ActiveRoots:
    """Spans that are still alive, dumpable as a Chrome JSON trace log."""

    def __init__(self, start: datetime | None = None) -> None:
        self._roots: LiveReferenceSet[Any] = LiveReferenceSet()
        self.start = start if start is not None else datetime.now(timezone.utc)

    def track(self, value: Any) -> LiveReferenceHandle[Any]:
        """Track a span for as long as the returned handle is alive."""
        return self._roots.track(value)

    def get_active_traces(self) -> str:
        """Return the live spans in Chrome JSON trace format."""
        spans = [handle.value for handle in self._roots.get_live_references()]
        return spans_to_trace_events(self.start, spans)