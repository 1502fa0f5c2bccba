"""In-memory sortable buffers used by the ETL collector, and the merge heap."""

from __future__ import annotations

import enum
import heapq
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from functools import cmp_to_key
from operator import attrgetter

__all__ = [
    "BUF_IO_SIZE",
    "BUFFER_OPTIMAL_SIZE",
    "Comparator",
    "BufferType",
    "BufferEntry",
    "Buffer",
    "SortableBuffer",
    "AppendBuffer",
    "OldestEntryBuffer",
    "HeapElem",
    "LoadHeap",
    "get_buffer_by_type",
    "get_type_by_buffer",
]

# 64 pages; larger I/O buffers show no further speedup on SSD.
BUF_IO_SIZE = 64 * 4096
BUFFER_OPTIMAL_SIZE = 256 * 1024 * 1024

Comparator = Callable[[bytes, bytes, bytes, bytes], int]
"""Compares (k1, k2, v1, v2); negative when the first entry sorts first."""


class BufferType(enum.IntEnum):
    """Kinds of collector buffer."""

    SLICE = 0
    """Keeps every entry, duplicates included."""
    APPEND = 1
    """Concatenates the values of repeated keys."""
    OLDEST_APPEARED = 2
    """Keeps only the first value seen for each key."""


@dataclass(frozen=True)
class BufferEntry:
    key: bytes
    value: bytes


class Buffer(ABC):
    """Accumulates key/value pairs and sorts them before they are flushed."""

    def __init__(self, optimal_size: int = BUFFER_OPTIMAL_SIZE, comparator: Comparator | None = None) -> None:
        self.optimal_size = int(optimal_size)
        self.comparator = comparator
        self.size = 0

    @abstractmethod
    def put(self, k: bytes, v: bytes) -> None:
        """Add one key/value pair."""

    @abstractmethod
    def get(self, i: int) -> BufferEntry:
        """Return the entry at position i."""

    @abstractmethod
    def __len__(self) -> int: ...

    @abstractmethod
    def reset(self) -> None:
        """Drop all entries."""

    @abstractmethod
    def sort(self) -> None:
        """Order the entries by key (or by the comparator), stably."""

    @abstractmethod
    def entries(self) -> list[BufferEntry]:
        """Return the entries in their current order."""

    def check_flush_size(self) -> bool:
        """Whether the buffer has grown to its optimal size."""
        return self.size >= self.optimal_size

    def _ordered(self, entries: list[BufferEntry]) -> list[BufferEntry]:
        cmp = self.comparator
        if cmp is None:
            return sorted(entries, key=attrgetter("key"))
        return sorted(entries, key=cmp_to_key(lambda a, b: cmp(a.key, b.key, a.value, b.value)))


class SortableBuffer(Buffer):
    """Keeps every entry in insertion order until sorted."""

    def __init__(self, optimal_size: int = BUFFER_OPTIMAL_SIZE, comparator: Comparator | None = None) -> None:
        super().__init__(optimal_size, comparator)
        self._entries: list[BufferEntry] = []

    def put(self, k: bytes, v: bytes) -> None:
        self.size += len(k) + len(v)
        self._entries.append(BufferEntry(bytes(k), bytes(v)))

    def get(self, i: int) -> BufferEntry:
        return self._entries[i]

    def __len__(self) -> int:
        return len(self._entries)

    def reset(self) -> None:
        self._entries = []
        self.size = 0

    def sort(self) -> None:
        self._entries = self._ordered(self._entries)

    def entries(self) -> list[BufferEntry]:
        return list(self._entries)


class _KeyedBuffer(Buffer):
    """Holds one value per key; entries become visible once sorted."""

    def __init__(self, optimal_size: int = BUFFER_OPTIMAL_SIZE, comparator: Comparator | None = None) -> None:
        super().__init__(optimal_size, comparator)
        self._values: dict[bytes, bytes | bytearray] = {}
        self._sorted: list[BufferEntry] = []

    def get(self, i: int) -> BufferEntry:
        return self._sorted[i]

    def __len__(self) -> int:
        return len(self._values)

    def reset(self) -> None:
        self._values = {}
        self._sorted = []
        self.size = 0

    def sort(self) -> None:
        self._sorted = self._ordered([BufferEntry(k, bytes(v)) for k, v in self._values.items()])

    def entries(self) -> list[BufferEntry]:
        return list(self._sorted)


class AppendBuffer(_KeyedBuffer):
    """Appends each new value to whatever is already stored under its key."""

    def put(self, k: bytes, v: bytes) -> None:
        key = bytes(k)
        stored = self._values.get(key)
        if stored is None:
            self.size += len(key)
            stored = self._values[key] = bytearray()
        self.size += len(v)
        stored.extend(v)


class OldestEntryBuffer(_KeyedBuffer):
    """Keeps the first value put under each key and ignores later ones."""

    def put(self, k: bytes, v: bytes) -> None:
        key = bytes(k)
        if key in self._values:
            return
        self.size += len(key) + len(v)
        self._values[key] = bytes(v)


_BUFFER_CLASSES: dict[BufferType, type[Buffer]] = {
    BufferType.SLICE: SortableBuffer,
    BufferType.APPEND: AppendBuffer,
    BufferType.OLDEST_APPEARED: OldestEntryBuffer,
}


def get_buffer_by_type(buffer_type: int, size: int) -> Buffer:
    """Create an empty buffer of the given type and optimal size."""
    try:
        cls = _BUFFER_CLASSES[BufferType(buffer_type)]
    except ValueError:
        raise ValueError(f"unknown buffer type {buffer_type}") from None
    return cls(size)


def get_type_by_buffer(buffer: Buffer) -> BufferType:
    """Return the BufferType of an existing buffer."""
    for buffer_type, cls in _BUFFER_CLASSES.items():
        if type(buffer) is cls:
            return buffer_type
    raise TypeError(f"unknown buffer type: {type(buffer).__name__}")


@dataclass
class HeapElem:
    """One pending entry of a sorted source during a k-way merge."""

    key: bytes
    time_idx: int
    value: bytes


class _HeapItem:
    __slots__ = ("elem", "cmp")

    def __init__(self, elem: HeapElem, cmp: Comparator | None) -> None:
        self.elem = elem
        self.cmp = cmp

    def __lt__(self, other: _HeapItem) -> bool:
        a, b = self.elem, other.elem
        if self.cmp is not None:
            c = self.cmp(a.key, b.key, a.value, b.value)
        else:
            c = (a.key > b.key) - (a.key < b.key)
        if c != 0:
            return c < 0
        return a.time_idx < b.time_idx


class LoadHeap:
    """Min-heap of HeapElem ordered by key, then by source index."""

    def __init__(self, comparator: Comparator | None = None) -> None:
        self.comparator = comparator
        self._items: list[_HeapItem] = []

    def push(self, elem: HeapElem) -> None:
        heapq.heappush(self._items, _HeapItem(elem, self.comparator))

    def pop(self) -> HeapElem:
        if not self._items:
            raise IndexError("pop from an empty heap")
        return heapq.heappop(self._items).elem

    def __len__(self) -> int:
        return len(self._items)