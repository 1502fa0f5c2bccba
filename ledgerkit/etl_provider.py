"""Sources of sorted entries for the ETL merge: temporary files and in-memory buffers."""

from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import BinaryIO

import cbor2

from .etl_buffers import BUF_IO_SIZE, Buffer

__all__ = [
    "TEMP_FILE_PREFIX",
    "DataProvider",
    "FileDataProvider",
    "MemoryDataProvider",
    "write_to_disk",
    "read_element_from_disk",
    "flush_to_disk",
    "keep_in_ram",
]

log = logging.getLogger(__name__)

TEMP_FILE_PREFIX = "tg-sync-sortable-buf"


class _Prefixed:
    """A readable stream with a few already-consumed bytes put back in front."""

    def __init__(self, head: bytes, stream: BinaryIO) -> None:
        self._head = head
        self._stream = stream

    def read(self, n: int | None = -1) -> bytes:
        if not self._head:
            return self._stream.read(n)
        if n is None or n < 0:
            head, self._head = self._head, b""
            return head + self._stream.read()
        if n <= len(self._head):
            head, self._head = self._head[:n], self._head[n:]
            return head
        head, self._head = self._head, b""
        return head + self._stream.read(n - len(head))


def write_to_disk(stream: BinaryIO, key: bytes, value: bytes) -> None:
    """Append one key/value pair to a binary stream as a CBOR array."""
    cbor2.dump([bytes(key), bytes(value)], stream)


def read_element_from_disk(stream: BinaryIO) -> tuple[bytes, bytes]:
    """Read one key/value pair; raises EOFError at a clean end of stream."""
    head = stream.read(1)
    if not head:
        raise EOFError("no more entries")
    try:
        item = cbor2.CBORDecoder(_Prefixed(head, stream)).decode()
    except cbor2.CBORDecodeError as err:
        raise ValueError(f"corrupt entry: {err}") from err
    if (
        not isinstance(item, list)
        or len(item) != 2
        or not all(isinstance(part, bytes) for part in item)
    ):
        raise ValueError(f"corrupt entry: expected a [key, value] pair, got {item!r}")
    return item[0], item[1]


class DataProvider(ABC):
    """A sorted source of key/value pairs."""

    @abstractmethod
    def next_entry(self) -> tuple[bytes, bytes] | None:
        """Return the next pair, or None once the source is exhausted."""

    @abstractmethod
    def dispose(self) -> int:
        """Release resources; returns the bytes freed on disk. Safe to repeat."""

    def __iter__(self) -> Iterator[tuple[bytes, bytes]]:
        entry = self.next_entry()
        while entry is not None:
            yield entry
            entry = self.next_entry()


class FileDataProvider(DataProvider):
    """Reads pairs back from a temporary file written by flush_to_disk."""

    def __init__(self, file: BinaryIO) -> None:
        self._file = file
        self.path: str = file.name
        self._started = False

    def next_entry(self) -> tuple[bytes, bytes] | None:
        if not self._started:
            self._file.seek(0)
            self._started = True
        try:
            return read_element_from_disk(self._file)
        except EOFError:
            return None

    def dispose(self) -> int:
        try:
            size = os.stat(self.path).st_size
        except OSError:
            size = 0
        try:
            self._file.close()
        except OSError:
            pass
        try:
            os.remove(self.path)
        except OSError:
            pass
        return size

    def __repr__(self) -> str:
        return f"{type(self).__name__}(file: {self.path})"


class MemoryDataProvider(DataProvider):
    """Serves pairs straight from a sorted buffer kept in memory."""

    def __init__(self, buffer: Buffer) -> None:
        self.buffer = buffer
        self._index = 0

    def next_entry(self) -> tuple[bytes, bytes] | None:
        if self._index >= len(self.buffer):
            return None
        entry = self.buffer.get(self._index)
        self._index += 1
        return entry.key, entry.value

    def dispose(self) -> int:
        return 0

    def __repr__(self) -> str:
        return f"{type(self).__name__}(buffer.Len: {len(self.buffer)})"


def flush_to_disk(current_key: bytes | None, buffer: Buffer, tmpdir: str) -> FileDataProvider | None:
    """Write the buffer's entries to a new temporary file and empty the buffer.

    Returns None when the buffer is empty. An empty tmpdir means the system
    temporary directory.
    """
    if len(buffer) == 0:
        return None
    if tmpdir:
        os.makedirs(tmpdir, exist_ok=True)
    fd, path = tempfile.mkstemp(prefix=TEMP_FILE_PREFIX, dir=tmpdir or None)
    file = os.fdopen(fd, "w+b", buffering=BUF_IO_SIZE)
    try:
        for entry in buffer.entries():
            write_to_disk(file, entry.key, entry.value)
        file.flush()
        os.fsync(file.fileno())
    except OSError as err:
        file.close()
        os.remove(path)
        raise OSError(f"error writing entries to disk: {err}") from err
    finally:
        buffer.reset()
    log.info("Flushed buffer file %s", path)
    return FileDataProvider(file)


def keep_in_ram(buffer: Buffer) -> MemoryDataProvider:
    """Wrap a sorted buffer so it can take part in the merge without touching disk."""
    return MemoryDataProvider(buffer)