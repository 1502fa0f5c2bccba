"""In-process sentry and state-diff clients, plus a remote sentry client wrapper."""

from __future__ import annotations

import enum
import logging
import queue
import threading
from collections.abc import Callable, Iterable, Iterator
from typing import Any

__all__ = [
    "ETH65",
    "ETH66",
    "STREAM_CAPACITY",
    "MessageId",
    "Protocol",
    "PROTO_IDS",
    "ProtocolError",
    "DirectStream",
    "SentryClientRemote",
    "SentryClientDirect",
    "StateDiffClientDirect",
    "filter_ids",
]

log = logging.getLogger(__name__)

ETH65 = 65
ETH66 = 66
STREAM_CAPACITY = 16384


class Protocol(enum.IntEnum):
    """Eth wire protocol versions a sentry can speak."""

    ETH65 = ETH65
    ETH66 = ETH66


class MessageId(enum.IntEnum):
    """Identifiers of eth wire messages, per protocol version."""

    GET_BLOCK_HEADERS_65 = 0
    BLOCK_HEADERS_65 = 1
    GET_BLOCK_BODIES_65 = 2
    BLOCK_BODIES_65 = 3
    GET_NODE_DATA_65 = 4
    NODE_DATA_65 = 5
    GET_RECEIPTS_65 = 6
    RECEIPTS_65 = 7
    NEW_BLOCK_HASHES_65 = 8
    NEW_BLOCK_65 = 9
    TRANSACTIONS_65 = 10
    NEW_POOLED_TRANSACTION_HASHES_65 = 11
    GET_POOLED_TRANSACTIONS_65 = 12
    POOLED_TRANSACTIONS_65 = 13
    GET_BLOCK_HEADERS_66 = 14
    BLOCK_HEADERS_66 = 15
    GET_BLOCK_BODIES_66 = 16
    BLOCK_BODIES_66 = 17
    GET_NODE_DATA_66 = 18
    NODE_DATA_66 = 19
    GET_RECEIPTS_66 = 20
    RECEIPTS_66 = 21
    NEW_BLOCK_HASHES_66 = 22
    NEW_BLOCK_66 = 23
    TRANSACTIONS_66 = 24
    NEW_POOLED_TRANSACTION_HASHES_66 = 25
    GET_POOLED_TRANSACTIONS_66 = 26
    POOLED_TRANSACTIONS_66 = 27


PROTO_IDS: dict[int, frozenset[MessageId]] = {
    ETH65: frozenset(m for m in MessageId if m.name.endswith("_65")),
    ETH66: frozenset(m for m in MessageId if m.name.endswith("_66")),
}


class ProtocolError(Exception):
    """Raised when a peer reports a protocol this client does not speak."""


def filter_ids(ids: Iterable[int], protocol: int) -> list[int]:
    """Keep only the message ids that belong to the given protocol, in order."""
    allowed = PROTO_IDS.get(protocol, frozenset())
    return [i for i in ids if i in allowed]


def _restrict_ids(request: Any, protocol: int) -> None:
    filtered = filter_ids(request.ids, protocol)
    try:
        request.ids = filtered
    except (AttributeError, TypeError):
        # Repeated message fields cannot be assigned, only edited in place.
        del request.ids[:]
        request.ids.extend(filtered)


_CLOSED = object()


class DirectStream:
    """A bounded in-process message stream between a server and a client."""

    def __init__(self, capacity: int = STREAM_CAPACITY) -> None:
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=capacity)
        self._closed = False
        self._lock = threading.Lock()

    def send(self, message: Any) -> None:
        """Queue one message; blocks while the stream is full."""
        with self._lock:
            if self._closed:
                raise ValueError("send on closed stream")
        self._queue.put(message)

    def recv(self) -> Any:
        """Return the next message, or None once the stream is closed and drained."""
        item = self._queue.get()
        if item is _CLOSED:
            self._queue.put(_CLOSED)
            return None
        return item

    def close(self) -> None:
        """Mark the end of the stream; safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[Any]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                self._queue.put(_CLOSED)
                return
            yield item


def _serve_stream(name: str, handler: Callable[[Any, DirectStream], Any], request: Any) -> DirectStream:
    stream = DirectStream()

    def run() -> None:
        try:
            handler(request, stream)
        except Exception as err:
            log.warning("%s returned: %s", name, err)
        finally:
            stream.close()

    threading.Thread(target=run, name=f"direct-{name}", daemon=True).start()
    return stream


class SentryClientRemote:
    """Wraps a sentry client and learns its protocol from the handshake."""

    def __init__(self, client: Any) -> None:
        self._client = client
        self._lock = threading.RLock()
        self._protocol = 0
        self._ready = False

    def protocol(self) -> int:
        with self._lock:
            return self._protocol

    def ready(self) -> bool:
        with self._lock:
            return self._ready

    def mark_disconnected(self) -> None:
        with self._lock:
            self._ready = False

    def hand_shake(self, request: Any = None) -> Any:
        """Perform the handshake and record the protocol the sentry speaks."""
        reply = self._client.hand_shake(request)
        with self._lock:
            try:
                self._protocol = Protocol(reply.protocol)
            except ValueError:
                raise ProtocolError(f"unexpected protocol: {reply.protocol}") from None
            self._ready = True
        return reply

    def set_status(self, request: Any) -> Any:
        return self._client.set_status(request)

    def messages(self, request: Any) -> Any:
        """Subscribe to messages, restricted to ids of the negotiated protocol."""
        _restrict_ids(request, self.protocol())
        return self._client.messages(request)

    def peer_count(self, request: Any) -> Any:
        return self._client.peer_count(request)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._client, name)


class SentryClientDirect:
    """A sentry client that calls a sentry server in the same process."""

    def __init__(self, protocol: int, server: Any) -> None:
        self._protocol = protocol
        self._server = server
        self.disconnect_notices = 0

    def protocol(self) -> int:
        return self._protocol

    def ready(self) -> bool:
        return True

    def mark_disconnected(self) -> None:
        """Count the notice; a direct link stays ready regardless."""
        self.disconnect_notices += 1

    def penalize_peer(self, request: Any) -> Any:
        return self._server.penalize_peer(request)

    def peer_min_block(self, request: Any) -> Any:
        return self._server.peer_min_block(request)

    def send_message_by_min_block(self, request: Any) -> Any:
        return self._server.send_message_by_min_block(request)

    def send_message_by_id(self, request: Any) -> Any:
        return self._server.send_message_by_id(request)

    def send_message_to_random_peers(self, request: Any) -> Any:
        return self._server.send_message_to_random_peers(request)

    def send_message_to_all(self, request: Any) -> Any:
        return self._server.send_message_to_all(request)

    def hand_shake(self, request: Any = None) -> Any:
        return self._server.hand_shake(request)

    def set_status(self, request: Any) -> Any:
        return self._server.set_status(request)

    def peer_count(self, request: Any) -> Any:
        return self._server.peer_count(request)

    def messages(self, request: Any) -> DirectStream:
        """Stream inbound messages of the client's protocol from the server."""
        _restrict_ids(request, self._protocol)
        return _serve_stream("Messages", self._server.messages, request)

    def peers(self, request: Any) -> DirectStream:
        """Stream peer events from the server."""
        return _serve_stream("Peers", self._server.peers, request)


class StateDiffClientDirect:
    """A state-diff client that calls a KV server in the same process."""

    def __init__(self, server: Any) -> None:
        self._server = server

    def state_changes(self, request: Any) -> DirectStream:
        """Stream state change batches from the server."""
        return _serve_stream("StateChanges", self._server.state_changes, request)