# ledgerkit

Building blocks for the storage side of a blockchain node.

- `ledgerkit.common` – `byte_count` (human-readable sizes in KiB, MiB, …),
  stop signals on a `threading.Event` (`stopped` raises `StoppedError` once the
  event is set, `safe_close` sets it), and `UnwindError`.
- `ledgerkit.chain_config` – `ChainConfig` (the fork schedule), `Rules` (which
  forks are active at a block), `new_rules`, `is_forked`, `Rules.changed`,
  `config_from_json`, and the presets `MAINNET_RULES`, `CLIQUE_RULES` and
  `DEV_RULES`.
- `ledgerkit.types` – the fixed-width wire words `H128`, `H160`, `H256`,
  `H512` and conversions to and from bytes and integers (`hash_to_h256`,
  `h256_to_hash`, `address_to_h160`, `h160_to_address`, `int_to_h256`,
  `h256_to_int`, `bytes_to_h512`, `h512_to_bytes`, `hashes_to_h256`), plus
  `Version`, `version_from_proto` and `ensure_version` (compatible when major
  and minor match).
- `ledgerkit.etl_buffers` – sortable in-memory buffers: `SortableBuffer` keeps
  every pair, `AppendBuffer` concatenates the values of repeated keys,
  `OldestEntryBuffer` keeps the first value seen for a key. `BufferType`,
  `get_buffer_by_type`, `get_type_by_buffer`, and `LoadHeap`, a min-heap of
  `HeapElem` ordered by key and then by source index, for k-way merges.
- `ledgerkit.etl_provider` – sources of sorted pairs: `flush_to_disk` writes a
  buffer to a temporary file of CBOR `[key, value]` arrays and returns a
  `FileDataProvider`; `keep_in_ram` wraps a buffer as a `MemoryDataProvider`.
  `write_to_disk` and `read_element_from_disk` handle single pairs.
- `ledgerkit.direct` – in-process clients: `SentryClientDirect` and
  `StateDiffClientDirect` call a server object in the same process and hand
  back a `DirectStream` for streaming calls; `SentryClientRemote` wraps another
  client and learns its protocol from the handshake. `filter_ids` keeps only
  the `MessageId`s of a protocol (`ETH65`, `ETH66`).
- `ledgerkit.grpcutil` – `tls_credentials`, `new_server` (limits concurrent
  streams, tolerates idle keepalives, turns handler failures into `INTERNAL`
  errors; bind with `add_port`) and `connect` (reconnect backoff, 15 MiB
  receive limit).

## Installation

```
pip install ledgerkit
```

## Sorting pairs and spilling them to disk

```python
from ledgerkit.etl_buffers import SortableBuffer
from ledgerkit.etl_provider import flush_to_disk

buffer = SortableBuffer(optimal_size=1024)
for key, value in [(b"b", b"2"), (b"a", b"1")]:
    buffer.put(key, value)

buffer.sort()
provider = flush_to_disk(None, buffer, "")   # "" = system temp directory
assert list(provider) == [(b"a", b"1"), (b"b", b"2")]
provider.dispose()                           # removes the file, returns its size
```

`buffer.check_flush_size()` tells you when the buffer has reached its optimal
size. To merge several sorted providers, push the first pair of each into a
`LoadHeap` as `HeapElem(key, index, value)` and pop in order, refilling from
the provider the popped element came from.

## Fork rules

```python
from ledgerkit.chain_config import ChainConfig, new_rules

config = ChainConfig(chain_id=1, homestead_block=1_150_000, london_block=12_965_000)
rules = new_rules(config, 13_000_000)
assert rules.is_london and not rules.is_berlin
```

## Wire words

```python
from ledgerkit.types import int_to_h256, h256_to_int

assert h256_to_int(int_to_h256(2**200 + 5)) == 2**200 + 5
```

## A direct sentry client

```python
from types import SimpleNamespace
from ledgerkit.direct import ETH66, MessageId, SentryClientDirect

class Server:
    def messages(self, request, stream):
        for message_id in request.ids:
            stream.send(message_id)

client = SentryClientDirect(ETH66, Server())
request = SimpleNamespace(ids=[MessageId.BLOCK_HEADERS_65, MessageId.BLOCK_HEADERS_66])
assert list(client.messages(request)) == [MessageId.BLOCK_HEADERS_66]
```

## What the package does not do

- It has no key-value store: no tables, transactions or cursors, and no lookup
  of chain data such as canonical hashes or block numbers.
- It has no ready-made extract/transform/load pipeline that reads a table,
  sorts through buffers and writes the result back; the buffers, providers and
  `LoadHeap` are the pieces, and you drive them.
- It ships no gRPC service definitions or generated stubs; the clients in
  `ledgerkit.direct` accept any object with the matching methods.
- It has no command-line tool.

## Running the tests

```
pip install -e ".[test]"
pytest
```