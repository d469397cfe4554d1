# natstier

Tiered storage coordination for message streams. Sealed blocks of messages
are written through to every enabled tier (memory, file, blob) at once, reads
fall through from the hottest tier to the coldest, and a policy engine evicts
blocks from hotter tiers by age, total size or block count. A companion client
(`natstier.nts`) reads from the live store first and falls back to a
cold-storage sidecar over request-reply.

## Installation

```
pip install natstier
```

The package has no runtime dependencies. To run the test suite:

```
pip install "natstier[test]"
pytest
```

## Data model

`natstier.types` holds the shared types:

- `Tier` — `MEMORY`, `FILE`, `BLOB`, ordered hottest to coldest; `str(tier)`
  gives `"memory"`, `"file"` or `"blob"`.
- `BlockRef`, `StoredMessage`, `TierStats`.
- `BlockMessage` and `Block`. A `Block` sorts its messages by sequence and
  derives `msg_count`, `first_seq`, `last_seq`, `first_ts`, `last_ts` and, when
  not given, `size_bytes`.
- `BlockEntry` — block metadata; `ref()` returns its `BlockRef` and
  `effective_tiers()` the tiers holding it, hottest first (falling back to
  `current_tier` when `tiers` is empty).
- `TierStore` and `MetaStore` — the protocols a storage tier and a metadata
  store must satisfy.

## Eviction policy

`natstier.policy.TiersConfig` holds one `TierPolicy` (`enabled`, `max_age`,
`max_bytes`, `max_blocks`; zero means no limit) per tier.
`PolicyEngine.evaluate_demotion(blocks, max_age, max_bytes, max_blocks, now)`
sorts the blocks by `last_ts` and returns those to evict: first every block
older than `max_age`, then the oldest blocks until the total size is within
`max_bytes`, then the oldest until the count is within `max_blocks`. Each
block is listed at most once.

## Controller

`natstier.controller.Controller(stream, meta, policy, memory, file, blob, logger)`
coordinates the tiers of one stream:

- `ingest(block)` puts the block in every tier that is both enabled and has a
  store, then records a `BlockEntry`. It raises `TierError` when no tier is
  enabled or a put or the metadata write fails.
- `retrieve(seq)` looks the sequence up in the metadata store and tries each
  tier holding the block, hottest first; it raises `TierError` if none has it.
- `retrieve_range(start_seq, end_seq)` returns every message found in the
  inclusive range, skipping sequences no tier can supply.
- `demote(block_id, from_tier, to_tier)` deletes the block from `from_tier`
  (a failed delete is only logged) and updates the metadata.
- `promote(block_id, from_tier, to_tier)` copies the block into `to_tier` and
  records its presence there.
- `delete_from_tier(ref, tier)` and `store_for_tier(tier)`.
- `demotion_cycle()` applies the memory policy (memory → file) and the file
  policy (file → blob) once; `run_demotion_loop(interval, stop)` repeats it
  every `interval` (a `timedelta` or seconds) until the `threading.Event`
  `stop` is set.

```python
from natstier.controller import Controller
from natstier.policy import TierPolicy, TiersConfig

policy = TiersConfig(memory=TierPolicy(enabled=True, max_blocks=10),
                     file=TierPolicy(enabled=True))
ctrl = Controller("ORDERS", meta_store, policy, memory=mem_store, file=file_store)
ctrl.ingest(block)
msg = ctrl.retrieve(42)
```

## Client with cold-storage fallback

`natstier.nts.client.Client(nc, js, subject_prefix, timeout, auto_restore)`
takes a connection object and a stream context supplied by the caller. The
prefix defaults to `nts` and the timeout to 5 seconds; a missing `nc` or `js`
raises `NTSError`.

- `get_message(stream, seq)` returns a `StoredMessage`.
- `key_value(bucket)` returns a `natstier.nts.kv.KVStore` with `get`, `put`,
  `delete`, `keys`, `history` and `underlying`. Cold results are `KVEntry`
  values; with `auto_restore` on, a cold `PUT` entry is written back to the
  live bucket (best effort).
- `object_store(bucket)` returns a `natstier.nts.objectstore.ObjStore` with
  `get` (a binary reader), `get_info` and `list` (returning `ObjInfo`), `put`,
  `delete` and `underlying`.

Misses — errors that are `NotFoundError`, contain "not found", or (for
key-value gets) are `KeyDeletedError` — are answered by the sidecar on:

```
{prefix}.get.{stream}.{seq}
{prefix}.kv.{bucket}.get.{key}
{prefix}.kv.{bucket}.keys
{prefix}.kv.{bucket}.history.{key}
{prefix}.obj.{bucket}.get.{name}
{prefix}.obj.{bucket}.info.{name}
{prefix}.obj.{bucket}.list
```

`keys`, `history` and `list` also ask the sidecar when the live store returns
nothing. Errors raised by the client derive from
`natstier.nts.errors.NTSError`; the module also provides `KeyValueOp`,
`is_not_found`, `is_key_deleted` and `parse_kv_op`.

The objects passed in are used by duck typing: `nc.request(subject, data,
timeout)` returning a reply with `.data` (or bytes); `js.stream(name)` with
`get_msg(seq)`, `js.key_value(bucket)` and `js.object_store(bucket)`.

## What this package does not do

- It contains no tier store or metadata store implementations: no in-memory
  cache, no on-disk block files, no blob-storage backend and no persistent
  metadata database. Supply your own objects satisfying `TierStore` and
  `MetaStore`.
- It does not encode or decode blocks on disk and does not consume messages
  from a stream; blocks are handed to `Controller.ingest` already built.
- It has no messaging client of its own and runs no sidecar responder; the
  client only sends requests through the connection you give it.
- It provides no command-line program and no metrics.