"""Orchestrates block placement and retrieval across the storage tiers."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Iterable

from natstier.policy import PolicyEngine, TiersConfig
from natstier.types import (
    Block,
    BlockEntry,
    BlockRef,
    MetaStore,
    StoredMessage,
    Tier,
    TierStore,
)


class TierError(Exception):
    """Raised when a tier operation cannot be carried out."""


class Controller:
    """Write-through placement, fall-through reads and policy eviction."""

    def __init__(
        self,
        stream: str,
        meta: MetaStore,
        policy: TiersConfig | None = None,
        memory: TierStore | None = None,
        file: TierStore | None = None,
        blob: TierStore | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.stream = stream
        self.meta = meta
        self.policy = PolicyEngine(policy)
        self._stores: dict[Tier, TierStore | None] = {
            Tier.MEMORY: memory,
            Tier.FILE: file,
            Tier.BLOB: blob,
        }
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self._lock = threading.Lock()

    def _enabled(self, tier: Tier) -> bool:
        cfg = self.policy.cfg
        return {
            Tier.MEMORY: cfg.memory.enabled,
            Tier.FILE: cfg.file.enabled,
            Tier.BLOB: cfg.blob.enabled,
        }[tier]

    def ingest(self, block: Block) -> None:
        """Write a sealed block to every enabled tier and record its metadata."""
        ref = BlockRef(self.stream, block.id, block.first_seq, block.last_seq)
        targets = [
            (tier, store)
            for tier, store in self._stores.items()
            if store is not None and self._enabled(tier)
        ]
        if not targets:
            raise TierError(f"no enabled tier for stream {self.stream}")

        tiers: list[Tier] = []
        for tier, store in targets:
            try:
                store.put(ref, block)
            except Exception as exc:
                raise TierError(f"storing block in {tier} tier: {exc}") from exc
            tiers.append(tier)

        subjects = list(dict.fromkeys(m.subject for m in block.messages))
        entry = BlockEntry(
            stream=self.stream,
            block_id=block.id,
            first_seq=block.first_seq,
            last_seq=block.last_seq,
            first_ts=block.first_ts,
            last_ts=block.last_ts,
            msg_count=block.msg_count,
            size_bytes=block.size_bytes or 0,
            current_tier=tiers[0],
            tiers=tiers,
            created_at=datetime.now(timezone.utc),
            subjects=subjects,
        )
        try:
            self.meta.record_block(entry)
        except Exception as exc:
            raise TierError(f"recording block metadata: {exc}") from exc

        self.logger.info(
            "block ingested: block_id=%d first_seq=%d last_seq=%d msg_count=%d tiers=%d",
            block.id, block.first_seq, block.last_seq, block.msg_count, len(tiers),
        )

    def demote(self, block_id: int, from_tier: Tier, to_tier: Tier) -> None:
        """Evict a block from a hotter tier; colder copies already exist."""
        with self._lock:
            ref = self._ref_from_meta(block_id)
            source = self.store_for_tier(from_tier)
            if source is None:
                raise TierError(f"tier store not available: from={from_tier}")

            try:
                source.delete(ref)
            except Exception as exc:
                self.logger.warning(
                    "failed to delete from source tier during eviction: "
                    "block_id=%d from=%s: %s", block_id, from_tier, exc,
                )

            try:
                self.meta.update_tier(self.stream, block_id, from_tier, to_tier)
            except Exception as exc:
                raise TierError(f"updating tier metadata: {exc}") from exc

            self.logger.info("block evicted from tier: block_id=%d from=%s", block_id, from_tier)

    def promote(self, block_id: int, from_tier: Tier, to_tier: Tier) -> None:
        """Copy a block from a colder tier into a hotter one."""
        ref = self._ref_from_meta(block_id)
        source = self.store_for_tier(from_tier)
        target = self.store_for_tier(to_tier)
        if source is None or target is None:
            raise TierError("tier store not available")

        block = source.get(ref)
        target.put(ref, block)

        try:
            self.meta.add_tier_presence(self.stream, block_id, to_tier)
        except Exception as exc:
            self.logger.warning(
                "failed to update tier presence after promotion: block_id=%d: %s",
                block_id, exc,
            )

        self.logger.debug(
            "block promoted: block_id=%d from=%s to=%s", block_id, from_tier, to_tier
        )

    def retrieve(self, seq: int) -> StoredMessage:
        """Return the message with ``seq``, trying tiers hottest first."""
        try:
            entry = self.meta.lookup_by_sequence(self.stream, seq)
        except Exception as exc:
            raise TierError(f"looking up sequence {seq}: {exc}") from exc

        message = self._fetch(entry, seq)
        if message is None:
            raise TierError(f"message not found in any tier: seq={seq}")
        return message

    def retrieve_range(self, start_seq: int, end_seq: int) -> list[StoredMessage]:
        """Return the messages found between two sequences, inclusive."""
        result: list[StoredMessage] = []
        for entry in self.meta.lookup_by_sequence_range(self.stream, start_seq, end_seq):
            low = max(start_seq, entry.first_seq)
            high = min(end_seq, entry.last_seq)
            for seq in range(low, high + 1):
                message = self._fetch(entry, seq)
                if message is not None:
                    result.append(message)
        return result

    def delete_from_tier(self, ref: BlockRef, tier: Tier) -> None:
        """Delete a block from one tier."""
        store = self.store_for_tier(tier)
        if store is None:
            raise TierError(f"tier store not available: {tier}")
        store.delete(ref)

    def run_demotion_loop(
        self, interval: timedelta | float, stop: threading.Event
    ) -> None:
        """Run demotion cycles every ``interval`` until ``stop`` is set."""
        seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        while not stop.wait(seconds):
            try:
                self.demotion_cycle()
            except Exception:
                self.logger.exception("demotion cycle error")

    def demotion_cycle(self) -> None:
        """Evict blocks from the memory and file tiers according to policy."""
        blocks = self.meta.list_blocks(self.stream, None)
        now = _now_like(blocks)
        cfg = self.policy.cfg
        for tier, target, limits in (
            (Tier.MEMORY, Tier.FILE, cfg.memory),
            (Tier.FILE, Tier.BLOB, cfg.file),
        ):
            if not limits.enabled:
                continue
            in_tier = [b for b in blocks if tier in b.effective_tiers()]
            candidates = self.policy.evaluate_demotion(
                in_tier, limits.max_age, limits.max_bytes, limits.max_blocks, now
            )
            for entry in candidates:
                try:
                    self.demote(entry.block_id, tier, target)
                except Exception:
                    self.logger.exception(
                        "failed to evict from %s: block_id=%d", tier, entry.block_id
                    )

    def store_for_tier(self, tier: Tier) -> TierStore | None:
        """Return the store serving ``tier``, if any."""
        return self._stores.get(tier)

    def _fetch(self, entry: BlockEntry, seq: int) -> StoredMessage | None:
        ref = entry.ref()
        for tier in entry.effective_tiers():
            store = self.store_for_tier(tier)
            if store is None:
                continue
            try:
                return store.get_message(ref, seq)
            except Exception:
                continue
        return None

    def _ref_from_meta(self, block_id: int) -> BlockRef:
        return self.meta.get_block(self.stream, block_id).ref()


def _now_like(blocks: Iterable[BlockEntry]) -> datetime:
    """Current time, timezone-aware only if the block timestamps are."""
    for entry in blocks:
        if entry.last_ts is not None:
            if entry.last_ts.tzinfo is not None:
                return datetime.now(entry.last_ts.tzinfo)
            break
    return datetime.now()