"""Demotion policies for the storage tiers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from natstier.types import BlockEntry

_EPOCH = datetime.min


@dataclass
class TierPolicy:
    """Limits for one tier; zero means no limit of that kind."""

    enabled: bool = False
    max_age: timedelta = timedelta(0)
    max_bytes: int = 0
    max_blocks: int = 0


@dataclass
class TiersConfig:
    """Policies for the memory, file and blob tiers."""

    memory: TierPolicy = field(default_factory=TierPolicy)
    file: TierPolicy = field(default_factory=TierPolicy)
    blob: TierPolicy = field(default_factory=TierPolicy)


class PolicyEngine:
    """Evaluates which blocks should leave a tier."""

    def __init__(self, cfg: TiersConfig | None = None) -> None:
        self.cfg = cfg if cfg is not None else TiersConfig()

    def evaluate_demotion(
        self,
        blocks: Iterable[BlockEntry] | None,
        max_age: timedelta | None,
        max_bytes: int,
        max_blocks: int,
        now: datetime,
    ) -> list[BlockEntry]:
        """Return blocks to demote, oldest first within each rule.

        Age, size and count limits are applied in that order; a block is
        listed at most once.
        """
        ordered = sorted(blocks or (), key=_last_ts_key)
        if not ordered:
            return []

        candidates: list[BlockEntry] = []
        seen: set[int] = set()

        def take(entry: BlockEntry) -> None:
            if entry.block_id not in seen:
                seen.add(entry.block_id)
                candidates.append(entry)

        if max_age and max_age > timedelta(0):
            cutoff = now - max_age
            for entry in ordered:
                if _last_ts_key(entry) < cutoff:
                    take(entry)

        if max_bytes and max_bytes > 0:
            total = sum(entry.size_bytes for entry in ordered)
            for entry in ordered:
                if total <= max_bytes:
                    break
                take(entry)
                total -= entry.size_bytes

        if max_blocks and max_blocks > 0:
            remaining = len(ordered)
            for entry in ordered:
                if remaining <= max_blocks:
                    break
                take(entry)
                remaining -= 1

        return candidates


def _last_ts_key(entry: BlockEntry) -> datetime:
    return entry.last_ts if entry.last_ts is not None else _EPOCH