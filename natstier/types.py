"""Core value types shared by the tiered storage components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Iterable, Protocol


class Tier(IntEnum):
    """A storage tier, ordered from hottest to coldest."""

    MEMORY = 0
    FILE = 1
    BLOB = 2

    def __str__(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class BlockRef:
    """Uniquely identifies a block within the tiered storage system."""

    stream: str
    block_id: int
    first_seq: int = 0
    last_seq: int = 0


@dataclass
class StoredMessage:
    """A single message retrieved from any tier."""

    stream: str
    subject: str
    sequence: int
    data: bytes = b""
    headers: dict[str, list[str]] = field(default_factory=dict)
    timestamp: datetime | None = None


@dataclass
class TierStats:
    """Usage of a single tier; ``capacity_max`` is -1 when unlimited."""

    tier: Tier
    block_count: int = 0
    total_bytes: int = 0
    capacity_max: int = -1


@dataclass
class BlockMessage:
    """A message held inside a block."""

    sequence: int
    subject: str
    data: bytes = b""
    headers: bytes = b""
    timestamp: datetime | None = None


@dataclass
class Block:
    """A sealed group of consecutive messages of one stream."""

    id: int
    stream: str
    messages: list[BlockMessage] = field(default_factory=list)
    size_bytes: int | None = None

    def __post_init__(self) -> None:
        self.messages = sorted(self.messages, key=lambda m: m.sequence)
        if self.size_bytes is None:
            self.size_bytes = sum(
                len(m.subject.encode()) + len(m.headers) + len(m.data)
                for m in self.messages
            )

    @property
    def msg_count(self) -> int:
        return len(self.messages)

    @property
    def first_seq(self) -> int:
        return self.messages[0].sequence if self.messages else 0

    @property
    def last_seq(self) -> int:
        return self.messages[-1].sequence if self.messages else 0

    @property
    def first_ts(self) -> datetime | None:
        stamps = [m.timestamp for m in self.messages if m.timestamp is not None]
        return min(stamps) if stamps else None

    @property
    def last_ts(self) -> datetime | None:
        stamps = [m.timestamp for m in self.messages if m.timestamp is not None]
        return max(stamps) if stamps else None


@dataclass
class BlockEntry:
    """Metadata recorded for a block."""

    stream: str = ""
    block_id: int = 0
    first_seq: int = 0
    last_seq: int = 0
    first_ts: datetime | None = None
    last_ts: datetime | None = None
    msg_count: int = 0
    size_bytes: int = 0
    current_tier: Tier = Tier.MEMORY
    tiers: list[Tier] = field(default_factory=list)
    created_at: datetime | None = None
    subjects: list[str] = field(default_factory=list)

    def ref(self) -> BlockRef:
        """Return the reference identifying this block."""
        return BlockRef(self.stream, self.block_id, self.first_seq, self.last_seq)

    def effective_tiers(self) -> list[Tier]:
        """Tiers holding the block, hottest first."""
        if self.tiers:
            return sorted(set(self.tiers))
        return [self.current_tier]


class TierStore(Protocol):
    """Interface every storage tier implements."""

    def put(self, ref: BlockRef, block: Block) -> None: ...

    def get(self, ref: BlockRef) -> Block: ...

    def get_message(self, ref: BlockRef, seq: int) -> StoredMessage: ...

    def delete(self, ref: BlockRef) -> None: ...

    def exists(self, ref: BlockRef) -> bool: ...

    def stats(self) -> TierStats: ...

    def close(self) -> None: ...


class MetaStore(Protocol):
    """Interface of the block metadata store used by the tier controller."""

    def record_block(self, entry: BlockEntry) -> None: ...

    def get_block(self, stream: str, block_id: int) -> BlockEntry: ...

    def update_tier(
        self, stream: str, block_id: int, from_tier: Tier, to_tier: Tier
    ) -> None: ...

    def add_tier_presence(self, stream: str, block_id: int, tier: Tier) -> None: ...

    def lookup_by_sequence(self, stream: str, seq: int) -> BlockEntry: ...

    def lookup_by_sequence_range(
        self, stream: str, start_seq: int, end_seq: int
    ) -> Iterable[BlockEntry]: ...

    def list_blocks(self, stream: str, tier: Tier | None = None) -> list[BlockEntry]: ...