"""Client for message streams, key-value buckets and object stores.

Reads go to the live store first. When the data has been purged, expired
or deleted there, the client asks the tiered-storage sidecar over
request-reply. The sidecar then returns the data from whichever tier
still holds it.

Sidecar subjects, with the default prefix ``nts``::

    nts.get.{stream}.{seq}           retrieve a message by sequence
    nts.kv.{bucket}.get.{key}        get a key-value entry
    nts.kv.{bucket}.keys             list keys
    nts.kv.{bucket}.history.{key}    history of a key
    nts.obj.{bucket}.get.{name}      get a reassembled object
    nts.obj.{bucket}.info.{name}     object metadata
    nts.obj.{bucket}.list            list objects
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from natstier.nts.errors import NTSError, is_not_found
from natstier.nts.kv import KVStore, _decode, _field, _seconds, _timestamp
from natstier.nts.objectstore import ObjStore

DEFAULT_PREFIX = "nts"
DEFAULT_TIMEOUT = 5.0


@dataclass
class StoredMessage:
    """A message read from the live stream or from cold storage."""

    stream: str
    subject: str
    sequence: int
    data: bytes = b""
    headers: dict[str, list[str]] = field(default_factory=dict)
    timestamp: datetime | None = None


class Client:
    """Transparent access to stream data with cold-storage fallback."""

    def __init__(
        self,
        nc: Any,
        js: Any,
        subject_prefix: str = "",
        timeout: float | timedelta = 0,
        auto_restore: bool = False,
    ) -> None:
        if nc is None:
            raise NTSError("nts: NC (NATS connection) is required")
        if js is None:
            raise NTSError("nts: JS (JetStream context) is required")
        self._nc = nc
        self._js = js
        self.prefix = subject_prefix or DEFAULT_PREFIX
        seconds = _seconds(timeout)
        self.timeout = seconds if seconds else DEFAULT_TIMEOUT
        self.auto_restore = auto_restore

    def key_value(self, bucket: str) -> KVStore:
        """Return the key-value bucket ``bucket`` with cold fallback."""
        try:
            kv = self._js.key_value(bucket)
        except Exception as exc:
            raise NTSError(f"nts: opening KV bucket {bucket!r}: {exc}") from exc
        return KVStore(
            kv,
            bucket,
            self._nc,
            prefix=self.prefix,
            timeout=self.timeout,
            auto_restore=self.auto_restore,
        )

    def object_store(self, bucket: str) -> ObjStore:
        """Return the object store ``bucket`` with cold fallback."""
        try:
            obs = self._js.object_store(bucket)
        except Exception as exc:
            raise NTSError(
                f"nts: opening Object Store bucket {bucket!r}: {exc}"
            ) from exc
        return ObjStore(obs, bucket, self._nc, prefix=self.prefix, timeout=self.timeout)

    def get_message(self, stream: str, seq: int) -> StoredMessage:
        """Return message ``seq`` of ``stream``, asking the sidecar on a miss."""
        try:
            handle = self._js.stream(stream)
        except Exception as exc:
            raise NTSError(f"nts: stream {stream!r}: {exc}") from exc

        try:
            msg = handle.get_msg(seq)
        except Exception as exc:
            if not is_not_found(exc):
                raise
        else:
            return StoredMessage(
                stream=stream,
                subject=getattr(msg, "subject", ""),
                sequence=seq,
                data=bytes(getattr(msg, "data", b"") or b""),
                headers=dict(getattr(msg, "headers", None) or {}),
                timestamp=getattr(msg, "time", None),
            )

        subject = f"{self.prefix}.get.{stream}.{seq}"
        try:
            resp = self._nc.request(subject, b"", self.timeout)
        except Exception as exc:
            raise NTSError(f"nts: sidecar request: {exc}") from exc

        what = "response"
        doc = _decode(resp, what, dict) or {}
        error = _field(doc, "error", str, "", what)
        if error:
            raise NTSError(f"nts: sidecar: {error}")
        return StoredMessage(
            stream=_field(doc, "stream", str, "", what),
            subject=_field(doc, "subject", str, "", what),
            sequence=_field(doc, "sequence", int, 0, what),
            data=_field(doc, "data", str, "", what).encode("utf-8"),
            timestamp=_timestamp(doc, "timestamp", what),
        )