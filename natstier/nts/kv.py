"""Key-value bucket access with fallback to the cold-storage sidecar."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from natstier.nts.errors import (
    KeyValueOp,
    NTSError,
    is_key_deleted,
    is_not_found,
    parse_kv_op,
)

_TIME_PARTS = re.compile(r"^(.*T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(.*)$")


@dataclass
class KVEntry:
    """A key-value revision served from cold storage."""

    bucket: str
    key: str
    value: bytes
    revision: int = 0
    operation: KeyValueOp = KeyValueOp.PUT
    created: datetime | None = None
    delta: int = 0


class KVStore:
    """Wraps a key-value bucket; misses are answered by the sidecar."""

    def __init__(
        self,
        kv: Any,
        bucket: str,
        nc: Any,
        prefix: str = "nts",
        timeout: float | timedelta = 5.0,
        auto_restore: bool = False,
    ) -> None:
        self._kv = kv
        self.bucket = bucket
        self._nc = nc
        self.prefix = prefix
        self.timeout = _seconds(timeout)
        self.auto_restore = auto_restore

    def get(self, key: str) -> Any:
        """Return the latest entry for ``key``, from the bucket or the sidecar."""
        try:
            return self._kv.get(key)
        except Exception as exc:
            if not is_not_found(exc) and not is_key_deleted(exc):
                raise

        subject = f"{self.prefix}.kv.{self.bucket}.get.{key}"
        try:
            resp = self._nc.request(subject, b"", self.timeout)
        except Exception as exc:
            raise NTSError(f"nts: sidecar request for key {key!r}: {exc}") from exc

        what = "KV response"
        doc = _decode(resp, what, dict) or {}
        error = _field(doc, "error", str, "", what)
        if error:
            raise NTSError(f"nts: sidecar: {error}")

        op = parse_kv_op(_field(doc, "operation", str, "", what))
        value = _field(doc, "value", str, "", what).encode("utf-8")
        entry = KVEntry(
            bucket=_field(doc, "bucket", str, "", what),
            key=_field(doc, "key", str, "", what),
            value=value,
            revision=_field(doc, "revision", int, 0, what),
            operation=op,
            created=_timestamp(doc, "timestamp", what),
        )
        if self.auto_restore and op is KeyValueOp.PUT:
            # Best effort: the caller already has the value from cold storage.
            try:
                self._kv.put(key, value)
            except Exception:
                pass
        return entry

    def put(self, key: str, value: bytes) -> int:
        """Store ``value`` under ``key`` in the bucket and return the revision."""
        return self._kv.put(key, value)

    def delete(self, key: str, *args: Any, **kwargs: Any) -> None:
        """Mark ``key`` as deleted in the bucket."""
        self._kv.delete(key, *args, **kwargs)

    def keys(self, *args: Any, **kwargs: Any) -> list[str]:
        """Return the bucket's keys, or the sidecar's when the bucket has none."""
        error: BaseException | None = None
        try:
            found = list(self._kv.keys(*args, **kwargs))
            if found:
                return found
        except Exception as exc:
            error = exc

        subject = f"{self.prefix}.kv.{self.bucket}.keys"
        try:
            resp = self._nc.request(subject, b"", self.timeout)
        except Exception:
            if error is not None:
                raise error
            raise

        what = "keys response"
        doc = _decode(resp, what, list) or []
        if not all(isinstance(item, str) for item in doc):
            raise NTSError(f"nts: decoding sidecar {what}: keys must be strings")
        return doc

    def history(self, key: str, *args: Any, **kwargs: Any) -> list[Any]:
        """Return the revisions of ``key``, or the sidecar's when the bucket has none."""
        error: BaseException | None = None
        try:
            entries = list(self._kv.history(key, *args, **kwargs))
            if entries:
                return entries
        except Exception as exc:
            error = exc

        subject = f"{self.prefix}.kv.{self.bucket}.history.{key}"
        try:
            resp = self._nc.request(subject, b"", self.timeout)
        except Exception:
            if error is not None:
                raise error
            raise

        what = "history response"
        revisions = _decode(resp, what, list) or []
        result: list[Any] = []
        for revision in revisions:
            if not isinstance(revision, dict):
                raise NTSError(f"nts: decoding sidecar {what}: expected an object")
            result.append(
                KVEntry(
                    bucket=self.bucket,
                    key=key,
                    value=_field(revision, "value", str, "", what).encode("utf-8"),
                    revision=_field(revision, "sequence", int, 0, what),
                    created=_timestamp(revision, "timestamp", what),
                )
            )
        return result

    def underlying(self) -> Any:
        """Return the wrapped bucket for direct access."""
        return self._kv


def _seconds(timeout: float | timedelta) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


def _payload(resp: Any) -> bytes:
    data = getattr(resp, "data", resp)
    if data is None:
        return b""
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def _decode(resp: Any, what: str, expect: type) -> Any:
    try:
        doc = json.loads(_payload(resp))
    except ValueError as exc:
        raise NTSError(f"nts: decoding sidecar {what}: {exc}") from exc
    if doc is not None and not isinstance(doc, expect):
        raise NTSError(
            f"nts: decoding sidecar {what}: unexpected {type(doc).__name__}"
        )
    return doc


def _field(doc: dict, name: str, kind: type, default: Any, what: str) -> Any:
    value = doc.get(name)
    if value is None:
        return default
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise NTSError(f"nts: decoding sidecar {what}: {name} is not a number")
        if isinstance(value, float):
            if not value.is_integer():
                raise NTSError(f"nts: decoding sidecar {what}: {name} is not an integer")
            value = int(value)
        return value
    if not isinstance(value, kind):
        raise NTSError(f"nts: decoding sidecar {what}: {name} has the wrong type")
    return value


def _timestamp(doc: dict, name: str, what: str) -> datetime | None:
    try:
        return _parse_timestamp(doc.get(name))
    except ValueError as exc:
        raise NTSError(f"nts: decoding sidecar {what}: {exc}") from exc


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp, keeping microsecond precision."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, not {type(value).__name__}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    match = _TIME_PARTS.match(text)
    if match is None:
        raise ValueError(f"invalid timestamp {value!r}")
    head, fraction, tail = match.groups()
    if fraction:
        head = f"{head}.{(fraction + '000000')[:6]}"
    try:
        return datetime.fromisoformat(head + tail)
    except ValueError as exc:
        raise ValueError(f"invalid timestamp {value!r}") from exc