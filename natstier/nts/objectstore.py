"""Object store access with fallback to the cold-storage sidecar."""

from __future__ import annotations

import io
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, BinaryIO

from natstier.nts.errors import NTSError, is_not_found
from natstier.nts.kv import _decode, _field, _payload, _seconds, _timestamp

_UINT32 = 0xFFFFFFFF


@dataclass
class ObjInfo:
    """Metadata of a stored object."""

    name: str
    bucket: str
    nuid: str = ""
    size: int = 0
    chunks: int = 0
    digest: str = ""
    deleted: bool = False
    mod_time: datetime | None = None


class ObjStore:
    """Wraps an object store bucket; misses are answered by the sidecar."""

    def __init__(
        self,
        obs: Any,
        bucket: str,
        nc: Any,
        prefix: str = "nts",
        timeout: float | timedelta = 5.0,
    ) -> None:
        self._obs = obs
        self.bucket = bucket
        self._nc = nc
        self.prefix = prefix
        self.timeout = _seconds(timeout)

    def get(self, name: str) -> BinaryIO:
        """Return a reader over the object, reassembled by the sidecar on a miss."""
        try:
            return self._obs.get(name)
        except Exception as exc:
            if not is_not_found(exc):
                raise

        subject = f"{self.prefix}.obj.{self.bucket}.get.{name}"
        try:
            resp = self._nc.request(subject, b"", self.timeout)
        except Exception as exc:
            raise NTSError(f"nts: sidecar request for object {name!r}: {exc}") from exc

        data = _payload(resp)
        if data[:1] == b"{":
            try:
                doc = json.loads(data)
            except ValueError:
                doc = None
            if isinstance(doc, dict):
                error = doc.get("error")
                if isinstance(error, str) and error:
                    raise NTSError(f"nts: sidecar: {error}")
        return io.BytesIO(data)

    def get_info(self, name: str) -> ObjInfo:
        """Return the object's metadata, from the bucket or the sidecar."""
        try:
            return _info_from_hot(self._obs.get_info(name))
        except Exception as exc:
            if not is_not_found(exc):
                raise

        subject = f"{self.prefix}.obj.{self.bucket}.info.{name}"
        try:
            resp = self._nc.request(subject, b"", self.timeout)
        except Exception as exc:
            raise NTSError(
                f"nts: sidecar request for object info {name!r}: {exc}"
            ) from exc

        what = "response"
        doc = _decode(resp, what, dict) or {}
        error = _field(doc, "error", str, "", what)
        if error:
            raise NTSError(f"nts: sidecar: {error}")
        return ObjInfo(
            name=_field(doc, "name", str, "", what),
            bucket=_field(doc, "bucket", str, "", what),
            nuid=_field(doc, "nuid", str, "", what),
            size=_field(doc, "size", int, 0, what),
            chunks=_field(doc, "chunks", int, 0, what) & _UINT32,
            digest=_field(doc, "digest", str, "", what),
            deleted=_field(doc, "deleted", bool, False, what),
            mod_time=_timestamp(doc, "modtime", what),
        )

    def put(self, meta: Any, reader: Any) -> Any:
        """Store an object in the bucket."""
        return self._obs.put(meta, reader)

    def delete(self, name: str) -> None:
        """Delete an object from the bucket."""
        self._obs.delete(name)

    def list(self) -> list[ObjInfo]:
        """List the bucket's objects, or the sidecar's when the bucket has none."""
        error: BaseException | None = None
        try:
            infos = list(self._obs.list())
            if infos:
                return [_info_from_hot(info) for info in infos]
        except Exception as exc:
            error = exc

        subject = f"{self.prefix}.obj.{self.bucket}.list"
        try:
            resp = self._nc.request(subject, b"", self.timeout)
        except Exception:
            if error is not None:
                raise error
            raise

        what = "list response"
        entries = _decode(resp, what, list) or []
        result: list[ObjInfo] = []
        for doc in entries:
            if not isinstance(doc, dict):
                raise NTSError(f"nts: decoding sidecar {what}: expected an object")
            result.append(
                ObjInfo(
                    name=_field(doc, "name", str, "", what),
                    bucket=self.bucket,
                    size=_field(doc, "size", int, 0, what),
                    chunks=_field(doc, "chunks", int, 0, what) & _UINT32,
                    digest=_field(doc, "digest", str, "", what),
                    deleted=_field(doc, "deleted", bool, False, what),
                    mod_time=_timestamp(doc, "modtime", what),
                )
            )
        return result

    def underlying(self) -> Any:
        """Return the wrapped object store for direct access."""
        return self._obs


def _info_from_hot(info: Any) -> ObjInfo:
    return ObjInfo(
        name=getattr(info, "name", ""),
        bucket=getattr(info, "bucket", ""),
        size=getattr(info, "size", 0),
        chunks=int(getattr(info, "chunks", 0)) & _UINT32,
        digest=getattr(info, "digest", ""),
        deleted=getattr(info, "deleted", False),
        mod_time=getattr(info, "mod_time", None),
    )