"""
Storage notification parsing.

Two payload shapes are accepted:

- S3 / MinIO bucket notifications: ``{"Records": [{"eventName": ..., "s3": {...}}]}``
- a flat trigger payload: ``{"bucket", "name" | "path", "contentType", "metadata"}``

Metadata values are decoded here (the pipeline writes them percent-encoded), so an
UploadEvent always holds plain values.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping
import urllib.parse

from .utils import unquote_metadata

META_PREFIX = "x-amz-meta-"


def normalize_metadata(raw: Mapping | None) -> dict:
    """S3 case-folds user metadata keys, so compare everything lower-cased and unprefixed."""
    out = {}
    for key, value in (raw or {}).items():
        k = str(key).strip().lower()
        if k.startswith(META_PREFIX):
            k = k[len(META_PREFIX):]
        out[k] = "" if value is None else str(value)
    return out


@dataclass(frozen=True)
class UploadEvent:
    bucket: str
    path: str
    content_type: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "metadata", MappingProxyType(normalize_metadata(self.metadata)))

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.path}"

    def to_dict(self) -> dict:
        """Celery-serializable form; round-trips through ``from_dict``."""
        return {
            "bucket": self.bucket,
            "path": self.path,
            "contentType": self.content_type,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "UploadEvent":
        return cls(
            bucket=data.get("bucket") or "",
            path=data.get("path") or data.get("name") or "",
            content_type=data.get("contentType") or data.get("content_type") or "",
            metadata=data.get("metadata") or {},
        )


def _from_s3_record(record: Mapping) -> UploadEvent | None:
    event_name = record.get("eventName") or ""
    if "ObjectCreated" not in event_name:
        return None
    s3 = record.get("s3") or {}
    obj = s3.get("object") or {}
    key = obj.get("key")
    if not key:
        return None
    return UploadEvent(
        bucket=(s3.get("bucket") or {}).get("name") or "",
        # Notification keys are URL-encoded (spaces arrive as '+').
        path=urllib.parse.unquote_plus(key),
        content_type=obj.get("contentType") or "",
        metadata=unquote_metadata(obj.get("userMetadata") or {}),
    )


def parse_events(payload: Mapping) -> list[UploadEvent]:
    """Return the object-created events carried by a notification payload, in order."""
    if not isinstance(payload, Mapping):
        return []
    records = payload.get("Records")
    if isinstance(records, list):
        events = []
        for record in records:
            if not isinstance(record, Mapping):
                continue
            ev = _from_s3_record(record)
            if ev is not None:
                events.append(ev)
        return events
    if payload.get("bucket") and (payload.get("name") or payload.get("path")):
        flat = dict(payload)
        flat["metadata"] = unquote_metadata(dict(payload.get("metadata") or {}))
        return [UploadEvent.from_dict(flat)]
    return []
