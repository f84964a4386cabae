from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from rkeyfs.rkeys import ROOT_KEY, decode_key, file_name


DEFAULT_COLLECTION = "blue.zio.atfile.upload"
DEFAULT_MIME_TYPE = "application/octet-stream"
DIRECTORY_SENTINEL = "rkeyfs#directory"


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _format_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class BlobRef:
    cid: str
    mime_type: str = DEFAULT_MIME_TYPE
    size: int = 0

    def to_json(self) -> dict[str, Any]:
        return {
            "$type": "blob",
            "ref": {"$link": self.cid},
            "mimeType": self.mime_type,
            "size": self.size,
        }

    @classmethod
    def from_json(cls, data: Any) -> BlobRef | None:
        if not isinstance(data, dict):
            return None
        ref = data.get("ref")
        # Legacy blob objects carry a bare `cid` instead of `ref.$link`.
        cid = ref.get("$link") if isinstance(ref, dict) else data.get("cid")
        if not cid:
            return None
        return cls(
            cid=str(cid),
            mime_type=str(data.get("mimeType") or DEFAULT_MIME_TYPE),
            size=_parse_int(data.get("size")) or 0,
        )


@dataclass(slots=True, frozen=True)
class RecordValue:
    blob: BlobRef | None = None
    file_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    reason: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None

    @property
    def is_directory(self) -> bool:
        return self.reason == DIRECTORY_SENTINEL

    @classmethod
    def directory(cls, *, created_at: datetime | None = None) -> RecordValue:
        return cls(reason=DIRECTORY_SENTINEL, created_at=created_at or utc_now())

    def with_blob(self, blob: BlobRef, *, modified_at: datetime | None = None) -> RecordValue:
        return replace(
            self,
            blob=blob,
            file_size=blob.size,
            mime_type=blob.mime_type,
            modified_at=modified_at or utc_now(),
        )

    def to_json(self, collection: str = DEFAULT_COLLECTION) -> dict[str, Any]:
        payload: dict[str, Any] = {"$type": collection}
        if self.blob is not None:
            payload["blob"] = self.blob.to_json()

        file_info: dict[str, Any] = {}
        if self.file_name is not None:
            file_info["name"] = self.file_name
        if self.file_size is not None:
            file_info["size"] = self.file_size
        if self.mime_type is not None:
            file_info["mimeType"] = self.mime_type
        if self.modified_at is not None:
            file_info["modifiedAt"] = _format_datetime(self.modified_at)
        if file_info:
            payload["file"] = file_info

        if self.reason is not None:
            payload["meta"] = {"reason": self.reason}
        if self.created_at is not None:
            payload["createdAt"] = _format_datetime(self.created_at)
        return payload

    @classmethod
    def from_json(cls, data: Any) -> RecordValue:
        if not isinstance(data, dict):
            return cls()
        file_info = data.get("file") if isinstance(data.get("file"), dict) else {}
        meta = data.get("meta") if isinstance(data.get("meta"), dict) else {}
        return cls(
            blob=BlobRef.from_json(data.get("blob")),
            file_name=str(file_info["name"]) if file_info.get("name") else None,
            file_size=_parse_int(file_info.get("size")),
            mime_type=str(file_info["mimeType"]) if file_info.get("mimeType") else None,
            reason=str(meta["reason"]) if meta.get("reason") else None,
            created_at=_parse_datetime(data.get("createdAt")),
            modified_at=_parse_datetime(file_info.get("modifiedAt")),
        )


@dataclass(slots=True, frozen=True)
class StoredRecord:
    key: str
    value: RecordValue


@dataclass(slots=True, frozen=True)
class DirectoryEntry:
    key: str
    is_root: bool = False
    implicit: bool = False

    @property
    def name(self) -> str:
        if self.is_root:
            return "."
        return decode_key(file_name(self.key))

    @property
    def path(self) -> str:
        return decode_key(self.key)

    @property
    def is_deletable(self) -> bool:
        return not self.is_root


@dataclass(slots=True, frozen=True)
class FileEntry:
    key: str
    size: int
    blob: BlobRef | None = None
    display_name: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None

    @property
    def name(self) -> str:
        return self.display_name or decode_key(file_name(self.key))

    @property
    def path(self) -> str:
        return decode_key(self.key)


Entry = FileEntry | DirectoryEntry

ROOT_DIRECTORY = DirectoryEntry(key=ROOT_KEY, is_root=True)


def entry_from_record(key: str, value: RecordValue) -> Entry:
    """Turn a raw record into its entry type; the sentinel is read only here."""
    if value.is_directory:
        return DirectoryEntry(key=key)

    if value.file_size is not None:
        size = value.file_size
    elif value.blob is not None:
        size = value.blob.size
    else:
        size = 0
    return FileEntry(
        key=key,
        size=size,
        blob=value.blob,
        display_name=value.file_name,
        created_at=value.created_at,
        modified_at=value.modified_at or value.created_at,
    )
