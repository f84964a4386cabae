from __future__ import annotations

import hashlib
import logging
from typing import Protocol

from rkeyfs.errors import RemoteFailure
from rkeyfs.models import DEFAULT_MIME_TYPE, BlobRef, RecordValue, StoredRecord


DEFAULT_LIST_LIMIT = 1000

logger = logging.getLogger(__name__)


class RecordKeyStore(Protocol):
    """Remote flat record store consumed by the virtual file system.

    Every method may raise ``RemoteFailure``.
    """

    async def list_records(self, account_id: str, limit: int = DEFAULT_LIST_LIMIT) -> list[StoredRecord]:
        ...

    async def get_record(self, account_id: str, key: str) -> RecordValue | None:
        ...

    async def put_record(self, account_id: str, key: str, value: RecordValue) -> None:
        ...

    async def delete_record(self, account_id: str, key: str) -> None:
        ...

    async def upload_blob(self, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> BlobRef:
        ...

    async def download_blob(self, account_id: str, blob: BlobRef) -> bytes:
        ...


class MemoryRecordStore:
    """In-process record store with one namespace per account.

    Records are listed in key order, like the remote service does.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict[str, RecordValue]] = {}
        self._blobs: dict[str, bytes] = {}
        self.list_calls = 0

    def _account(self, account_id: str) -> dict[str, RecordValue]:
        return self._records.setdefault(account_id, {})

    async def list_records(self, account_id: str, limit: int = DEFAULT_LIST_LIMIT) -> list[StoredRecord]:
        self.list_calls += 1
        records = self._account(account_id)
        return [StoredRecord(key=key, value=records[key]) for key in sorted(records)[:limit]]

    async def get_record(self, account_id: str, key: str) -> RecordValue | None:
        return self._account(account_id).get(key)

    async def put_record(self, account_id: str, key: str, value: RecordValue) -> None:
        if value.blob is not None and value.blob.cid not in self._blobs:
            raise RemoteFailure(f"Could not find blob: {value.blob.cid}", status_code=400, error="BlobNotFound")
        self._account(account_id)[key] = value
        logger.debug("memory_store put account=%s key=%s", account_id, key)

    async def delete_record(self, account_id: str, key: str) -> None:
        self._account(account_id).pop(key, None)
        logger.debug("memory_store delete account=%s key=%s", account_id, key)

    async def upload_blob(self, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> BlobRef:
        cid = hashlib.sha256(data).hexdigest()
        self._blobs[cid] = bytes(data)
        return BlobRef(cid=cid, mime_type=mime_type, size=len(data))

    async def download_blob(self, account_id: str, blob: BlobRef) -> bytes:
        try:
            return self._blobs[blob.cid]
        except KeyError:
            raise RemoteFailure(f"Blob not found: {blob.cid}", status_code=404, error="BlobNotFound") from None
