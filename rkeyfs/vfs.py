from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime

from rkeyfs.cache import EntryCache
from rkeyfs.errors import AlreadyExists, InvalidPath, KeyTooLong, NotFound, UnsupportedOperation
from rkeyfs.models import (
    DEFAULT_MIME_TYPE,
    ROOT_DIRECTORY,
    DirectoryEntry,
    Entry,
    FileEntry,
    RecordValue,
    utc_now,
)
from rkeyfs.rkeys import MAX_KEY_LENGTH, ROOT_KEY, combine, encode_path, split_path
from rkeyfs.store import DEFAULT_LIST_LIMIT, RecordKeyStore


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Capabilities:
    supports_append: bool = False
    supports_move: bool = False
    supports_non_empty_directory_delete: bool = False
    supports_set_times: bool = False


def _guess_mime_type(name: str) -> str:
    guessed, _ = mimetypes.guess_type(name, strict=False)
    return guessed or DEFAULT_MIME_TYPE


def _directory_from_key(key: str) -> DirectoryEntry:
    if key == ROOT_KEY:
        return ROOT_DIRECTORY
    return DirectoryEntry(key=key)


class VirtualFileSystem:
    """Hierarchical file system view over one account of a flat record store.

    One instance belongs to one authenticated session and owns its
    ``EntryCache``. Reads go through the cache; every successful mutation
    empties it so the next read lists the store again.
    """

    def __init__(
        self,
        store: RecordKeyStore,
        account_id: str,
        *,
        cache: EntryCache | None = None,
        list_limit: int = DEFAULT_LIST_LIMIT,
    ) -> None:
        if not account_id.strip():
            raise ValueError("account_id is empty.")

        self._store = store
        self.account_id = account_id
        self.cache = cache or EntryCache(store, account_id, list_limit=list_limit)
        self.capabilities = Capabilities()

    @property
    def root(self) -> DirectoryEntry:
        return ROOT_DIRECTORY

    def _child_key(self, directory: DirectoryEntry, name: str) -> str:
        segment = encode_path(name)
        if not segment:
            raise InvalidPath(f"Empty file name in directory {directory.key!r}")
        key = combine(directory.key, segment)
        if len(key) > MAX_KEY_LENGTH:
            raise KeyTooLong(
                f"File path too long: encoded key has {len(key)} characters, limit is {MAX_KEY_LENGTH}"
            )
        return key

    async def _refuse_other_kind(self, key: str, kind: type) -> None:
        existing = await self.cache.get(key)
        if existing is not None and not isinstance(existing, kind):
            raise AlreadyExists(f"A different kind of entry already exists at {existing.path}")

    async def list_entries(self, directory: DirectoryEntry) -> list[Entry]:
        return await self.cache.list_directory(directory.key)

    async def get_entry(self, directory: DirectoryEntry, name: str) -> Entry | None:
        return await self.cache.find(directory.key, name)

    async def resolve_path(self, path: str) -> Entry | None:
        key = encode_path(path)
        if key == ROOT_KEY:
            return self.root
        parent_path, name = split_path(path)
        parent = _directory_from_key(encode_path(parent_path))
        return await self.get_entry(parent, name)

    async def directory_for(self, path: str) -> DirectoryEntry:
        entry = await self.resolve_path(path)
        if entry is None:
            raise NotFound(f"No such directory: {path}")
        if not isinstance(entry, DirectoryEntry):
            raise NotFound(f"Not a directory: {path}")
        return entry

    async def create_directory(self, directory: DirectoryEntry, name: str) -> DirectoryEntry:
        key = self._child_key(directory, name)
        await self._refuse_other_kind(key, DirectoryEntry)
        await self._store.put_record(self.account_id, key, RecordValue.directory())
        self.cache.invalidate()
        logger.info("vfs mkdir account=%s key=%s", self.account_id, key)
        return DirectoryEntry(key=key)

    async def create_file(
        self,
        directory: DirectoryEntry,
        name: str,
        data: bytes,
        *,
        mime_type: str | None = None,
    ) -> FileEntry:
        key = self._child_key(directory, name)
        await self._refuse_other_kind(key, FileEntry)
        _, display_name = split_path(name)
        mime_type = mime_type or _guess_mime_type(display_name)

        blob = await self._store.upload_blob(bytes(data), mime_type)
        now = utc_now()
        value = RecordValue(
            blob=blob,
            file_name=display_name,
            file_size=len(data),
            mime_type=mime_type,
            created_at=now,
            modified_at=now,
        )
        await self._store.put_record(self.account_id, key, value)
        self.cache.invalidate()
        logger.info("vfs create account=%s key=%s size=%d", self.account_id, key, len(data))
        return FileEntry(
            key=key,
            size=len(data),
            blob=blob,
            display_name=display_name,
            created_at=now,
            modified_at=now,
        )

    async def replace_file(
        self,
        entry: FileEntry,
        data: bytes,
        *,
        mime_type: str | None = None,
    ) -> FileEntry:
        if not isinstance(entry, FileEntry):
            raise NotFound(f"Not a file: {entry.key}")

        current = await self._store.get_record(self.account_id, entry.key)
        if current is not None and current.is_directory:
            raise NotFound(f"Not a file: {entry.key}")
        if current is None:
            # Removed by another client since it was listed; last writer wins.
            current = RecordValue(file_name=entry.display_name, created_at=entry.created_at)

        mime_type = mime_type or current.mime_type or _guess_mime_type(entry.name)
        blob = await self._store.upload_blob(bytes(data), mime_type)
        value = current.with_blob(blob)
        await self._store.put_record(self.account_id, entry.key, value)
        self.cache.invalidate()
        logger.info("vfs replace account=%s key=%s size=%d", self.account_id, entry.key, len(data))
        return FileEntry(
            key=entry.key,
            size=blob.size,
            blob=blob,
            display_name=value.file_name,
            created_at=value.created_at,
            modified_at=value.modified_at,
        )

    async def open_read(self, entry: Entry, start_position: int = 0) -> bytes:
        if start_position < 0:
            raise ValueError("start_position must be >= 0")
        if isinstance(entry, DirectoryEntry):
            raise NotFound(f"Not a file: {entry.key}")

        value = await self._store.get_record(self.account_id, entry.key)
        if value is None:
            raise NotFound(f"No record for key: {entry.key}")
        if value.is_directory or value.blob is None:
            raise NotFound(f"Record has no blob: {entry.key}")

        data = await self._store.download_blob(self.account_id, value.blob)
        logger.debug("vfs read account=%s key=%s size=%d", self.account_id, entry.key, len(data))
        return data[start_position:]

    async def delete(self, entry: Entry) -> None:
        if isinstance(entry, DirectoryEntry):
            if not entry.is_deletable:
                raise UnsupportedOperation("delete", "the root directory cannot be deleted")
            if await self.cache.list_directory(entry.key):
                raise UnsupportedOperation("delete", f"directory is not empty: {entry.path}")

        await self._store.delete_record(self.account_id, entry.key)
        self.cache.invalidate()
        logger.info("vfs delete account=%s key=%s", self.account_id, entry.key)

    async def move(
        self,
        parent: DirectoryEntry,
        source: Entry,
        target: DirectoryEntry,
        file_name: str,
    ) -> Entry:
        raise UnsupportedOperation("move", "the record store has no atomic rename")

    async def append(self, entry: FileEntry, data: bytes, start_position: int | None = None) -> FileEntry:
        raise UnsupportedOperation("append")

    async def set_times(
        self,
        entry: Entry,
        *,
        modified: datetime | None = None,
        accessed: datetime | None = None,
        created: datetime | None = None,
    ) -> Entry:
        raise UnsupportedOperation("set_times")
