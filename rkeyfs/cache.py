from __future__ import annotations

import asyncio
import logging
from enum import Enum
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

from rkeyfs.membership import ancestor_keys, direct_children, is_direct_child
from rkeyfs.models import DirectoryEntry, Entry, FileEntry, StoredRecord, entry_from_record
from rkeyfs.rkeys import SEPARATOR, combine, decode_key, encode_path, is_valid_key
from rkeyfs.store import DEFAULT_LIST_LIMIT, RecordKeyStore


logger = logging.getLogger(__name__)

Snapshot = Mapping[str, Entry]
LookupStrategy = Callable[[Snapshot, str, str], "Entry | None"]


class CacheState(str, Enum):
    EMPTY = "empty"
    POPULATED = "populated"


def build_snapshot(records: Iterable[StoredRecord]) -> Snapshot:
    """Index one full listing by key, keeping the listing order.

    Directories that have no sentinel record but hold deeper keys are added
    as implicit entries ahead of their first descendant.
    """
    entries: dict[str, Entry] = {}
    for record in records:
        for ancestor in ancestor_keys(record.key):
            if ancestor not in entries:
                entries[ancestor] = DirectoryEntry(key=ancestor, implicit=True)
        entries[record.key] = entry_from_record(record.key, record.value)
    return MappingProxyType(entries)


def _lookup_escaped_key(snapshot: Snapshot, directory_key: str, name: str) -> Entry | None:
    return snapshot.get(combine(directory_key, encode_path(name)))


def _lookup_verbatim_key(snapshot: Snapshot, directory_key: str, name: str) -> Entry | None:
    if SEPARATOR in name or not is_valid_key(name):
        return None
    # A name holding an escape sequence is the escaped form of another name.
    if decode_key(name) != name:
        return None
    return snapshot.get(combine(directory_key, name))


def _lookup_display_name(snapshot: Snapshot, directory_key: str, name: str) -> Entry | None:
    for key, entry in snapshot.items():
        if (
            isinstance(entry, FileEntry)
            and entry.display_name == name
            and is_direct_child(directory_key, key)
        ):
            return entry
    return None


# Tried in order. Only the first one matches records written by this package;
# the others find records stored under unescaped keys or under keys unrelated
# to their file name.
# TODO: remove the verbatim and display-name strategies once stored records
# have been migrated to escaped keys.
LOOKUP_STRATEGIES: tuple[LookupStrategy, ...] = (
    _lookup_escaped_key,
    _lookup_verbatim_key,
    _lookup_display_name,
)


class EntryCache:
    """Snapshot of one account's records, shared by a single session.

    The cache is either EMPTY or POPULATED. Any read populates it with one
    full listing; ``invalidate`` empties it. Population runs under a lock so
    concurrent readers of an empty cache wait for a single listing.
    """

    def __init__(
        self,
        store: RecordKeyStore,
        account_id: str,
        *,
        list_limit: int = DEFAULT_LIST_LIMIT,
    ) -> None:
        if list_limit < 1:
            raise ValueError("list_limit must be >= 1")

        self._store = store
        self._account_id = account_id
        self._list_limit = list_limit
        self._lock = asyncio.Lock()
        self._snapshot: Snapshot | None = None
        self._generation = 0
        self.list_calls = 0

    @property
    def state(self) -> CacheState:
        return CacheState.EMPTY if self._snapshot is None else CacheState.POPULATED

    async def _ensure_snapshot(self) -> Snapshot:
        async with self._lock:
            if self._snapshot is not None:
                return self._snapshot

            generation = self._generation
            self.list_calls += 1
            records = await self._store.list_records(self._account_id, self._list_limit)
            snapshot = build_snapshot(records)
            # An invalidation during the listing means the result may already
            # be stale: hand it to the waiting readers but do not keep it.
            if generation == self._generation:
                self._snapshot = snapshot
            else:
                logger.debug("entry_cache discard stale snapshot account=%s", self._account_id)

            logger.info(
                "entry_cache populate account=%s records=%d entries=%d",
                self._account_id,
                len(records),
                len(snapshot),
            )
            return snapshot

    async def list_directory(self, directory_key: str) -> list[Entry]:
        snapshot = await self._ensure_snapshot()
        return [snapshot[key] for key in direct_children(directory_key, snapshot)]

    async def get(self, key: str) -> Entry | None:
        snapshot = await self._ensure_snapshot()
        return snapshot.get(key)

    async def find(self, directory_key: str, name: str) -> Entry | None:
        snapshot = await self._ensure_snapshot()
        for index, strategy in enumerate(LOOKUP_STRATEGIES):
            entry = strategy(snapshot, directory_key, name)
            if entry is None:
                continue
            if index > 0:
                logger.info(
                    "entry_cache legacy lookup strategy=%s directory=%s name=%s key=%s",
                    strategy.__name__,
                    directory_key,
                    name,
                    entry.key,
                )
            return entry
        return None

    def invalidate(self) -> None:
        self._snapshot = None
        self._generation += 1
        logger.debug("entry_cache invalidate account=%s", self._account_id)
