from __future__ import annotations

from datetime import datetime, timezone

from rkeyfs.models import (
    DEFAULT_COLLECTION,
    DIRECTORY_SENTINEL,
    BlobRef,
    DirectoryEntry,
    FileEntry,
    RecordValue,
    entry_from_record,
)


def test_directory_record_serializes_sentinel() -> None:
    created = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    value = RecordValue.directory(created_at=created)

    payload = value.to_json()

    assert payload == {
        "$type": DEFAULT_COLLECTION,
        "meta": {"reason": DIRECTORY_SENTINEL},
        "createdAt": "2025-03-01T12:00:00Z",
    }
    assert RecordValue.from_json(payload).is_directory


def test_file_record_parses_remote_layout() -> None:
    value = RecordValue.from_json(
        {
            "$type": DEFAULT_COLLECTION,
            "blob": {
                "$type": "blob",
                "ref": {"$link": "bafkreiabc"},
                "mimeType": "text/plain",
                "size": 11,
            },
            "file": {
                "name": "Notes.txt",
                "size": 11,
                "mimeType": "text/plain",
                "modifiedAt": "2025-03-01T12:30:00.000Z",
            },
            "createdAt": "2025-03-01T12:00:00Z",
        }
    )

    assert value.blob == BlobRef(cid="bafkreiabc", mime_type="text/plain", size=11)
    assert value.file_name == "Notes.txt"
    assert value.file_size == 11
    assert value.modified_at == datetime(2025, 3, 1, 12, 30, tzinfo=timezone.utc)
    assert not value.is_directory


def test_legacy_blob_with_bare_cid() -> None:
    blob = BlobRef.from_json({"cid": "bafylegacy", "mimeType": "image/png"})

    assert blob == BlobRef(cid="bafylegacy", mime_type="image/png", size=0)
    assert BlobRef.from_json({"mimeType": "image/png"}) is None
    assert BlobRef.from_json(None) is None


def test_entry_from_record_discriminates_on_sentinel() -> None:
    directory = entry_from_record("docs", RecordValue.directory())
    file_entry = entry_from_record(
        "docs:a.txt",
        RecordValue(blob=BlobRef(cid="c1", size=2), file_name="A.txt"),
    )

    assert isinstance(directory, DirectoryEntry)
    assert directory.name == "docs"
    assert isinstance(file_entry, FileEntry)
    assert file_entry.size == 2
    assert file_entry.name == "A.txt"
    assert file_entry.path == "docs/a.txt"


def test_file_entry_name_falls_back_to_decoded_key() -> None:
    entry = entry_from_record("docs:my_0020file.txt", RecordValue(file_size=5))

    assert isinstance(entry, FileEntry)
    assert entry.name == "my file.txt"
    assert entry.size == 5
    assert entry.blob is None


def test_unparseable_values_become_empty_records() -> None:
    value = RecordValue.from_json({"file": "nope", "createdAt": "not a date"})

    assert value == RecordValue()
    assert RecordValue.from_json(None) == RecordValue()


def test_non_numeric_sizes_are_ignored() -> None:
    value = RecordValue.from_json(
        {
            "blob": {"ref": {"$link": "bafyodd"}, "size": "huge"},
            "file": {"name": "x", "size": "12kb"},
        }
    )

    assert value.file_name == "x"
    assert value.file_size is None
    assert value.blob == BlobRef(cid="bafyodd", size=0)
    assert RecordValue.from_json({"file": {"size": "7"}}).file_size == 7
    assert entry_from_record("x", value).size == 0
