from __future__ import annotations

import pytest

from rkeyfs.errors import InvalidPath, KeyTooLong
from rkeyfs.rkeys import (
    MAX_KEY_LENGTH,
    canonicalize_path,
    combine,
    decode_key,
    encode_path,
    file_name,
    is_valid_key,
    split_path,
)


def test_encode_escapes_space_and_translates_separator() -> None:
    key = encode_path("a b/c.txt")

    assert key == "a_0020b:c.txt"
    assert decode_key(key) == "a b/c.txt"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("docs/readme.md", "docs:readme.md"),
        ("./docs/readme.md", "docs:readme.md"),
        ("/docs/readme.md", "docs:readme.md"),
        ("docs\\readme.md", "docs:readme.md"),
        ("docs/", "docs"),
        ("Docs/Report.PDF", "docs:report.pdf"),
        ("under_score", "under_005fscore"),
        ("tilde~", "tilde_007e"),
        ("a..b", "a..b"),
    ],
)
def test_encode_path_normalizes(path: str, expected: str) -> None:
    assert encode_path(path) == expected


@pytest.mark.parametrize("path", ["", "/", "./"])
def test_empty_path_encodes_to_root_key(path: str) -> None:
    assert encode_path(path) == ""


@pytest.mark.parametrize("path", ["a:b", "../etc/passwd", "a/../b", "a/.."])
def test_encode_rejects_unsafe_paths(path: str) -> None:
    with pytest.raises(InvalidPath):
        encode_path(path)


def test_encode_enforces_max_key_length() -> None:
    assert len(encode_path("a" * MAX_KEY_LENGTH)) == MAX_KEY_LENGTH

    with pytest.raises(KeyTooLong):
        encode_path("a" * (MAX_KEY_LENGTH + 1))

    # Each escaped character costs five key characters.
    with pytest.raises(KeyTooLong):
        encode_path("é" * 103)


def test_key_too_long_is_an_invalid_path() -> None:
    assert issubclass(KeyTooLong, InvalidPath)


def test_non_bmp_characters_use_surrogate_escapes() -> None:
    key = encode_path("smile-\U0001F600.txt")

    assert key == "smile-_d83d_de00.txt"
    assert decode_key(key) == "smile-\U0001F600.txt"


@pytest.mark.parametrize(
    "path",
    [
        "plain.txt",
        "With Spaces/and CAPS.txt",
        "ümlaut/naïve café.md",
        "日本語/ファイル.txt",
        "symbols !@#$%^&()+=,;'[]{}.bin",
        "under_score/_0041_literal",
        "emoji/\U0001F680 launch.png",
        "a//b",
    ],
)
def test_decode_is_left_inverse_of_encode(path: str) -> None:
    assert decode_key(encode_path(path)) == canonicalize_path(path)


def test_encoded_keys_are_lowercase_ascii() -> None:
    key = encode_path("Ünïcode/Näme With SPACES.TXT")

    assert key.isascii()
    assert key == key.lower()
    assert is_valid_key(key)


def test_decode_keeps_unescaped_underscores_literally() -> None:
    assert decode_key("legacy_name") == "legacy_name"
    assert decode_key("Report_v2.PDF") == "Report_v2.PDF"


def test_decode_rejects_keys_outside_alphabet() -> None:
    with pytest.raises(InvalidPath):
        decode_key("not a key!")


def test_file_name() -> None:
    assert file_name("a:b:c.txt") == "c.txt"
    assert file_name("c.txt") == "c.txt"
    assert file_name("a:") == "a:"
    assert file_name("") == ""


def test_combine() -> None:
    assert combine("", "child") == "child"
    assert combine(None, "child") == "child"
    assert combine("parent", "") == "parent"
    assert combine("parent", "child") == "parent:child"
    assert combine("parent:", "child") == "parent:child"


def test_split_path_keeps_case() -> None:
    assert split_path("Docs/Read Me.TXT") == ("Docs", "Read Me.TXT")
    assert split_path("/top.txt") == ("", "top.txt")
    assert split_path("./a/b/c") == ("a/b", "c")
