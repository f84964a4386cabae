from __future__ import annotations

import re

from rkeyfs.errors import InvalidPath, KeyTooLong


SEPARATOR = ":"
ESCAPE_PREFIX = "_"
ROOT_KEY = ""
MAX_KEY_LENGTH = 512

# `:` and `_` are control characters of the key format. `~` is accepted by
# record stores but rejected by some of them at write time, so it is escaped.
_NEEDS_ESCAPE_RE = re.compile(r"[^a-z0-9.\-]")
_ESCAPE_RE = re.compile(r"_([0-9a-fA-F]{4})")
_KEY_ALPHABET_RE = re.compile(r"[A-Za-z0-9.\-_:~]*")


def _normalize_separators(path: str) -> str:
    normalized = path.replace("\\", "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    if normalized.startswith("/"):
        normalized = normalized[1:]
    return normalized.rstrip("/")


def canonicalize_path(path: str) -> str:
    """Return the form of ``path`` that ``decode_key(encode_path(path))`` reproduces."""
    if SEPARATOR in path:
        raise InvalidPath(f"`{SEPARATOR}` character not allowed in file path: {path!r}")

    normalized = _normalize_separators(path)
    if any(segment == ".." for segment in normalized.split("/")):
        raise InvalidPath(f"Backwards directory navigation not supported: {path!r}")
    return normalized.lower()


def split_path(path: str) -> tuple[str, str]:
    """Split a path into its parent path and last segment, keeping the case."""
    normalized = _normalize_separators(path)
    if "/" not in normalized:
        return "", normalized
    parent, name = normalized.rsplit("/", 1)
    return parent, name


def _escape_code_units(char: str) -> str:
    units = char.encode("utf-16-be", "surrogatepass")
    return "".join(
        f"{ESCAPE_PREFIX}{int.from_bytes(units[i:i + 2], 'big'):04x}"
        for i in range(0, len(units), 2)
    )


def _escape_segment(segment: str) -> str:
    return _NEEDS_ESCAPE_RE.sub(lambda match: _escape_code_units(match.group(0)), segment)


def encode_path(path: str) -> str:
    """Encode a file path as a record key.

    The empty path (and ``/`` or ``./``) encodes to the root key ``""``.
    """
    canonical = canonicalize_path(path)
    if not canonical:
        return ROOT_KEY

    key = SEPARATOR.join(_escape_segment(segment) for segment in canonical.split("/"))
    if len(key) > MAX_KEY_LENGTH:
        raise KeyTooLong(
            f"File path too long: encoded key has {len(key)} characters, limit is {MAX_KEY_LENGTH}"
        )
    return key


def decode_key(key: str) -> str:
    if not is_valid_key(key, check_length=False):
        raise InvalidPath(f"Not a record key: {key!r}")

    path = key.replace(SEPARATOR, "/")
    # A `_` not followed by four hex digits is left alone; older keys were
    # written without escaping.
    path = _ESCAPE_RE.sub(lambda match: chr(int(match.group(1), 16)), path)
    # Escapes carry UTF-16 code units, so surrogate pairs are joined here.
    return path.encode("utf-16-be", "surrogatepass").decode("utf-16-be", "surrogatepass")


def is_valid_key(key: str, *, check_length: bool = True) -> bool:
    if check_length and len(key) > MAX_KEY_LENGTH:
        return False
    return _KEY_ALPHABET_RE.fullmatch(key) is not None


def file_name(key: str) -> str:
    index = key.rfind(SEPARATOR)
    if -1 < index < len(key) - 1:
        return key[index + 1:]
    return key


def combine(first: str | None, second: str | None) -> str:
    """Join two key parts with exactly one separator."""
    if not first:
        return second or ""
    if not second:
        return first
    return f"{first.rstrip(SEPARATOR)}{SEPARATOR}{second}"
