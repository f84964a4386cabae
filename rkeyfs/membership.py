from __future__ import annotations

from typing import Iterable, Iterator

from rkeyfs.rkeys import ROOT_KEY, SEPARATOR


def is_direct_child(directory_key: str, candidate_key: str) -> bool:
    """True when ``candidate_key`` sits exactly one level below ``directory_key``.

    The root directory key is ``""``; its direct children are the non-empty
    keys without any separator.
    """
    directory_key = directory_key.rstrip(SEPARATOR)
    if not candidate_key or candidate_key == directory_key:
        return False

    if directory_key == ROOT_KEY:
        return SEPARATOR not in candidate_key

    prefix = f"{directory_key}{SEPARATOR}"
    if not candidate_key.startswith(prefix) or len(candidate_key) == len(prefix):
        return False
    return SEPARATOR not in candidate_key[len(prefix):]


def direct_children(directory_key: str, keys: Iterable[str]) -> list[str]:
    return [key for key in keys if is_direct_child(directory_key, key)]


def ancestor_keys(key: str) -> Iterator[str]:
    """Yield every proper ancestor directory key of ``key``, outermost first.

    The root key is not yielded.
    """
    parts = key.split(SEPARATOR)
    for depth in range(1, len(parts)):
        ancestor = SEPARATOR.join(parts[:depth])
        if parts[depth - 1]:
            yield ancestor
