from __future__ import annotations

import pytest

from rkeyfs.membership import ancestor_keys, direct_children, is_direct_child


@pytest.mark.parametrize(
    ("directory_key", "candidate_key", "expected"),
    [
        ("a", "a:b", True),
        ("a", "a:b:c", False),
        ("a", "a", False),
        ("a", "ab", False),
        ("a", "a:", False),
        ("a:", "a:b", True),
        ("a:b", "a:b:c", True),
        ("a:b", "a:bc:d", False),
        ("", "top.txt", True),
        ("", "docs:a.txt", False),
        ("", "", False),
    ],
)
def test_is_direct_child(directory_key: str, candidate_key: str, expected: bool) -> None:
    assert is_direct_child(directory_key, candidate_key) is expected


def test_direct_children_preserves_order() -> None:
    keys = ["zeta", "docs", "docs:b.txt", "docs:a.txt", "docs:sub:deep.txt", "alpha"]

    assert direct_children("", keys) == ["zeta", "docs", "alpha"]
    assert direct_children("docs", keys) == ["docs:b.txt", "docs:a.txt"]


def test_ancestor_keys() -> None:
    assert list(ancestor_keys("a:b:c.txt")) == ["a", "a:b"]
    assert list(ancestor_keys("top.txt")) == []
