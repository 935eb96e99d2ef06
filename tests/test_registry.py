"""Tests for the context registry."""

import threading
from pathlib import Path

import pytest

from deploy_runtime.core.exceptions import (
    ContextNotFoundError,
    DuplicatePathError,
    NotFoundError,
    PathInUseError,
)
from deploy_runtime.server.registry import ContextEntry, ContextRegistry


def entry(path: str) -> ContextEntry:
    return ContextEntry(path=path, location=Path("/srv/webapps") / (path.strip("/") or "ROOT"))


def test_insert_lookup_remove():
    registry = ContextRegistry()
    e = registry.insert(entry("/foo"))

    assert registry.lookup("/foo") is e
    assert "/foo" in registry
    assert len(registry) == 1
    assert e.reserved and not e.running

    assert registry.remove("/foo") is e
    assert registry.lookup("/foo") is None
    assert len(registry) == 0


def test_duplicate_insert_is_path_in_use():
    registry = ContextRegistry()
    registry.insert(entry("/foo"))

    with pytest.raises(DuplicatePathError):
        registry.insert(entry("/foo"))
    with pytest.raises(PathInUseError):
        registry.insert(entry("/foo"))


def test_remove_missing_is_not_found():
    registry = ContextRegistry()
    with pytest.raises(ContextNotFoundError):
        registry.remove("/missing")
    with pytest.raises(NotFoundError):
        registry.remove("/missing")


def test_resolve_longest_mount_path():
    registry = ContextRegistry()
    for path in ("/", "/shop", "/shop/admin"):
        registry.insert(entry(path))

    assert registry.resolve("/shop/admin/users").path == "/shop/admin"
    assert registry.resolve("/shop/cart").path == "/shop"
    assert registry.resolve("/shopping").path == "/"
    assert registry.resolve("/").path == "/"


def test_resolve_without_root_context():
    registry = ContextRegistry()
    registry.insert(entry("/shop"))
    assert registry.resolve("/shopping") is None


def test_entries_sorted_by_path():
    registry = ContextRegistry()
    for path in ("/b", "/a", "/c"):
        registry.insert(entry(path))
    assert [e.path for e in registry.entries()] == ["/a", "/b", "/c"]


def test_concurrent_inserts_exactly_one_wins():
    registry = ContextRegistry()
    workers = 16
    barrier = threading.Barrier(workers)
    wins, conflicts = [], []

    def attempt():
        barrier.wait()
        try:
            wins.append(registry.insert(entry("/foo")))
        except PathInUseError as exc:
            conflicts.append(exc)

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert len(wins) == 1
    assert len(conflicts) == workers - 1
    assert registry.lookup("/foo") is wins[0]


def test_claim_is_exclusive():
    registry = ContextRegistry()
    e = registry.insert(entry("/foo"))
    e.handle = object()  # any handle marks the entry as activated

    assert registry.claim("/foo") is e
    with pytest.raises(ContextNotFoundError):
        registry.claim("/foo")
    # Still registered until the claimant removes it
    with pytest.raises(PathInUseError):
        registry.insert(entry("/foo"))

    registry.unclaim(e)
    assert registry.claim("/foo") is e


def test_claim_skips_reservations():
    registry = ContextRegistry()
    registry.insert(entry("/foo"))
    with pytest.raises(NotFoundError):
        registry.claim("/foo")


def test_remove_expected_leaves_newer_entry_alone():
    registry = ContextRegistry()
    old = registry.insert(entry("/foo"))
    registry.remove("/foo", expected=old)
    new = registry.insert(entry("/foo"))

    with pytest.raises(ContextNotFoundError):
        registry.remove("/foo", expected=old)
    assert registry.lookup("/foo") is new
    assert registry.remove("/foo", expected=new) is new
