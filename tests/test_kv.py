"""Namespaced key/value stores."""

from roundsync.storage.kv import DuckDBStore, MemoryStore


def test_memory_store_namespaces_do_not_collide():
    root = MemoryStore()
    a = root.namespace("a")
    b = root.namespace("b")
    a.set("k", [1, 2])
    b.set("k", {"x": 1})
    assert a.get("k") == [1, 2]
    assert b.get("k") == {"x": 1}
    assert root.get("k") is None
    assert a.namespace("inner").prefix == "a.inner"
    a.delete("k")
    assert a.get("k", "missing") == "missing"


def test_duckdb_store_overwrites_and_persists(temp_db):
    store = DuckDBStore(temp_db, "roundsync").namespace("outcome")
    assert store.prefix == "roundsync.outcome"
    store.set("dismissed_bet_ids", ["a"])
    store.set("dismissed_bet_ids", ["a", "b"])
    assert DuckDBStore(temp_db, "roundsync.outcome").get("dismissed_bet_ids") == ["a", "b"]
    store.delete("dismissed_bet_ids")
    assert store.get("dismissed_bet_ids") is None
