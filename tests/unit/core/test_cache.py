from __future__ import annotations

from envdiscovery import DiskStore, MemoryStore, NoOpStore, Store


def test_disk_store_round_trip(tmp_path):
    store = DiskStore(tmp_path)
    assert store.get("missing", default=[]) == []
    store.set("complete", [{"path": "/p"}])
    assert DiskStore(tmp_path).get("complete") == [{"path": "/p"}]
    assert (tmp_path / "envs" / "1" / "state.json").exists()


def test_disk_store_discards_malformed_file(tmp_path):
    store = DiskStore(tmp_path, name="broken")
    target = tmp_path / "envs" / "1" / "broken.json"
    target.parent.mkdir(parents=True)
    target.write_text("{not json")
    assert store.get("complete") is None
    assert not target.exists()


def test_disk_store_discards_non_object(tmp_path):
    store = DiskStore(tmp_path)
    target = tmp_path / "envs" / "1" / "state.json"
    target.parent.mkdir(parents=True)
    target.write_text("[1, 2]")
    assert store.get("complete", "default") == "default"
    assert not target.exists()


def test_memory_store_copies_values():
    store = MemoryStore({"key": [1]})
    value = store.get("key")
    value.append(2)
    assert store.get("key") == [1]


def test_noop_store_forgets():
    store = NoOpStore()
    store.set("key", 1)
    assert store.get("key") is None


def test_stores_satisfy_protocol(tmp_path):
    for store in (DiskStore(tmp_path), MemoryStore(), NoOpStore()):
        assert isinstance(store, Store)
