import threading

import pytest

from sigvault_core.algorithms import SignatureAlgorithm
from sigvault_core.errors import DuplicateKeyId, InvalidInput, KeyNotFound, StoreUnavailable
from sigvault_core.storage import (
    InMemoryStorage,
    KeyRecord,
    SQLiteStorage,
    load_storage_provider,
)
from sigvault_core.utils import new_key_id, now_ts


def _record(name="test-key", key_id=None, fpr=None):
    key_id = key_id or new_key_id()
    return KeyRecord(
        key_id=key_id,
        name=name,
        algorithm=SignatureAlgorithm.ED25519,
        created_at=now_ts(),
        public_key_pem="-----BEGIN PUBLIC KEY-----\nabcd\n-----END PUBLIC KEY-----\n",
        private_key_envelope=b"SVE1\x01\x03opaque",
        pub_key_fpr=fpr or key_id.replace("-", "")[:32],
    )


@pytest.fixture(params=["sqlite", "memory"])
def any_store(request, tmp_path):
    if request.param == "sqlite":
        s = SQLiteStorage(str(tmp_path / "state.db"))
    else:
        s = InMemoryStorage()
    yield s
    s.close()


def test_create_get_roundtrip(any_store):
    rec = _record()
    any_store.create_key(rec)
    got = any_store.get_key(rec.key_id)
    assert got == rec
    assert got.private_key_envelope == b"SVE1\x01\x03opaque"
    assert got.algorithm is SignatureAlgorithm.ED25519


def test_missing_key(any_store):
    assert any_store.get_key(new_key_id()) is None
    with pytest.raises(KeyNotFound):
        any_store.require_key(new_key_id())


def test_duplicate_key_id_rejected(any_store):
    rec = _record()
    any_store.create_key(rec)
    with pytest.raises(DuplicateKeyId):
        any_store.create_key(_record(name="other", key_id=rec.key_id))
    # the first record is untouched
    assert any_store.get_key(rec.key_id).name == "test-key"


def test_list_is_insertion_order_without_envelopes(any_store):
    names = ["zulu", "alpha", "mike"]
    recs = [_record(name=n) for n in names]
    for r in recs:
        any_store.create_key(r)
    listed = any_store.list_keys()
    assert [m.name for m in listed] == names
    assert [m.key_id for m in listed] == [r.key_id for r in recs]
    assert not hasattr(listed[0], "private_key_envelope")


def test_fetch_by_fingerprint(any_store):
    rec = _record(fpr="ab" * 16)
    any_store.create_key(rec)
    assert any_store.fetch_by_fingerprint("ab" * 16).key_id == rec.key_id
    assert any_store.fetch_by_fingerprint("cd" * 16) is None


def test_audit_events(any_store):
    any_store.log_event("key_generated", {"key_id": "k1"})
    any_store.log_event("document_signed", {"key_id": "k1", "document": "a.pdf"})
    events = any_store.list_events()
    assert [e["event_type"] for e in events] == ["key_generated", "document_signed"]
    assert events[1]["payload"] == {"key_id": "k1", "document": "a.pdf"}
    assert "T" in events[0]["ts"]


def test_sqlite_persists_across_reopen(tmp_path):
    path = str(tmp_path / "nested" / "vault.db")
    s = SQLiteStorage(path)
    rec = _record()
    s.create_key(rec)
    s.close()

    reopened = SQLiteStorage(path)
    assert reopened.get_key(rec.key_id) == rec
    assert [m.key_id for m in reopened.list_keys()] == [rec.key_id]
    reopened.close()


def test_sqlite_schema_exists(store):
    with store._connect() as db:
        cols = {row[1] for row in db.execute("PRAGMA table_info(keys)").fetchall()}
    expected = {
        "key_id", "name", "algorithm", "created_at", "public_key_pem",
        "private_key_envelope", "pub_key_fpr", "keychain_wrapped",
    }
    assert expected <= cols


def test_corrupted_database_is_store_unavailable(tmp_path):
    path = tmp_path / "broken.db"
    path.write_bytes(b"this is not an sqlite database" * 200)
    with pytest.raises(StoreUnavailable):
        SQLiteStorage(str(path))


def test_unknown_algorithm_row_is_store_unavailable(store):
    rec = _record()
    store.create_key(rec)
    with store._connect() as db, db:
        db.execute("UPDATE keys SET algorithm='DSA' WHERE key_id=?", (rec.key_id,))
    with pytest.raises(StoreUnavailable):
        store.get_key(rec.key_id)
    with pytest.raises(StoreUnavailable):
        store.list_keys()


def test_concurrent_writers_and_readers(store):
    recs = [_record(name=f"k{i}") for i in range(40)]
    errors = []
    seen_counts = []

    def writer(chunk):
        try:
            for r in chunk:
                store.create_key(r)
        except Exception as e:  # surfaced through the assertion below
            errors.append(e)

    def reader():
        for _ in range(20):
            listed = store.list_keys()
            # every visible record must be complete
            for m in listed:
                assert store.get_key(m.key_id) is not None
            seen_counts.append(len(listed))

    threads = [threading.Thread(target=writer, args=(recs[i::4],)) for i in range(4)]
    threads.append(threading.Thread(target=reader))
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sorted(m.key_id for m in store.list_keys()) == sorted(r.key_id for r in recs)
    assert seen_counts and max(seen_counts) <= len(recs)


def test_short_lived_threads_leave_no_connections(store):
    store.create_key(_record())

    for _ in range(100):
        t = threading.Thread(target=store.list_keys)
        t.start()
        t.join()

    assert store.open_connections == 0
    assert store.healthz()["open_connections"] == 0


def test_connection_closed_when_operation_fails(store):
    rec = _record()
    store.create_key(rec)
    with pytest.raises(DuplicateKeyId):
        store.create_key(rec)
    assert store.open_connections == 0


def test_load_storage_provider_from_config(tmp_path):
    assert isinstance(load_storage_provider({"provider": "memory"}), InMemoryStorage)
    s = load_storage_provider({"provider": "sqlite", "sqlite_path": str(tmp_path / "cfg.db")})
    assert isinstance(s, SQLiteStorage)
    assert s.path.endswith("cfg.db")
    s.close()
    with pytest.raises(InvalidInput):
        load_storage_provider({"provider": "postgres"})


def test_load_storage_provider_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SIGVAULT_STORAGE_PROVIDER", "sqlite")
    monkeypatch.setenv("SIGVAULT_DB_PATH", str(tmp_path / "env.db"))
    s = load_storage_provider()
    assert isinstance(s, SQLiteStorage)
    assert s.healthz()["path"] == str(tmp_path / "env.db")
    s.close()

    monkeypatch.setenv("SIGVAULT_STORAGE_PROVIDER", "memory")
    assert isinstance(load_storage_provider(), InMemoryStorage)
