from __future__ import annotations
from typing import Optional, Dict, Any, Iterator, List
import contextlib, json, sqlite3, os, threading
from sigvault_core.algorithms import SignatureAlgorithm
from sigvault_core.errors import DuplicateKeyId, StoreUnavailable
from sigvault_core.logger import get_logger
from sigvault_core.storage.provider import StorageProvider
from sigvault_core.storage.models import KeyMetadata, KeyRecord
from sigvault_core.utils import canonical_json, now_ts

log = get_logger("SigVault.Store.SQLite")

_KEY_COLUMNS = (
    "key_id, name, algorithm, created_at, public_key_pem, "
    "private_key_envelope, pub_key_fpr, keychain_wrapped"
)


class SQLiteStorage(StorageProvider):
    """
    Durable key store backed by a single SQLite file.

    - one short-lived connection per operation, closed on return, so no
      connection outlives the thread that opened it
    - WAL journaling: readers never block on (or observe) an uncommitted insert
    - writes serialized by a process-wide lock, each in one transaction
    - listing order is insertion order (AUTOINCREMENT sequence)
    """

    def __init__(self, path="db/sigvault.db"):
        # If no directory, default to current working directory
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        self.path = path
        self._write_lock = threading.Lock()
        self._open = 0
        self._open_lock = threading.Lock()

        self._init()

    @property
    def open_connections(self) -> int:
        return self._open

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            db = sqlite3.connect(self.path, timeout=30)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open key store at {self.path}: {e}") from e
        with self._open_lock:
            self._open += 1
        try:
            yield db
        finally:
            db.close()
            with self._open_lock:
                self._open -= 1

    def _init(self) -> None:
        try:
            with self._connect() as db:
                db.execute("PRAGMA journal_mode=WAL")
                with self._write_lock, db:
                    db.execute("""CREATE TABLE IF NOT EXISTS keys(
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        key_id TEXT NOT NULL UNIQUE,
                        name TEXT NOT NULL,
                        algorithm TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        public_key_pem TEXT NOT NULL,
                        private_key_envelope BLOB NOT NULL,
                        pub_key_fpr TEXT NOT NULL,
                        keychain_wrapped INTEGER NOT NULL DEFAULT 0
                    )""")
                    db.execute("CREATE INDEX IF NOT EXISTS keys_fpr ON keys(pub_key_fpr)")
                    db.execute("""CREATE TABLE IF NOT EXISTS audit(
                        ts TEXT,
                        event_type TEXT,
                        payload TEXT
                    )""")
        except sqlite3.Error as e:
            log.error(f"[STORE] init failed path={self.path}: {e}")
            raise StoreUnavailable(f"Key store at {self.path} is unavailable or corrupted: {e}") from e

    @staticmethod
    def _to_record(row) -> KeyRecord:
        key_id, name, algorithm, created_at, pem, envelope, fpr, wrapped = row
        try:
            alg = SignatureAlgorithm(algorithm)
        except ValueError as e:
            raise StoreUnavailable(f"Corrupted key record {key_id}: unknown algorithm") from e
        return KeyRecord(
            key_id=key_id,
            name=name,
            algorithm=alg,
            created_at=created_at,
            public_key_pem=pem,
            private_key_envelope=bytes(envelope),
            pub_key_fpr=fpr,
            keychain_wrapped=bool(wrapped),
        )

    def _fetch(self, sql: str, params: tuple = ()):
        try:
            with self._connect() as db:
                return db.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            log.error(f"[STORE] read failed: {e}")
            raise StoreUnavailable(f"Key store read failed: {e}") from e

    # --- Keys ---

    def create_key(self, rec: KeyRecord) -> None:
        row = rec.to_row()
        with self._connect() as db, self._write_lock:
            try:
                with db:
                    exists = db.execute("SELECT 1 FROM keys WHERE key_id=?", (rec.key_id,)).fetchone()
                    if exists:
                        raise DuplicateKeyId(rec.key_id)
                    db.execute(
                        f"INSERT INTO keys({_KEY_COLUMNS}) VALUES(?,?,?,?,?,?,?,?)",
                        tuple(row.values()),
                    )
            except sqlite3.IntegrityError as e:
                raise DuplicateKeyId(rec.key_id) from e
            except sqlite3.Error as e:
                log.error(f"[STORE] insert failed key_id={rec.key_id}: {e}")
                raise StoreUnavailable(f"Key store write failed: {e}") from e
        log.debug(f"[STORE] inserted key_id={rec.key_id}")

    def get_key(self, key_id: str) -> Optional[KeyRecord]:
        rows = self._fetch(f"SELECT {_KEY_COLUMNS} FROM keys WHERE key_id=?", (key_id,))
        return self._to_record(rows[0]) if rows else None

    def fetch_by_fingerprint(self, fpr: str) -> Optional[KeyRecord]:
        rows = self._fetch(
            f"SELECT {_KEY_COLUMNS} FROM keys WHERE pub_key_fpr=? ORDER BY seq LIMIT 1", (fpr,)
        )
        return self._to_record(rows[0]) if rows else None

    def list_keys(self) -> List[KeyMetadata]:
        rows = self._fetch("SELECT key_id, name, algorithm, created_at FROM keys ORDER BY seq")
        out = []
        for key_id, name, algorithm, created_at in rows:
            try:
                alg = SignatureAlgorithm(algorithm)
            except ValueError as e:
                raise StoreUnavailable(f"Corrupted key record {key_id}: unknown algorithm") from e
            out.append(KeyMetadata(key_id=key_id, name=name, algorithm=alg, created_at=created_at))
        return out

    # --- Audit ---

    def log_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        with self._connect() as db, self._write_lock:
            try:
                with db:
                    db.execute(
                        "INSERT INTO audit(ts,event_type,payload) VALUES(?,?,?)",
                        (now_ts(), event_type, canonical_json(payload).decode("utf-8")),
                    )
            except sqlite3.Error as e:
                raise StoreUnavailable(f"Audit write failed: {e}") from e

    def list_events(self) -> List[Dict[str, Any]]:
        rows = self._fetch("SELECT ts, event_type, payload FROM audit ORDER BY rowid")
        return [
            {"ts": ts, "event_type": event_type, "payload": json.loads(payload)}
            for ts, event_type, payload in rows
        ]

    def healthz(self) -> dict:
        self._fetch("SELECT 1")
        return {"status": "ok", "provider": "sqlite", "path": self.path, "open_connections": self._open}

    def close(self):
        # connections are closed per operation; only in-flight ones remain
        if self._open:
            log.warning(f"[STORE] close with {self._open} connection(s) still in use path={self.path}")
