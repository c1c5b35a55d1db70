from typing import Optional, Dict, Any, List
import threading
from sigvault_core.errors import DuplicateKeyId
from sigvault_core.storage.models import KeyMetadata, KeyRecord
from sigvault_core.storage.provider import StorageProvider
from sigvault_core.utils import now_ts


class InMemoryStorage(StorageProvider):
    def __init__(self):
        self.keys: Dict[str, KeyRecord] = {}   # dicts keep insertion order
        self.audit: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def create_key(self, rec: KeyRecord) -> None:
        with self._lock:
            if rec.key_id in self.keys:
                raise DuplicateKeyId(rec.key_id)
            self.keys[rec.key_id] = rec

    def get_key(self, key_id: str) -> Optional[KeyRecord]:
        return self.keys.get(key_id)

    def fetch_by_fingerprint(self, fpr: str) -> Optional[KeyRecord]:
        with self._lock:
            return next((rec for rec in self.keys.values() if rec.pub_key_fpr == fpr), None)

    def list_keys(self) -> List[KeyMetadata]:
        with self._lock:
            return [rec.metadata for rec in self.keys.values()]

    # audit
    def log_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self.audit.append({"ts": now_ts(), "event_type": event_type, "payload": dict(payload)})

    def list_events(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self.audit)

    def healthz(self) -> dict:
        return {"status": "ok", "provider": "memory"}

    def close(self) -> None:
        return
