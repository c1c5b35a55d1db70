# sigvault_core/storage/provider.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

from sigvault_core.errors import KeyNotFound
from sigvault_core.storage.models import KeyMetadata, KeyRecord


class StorageProvider:
    # Interface
    def create_key(self, rec: KeyRecord) -> None: ...
    def get_key(self, key_id: str) -> Optional[KeyRecord]: ...
    def list_keys(self) -> List[KeyMetadata]: ...
    def fetch_by_fingerprint(self, fpr: str) -> Optional[KeyRecord]: ...
    def log_event(self, event_type: str, payload: Dict[str, Any]) -> None: ...
    def list_events(self) -> List[Dict[str, Any]]: ...
    def close(self) -> None: ...

    def require_key(self, key_id: str) -> KeyRecord:
        rec = self.get_key(key_id)
        if rec is None:
            raise KeyNotFound(key_id)
        return rec

    def healthz(self) -> dict:
        return {"status": "ok", "provider": type(self).__name__}
