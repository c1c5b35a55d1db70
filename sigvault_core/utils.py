"""
sigvault_core.utils
-------------------
Lightweight helpers for key id generation, timestamping, fingerprints and
canonical JSON serialization.
"""

from __future__ import annotations
import json, uuid, hashlib
from datetime import datetime, timezone
from typing import Any, Dict


def now_ts() -> str:
    # RFC3339 / ISO 8601 in UTC, microsecond precision
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

def new_key_id() -> str:
    return str(uuid.uuid4())

def normalize_key_id(key_id: Any) -> str:
    """Return the canonical text form of a key id; raise ValueError if it is not a UUID."""
    if isinstance(key_id, uuid.UUID):
        return str(key_id)
    return str(uuid.UUID(str(key_id).strip()))

def canonical_json(obj: Dict[str, Any]) -> bytes:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")

def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()

def compute_pubkey_fingerprint(spki_der: bytes) -> str:
    """
    Compute a stable fingerprint for a public key.

    - Input: SubjectPublicKeyInfo DER bytes
    - Output: hex-encoded SHA256 hash (truncated to 32 chars for readability)
    """
    return sha256(spki_der)[:32]
