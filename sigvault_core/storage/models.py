# sigvault_core/storage/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict

from sigvault_core.algorithms import SignatureAlgorithm


@dataclass(frozen=True)
class KeyMetadata:
    """Listing view of a key record: no public key, no envelope."""
    key_id: str
    name: str
    algorithm: SignatureAlgorithm
    created_at: str


@dataclass(frozen=True)
class KeyRecord:
    """
    Storage-level representation of a vault key pair.

    This is intentionally storage-agnostic and can be used by any provider
    (SQLite, memory, ...). `private_key_envelope` is the opaque encrypted
    blob exactly as persisted; it is never decrypted by the store.
    """
    key_id: str
    name: str
    algorithm: SignatureAlgorithm
    created_at: str
    public_key_pem: str
    private_key_envelope: bytes = field(repr=False)
    pub_key_fpr: str = ""
    keychain_wrapped: bool = False

    @property
    def metadata(self) -> KeyMetadata:
        return KeyMetadata(
            key_id=self.key_id,
            name=self.name,
            algorithm=self.algorithm,
            created_at=self.created_at,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "key_id": self.key_id,
            "name": self.name,
            "algorithm": self.algorithm.value,
            "created_at": self.created_at,
            "public_key_pem": self.public_key_pem,
            "private_key_envelope": self.private_key_envelope,
            "pub_key_fpr": self.pub_key_fpr,
            "keychain_wrapped": int(self.keychain_wrapped),
        }
