# sigvault_core/contracts.py

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidInput
from .storage.models import KeyMetadata, KeyRecord


class SignatureFormat(str, Enum):
    DETACHED = "detached"

    @classmethod
    def parse(cls, value) -> "SignatureFormat":
        if isinstance(value, SignatureFormat):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidInput(f"Unsupported signature format: {value}") from None


@dataclass
class SigningOptions:
    format: SignatureFormat = SignatureFormat.DETACHED

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SigningOptions":
        data = data or {}
        return cls(format=SignatureFormat.parse(data.get("format", SignatureFormat.DETACHED)))


@dataclass
class KeyInfo:
    """Descriptive information about a key pair, safe to show without a password."""
    key_id: str
    name: str
    algorithm: str
    created_at: str

    @classmethod
    def from_metadata(cls, meta: KeyMetadata) -> "KeyInfo":
        return cls(
            key_id=meta.key_id,
            name=meta.name,
            algorithm=str(meta.algorithm),
            created_at=meta.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyId": self.key_id,
            "name": self.name,
            "algorithm": self.algorithm,
            "createdAt": self.created_at,
        }


@dataclass
class KeyDetails:
    info: KeyInfo
    public_key_pem: str
    fingerprint: str = ""

    @classmethod
    def from_record(cls, rec: KeyRecord) -> "KeyDetails":
        return cls(
            info=KeyInfo.from_metadata(rec.metadata),
            public_key_pem=rec.public_key_pem,
            fingerprint=rec.pub_key_fpr,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "info": self.info.to_dict(),
            "publicKeyPem": self.public_key_pem,
            "fingerprint": self.fingerprint,
        }


@dataclass
class VerificationResult:
    """
    Outcome of a verification attempt. An invalid or malformed signature is a
    normal result (is_valid=False with a reason), not an error.
    """
    is_valid: bool
    error_message: Optional[str] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"isValid": self.is_valid}
        if self.error_message is not None:
            d["errorMessage"] = self.error_message
        return d
