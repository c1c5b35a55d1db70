"""
SigVault Core Package
=====================
Local key vault and detached-signature engine.

Provides:
- RSA-PKCS1-SHA256, ECDSA-P256-SHA256 and Ed25519 key generation, signing
  and verification
- Password-based (PBKDF2 + AES-256-GCM) envelopes for private keys at rest,
  with an optional OS secret-store layer
- Pluggable key storage (SQLite default, in-memory)
- The Vault command surface and a transport-independent dispatch contract
"""

from .algorithms import SignatureAlgorithm
from .contracts import KeyDetails, KeyInfo, SignatureFormat, SigningOptions, VerificationResult
from .errors import (
    DocumentReadError,
    DuplicateKeyId,
    GenerationFailed,
    InvalidInput,
    InvalidPassword,
    KeyNotFound,
    OperationTimeout,
    SignatureReadError,
    SignatureWriteError,
    StoreUnavailable,
    VaultError,
)
from .vault import Vault, load_vault

__all__ = [
    "SignatureAlgorithm",
    "KeyDetails",
    "KeyInfo",
    "SignatureFormat",
    "SigningOptions",
    "VerificationResult",
    "DocumentReadError",
    "DuplicateKeyId",
    "GenerationFailed",
    "InvalidInput",
    "InvalidPassword",
    "KeyNotFound",
    "OperationTimeout",
    "SignatureReadError",
    "SignatureWriteError",
    "StoreUnavailable",
    "VaultError",
    "Vault",
    "load_vault",
]
