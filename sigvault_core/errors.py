"""
sigvault_core.errors
--------------------
Caller-visible failure kinds for vault operations.

Every public operation either returns its typed result or raises one of the
`VaultError` subclasses below. `kind` is the stable string carried across the
request/response contract; messages never include passwords or key bytes.
"""

from __future__ import annotations
from typing import Any, Dict, Optional


class VaultError(Exception):
    kind: str = "VaultError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class InvalidInput(VaultError):
    kind = "InvalidInput"


class KeyNotFound(VaultError):
    kind = "KeyNotFound"

    def __init__(self, key_id: str, message: str = ""):
        super().__init__(message or f"Key with ID {key_id} not found")
        self.key_id = key_id


class DuplicateKeyId(VaultError):
    kind = "DuplicateKeyId"

    def __init__(self, key_id: str):
        super().__init__(f"Key with ID {key_id} already exists")
        self.key_id = key_id


class InvalidPassword(VaultError):
    kind = "InvalidPassword"

    def __init__(self, message: str = "Failed to decrypt private key (check password)"):
        super().__init__(message)


class GenerationFailed(VaultError):
    kind = "GenerationFailed"


class StoreUnavailable(VaultError):
    kind = "StoreUnavailable"


class OperationTimeout(VaultError):
    kind = "Timeout"


class IOBoundaryError(VaultError):
    """Base for failures at the document/signature file boundary."""
    action = "access"

    def __init__(self, path: str, os_error: Optional[OSError] = None):
        reason = ""
        if os_error is not None:
            reason = f": {os_error.strerror or os_error}"
        super().__init__(f"Failed to {self.action} {path}{reason}")
        self.path = path
        self.os_error = os_error


class DocumentReadError(IOBoundaryError):
    kind = "DocumentReadError"
    action = "read document file"


class SignatureReadError(IOBoundaryError):
    kind = "SignatureReadError"
    action = "read signature file"


class SignatureWriteError(IOBoundaryError):
    kind = "SignatureWriteError"
    action = "write signature file"


class DecryptionFailed(Exception):
    """Envelope authentication failed. Wrong password and tampering are not distinguished."""

    def __init__(self):
        super().__init__("decryption failed")
