"""
sigvault_core.signing
---------------------
Detached signing and verification over documents on disk.

sign:    Idle -> Loading -> Decrypting -> Signing -> Done | Failed
verify:  Idle -> Loading -> Verifying -> Done | Failed

Each call decrypts its own copy of the private key into a SecretBuffer and
wipes it before returning, whatever the outcome. Decrypted keys are never
cached between calls. An optional timeout is checked at every I/O boundary.
"""

from __future__ import annotations
from enum import Enum
from typing import Callable, Optional
import contextlib
import os
import tempfile
import time

from .algorithms import scheme_for
from .contracts import VerificationResult
from .crypto import open_private_key
from .errors import (
    DecryptionFailed,
    DocumentReadError,
    InvalidPassword,
    OperationTimeout,
    SignatureReadError,
    SignatureWriteError,
    StoreUnavailable,
    VaultError,
)
from .keychain import Keychain
from .logger import get_logger
from .storage.models import KeyRecord
from .storage.provider import StorageProvider

log = get_logger("SigVault.Signing")


class SigningState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    DECRYPTING = "decrypting"
    SIGNING = "signing"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


Observer = Callable[[str, str, SigningState], None]


class Deadline:
    """Caller-supplied time budget, checked only at I/O boundaries."""

    def __init__(self, timeout: Optional[float] = None):
        self.expires_at = None if timeout is None else time.monotonic() + timeout

    def check(self, stage: str) -> None:
        if self.expires_at is not None and time.monotonic() >= self.expires_at:
            raise OperationTimeout(f"Deadline exceeded before {stage}")


class _Run:
    """State of one sign/verify call. Never shared between calls."""

    def __init__(self, operation: str, key_id: str, observer: Optional[Observer]):
        self.operation = operation
        self.key_id = key_id
        self.observer = observer
        self.state = SigningState.IDLE

    def advance(self, state: SigningState) -> None:
        log.debug(f"[{self.operation.upper()}] key_id={self.key_id} {self.state.value} -> {state.value}")
        self.state = state
        if self.observer:
            self.observer(self.operation, self.key_id, state)


# --------- File boundary helpers ----------
def read_file(path, error_cls) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise error_cls(os.fspath(path), e) from e


def write_atomic(path, data: bytes) -> None:
    """Write data to path via a temp file in the same directory and os.replace()."""
    path = os.fspath(path)
    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, tmp = tempfile.mkstemp(prefix=".sigvault-", suffix=".tmp", dir=directory)
    except OSError as e:
        raise SignatureWriteError(path, e) from e
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise SignatureWriteError(path, e) from e


class SigningEngine:
    def __init__(
        self,
        store: StorageProvider,
        keychain: Optional[Keychain] = None,
        observer: Optional[Observer] = None,
    ):
        self.store = store
        self.keychain = keychain
        self.observer = observer

    def _envelope_blob(self, rec: KeyRecord, deadline: Deadline) -> bytes:
        if not rec.keychain_wrapped:
            return rec.private_key_envelope
        if self.keychain is None:
            raise StoreUnavailable(f"Key {rec.key_id} is protected by the OS secret store, which is not configured")
        deadline.check("secret store access")
        return self.keychain.unwrap(rec.key_id, rec.private_key_envelope)

    def sign(self, document_path, key_id: str, password: str, output_path, timeout: Optional[float] = None) -> None:
        run = _Run("sign", key_id, self.observer)
        deadline = Deadline(timeout)
        try:
            run.advance(SigningState.LOADING)
            deadline.check("key lookup")
            rec = self.store.require_key(key_id)
            scheme = scheme_for(rec.algorithm)

            run.advance(SigningState.DECRYPTING)
            blob = self._envelope_blob(rec, deadline)
            with open_private_key(blob, password, rec.key_id, rec.algorithm) as der:
                try:
                    private_key = scheme.decode_private(der.data)
                except ValueError as e:
                    raise StoreUnavailable(f"Corrupted private key material for {rec.key_id}") from e
                try:
                    deadline.check("document read")
                    document = read_file(document_path, DocumentReadError)
                    run.advance(SigningState.SIGNING)
                    signature = scheme.sign(private_key, document)
                finally:
                    del private_key

            deadline.check("signature write")
            write_atomic(output_path, signature)
        except DecryptionFailed:
            run.advance(SigningState.FAILED)
            log.warning(f"[SIGN] decryption failed key_id={key_id}")
            raise InvalidPassword() from None
        except VaultError as e:
            run.advance(SigningState.FAILED)
            log.error(f"[SIGN] failed key_id={key_id} kind={e.kind}: {e.message}")
            raise

        run.advance(SigningState.DONE)
        log.info(f"[SIGN] {rec.algorithm} key_id={rec.key_id} document={os.fspath(document_path)} -> {os.fspath(output_path)}")

    def verify(self, document_path, signature_path, key_id: str, timeout: Optional[float] = None) -> VerificationResult:
        run = _Run("verify", key_id, self.observer)
        deadline = Deadline(timeout)
        try:
            run.advance(SigningState.LOADING)
            deadline.check("key lookup")
            rec = self.store.require_key(key_id)
            scheme = scheme_for(rec.algorithm)
            try:
                public_key = scheme.decode_public(rec.public_key_pem)
            except ValueError as e:
                raise StoreUnavailable(f"Corrupted public key for {rec.key_id}") from e

            deadline.check("document read")
            document = read_file(document_path, DocumentReadError)
            deadline.check("signature read")
            signature = read_file(signature_path, SignatureReadError)

            run.advance(SigningState.VERIFYING)
            reason = scheme.check(public_key, document, signature)
        except VaultError as e:
            run.advance(SigningState.FAILED)
            log.error(f"[VERIFY] failed key_id={key_id} kind={e.kind}: {e.message}")
            raise

        run.advance(SigningState.DONE)
        if reason is None:
            log.info(f"[VERIFY] valid {rec.algorithm} key_id={rec.key_id} document={os.fspath(document_path)}")
            return VerificationResult(is_valid=True)
        log.warning(f"[VERIFY] invalid key_id={rec.key_id} document={os.fspath(document_path)}: {reason}")
        return VerificationResult(is_valid=False, error_message=reason)
