"""
OS secret-store layer using the `keyring` library (macOS Keychain, Windows
Credential Locker, Secret Service, ...).

When enabled, each key record gets its own random 256-bit wrap key held in
the OS secret store under (service, key_id). The password envelope is sealed
once more with AES-256-GCM under that wrap key before it is persisted, so a
copy of the database alone is not enough to start an offline password
search. The password itself is never stored.

Usage:
    chain = Keychain(service="sigvault")
    stored = chain.wrap(key_id, envelope_blob)
    envelope_blob = chain.unwrap(key_id, stored)
"""
from __future__ import annotations
import binascii
import os
from typing import Optional

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from .constants import AES_KEY_LEN, DEFAULT_KEYRING_SERVICE, KEYCHAIN_MAGIC, NONCE_LEN
from .crypto import aead_decrypt, aead_encrypt
from .errors import DecryptionFailed, DuplicateKeyId, StoreUnavailable
from .logger import get_logger
from .secure_buffer import SecretBuffer

log = get_logger("SigVault.Keychain")


class Keychain:
    def __init__(self, service: str = DEFAULT_KEYRING_SERVICE, backend: Optional[KeyringBackend] = None):
        self.service = service
        self._backend = backend

    def _ring(self) -> KeyringBackend:
        return self._backend or keyring.get_keyring()

    # ------------------------------------------------------------------
    # Wrap keys
    # ------------------------------------------------------------------
    def store_wrap_key(self, key_id: str, wrap_key: bytes) -> None:
        """Store a new wrap key. An existing entry for key_id is never replaced."""
        ring = self._ring()
        try:
            if ring.get_password(self.service, key_id) is not None:
                log.error(f"[KEYCHAIN] refusing to replace existing wrap key key_id={key_id}")
                raise DuplicateKeyId(key_id)
            ring.set_password(self.service, key_id, binascii.hexlify(wrap_key).decode("ascii"))
        except KeyringError as e:
            log.error(f"[KEYCHAIN] store failed key_id={key_id}: {type(e).__name__}")
            raise StoreUnavailable(f"OS secret store rejected wrap key for {key_id}") from e
        log.info(f"[KEYCHAIN] stored wrap key key_id={key_id}")

    def load_wrap_key(self, key_id: str) -> Optional[SecretBuffer]:
        try:
            value = self._ring().get_password(self.service, key_id)
        except KeyringError as e:
            log.error(f"[KEYCHAIN] lookup failed key_id={key_id}: {type(e).__name__}")
            raise StoreUnavailable(f"OS secret store unavailable for {key_id}") from e
        if value is None:
            return None
        try:
            return SecretBuffer(binascii.unhexlify(value))
        except (binascii.Error, ValueError):
            log.warning(f"[KEYCHAIN] malformed wrap key key_id={key_id}")
            return None

    def delete_wrap_key(self, key_id: str) -> bool:
        try:
            self._ring().delete_password(self.service, key_id)
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            raise StoreUnavailable(f"OS secret store unavailable for {key_id}") from e
        log.info(f"[KEYCHAIN] deleted wrap key key_id={key_id}")
        return True

    # ------------------------------------------------------------------
    # Envelope layer
    # ------------------------------------------------------------------
    def wrap(self, key_id: str, blob: bytes) -> bytes:
        """Create a wrap key for key_id, store it, and seal blob under it."""
        with SecretBuffer(os.urandom(AES_KEY_LEN)) as wrap_key:
            nonce, ct = aead_encrypt(wrap_key.data, blob, key_id.encode("utf-8"))
            self.store_wrap_key(key_id, bytes(wrap_key.data))
        return KEYCHAIN_MAGIC + nonce + ct

    def unwrap(self, key_id: str, stored: bytes) -> bytes:
        if not stored.startswith(KEYCHAIN_MAGIC):
            raise DecryptionFailed()
        body = stored[len(KEYCHAIN_MAGIC):]
        nonce, ct = body[:NONCE_LEN], body[NONCE_LEN:]
        wrap_key = self.load_wrap_key(key_id)
        if wrap_key is None:
            log.warning(f"[KEYCHAIN] no wrap key for key_id={key_id}")
            raise DecryptionFailed()
        with wrap_key:
            with aead_decrypt(wrap_key.data, nonce, ct, key_id.encode("utf-8")) as inner:
                return bytes(inner.data)

    def healthz(self) -> dict:
        ring = self._ring()
        return {"status": "ok", "service": self.service, "backend": type(ring).__name__}
