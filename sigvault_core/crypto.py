"""
sigvault_core.crypto
--------------------
Envelope cryptography for private keys at rest:

- PBKDF2-HMAC-SHA256: password -> 256-bit AES key (salted, stored iterations)
- AES-256-GCM: authenticated encryption with a fresh 96-bit nonce per call

The password is never stored. Every decryption failure (wrong password,
tampered header, tampered ciphertext, truncated blob) surfaces as the same
DecryptionFailed.
"""

from __future__ import annotations
from typing import Optional
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import os
from .algorithms import SignatureAlgorithm
from .constants import AES_KEY_LEN, MAX_KDF_ITERATIONS, MIN_KDF_ITERATIONS, NONCE_LEN, PBKDF2_ITERATIONS, SALT_LEN
from .envelope import PrivateKeyEnvelope
from .errors import DecryptionFailed
from .secure_buffer import Buffer, SecretBuffer

# --------- PBKDF2 (password -> key) ----------
def new_salt() -> bytes:
    return os.urandom(SALT_LEN)

def derive_key(password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> SecretBuffer:
    if not MIN_KDF_ITERATIONS <= iterations <= MAX_KDF_ITERATIONS:
        raise ValueError(f"KDF iterations must be between {MIN_KDF_ITERATIONS} and {MAX_KDF_ITERATIONS}")
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=AES_KEY_LEN, salt=salt, iterations=iterations)
    return SecretBuffer(kdf.derive(password.encode("utf-8")))


# --------- AES-GCM ----------
def aead_encrypt(key: Buffer, plaintext: Buffer, aad: Optional[bytes] = None):
    aes = AESGCM(bytes(key))
    nonce = os.urandom(NONCE_LEN)
    ct = aes.encrypt(nonce, bytes(plaintext), aad)
    return nonce, ct

def aead_decrypt(key: Buffer, nonce: bytes, ciphertext: bytes, aad: Optional[bytes] = None) -> SecretBuffer:
    try:
        aes = AESGCM(bytes(key))
        return SecretBuffer(aes.decrypt(nonce, ciphertext, aad))
    except (InvalidTag, ValueError):
        raise DecryptionFailed() from None


# --------- Private key envelopes ----------
def seal_private_key(
    plaintext: Buffer,
    password: str,
    key_id: str,
    algorithm: SignatureAlgorithm,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """Encrypt PKCS#8 DER bytes under a password, bound to key_id and algorithm."""
    salt = new_salt()
    # AAD covers the header only; the nonce is appended after encryption
    draft = PrivateKeyEnvelope(algorithm=algorithm, iterations=iterations, salt=salt, nonce=b"", sealed=b"")
    with derive_key(password, salt, iterations) as key:
        nonce, sealed = aead_encrypt(key.data, plaintext, draft.associated_data(key_id))
    env = PrivateKeyEnvelope(algorithm=algorithm, iterations=iterations, salt=salt, nonce=nonce, sealed=sealed)
    return env.to_bytes()

def open_private_key(
    blob: bytes,
    password: str,
    key_id: str,
    algorithm: SignatureAlgorithm,
) -> SecretBuffer:
    """Decrypt an envelope; the caller owns (and must wipe) the returned buffer."""
    env = PrivateKeyEnvelope.from_bytes(blob)
    if env.algorithm != algorithm:
        raise DecryptionFailed()
    try:
        key = derive_key(password, env.salt, env.iterations)
    except ValueError:
        raise DecryptionFailed() from None
    with key:
        return aead_decrypt(key.data, env.nonce, env.sealed, env.associated_data(key_id))
