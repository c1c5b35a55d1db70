"""
sigvault_core.envelope
----------------------
Defines PrivateKeyEnvelope, the on-disk container for a password-protected
private key.

Binary layout (all integers big-endian):

    magic      4   b"SVE1"
    version    1   1
    alg_tag    1   SignatureAlgorithm.tag
    iterations 4   PBKDF2 rounds
    salt_len   1   N
    salt       N
    nonce      12
    sealed     *   AES-256-GCM ciphertext || 16-byte tag

magic through salt is the header; the header plus the key id is the
AES-GCM associated data, so an envelope cannot be moved to another record or
have its KDF parameters edited without failing authentication.
"""

from __future__ import annotations
from dataclasses import dataclass
import struct

from .algorithms import SignatureAlgorithm
from .constants import ENVELOPE_MAGIC, ENVELOPE_VERSION, GCM_TAG_LEN, NONCE_LEN, SALT_LEN
from .errors import DecryptionFailed

_FIXED = struct.Struct(">4sBBIB")


@dataclass(frozen=True)
class PrivateKeyEnvelope:
    algorithm: SignatureAlgorithm
    iterations: int
    salt: bytes
    nonce: bytes
    sealed: bytes                # ciphertext || tag
    version: int = ENVELOPE_VERSION

    def header_bytes(self) -> bytes:
        return _FIXED.pack(
            ENVELOPE_MAGIC, self.version, self.algorithm.tag, self.iterations, len(self.salt)
        ) + self.salt

    def associated_data(self, key_id: str) -> bytes:
        return self.header_bytes() + key_id.encode("utf-8")

    def to_bytes(self) -> bytes:
        return self.header_bytes() + self.nonce + self.sealed

    @classmethod
    def from_bytes(cls, blob: bytes) -> "PrivateKeyEnvelope":
        """
        Parse an envelope blob. Any structural problem is reported as
        DecryptionFailed, the same outcome as a wrong password.
        """
        blob = bytes(blob)
        if len(blob) < _FIXED.size:
            raise DecryptionFailed()
        magic, version, tag, iterations, salt_len = _FIXED.unpack_from(blob)
        if magic != ENVELOPE_MAGIC or version != ENVELOPE_VERSION or salt_len < SALT_LEN:
            raise DecryptionFailed()
        try:
            algorithm = SignatureAlgorithm.from_tag(tag)
        except ValueError:
            raise DecryptionFailed() from None
        offset = _FIXED.size
        salt = blob[offset:offset + salt_len]
        offset += salt_len
        nonce = blob[offset:offset + NONCE_LEN]
        offset += NONCE_LEN
        sealed = blob[offset:]
        if len(salt) != salt_len or len(nonce) != NONCE_LEN or len(sealed) < GCM_TAG_LEN or iterations == 0:
            raise DecryptionFailed()
        return cls(
            algorithm=algorithm,
            iterations=iterations,
            salt=salt,
            nonce=nonce,
            sealed=sealed,
            version=version,
        )
