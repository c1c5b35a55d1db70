"""
sigvault_core.algorithms
------------------------
Closed set of signature algorithms supported by the vault:

- RSA-PKCS1-SHA256: RSA-2048, PKCS#1 v1.5 padding over a SHA-256 digest
- ECDSA-P256-SHA256: NIST P-256 over a SHA-256 digest, DER-encoded (r, s)
- Ed25519: pure Ed25519 over the raw message bytes

Each algorithm has one `SignatureScheme` implementation. `scheme_for()` is the
only place that maps an algorithm tag to code; nothing is inferred from key
length or key content.
"""

from __future__ import annotations
from enum import Enum
from typing import Dict, Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, decode_dss_signature

from .constants import RSA_KEY_SIZE, RSA_PUBLIC_EXPONENT
from .errors import InvalidInput
from .secure_buffer import SecretBuffer

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey, ed25519.Ed25519PrivateKey]
PublicKey = Union[rsa.RSAPublicKey, ec.EllipticCurvePublicKey, ed25519.Ed25519PublicKey]

ED25519_SIGNATURE_LEN = 64


class SignatureAlgorithm(str, Enum):
    RSA_PKCS1_SHA256 = "RSA-PKCS1-SHA256"
    ECDSA_P256_SHA256 = "ECDSA-P256-SHA256"
    ED25519 = "Ed25519"

    def __str__(self) -> str:
        return self.value

    @property
    def tag(self) -> int:
        """Single-byte identifier written into private-key envelopes."""
        return _TAGS[self]

    @classmethod
    def from_tag(cls, tag: int) -> "SignatureAlgorithm":
        for alg, t in _TAGS.items():
            if t == tag:
                return alg
        raise ValueError(f"Unknown algorithm tag: {tag}")

    @classmethod
    def parse(cls, value: Union[str, "SignatureAlgorithm"]) -> "SignatureAlgorithm":
        """
        Parse an algorithm name.

        Case-insensitive, ignores '-' and '_', and accepts the common aliases
        RSA / RSA2048, P256 / ECDSAP256 / ECP256.
        """
        if isinstance(value, SignatureAlgorithm):
            return value
        if not isinstance(value, str):
            raise InvalidInput(f"Algorithm must be a string, got {type(value).__name__}")
        normalized = value.upper().replace("-", "").replace("_", "")
        alg = _ALIASES.get(normalized)
        if alg is None:
            raise InvalidInput(f"Unsupported or unrecognized signature algorithm: {value}")
        return alg


_TAGS = {
    SignatureAlgorithm.RSA_PKCS1_SHA256: 1,
    SignatureAlgorithm.ECDSA_P256_SHA256: 2,
    SignatureAlgorithm.ED25519: 3,
}

_ALIASES = {
    "RSAPKCS1SHA256": SignatureAlgorithm.RSA_PKCS1_SHA256,
    "RSA2048": SignatureAlgorithm.RSA_PKCS1_SHA256,
    "RSA": SignatureAlgorithm.RSA_PKCS1_SHA256,
    "ECDSAP256SHA256": SignatureAlgorithm.ECDSA_P256_SHA256,
    "P256": SignatureAlgorithm.ECDSA_P256_SHA256,
    "ECDSAP256": SignatureAlgorithm.ECDSA_P256_SHA256,
    "ECP256": SignatureAlgorithm.ECDSA_P256_SHA256,
    "ED25519": SignatureAlgorithm.ED25519,
}


def sha256_digest(data: bytes) -> bytes:
    h = hashes.Hash(hashes.SHA256())
    h.update(data)
    return h.finalize()


class SignatureScheme:
    """
    Capability set shared by every algorithm: generate, sign, verify,
    encode the public half (PEM SPKI), and move the private half in and
    out of PKCS#8 DER.
    """
    algorithm: SignatureAlgorithm
    private_type: type = object
    public_type: type = object

    def generate(self) -> PrivateKey:
        raise NotImplementedError

    def sign(self, private_key: PrivateKey, data: bytes) -> bytes:
        raise NotImplementedError

    def check(self, public_key: PublicKey, data: bytes, signature: bytes) -> Optional[str]:
        """Return None when the signature is valid, otherwise the reason it is not."""
        raise NotImplementedError

    def verify(self, public_key: PublicKey, data: bytes, signature: bytes) -> bool:
        return self.check(public_key, data, signature) is None

    # --------- Serialization ----------
    def encode_public(self, key: Union[PrivateKey, PublicKey]) -> str:
        if isinstance(key, self.private_type):
            key = key.public_key()
        return key.public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")

    def public_der(self, key: Union[PrivateKey, PublicKey]) -> bytes:
        if isinstance(key, self.private_type):
            key = key.public_key()
        return key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def decode_public(self, pem: str) -> PublicKey:
        try:
            key = serialization.load_pem_public_key(pem.encode("ascii"))
        except (ValueError, UnsupportedAlgorithm) as e:
            raise ValueError(f"Failed to decode public key PEM for {self.algorithm}") from e
        if not isinstance(key, self.public_type):
            raise ValueError(f"Public key is not a {self.algorithm} key")
        return key

    def encode_private(self, key: PrivateKey) -> SecretBuffer:
        return SecretBuffer(key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))

    def decode_private(self, der: Union[bytes, bytearray]) -> PrivateKey:
        try:
            key = serialization.load_der_private_key(bytes(der), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise ValueError(f"Failed to parse decrypted data as {self.algorithm} private key") from e
        if not isinstance(key, self.private_type):
            raise ValueError(f"Decrypted key is not a {self.algorithm} private key")
        return key


# --------- RSA PKCS#1 v1.5 / SHA-256 ----------
class RsaPkcs1Sha256(SignatureScheme):
    algorithm = SignatureAlgorithm.RSA_PKCS1_SHA256
    private_type = rsa.RSAPrivateKey
    public_type = rsa.RSAPublicKey

    def generate(self) -> rsa.RSAPrivateKey:
        return rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=RSA_KEY_SIZE)

    def sign(self, private_key, data: bytes) -> bytes:
        digest = sha256_digest(data)
        return private_key.sign(digest, padding.PKCS1v15(), Prehashed(hashes.SHA256()))

    def check(self, public_key, data: bytes, signature: bytes) -> Optional[str]:
        expected = (public_key.key_size + 7) // 8
        if len(signature) != expected:
            return f"Signature is invalid: expected {expected} bytes, got {len(signature)}"
        try:
            public_key.verify(signature, sha256_digest(data), padding.PKCS1v15(), Prehashed(hashes.SHA256()))
        except InvalidSignature:
            return "Signature is invalid: signature does not match document"
        return None


# --------- ECDSA P-256 / SHA-256 ----------
class EcdsaP256Sha256(SignatureScheme):
    algorithm = SignatureAlgorithm.ECDSA_P256_SHA256
    private_type = ec.EllipticCurvePrivateKey
    public_type = ec.EllipticCurvePublicKey

    def generate(self) -> ec.EllipticCurvePrivateKey:
        return ec.generate_private_key(ec.SECP256R1())

    def sign(self, private_key, data: bytes) -> bytes:
        # DER-encoded SEQUENCE { r, s }, randomized nonce
        return private_key.sign(sha256_digest(data), ec.ECDSA(Prehashed(hashes.SHA256())))

    def check(self, public_key, data: bytes, signature: bytes) -> Optional[str]:
        try:
            decode_dss_signature(signature)
        except ValueError:
            return "Signature is invalid: not a DER-encoded ECDSA signature"
        try:
            public_key.verify(signature, sha256_digest(data), ec.ECDSA(Prehashed(hashes.SHA256())))
        except InvalidSignature:
            return "Signature is invalid: signature does not match document"
        return None

    def decode_private(self, der):
        key = super().decode_private(der)
        if not isinstance(key.curve, ec.SECP256R1):
            raise ValueError("Decrypted key is not on curve P-256")
        return key

    def decode_public(self, pem: str):
        key = super().decode_public(pem)
        if not isinstance(key.curve, ec.SECP256R1):
            raise ValueError("Public key is not on curve P-256")
        return key


# --------- Ed25519 ----------
class Ed25519Scheme(SignatureScheme):
    algorithm = SignatureAlgorithm.ED25519
    private_type = ed25519.Ed25519PrivateKey
    public_type = ed25519.Ed25519PublicKey

    def generate(self) -> ed25519.Ed25519PrivateKey:
        return ed25519.Ed25519PrivateKey.generate()

    def sign(self, private_key, data: bytes) -> bytes:
        # Ed25519 hashes internally; the raw message is signed
        return private_key.sign(data)

    def check(self, public_key, data: bytes, signature: bytes) -> Optional[str]:
        if len(signature) != ED25519_SIGNATURE_LEN:
            return f"Signature is invalid: expected {ED25519_SIGNATURE_LEN} bytes, got {len(signature)}"
        try:
            public_key.verify(signature, data)
        except InvalidSignature:
            return "Signature is invalid: signature does not match document"
        return None


_SCHEMES: Dict[SignatureAlgorithm, SignatureScheme] = {
    SignatureAlgorithm.RSA_PKCS1_SHA256: RsaPkcs1Sha256(),
    SignatureAlgorithm.ECDSA_P256_SHA256: EcdsaP256Sha256(),
    SignatureAlgorithm.ED25519: Ed25519Scheme(),
}

if set(_SCHEMES) != set(SignatureAlgorithm) or set(_TAGS) != set(SignatureAlgorithm):
    raise RuntimeError("every SignatureAlgorithm needs a scheme and an envelope tag")


def scheme_for(algorithm: Union[str, SignatureAlgorithm]) -> SignatureScheme:
    return _SCHEMES[SignatureAlgorithm.parse(algorithm)]
