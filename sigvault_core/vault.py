"""
sigvault_core.vault
-------------------
The vault command surface: the five operations callers may invoke.

    generate_key_pair(name, algorithm, password) -> KeyDetails
    list_keys()                                  -> [KeyInfo]
    get_key_details(key_id)                      -> KeyDetails
    sign_document(document_path, key_id, password, output_path, options)
    verify_signature(document_path, signature_path, key_id) -> VerificationResult

Inputs are validated here; failures surface as VaultError subclasses whose
`kind` is the caller-visible error kind. A Vault owns exactly one
StorageProvider, handed in explicitly; there is no module-level instance.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
import os

from .algorithms import SignatureAlgorithm, scheme_for
from .constants import DEFAULT_KEYRING_SERVICE, MAX_KDF_ITERATIONS, MIN_KDF_ITERATIONS, PBKDF2_ITERATIONS
from .contracts import KeyDetails, KeyInfo, SignatureFormat, SigningOptions, VerificationResult
from .crypto import seal_private_key
from .errors import DuplicateKeyId, GenerationFailed, InvalidInput, KeyNotFound, StoreUnavailable, VaultError
from .keychain import Keychain
from .logger import get_logger
from .signing import Observer, SigningEngine
from .storage import StorageProvider, load_storage_provider
from .storage.models import KeyRecord
from .utils import compute_pubkey_fingerprint, new_key_id, normalize_key_id, now_ts

log = get_logger("SigVault.Vault")


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} cannot be empty.")
    return value


def _require_password(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidInput("Password cannot be empty.")
    return value


def _require_path(value: Any, field: str) -> str:
    if isinstance(value, os.PathLike):
        value = os.fspath(value)
    if not isinstance(value, str) or not value:
        raise InvalidInput(f"{field} must be a non-empty path.")
    return value


def _require_key_id(value: Any) -> str:
    try:
        return normalize_key_id(value)
    except (ValueError, TypeError, AttributeError):
        raise InvalidInput(f"Malformed key id: {value!r}") from None


def _require_timeout(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise InvalidInput("timeout must be a positive number of seconds.")
    return float(value)


class Vault:
    def __init__(
        self,
        store: StorageProvider,
        iterations: int = PBKDF2_ITERATIONS,
        keychain: Optional[Keychain] = None,
        observer: Optional[Observer] = None,
    ):
        if isinstance(iterations, bool) or not isinstance(iterations, int):
            raise InvalidInput(f"KDF iterations must be an integer, got {type(iterations).__name__}")
        if not MIN_KDF_ITERATIONS <= iterations <= MAX_KDF_ITERATIONS:
            raise InvalidInput(f"KDF iterations must be between {MIN_KDF_ITERATIONS} and {MAX_KDF_ITERATIONS}")
        self.store = store
        self.iterations = iterations
        self.keychain = keychain
        self.engine = SigningEngine(store, keychain=keychain, observer=observer)

    # ------------------------------------------------------------------
    # Key management
    # ------------------------------------------------------------------
    def generate_key_pair(self, name: str, algorithm, password: str) -> KeyDetails:
        name = _require_text(name, "Name").strip()
        _require_password(password)
        alg = SignatureAlgorithm.parse(algorithm)
        scheme = scheme_for(alg)
        key_id = new_key_id()
        log.info(f"[GENERATE] name={name!r} algorithm={alg} key_id={key_id}")

        try:
            private_key = scheme.generate()
        except Exception as e:
            log.error(f"[GENERATE] {alg} key generation failed: {type(e).__name__}")
            raise GenerationFailed(f"Failed to generate {alg} key pair") from e

        try:
            public_key_pem = scheme.encode_public(private_key)
            fingerprint = compute_pubkey_fingerprint(scheme.public_der(private_key))
            with scheme.encode_private(private_key) as der:
                envelope = seal_private_key(der.data, password, key_id, alg, self.iterations)
        finally:
            del private_key

        if self.store.get_key(key_id) is not None:
            log.error(f"[GENERATE] key id collision key_id={key_id}")
            raise DuplicateKeyId(key_id)

        wrapped = False
        if self.keychain is not None:
            envelope = self.keychain.wrap(key_id, envelope)
            wrapped = True

        rec = KeyRecord(
            key_id=key_id,
            name=name,
            algorithm=alg,
            created_at=now_ts(),
            public_key_pem=public_key_pem,
            private_key_envelope=envelope,
            pub_key_fpr=fingerprint,
            keychain_wrapped=wrapped,
        )
        try:
            self.store.create_key(rec)
        except VaultError:
            if wrapped:
                self.keychain.delete_wrap_key(key_id)
            raise

        self._audit("key_generated", {"key_id": key_id, "algorithm": alg.value, "fingerprint": fingerprint})
        log.info(f"[GENERATE] stored {alg} key pair key_id={key_id}")
        return KeyDetails.from_record(rec)

    def list_keys(self) -> List[KeyInfo]:
        return [KeyInfo.from_metadata(meta) for meta in self.store.list_keys()]

    def get_key_details(self, key_id) -> KeyDetails:
        key_id = _require_key_id(key_id)
        return KeyDetails.from_record(self.store.require_key(key_id))

    def find_by_fingerprint(self, fingerprint: str) -> KeyDetails:
        fingerprint = _require_text(fingerprint, "Fingerprint").strip().lower()
        rec = self.store.fetch_by_fingerprint(fingerprint)
        if rec is None:
            raise KeyNotFound(fingerprint, f"No key with fingerprint {fingerprint} found")
        return KeyDetails.from_record(rec)

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------
    def sign_document(
        self,
        document_path,
        key_id,
        password: str,
        output_path,
        options: Optional[SigningOptions] = None,
        timeout: Optional[float] = None,
    ) -> None:
        document_path = _require_path(document_path, "Document path")
        output_path = _require_path(output_path, "Output path")
        key_id = _require_key_id(key_id)
        _require_password(password)
        timeout = _require_timeout(timeout)
        options = options or SigningOptions()
        if SignatureFormat.parse(options.format) is not SignatureFormat.DETACHED:
            raise InvalidInput(f"Unsupported signature format: {options.format}")

        self.engine.sign(document_path, key_id, password, output_path, timeout=timeout)
        self._audit("document_signed", {"key_id": key_id, "document": document_path, "signature": output_path})

    def verify_signature(self, document_path, signature_path, key_id, timeout: Optional[float] = None) -> VerificationResult:
        document_path = _require_path(document_path, "Document path")
        signature_path = _require_path(signature_path, "Signature path")
        key_id = _require_key_id(key_id)
        timeout = _require_timeout(timeout)

        result = self.engine.verify(document_path, signature_path, key_id, timeout=timeout)
        self._audit("signature_verified", {
            "key_id": key_id,
            "document": document_path,
            "signature": signature_path,
            "is_valid": result.is_valid,
        })
        return result

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------
    def _audit(self, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            self.store.log_event(event_type, payload)
        except StoreUnavailable as e:
            # the operation itself already completed
            log.error(f"[AUDIT] {event_type} not recorded: {e.message}")

    def list_events(self) -> List[Dict[str, Any]]:
        return self.store.list_events()

    def healthz(self) -> dict:
        out = {"status": "ok", "store": self.store.healthz(), "kdf_iterations": self.iterations}
        if self.keychain is not None:
            out["keychain"] = self.keychain.healthz()
        return out

    def close(self) -> None:
        self.store.close()


def load_vault(config: dict | None = None) -> Vault:
    """
    Build a Vault from a config dict, falling back to environment variables:

        SIGVAULT_STORAGE_PROVIDER, SIGVAULT_DB_PATH   (see load_storage_provider)
        SIGVAULT_KDF_ITERATIONS                        PBKDF2 rounds for new keys
        SIGVAULT_USE_KEYRING                           "1" to add the OS secret-store layer
        SIGVAULT_KEYRING_SERVICE                       service name in the OS secret store
    """
    config = config or {}
    raw_iterations = config.get("kdf_iterations")
    if raw_iterations is None:
        raw_iterations = os.getenv("SIGVAULT_KDF_ITERATIONS") or PBKDF2_ITERATIONS
    try:
        iterations = int(raw_iterations)
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid KDF iteration count: {raw_iterations!r}") from None

    use_keyring = config.get("use_keyring")
    if use_keyring is None:
        use_keyring = os.getenv("SIGVAULT_USE_KEYRING", "0") == "1"
    keychain = None
    if use_keyring:
        service = config.get("keyring_service") or os.getenv("SIGVAULT_KEYRING_SERVICE", DEFAULT_KEYRING_SERVICE)
        keychain = Keychain(service=service, backend=config.get("keyring_backend"))

    return Vault(load_storage_provider(config), iterations=iterations, keychain=keychain)
