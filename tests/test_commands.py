import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from sigvault_core.commands import adispatch, dispatch
from sigvault_core.errors import InvalidInput, KeyNotFound
from sigvault_core.storage import InMemoryStorage, SQLiteStorage
from sigvault_core.utils import new_key_id
from sigvault_core.vault import Vault, load_vault

from conftest import FAST_ITERATIONS, MemoryKeyring

PASSWORD = "correct horse battery staple"


def _generate(vault, name="Work key", algorithm="Ed25519"):
    resp = dispatch(vault, "generate_key_pair", {"name": name, "algorithm": algorithm, "password": PASSWORD})
    assert resp["ok"], resp
    return resp["result"]


def _error_kind(resp):
    assert resp["ok"] is False
    return resp["error"]["kind"]


def test_generate_list_details(vault):
    details = _generate(vault, algorithm="rsa")
    info = details["info"]
    assert info["algorithm"] == "RSA-PKCS1-SHA256"
    assert info["name"] == "Work key"
    assert info["createdAt"].endswith("Z")
    assert details["publicKeyPem"].startswith("-----BEGIN PUBLIC KEY-----")
    assert len(details["fingerprint"]) == 32

    listed = dispatch(vault, "list_keys")
    assert listed == {"ok": True, "result": [info]}

    got = dispatch(vault, "get_key_details", {"keyId": info["keyId"]})
    assert got == {"ok": True, "result": details}


def test_sign_and_verify_with_camel_case(vault, document, tmp_path):
    key_id = _generate(vault)["info"]["keyId"]
    sig_path = str(tmp_path / "contract.sig")

    signed = dispatch(vault, "sign_document", {
        "documentPath": str(document),
        "keyId": key_id,
        "password": PASSWORD,
        "outputPath": sig_path,
        "options": {"format": "detached"},
    })
    assert signed == {"ok": True, "result": None}

    verified = dispatch(vault, "verify_signature", {
        "documentPath": str(document),
        "signaturePath": sig_path,
        "keyId": key_id,
    })
    assert verified == {"ok": True, "result": {"isValid": True}}

    document.write_bytes(b"something else entirely")
    verified = dispatch(vault, "verify_signature", {
        "document_path": str(document),
        "signature_path": sig_path,
        "key_id": key_id,
    })
    assert verified["ok"]
    assert verified["result"]["isValid"] is False
    assert verified["result"]["errorMessage"]


def test_alg_str_alias(memory_vault):
    resp = dispatch(memory_vault, "generate_key_pair", {"name": "n", "algStr": "P-256", "password": "pw"})
    assert resp["result"]["info"]["algorithm"] == "ECDSA-P256-SHA256"


@pytest.mark.parametrize("operation,args,kind", [
    ("delete_key", {}, "InvalidInput"),
    ("generate_key_pair", {"name": "n", "password": "pw"}, "InvalidInput"),
    ("generate_key_pair", {"name": "n", "algorithm": "DSA", "password": "pw"}, "InvalidInput"),
    ("generate_key_pair", {"name": "n", "algorithm": "Ed25519", "password": ""}, "InvalidInput"),
    ("generate_key_pair", {"name": "   ", "algorithm": "Ed25519", "password": "pw"}, "InvalidInput"),
    ("generate_key_pair", {"name": "n", "algorithm": "Ed25519", "password": "pw", "extra": 1}, "InvalidInput"),
    ("get_key_details", {"keyId": "definitely-not-a-uuid"}, "InvalidInput"),
    ("list_keys", ["not", "a", "dict"], "InvalidInput"),
])
def test_error_kinds(memory_vault, operation, args, kind):
    assert _error_kind(dispatch(memory_vault, operation, args)) == kind


def test_not_found_and_password_errors(memory_vault, document, tmp_path):
    resp = dispatch(memory_vault, "get_key_details", {"keyId": new_key_id()})
    assert _error_kind(resp) == "KeyNotFound"
    assert "not found" in resp["error"]["message"]

    key_id = _generate(memory_vault)["info"]["keyId"]
    args = {
        "documentPath": str(document),
        "keyId": key_id,
        "password": "wrong",
        "outputPath": str(tmp_path / "x.sig"),
    }
    assert _error_kind(dispatch(memory_vault, "sign_document", args)) == "InvalidPassword"

    args.update(password=PASSWORD, format="embedded")
    assert _error_kind(dispatch(memory_vault, "sign_document", args)) == "InvalidInput"

    args.update(format="detached", documentPath=str(tmp_path / "missing.txt"))
    assert _error_kind(dispatch(memory_vault, "sign_document", args)) == "DocumentReadError"


def test_adispatch(memory_vault):
    async def run():
        created = await adispatch(memory_vault, "generate_key_pair",
                                  {"name": "async", "algorithm": "Ed25519", "password": "pw"})
        listed = await adispatch(memory_vault, "list_keys")
        return created, listed

    created, listed = asyncio.run(run())
    assert created["ok"]
    assert [k["keyId"] for k in listed["result"]] == [created["result"]["info"]["keyId"]]


def test_same_name_keys_are_distinct(memory_vault):
    a = _generate(memory_vault, name="Twin")
    b = _generate(memory_vault, name="Twin")
    assert a["info"]["keyId"] != b["info"]["keyId"]
    assert a["publicKeyPem"] != b["publicKeyPem"]
    listed = dispatch(memory_vault, "list_keys")["result"]
    assert [k["keyId"] for k in listed] == [a["info"]["keyId"], b["info"]["keyId"]]


def test_parallel_generation(vault):
    def make(i):
        return _generate(vault, name=f"key-{i}")["info"]["keyId"]

    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(make, range(50)))

    assert len(set(ids)) == 50
    listed = [k["keyId"] for k in dispatch(vault, "list_keys")["result"]]
    assert sorted(listed) == sorted(ids)


def test_find_by_fingerprint(memory_vault):
    details = _generate(memory_vault)
    found = memory_vault.find_by_fingerprint(details["fingerprint"].upper())
    assert found.info.key_id == details["info"]["keyId"]


def test_load_vault_from_config(tmp_path):
    v = load_vault({"provider": "sqlite", "sqlite_path": str(tmp_path / "cfg.db"), "kdf_iterations": FAST_ITERATIONS})
    assert isinstance(v.store, SQLiteStorage)
    assert v.iterations == FAST_ITERATIONS
    assert v.keychain is None
    assert v.healthz()["store"]["provider"] == "sqlite"
    v.close()

    ring = MemoryKeyring()
    v = load_vault({"provider": "memory", "use_keyring": True, "keyring_service": "svc", "keyring_backend": ring})
    assert isinstance(v.store, InMemoryStorage)
    assert v.keychain.service == "svc"
    assert v.healthz()["keychain"]["backend"] == "MemoryKeyring"


def test_load_vault_from_env(monkeypatch):
    monkeypatch.setenv("SIGVAULT_STORAGE_PROVIDER", "memory")
    monkeypatch.setenv("SIGVAULT_KDF_ITERATIONS", "2000")
    monkeypatch.delenv("SIGVAULT_USE_KEYRING", raising=False)
    v = load_vault()
    assert v.iterations == 2000
    assert v.keychain is None

    monkeypatch.setenv("SIGVAULT_KDF_ITERATIONS", "lots")
    with pytest.raises(InvalidInput):
        load_vault()

    monkeypatch.setenv("SIGVAULT_KDF_ITERATIONS", "10")
    with pytest.raises(InvalidInput):
        load_vault()


def test_vault_rejects_out_of_range_iterations():
    with pytest.raises(InvalidInput):
        Vault(InMemoryStorage(), iterations=FAST_ITERATIONS - 1)
    # the envelope header stores the count as a uint32
    with pytest.raises(InvalidInput):
        Vault(InMemoryStorage(), iterations=2**32)
    with pytest.raises(InvalidInput):
        Vault(InMemoryStorage(), iterations=50000.5)
    assert Vault(InMemoryStorage(), iterations=0xFFFFFFFF).iterations == 0xFFFFFFFF


def test_load_vault_rejects_oversized_iterations(monkeypatch):
    monkeypatch.setenv("SIGVAULT_KDF_ITERATIONS", "5000000000")
    with pytest.raises(InvalidInput):
        load_vault({"provider": "memory"})


def test_explicit_zero_iterations_is_not_a_default(monkeypatch):
    monkeypatch.delenv("SIGVAULT_KDF_ITERATIONS", raising=False)
    with pytest.raises(InvalidInput):
        load_vault({"provider": "memory", "kdf_iterations": 0})


def test_unknown_fingerprint_message(memory_vault):
    with pytest.raises(KeyNotFound) as exc:
        memory_vault.find_by_fingerprint("ab" * 16)
    assert exc.value.message == f"No key with fingerprint {'ab' * 16} found"
    assert "Key with ID" not in exc.value.message
