import pytest
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from sigvault_core.constants import MIN_KDF_ITERATIONS
from sigvault_core.keychain import Keychain
from sigvault_core.storage import InMemoryStorage, SQLiteStorage
from sigvault_core.vault import Vault

FAST_ITERATIONS = MIN_KDF_ITERATIONS


class MemoryKeyring(KeyringBackend):
    """Keyring backend that keeps secrets in a dict."""
    priority = 1

    def __init__(self):
        super().__init__()
        self.items = {}

    def set_password(self, service, username, password):
        self.items[(service, username)] = password

    def get_password(self, service, username):
        return self.items.get((service, username))

    def delete_password(self, service, username):
        try:
            del self.items[(service, username)]
        except KeyError:
            raise PasswordDeleteError(username)


class BrokenKeyring(MemoryKeyring):
    def set_password(self, service, username, password):
        raise KeyringError("secret service locked")

    def get_password(self, service, username):
        raise KeyringError("secret service locked")


@pytest.fixture
def store(tmp_path):
    s = SQLiteStorage(str(tmp_path / "vault.db"))
    yield s
    s.close()


@pytest.fixture
def vault(store):
    return Vault(store, iterations=FAST_ITERATIONS)


@pytest.fixture
def memory_vault():
    return Vault(InMemoryStorage(), iterations=FAST_ITERATIONS)


@pytest.fixture
def keyring_backend():
    return MemoryKeyring()


@pytest.fixture
def keychain_vault(store, keyring_backend):
    return Vault(store, iterations=FAST_ITERATIONS, keychain=Keychain(service="sigvault-test", backend=keyring_backend))


@pytest.fixture
def document(tmp_path):
    path = tmp_path / "contract.txt"
    path.write_bytes(b"The quick brown fox jumps over the lazy dog.\n")
    return path
