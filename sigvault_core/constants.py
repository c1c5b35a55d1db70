# sigvault_core/constants.py

# --------- Key derivation ----------
PBKDF2_ITERATIONS = 100_000
MIN_KDF_ITERATIONS = 1_000
MAX_KDF_ITERATIONS = 0xFFFF_FFFF    # uint32 field in the envelope header
SALT_LEN = 16
AES_KEY_LEN = 32   # AES-256
NONCE_LEN = 12     # 96-bit GCM nonce
GCM_TAG_LEN = 16

# --------- Key generation ----------
RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537

# --------- Envelope layout ----------
ENVELOPE_MAGIC = b"SVE1"
ENVELOPE_VERSION = 1
KEYCHAIN_MAGIC = b"SVK1"

# --------- Defaults ----------
DEFAULT_DB_PATH = "db/sigvault.db"
DEFAULT_KEYRING_SERVICE = "sigvault"
