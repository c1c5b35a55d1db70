"""
sigvault_core.secure_buffer
---------------------------
Scoped holder for transient secrets (derived AES keys, PKCS#8 private key
bytes). The bytes live in a bytearray that is overwritten with zeros when the
`with` block exits on any path, on explicit wipe(), and on collection.
"""

from __future__ import annotations
from typing import Union

Buffer = Union[bytes, bytearray, memoryview]


class SecretBuffer:
    def __init__(self, data: Buffer = b""):
        self._buf = bytearray(data)

    @property
    def data(self) -> bytearray:
        return self._buf

    def __len__(self) -> int:
        return len(self._buf)

    def wipe(self) -> None:
        for i in range(len(self._buf)):
            self._buf[i] = 0

    @property
    def wiped(self) -> bool:
        return not any(self._buf)

    def __enter__(self) -> "SecretBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __del__(self):
        self.wipe()

    def __repr__(self) -> str:
        return f"SecretBuffer(<{len(self._buf)} bytes>)"
