"""Passphrase handling: zeroable container and mailbox passphrase derivation."""

import base64
import ctypes
import hmac
from typing import Self

import bcrypt

_STANDARD_B64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_BCRYPT_B64 = "./ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
_BCRYPT_COST = 10
_BCRYPT_SALT_LENGTH = 22
_MAILBOX_PASSPHRASE_LENGTH = 31


def _zero(data: bytearray) -> None:
    if not data:
        return
    buffer = (ctypes.c_char * len(data)).from_buffer(data)
    ctypes.memset(ctypes.addressof(buffer), 0, len(data))


class Passphrase:
    """
    Passphrase bytes that are zeroed once no longer needed.

    Use as context manager for guaranteed cleanup.
    """

    __slots__ = ("_data", "_cleared")

    def __init__(self, data: bytes | bytearray) -> None:
        self._data = bytearray(data)
        self._cleared = False

    def __del__(self) -> None:
        self.clear()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.clear()

    def clear(self) -> None:
        """Zero memory. Idempotent."""
        if self._cleared:
            return
        _zero(self._data)
        self._cleared = True

    def __bytes__(self) -> bytes:
        """Warning: creates an insecure copy."""
        self._check_cleared()
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        if self._cleared:
            return "Passphrase(<cleared>)"
        return f"Passphrase(<{len(self._data)} bytes>)"

    def __eq__(self, other: object) -> bool:
        """Constant-time comparison."""
        if isinstance(other, Passphrase):
            if self._cleared or other._cleared:
                return False
            return hmac.compare_digest(self._data, other._data)
        if isinstance(other, (bytes, bytearray)):
            if self._cleared:
                return False
            return hmac.compare_digest(self._data, other)
        return NotImplemented

    def __hash__(self) -> int:
        raise TypeError("Passphrase is not hashable")

    @property
    def is_cleared(self) -> bool:
        return self._cleared

    def decode(self, encoding: str = "utf-8") -> str:
        """Warning: returned string is not securely managed."""
        self._check_cleared()
        return self._data.decode(encoding)

    def _check_cleared(self) -> None:
        if self._cleared:
            raise RuntimeError("Passphrase has been cleared")

    @classmethod
    def coerce(cls, value: "Passphrase | bytes | bytearray | str") -> "Passphrase":
        """Wrap raw bytes or text; passphrases are returned unchanged."""
        if isinstance(value, Passphrase):
            return value
        if isinstance(value, str):
            return cls.from_string(value)
        return cls(value)

    @classmethod
    def from_string(cls, s: str, encoding: str = "utf-8") -> Self:
        """Create from string. Zeros intermediate bytearray."""
        encoded = bytearray(s, encoding)
        try:
            return cls(encoded)
        finally:
            _zero(encoded)


def derive_mailbox_passphrase(password: Passphrase, salt: str) -> Passphrase:
    """
    Derive the key passphrase from the login password and the key salt.

    Uses bcrypt with the salt re-encoded in bcrypt's base64 alphabet and keeps
    the last 31 bytes of the hash.

    Args:
        password: Login password.
        salt: Base64-encoded key salt from the API.

    Returns:
        The derived passphrase.
    """
    salt_binary = base64.b64decode(salt)
    standard_b64 = base64.b64encode(salt_binary[:16]).decode("ascii")
    translation_table = str.maketrans(_STANDARD_B64, _BCRYPT_B64)
    bcrypt_salt = standard_b64.translate(translation_table)[:_BCRYPT_SALT_LENGTH]
    bcrypt_hash = bcrypt.hashpw(bytes(password), f"$2y${_BCRYPT_COST}${bcrypt_salt}".encode("utf-8"))
    return Passphrase(bcrypt_hash[-_MAILBOX_PASSPHRASE_LENGTH:])
