"""
Key ring exception hierarchy.

All exceptions inherit from KeyRingError for easy catching.
"""

from typing import Any


class KeyRingError(Exception):
    """Base exception for all proton_keyring errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class NoKeyMaterialError(KeyRingError):
    """The key ring doesn't contain any key."""

    def __init__(self, message: str = "Key ring doesn't contain any key") -> None:
        super().__init__(message)


class KeyRingLockError(KeyRingError):
    """Private key material is missing or could not be used."""


class WrongPassphraseError(KeyRingLockError):
    """The passphrase did not decrypt any private key in the ring."""

    def __init__(self, message: str = "Passphrase is wrong for every key", *, attempted: int = 0) -> None:
        super().__init__(message, attempted=attempted)
        self.attempted = attempted


class NoPrivateKeyError(KeyRingLockError):
    """Cannot unlock key ring, no private key available."""

    def __init__(self, message: str = "Cannot unlock key ring, no private key available") -> None:
        super().__init__(message)


class KeyRingNotUnlockedError(KeyRingLockError):
    """Cannot sign, no entity of the key ring is unlocked."""

    def __init__(self, message: str = "Cannot sign message, key ring is not unlocked") -> None:
        super().__init__(message)


class CryptoError(KeyRingError):
    """Cryptographic operation failed in the engine."""


class ParseError(CryptoError):
    """Key material or message could not be parsed."""


class ArmorError(ParseError):
    """ASCII armor could not be decoded."""


class NotAPgpMessageError(ArmorError):
    """Armored block is not a PGP message."""

    def __init__(self, message: str = "Not an armored PGP message", *, block_type: str | None = None) -> None:
        super().__init__(message, block_type=block_type)
        self.block_type = block_type


class DecryptionError(CryptoError):
    """Failed to decrypt a message or a session key."""


class SplitError(CryptoError):
    """Failed to separate the key packet from the data packet."""


class IntegrityError(CryptoError):
    """Data integrity verification failed (MDC failure)."""


class SignatureError(KeyRingError):
    """Signature verification did not succeed."""


class SignatureExpiredError(SignatureError):
    """Signature is cryptographically valid but expired or made in the future."""


class SignatureInvalidError(SignatureError):
    """Signature does not verify."""

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message, reason=reason)
        self.reason = reason


class SignatureNotReadyError(SignatureError):
    """The signature outcome was read before the decrypted stream was drained."""

    def __init__(
        self, message: str = "Signature can only be checked once the message has been read"
    ) -> None:
        super().__init__(message)


class AllKeysExpiredError(KeyRingError):
    """Every contact key is expired."""

    def __init__(self, message: str = "All contacts keys are expired", *, expired: int = 0) -> None:
        super().__init__(message, expired=expired)
        self.expired = expired
