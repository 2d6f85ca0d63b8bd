"""
Key ring configuration.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from proton_keyring.models.crypto import SymmetricAlgorithm

_AES_CIPHERS = (SymmetricAlgorithm.AES_128, SymmetricAlgorithm.AES_192, SymmetricAlgorithm.AES_256)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class KeyRingConfig:
    """
    Attributes:
        cipher: Symmetric cipher used for new messages.
        compress: Whether new messages are ZIP-compressed before encryption.
        clock: Returns the current time (timezone-aware). Used for message and
            signature timestamps and for expiry checks, so server time can be
            injected.
        armor_comment: Value of the ``Comment`` armor header, or None to omit it.
    """

    cipher: SymmetricAlgorithm = SymmetricAlgorithm.AES_256
    compress: bool = False
    clock: Callable[[], datetime] = field(default=utc_now)
    armor_comment: str | None = "https://protonmail.com"

    def __post_init__(self) -> None:
        if self.cipher not in _AES_CIPHERS:
            msg = f"cipher must be an AES variant, got {self.cipher.name}"
            raise ValueError(msg)

    def now(self) -> datetime:
        """Current time according to the configured clock."""
        current = self.clock()
        if current.tzinfo is None:
            return current.replace(tzinfo=timezone.utc)
        return current
