"""
Key material domain models.

Entities and subkeys are produced by the PGP engine when parsing key material.
The ``handle`` and key ``material`` fields are opaque engine objects; the
orchestration layer never looks inside them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class KeyFlag(Enum):
    """Capabilities a subkey binding signature can grant."""

    SIGN = "sign"
    ENCRYPT_STORAGE = "encrypt-storage"
    ENCRYPT_COMMUNICATIONS = "encrypt-communications"


@dataclass(frozen=True, kw_only=True)
class Identity:
    """Name and email of a key holder."""

    name: str
    email: str


@dataclass(frozen=True)
class LockedKey:
    """Private key material still encrypted with its passphrase."""

    material: Any


@dataclass(frozen=True)
class UnlockedKey:
    """Private key material usable for signing and decryption."""

    material: Any


PrivateKey = LockedKey | UnlockedKey


@dataclass(eq=False, kw_only=True)
class Subkey:
    """
    A subkey of an entity.

    Attributes:
        fingerprint: Subkey fingerprint.
        key_id: 16 hex digit key ID.
        handle: Engine object for this subkey.
        private_key: Private material, None for public-only subkeys.
        flags: Capabilities from the binding signature.
        flags_valid: Whether the binding signature carries key flags at all.
        created: Creation time.
        expires_at: Expiry time, None if the subkey never expires.
    """

    fingerprint: str
    key_id: str
    handle: Any
    private_key: PrivateKey | None = None
    flags: frozenset[KeyFlag] = frozenset()
    flags_valid: bool = False
    created: datetime | None = None
    expires_at: datetime | None = None

    @property
    def is_encryption_capable(self) -> bool:
        # Subkeys without valid flags are treated as encryption keys
        if not self.flags_valid:
            return True
        return bool(self.flags & {KeyFlag.ENCRYPT_STORAGE, KeyFlag.ENCRYPT_COMMUNICATIONS})

    @property
    def is_unlocked(self) -> bool:
        return isinstance(self.private_key, UnlockedKey)

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return now > self.expires_at


@dataclass(eq=False, kw_only=True)
class Entity:
    """
    A single OpenPGP identity: a primary key with its subkeys and user IDs.

    Attributes:
        fingerprint: Primary key fingerprint.
        key_id: 16 hex digit primary key ID.
        handle: Engine object for the whole transferable key.
        private_key: Primary private material, None for public-only entities.
        subkeys: Subkeys in key order.
        identities: User IDs in key order.
    """

    fingerprint: str
    key_id: str
    handle: Any
    private_key: PrivateKey | None = None
    subkeys: list[Subkey] = field(default_factory=list)
    identities: list[Identity] = field(default_factory=list)

    @property
    def is_unlocked(self) -> bool:
        """True if the primary private key is present and decrypted."""
        return isinstance(self.private_key, UnlockedKey)

    @property
    def key_ids(self) -> set[str]:
        """Key IDs of the primary key and every subkey."""
        return {self.key_id} | {subkey.key_id for subkey in self.subkeys}


@dataclass(frozen=True, kw_only=True)
class KeyRecord:
    """
    A key as returned by the API key listing.

    Attributes:
        key_id: API key identifier.
        private_key: ASCII-armored private key.
        version: Key version.
        flags: API key flags.
        fingerprint: Primary fingerprint reported by the API.
        public_key: ASCII-armored public key, if present.
        primary: Whether this is the primary key.
    """

    key_id: str
    private_key: str
    version: int = 0
    flags: int = 0
    fingerprint: str | None = None
    public_key: str | None = None
    primary: bool = False


@dataclass(frozen=True, kw_only=True)
class KeySalt:
    """
    Key salt for password-based passphrase derivation.

    Attributes:
        key_id: The key this salt belongs to.
        salt: Base64-encoded salt value, empty for keys without salt.
    """

    key_id: str
    salt: str
