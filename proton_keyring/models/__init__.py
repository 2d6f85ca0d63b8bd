"""
Domain models for proton_keyring.

Value types are frozen dataclasses. Entities and subkeys are mutable only
through key ring unlocking.
"""

from proton_keyring.models.crypto import (
    BlockType,
    DetachedSignatureMode,
    EncryptedSplit,
    PacketHeader,
    SessionKey,
    SymmetricAlgorithm,
    VerificationOutcome,
    VerificationStatus,
)
from proton_keyring.models.keys import (
    Entity,
    Identity,
    KeyFlag,
    KeyRecord,
    KeySalt,
    LockedKey,
    PrivateKey,
    Subkey,
    UnlockedKey,
)

__all__ = [
    # Keys
    "Entity",
    "Subkey",
    "Identity",
    "KeyFlag",
    "LockedKey",
    "UnlockedKey",
    "PrivateKey",
    "KeyRecord",
    "KeySalt",
    # Crypto
    "SymmetricAlgorithm",
    "SessionKey",
    "EncryptedSplit",
    "PacketHeader",
    "BlockType",
    "DetachedSignatureMode",
    "VerificationStatus",
    "VerificationOutcome",
]
