"""
Proton key ring.

Key ring management over an OpenPGP engine: parsing and unlocking keys,
choosing which key encrypts and which signs, and composing encryption,
signing, decryption and verification into string and stream APIs.

Example:
    ```python
    from proton_keyring import KeyRing

    ring = KeyRing.from_json(keys_json)
    ring.unlock_with_password("password", key_salts)

    armored = ring.encrypt_string("hello", signer=ring)
    decrypted = ring.decrypt_string(armored)
    assert decrypted.signature.is_by(ring)
    ```
"""

from proton_keyring.config import KeyRingConfig
from proton_keyring.crypto import Passphrase, PgpyArmorCodec, PgpyEngine
from proton_keyring.exceptions import (
    AllKeysExpiredError,
    ArmorError,
    CryptoError,
    DecryptionError,
    IntegrityError,
    KeyRingError,
    KeyRingLockError,
    KeyRingNotUnlockedError,
    NoKeyMaterialError,
    NoPrivateKeyError,
    NotAPgpMessageError,
    ParseError,
    SignatureError,
    SignatureExpiredError,
    SignatureInvalidError,
    SignatureNotReadyError,
    SplitError,
    WrongPassphraseError,
)
from proton_keyring.keyring import (
    DecryptedMessage,
    KeyRing,
    Signature,
    SignedString,
    filter_expired_keys,
)
from proton_keyring.models import (
    DetachedSignatureMode,
    EncryptedSplit,
    Entity,
    Identity,
    KeySalt,
    VerificationOutcome,
    VerificationStatus,
)

__version__ = "0.1.0"

__all__ = [
    # Key ring
    "KeyRing",
    "KeyRingConfig",
    "Signature",
    "SignedString",
    "DecryptedMessage",
    "filter_expired_keys",
    # Engine
    "PgpyEngine",
    "PgpyArmorCodec",
    "Passphrase",
    # Models
    "Entity",
    "Identity",
    "KeySalt",
    "EncryptedSplit",
    "DetachedSignatureMode",
    "VerificationOutcome",
    "VerificationStatus",
    # Exceptions
    "KeyRingError",
    "NoKeyMaterialError",
    "KeyRingLockError",
    "WrongPassphraseError",
    "NoPrivateKeyError",
    "KeyRingNotUnlockedError",
    "CryptoError",
    "ParseError",
    "ArmorError",
    "NotAPgpMessageError",
    "DecryptionError",
    "SplitError",
    "IntegrityError",
    "SignatureError",
    "SignatureExpiredError",
    "SignatureInvalidError",
    "SignatureNotReadyError",
    "AllKeysExpiredError",
]
