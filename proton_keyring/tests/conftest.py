from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pgpy
import pytest
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SignatureType,
    SymmetricKeyAlgorithm,
)

from proton_keyring.config import KeyRingConfig
from proton_keyring.keyring import KeyRing
from proton_keyring.tests.constants import (
    MAILBOX_PASSPHRASE,
    PASSPHRASE,
    SUBKEY_LIFETIME,
    SUBKEY_PASSPHRASE,
    USER_EMAIL,
    USER_NAME,
)

_ENCRYPT = {KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage}


def _create_key(usage: set[KeyFlags], name: str = USER_NAME, email: str = USER_EMAIL) -> pgpy.PGPKey:
    key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    uid = pgpy.PGPUID.new(name, comment="test", email=email)
    key.add_uid(
        uid,
        usage=usage,
        hashes=[HashAlgorithm.SHA256],
        ciphers=[SymmetricKeyAlgorithm.AES256],
        compression=[CompressionAlgorithm.Uncompressed],
    )
    return key


def _protect(key: pgpy.PGPKey, passphrase: str) -> None:
    key.protect(passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)


def _create_key_with_subkey() -> pgpy.PGPKey:
    """Primary key that only signs, encryption subkey locked with its own passphrase."""
    key = _create_key({KeyFlags.Sign, KeyFlags.Certify})
    subkey = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    key.add_subkey(subkey, usage=_ENCRYPT)
    _protect(subkey, SUBKEY_PASSPHRASE)
    # primary packet only, the subkey is already protected
    key._key.protect(PASSPHRASE, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    return key


def _create_key_with_expiring_subkey() -> pgpy.PGPKey:
    """Unprotected key whose encryption subkey expires SUBKEY_LIFETIME after its creation."""
    key = _create_key({KeyFlags.Sign, KeyFlags.Certify})
    subkey = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    key.add_subkey(subkey, usage=_ENCRYPT)
    # add_subkey ignores key_expiration, so add a newer binding that carries it
    binding = pgpy.PGPSignature.new(
        SignatureType.Subkey_Binding,
        key.key_algorithm,
        HashAlgorithm.SHA256,
        key.fingerprint.keyid,
        created=datetime.now(timezone.utc) + timedelta(minutes=1),
    )
    binding._signature.subpackets.addnew("KeyFlags", hashed=True, flags=_ENCRYPT)
    binding._signature.subpackets.addnew("KeyExpirationTime", hashed=True, expires=SUBKEY_LIFETIME)
    subkey |= key._sign(subkey, binding)
    return key


@pytest.fixture(scope="session")
def armored_keys() -> dict[str, str]:
    """
    Armored private keys, generated once per session.

    - ``primary``: sign and encrypt primary key, locked with PASSPHRASE
    - ``other``: same shape, different key, locked with PASSPHRASE
    - ``subkey``: signing primary locked with PASSPHRASE and encryption
      subkey locked with SUBKEY_PASSPHRASE
    - ``expiring``: no passphrase, encryption subkey bound with a
      SUBKEY_LIFETIME key expiration
    - ``mailbox``: locked with the passphrase derived from MAILBOX_PASSWORD
    - ``unprotected``: no passphrase
    """
    primary = _create_key({KeyFlags.Sign, *_ENCRYPT})
    _protect(primary, PASSPHRASE)

    other = _create_key({KeyFlags.Sign, *_ENCRYPT}, name="Other User", email="other@test.com")
    _protect(other, PASSPHRASE)

    mailbox = _create_key({KeyFlags.Sign, *_ENCRYPT})
    _protect(mailbox, MAILBOX_PASSPHRASE)

    unprotected = _create_key({KeyFlags.Sign, *_ENCRYPT})

    return {
        "primary": str(primary),
        "other": str(other),
        "subkey": str(_create_key_with_subkey()),
        "expiring": str(_create_key_with_expiring_subkey()),
        "mailbox": str(mailbox),
        "unprotected": str(unprotected),
    }


@pytest.fixture
def make_key_ring(armored_keys: dict[str, str]) -> Callable[..., KeyRing]:
    """Fresh key ring over one generated key; entities are never shared between rings."""

    def _make(
        name: str = "primary",
        *,
        passphrase: str | None = None,
        config: KeyRingConfig | None = None,
    ) -> KeyRing:
        ring = KeyRing.from_armored(armored_keys[name], config=config)
        if passphrase is not None:
            ring.unlock(passphrase)
        return ring

    return _make


@pytest.fixture
def unlocked_ring(make_key_ring: Callable[..., KeyRing]) -> KeyRing:
    return make_key_ring(passphrase=PASSPHRASE)
