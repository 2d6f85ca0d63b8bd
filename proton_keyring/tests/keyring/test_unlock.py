from collections.abc import Callable
from unittest.mock import Mock

import pytest

from proton_keyring.crypto.passphrase import Passphrase
from proton_keyring.exceptions import (
    KeyRingNotUnlockedError,
    NoPrivateKeyError,
    WrongPassphraseError,
)
from proton_keyring.keyring import KeyRing
from proton_keyring.models.keys import Entity, KeySalt, LockedKey, UnlockedKey
from proton_keyring.tests.constants import (
    KEY_ID,
    KEY_SALT,
    MAILBOX_PASSPHRASE,
    MAILBOX_PASSWORD,
    PASSPHRASE,
    SUBKEY_PASSPHRASE,
    WRONG_PASSPHRASE,
)


def test_unlock_decrypts_primary_key(make_key_ring: Callable[..., KeyRing]) -> None:
    ring = make_key_ring()

    assert ring.unlock(PASSPHRASE) == 1
    assert isinstance(ring.entities[0].private_key, UnlockedKey)


def test_unlock_accepts_passphrase_object(make_key_ring: Callable[..., KeyRing]) -> None:
    ring = make_key_ring()
    passphrase = Passphrase.from_string(PASSPHRASE)

    ring.unlock(passphrase)

    assert ring.entities[0].is_unlocked
    assert not passphrase.is_cleared


def test_unlock_raises_on_wrong_passphrase(make_key_ring: Callable[..., KeyRing]) -> None:
    ring = make_key_ring()

    with pytest.raises(WrongPassphraseError) as exc_info:
        ring.unlock(WRONG_PASSPHRASE)

    assert exc_info.value.attempted == 1
    assert isinstance(ring.entities[0].private_key, LockedKey)


def test_unlock_again_returns_zero(make_key_ring: Callable[..., KeyRing]) -> None:
    ring = make_key_ring(passphrase=PASSPHRASE)

    assert ring.unlock(WRONG_PASSPHRASE) == 0


def test_unlock_unprotected_key_returns_zero(make_key_ring: Callable[..., KeyRing]) -> None:
    ring = make_key_ring("unprotected")

    assert ring.unlock("anything") == 0
    assert ring.entities[0].is_unlocked


def test_unlock_raises_without_private_key(make_key_ring: Callable[..., KeyRing]) -> None:
    public_ring = KeyRing.from_armored(make_key_ring().armored_public_key())

    with pytest.raises(NoPrivateKeyError):
        public_ring.unlock(PASSPHRASE)


def test_unlock_is_piecewise_across_passphrases(make_key_ring: Callable[..., KeyRing]) -> None:
    ring = make_key_ring("subkey")
    entity = ring.entities[0]
    subkey = entity.subkeys[0]

    assert ring.unlock(PASSPHRASE) == 1
    assert entity.is_unlocked
    assert not subkey.is_unlocked

    armored = ring.encrypt_string("for the subkey")
    with pytest.raises(KeyRingNotUnlockedError):
        ring.decrypt_string(armored)

    assert ring.unlock(SUBKEY_PASSPHRASE) == 1
    assert subkey.is_unlocked
    assert ring.decrypt_string(armored).string == "for the subkey"


def test_unlock_tries_every_entity(make_key_ring: Callable[..., KeyRing]) -> None:
    mailbox = make_key_ring("mailbox")
    primary = make_key_ring()
    ring = KeyRing([*mailbox.entities, *primary.entities])

    assert ring.unlock(PASSPHRASE) == 1
    assert not ring.entities[0].is_unlocked
    assert ring.entities[1].is_unlocked


def test_unlock_with_password_derives_passphrase_from_salt(make_key_ring: Callable[..., KeyRing]) -> None:
    ring = KeyRing(make_key_ring("mailbox").entities, first_key_id=KEY_ID)

    unlocked = ring.unlock_with_password(MAILBOX_PASSWORD, [KeySalt(key_id=KEY_ID, salt=KEY_SALT)])

    assert unlocked == 1
    assert ring.entities[0].is_unlocked


def test_unlock_with_password_uses_password_without_salt(make_key_ring: Callable[..., KeyRing]) -> None:
    ring = KeyRing(make_key_ring("mailbox").entities, first_key_id=KEY_ID)

    unlocked = ring.unlock_with_password(MAILBOX_PASSPHRASE, [KeySalt(key_id="other-key", salt=KEY_SALT)])

    assert unlocked == 1


def test_unlock_delegates_to_engine() -> None:
    engine = Mock()
    engine.unlock_key.side_effect = [WrongPassphraseError(attempted=1), "material"]
    first = Entity(fingerprint="FP1", key_id="KEY1", handle=None, private_key=LockedKey("one"))
    second = Entity(fingerprint="FP2", key_id="KEY2", handle=None, private_key=LockedKey("two"))
    ring = KeyRing([first, second], engine=engine)

    assert ring.unlock(PASSPHRASE) == 1
    assert first.private_key == LockedKey("one")
    assert second.private_key == UnlockedKey("material")
    assert engine.unlock_key.call_count == 2


def test_get_signing_entity_unlocks_primary(make_key_ring: Callable[..., KeyRing]) -> None:
    ring = make_key_ring()

    entity = ring.get_signing_entity(PASSPHRASE)

    assert entity is ring.entities[0]
    assert entity.is_unlocked


def test_get_signing_entity_returns_none_on_wrong_passphrase(make_key_ring: Callable[..., KeyRing]) -> None:
    ring = make_key_ring()

    assert ring.get_signing_entity(WRONG_PASSPHRASE) is None
