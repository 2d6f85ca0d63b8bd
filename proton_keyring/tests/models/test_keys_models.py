from datetime import datetime, timedelta, timezone

from proton_keyring.models.keys import Entity, KeyFlag, LockedKey, Subkey, UnlockedKey

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _create_subkey(
    key_id: str = "SUB1",
    flags: frozenset[KeyFlag] = frozenset(),
    flags_valid: bool = True,
    expires_at: datetime | None = None,
) -> Subkey:
    return Subkey(
        fingerprint=f"FP{key_id}",
        key_id=key_id,
        handle=None,
        flags=flags,
        flags_valid=flags_valid,
        expires_at=expires_at,
    )


def test_subkey_with_encryption_flag_is_encryption_capable() -> None:
    subkey = _create_subkey(flags=frozenset({KeyFlag.ENCRYPT_STORAGE}))

    assert subkey.is_encryption_capable


def test_subkey_with_sign_flag_only_is_not_encryption_capable() -> None:
    subkey = _create_subkey(flags=frozenset({KeyFlag.SIGN}))

    assert not subkey.is_encryption_capable


def test_subkey_without_valid_flags_is_encryption_capable() -> None:
    subkey = _create_subkey(flags=frozenset({KeyFlag.SIGN}), flags_valid=False)

    assert subkey.is_encryption_capable


def test_subkey_without_expiry_never_expires() -> None:
    assert not _create_subkey().is_expired(NOW + timedelta(days=10_000))


def test_subkey_is_expired_after_expiry() -> None:
    subkey = _create_subkey(expires_at=NOW)

    assert not subkey.is_expired(NOW)
    assert subkey.is_expired(NOW + timedelta(seconds=1))


def test_entity_is_unlocked_only_with_unlocked_private_key() -> None:
    entity = Entity(fingerprint="FP", key_id="KEY", handle=None)

    assert not entity.is_unlocked
    entity.private_key = LockedKey("material")
    assert not entity.is_unlocked
    entity.private_key = UnlockedKey("material")
    assert entity.is_unlocked


def test_entity_key_ids_include_subkeys() -> None:
    entity = Entity(
        fingerprint="FP",
        key_id="KEY",
        handle=None,
        subkeys=[_create_subkey("SUB1"), _create_subkey("SUB2")],
    )

    assert entity.key_ids == {"KEY", "SUB1", "SUB2"}
