import pytest

from proton_keyring.crypto.passphrase import Passphrase, derive_mailbox_passphrase
from proton_keyring.tests.constants import KEY_SALT, MAILBOX_PASSPHRASE, MAILBOX_PASSWORD


def test_passphrase_provides_access_to_data() -> None:
    passphrase = Passphrase(b"secret")

    assert bytes(passphrase) == b"secret"
    assert len(passphrase) == 6
    assert passphrase.decode() == "secret"
    assert not passphrase.is_cleared
    passphrase.clear()


def test_clear_zeros_data_and_sets_flag() -> None:
    passphrase = Passphrase.from_string("secret")
    passphrase.clear()

    assert passphrase.is_cleared
    assert passphrase._data == bytearray(6)


def test_original_data_not_modified_after_clear() -> None:
    original = bytearray(b"secret")
    passphrase = Passphrase(original)
    passphrase.clear()

    assert original == bytearray(b"secret")


def test_context_manager_clears_on_exit() -> None:
    with Passphrase(b"secret") as passphrase:
        assert not passphrase.is_cleared

    assert passphrase.is_cleared


def test_decode_after_clear_raises_runtime_error() -> None:
    passphrase = Passphrase(b"secret")
    passphrase.clear()

    with pytest.raises(RuntimeError, match="Passphrase has been cleared"):
        passphrase.decode()


def test_repr_does_not_leak_contents() -> None:
    passphrase = Passphrase(b"secret")

    assert "secret" not in repr(passphrase)
    passphrase.clear()
    assert repr(passphrase) == "Passphrase(<cleared>)"


def test_equality_is_false_once_cleared() -> None:
    first = Passphrase(b"secret")
    second = Passphrase(b"secret")

    assert first == second
    assert first == b"secret"
    first.clear()
    assert first != second


def test_passphrase_is_not_hashable() -> None:
    with pytest.raises(TypeError):
        hash(Passphrase(b"secret"))


@pytest.mark.parametrize("value", ["secret", b"secret", bytearray(b"secret")])
def test_coerce_wraps_raw_values(value: str | bytes | bytearray) -> None:
    passphrase = Passphrase.coerce(value)

    assert bytes(passphrase) == b"secret"


def test_coerce_returns_passphrase_unchanged() -> None:
    passphrase = Passphrase(b"secret")

    assert Passphrase.coerce(passphrase) is passphrase


def test_derive_mailbox_passphrase_matches_known_vector() -> None:
    with derive_mailbox_passphrase(Passphrase.from_string(MAILBOX_PASSWORD), KEY_SALT) as passphrase:
        assert passphrase.decode() == MAILBOX_PASSPHRASE
        assert len(passphrase) == 31
