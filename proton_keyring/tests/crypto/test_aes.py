import hashlib
import os

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from proton_keyring.crypto.aes import _verify_mdc, decrypt_data_packet, decrypt_seipd_body
from proton_keyring.exceptions import DecryptionError, IntegrityError
from proton_keyring.models.crypto import SessionKey, SymmetricAlgorithm


def _create_session_key(
    algorithm: SymmetricAlgorithm = SymmetricAlgorithm.AES_256,
) -> SessionKey:
    return SessionKey(algorithm=algorithm, key_data=os.urandom(algorithm.key_size))


def _build_literal_data_packet(content: bytes) -> bytes:
    """Build a minimal new-format literal data packet (tag 11)."""
    # format=binary, no filename, date=0
    body = b"b" + b"\x00" + b"\x00\x00\x00\x00" + content
    return b"\xcb" + bytes([len(body)]) + body


def _build_seipd_body(content: bytes, session_key: SessionKey, *, tamper: bool = False) -> bytes:
    """
    Build a SEIPD v1 body from plaintext content.

    Plaintext layout: [random prefix (block_size bytes)] + [prefix[-2:]] +
                      [literal data packet] + [\\xd3\\x14] + [sha1 hash (20 bytes)]
    Then CFB-encrypt with zero IV and prepend version byte 0x01.
    """
    block_size = session_key.block_size
    random_prefix = os.urandom(block_size)
    literal_packet = _build_literal_data_packet(content)
    data_before_hash = random_prefix + random_prefix[-2:] + literal_packet + b"\xd3\x14"
    mdc_hash = hashlib.sha1(data_before_hash).digest()
    if tamper:
        mdc_hash = bytes(20)
    plaintext = data_before_hash + mdc_hash

    encryptor = Cipher(algorithms.AES(session_key.key_data), modes.CFB(bytes(block_size))).encryptor()
    return b"\x01" + encryptor.update(plaintext) + encryptor.finalize()


def _build_seipd_packet(content: bytes, session_key: SessionKey, *, tamper: bool = False) -> bytes:
    body = _build_seipd_body(content, session_key, tamper=tamper)
    return b"\xd2" + bytes([len(body)]) + body


@pytest.mark.parametrize(
    "algorithm",
    [SymmetricAlgorithm.AES_128, SymmetricAlgorithm.AES_192, SymmetricAlgorithm.AES_256],
)
def test_decrypt_data_packet_returns_literal_contents(algorithm: SymmetricAlgorithm) -> None:
    session_key = _create_session_key(algorithm)
    packet = _build_seipd_packet(b"Hello, World!", session_key)

    assert decrypt_data_packet(packet, session_key) == b"Hello, World!"


def test_decrypt_data_packet_rejects_non_seipd_packet() -> None:
    session_key = _create_session_key()

    with pytest.raises(DecryptionError, match="Expected SEIPD packet"):
        decrypt_data_packet(b"\xc9\x03abc", session_key)


def test_decrypt_data_packet_rejects_malformed_header() -> None:
    session_key = _create_session_key()

    with pytest.raises(DecryptionError, match="Invalid data packet"):
        decrypt_data_packet(b"\x00", session_key)


def test_decrypt_data_packet_raises_on_wrong_key() -> None:
    session_key = _create_session_key()
    packet = _build_seipd_packet(b"secret", session_key)

    with pytest.raises((DecryptionError, IntegrityError)):
        decrypt_data_packet(packet, _create_session_key())


def test_decrypt_data_packet_raises_on_tampered_mdc() -> None:
    session_key = _create_session_key()
    packet = _build_seipd_packet(b"secret", session_key, tamper=True)

    with pytest.raises(IntegrityError, match="MDC verification failed"):
        decrypt_data_packet(packet, session_key)


def test_decrypt_seipd_body_raises_on_empty_data() -> None:
    with pytest.raises(DecryptionError, match="SEIPD packet too short"):
        decrypt_seipd_body(b"", _create_session_key())


def test_decrypt_seipd_body_raises_on_unsupported_version() -> None:
    data = b"\x02" + b"\x00" * 100

    with pytest.raises(DecryptionError, match="Unsupported SEIPD version: 2"):
        decrypt_seipd_body(data, _create_session_key())


def test_decrypt_seipd_body_raises_on_non_aes_cipher() -> None:
    session_key = SessionKey(algorithm=SymmetricAlgorithm.CAST5, key_data=b"\x00" * 16)
    data = b"\x01" + b"\x00" * 100

    with pytest.raises(DecryptionError, match="Unsupported data packet cipher"):
        decrypt_seipd_body(data, session_key)


def test_decrypt_seipd_body_raises_on_short_ciphertext() -> None:
    # block_size + 2 + 22 = 40 for AES
    data = b"\x01" + b"\x00" * 30

    with pytest.raises(DecryptionError, match="Encrypted data too short"):
        decrypt_seipd_body(data, _create_session_key())


def test_verify_mdc_raises_on_short_data() -> None:
    with pytest.raises(IntegrityError, match="Data too short for MDC"):
        _verify_mdc(b"\x00" * 10)


def test_verify_mdc_raises_on_invalid_header() -> None:
    data = b"\x00" * 20 + b"\xd4\x14"

    with pytest.raises(IntegrityError, match="Invalid MDC header"):
        _verify_mdc(data)


def test_verify_mdc_succeeds_with_valid_hash() -> None:
    content = b"test content" + b"\xd3\x14"
    plaintext = content + hashlib.sha1(content).digest()

    _verify_mdc(plaintext)
