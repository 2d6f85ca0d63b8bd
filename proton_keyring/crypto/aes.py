"""
Data packet decryption with a known session key.

Decrypts the Symmetrically Encrypted Integrity Protected Data (SEIPD) packet
of a split message once its session key has been recovered from the key
packet.
"""

import hashlib
import hmac

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from proton_keyring.crypto.packets import TAG_SEIPD, literal_data_contents, parse_packet_header
from proton_keyring.exceptions import DecryptionError, IntegrityError, ParseError
from proton_keyring.models.crypto import SessionKey, SymmetricAlgorithm

_MDC_PACKET_SIZE = 22  # 2-byte header + 20-byte SHA-1
_MDC_HEADER = b"\xd3\x14"
_MDC_HASH_SIZE = 20
_AES_ALGORITHMS = (SymmetricAlgorithm.AES_128, SymmetricAlgorithm.AES_192, SymmetricAlgorithm.AES_256)


def decrypt_data_packet(data_packet: bytes, session_key: SessionKey) -> bytes:
    """
    Decrypt a complete SEIPD packet (header included) and return the literal contents.

    Args:
        data_packet: The data packet of an encrypted split.
        session_key: Session key recovered from the key packet.

    Returns:
        Decrypted message contents.

    Raises:
        DecryptionError: If the packet or the algorithm is unsupported or the key is wrong.
        IntegrityError: If MDC verification fails.
    """
    try:
        header = parse_packet_header(data_packet)
    except ParseError as e:
        msg = f"Invalid data packet: {e}"
        raise DecryptionError(msg) from e

    if header.tag != TAG_SEIPD:
        msg = f"Expected SEIPD packet (tag {TAG_SEIPD}), got tag {header.tag}"
        raise DecryptionError(msg)

    body = data_packet[header.header_length : header.total_length]
    plaintext = decrypt_seipd_body(body, session_key)
    try:
        return literal_data_contents(plaintext[: -_MDC_PACKET_SIZE])
    except ParseError as e:
        msg = f"Decrypted data is not a literal message: {e}"
        raise DecryptionError(msg) from e


def decrypt_seipd_body(body: bytes, session_key: SessionKey) -> bytes:
    """
    Decrypt a SEIPD packet body and verify its MDC.

    Returns:
        The decrypted packet stream, still ending with the MDC packet.
    """
    if len(body) < 1:
        raise DecryptionError("SEIPD packet too short")

    version = body[0]
    if version != 1:
        raise DecryptionError(f"Unsupported SEIPD version: {version}")

    if session_key.algorithm not in _AES_ALGORITHMS:
        raise DecryptionError(f"Unsupported data packet cipher: {session_key.algorithm.name}")

    block_size = session_key.block_size
    ciphertext = body[1:]
    min_size = block_size + 2 + _MDC_PACKET_SIZE
    if len(ciphertext) < min_size:
        raise DecryptionError(f"Encrypted data too short: {len(ciphertext)} < {min_size}")

    plaintext = _decrypt_openpgp_cfb(ciphertext, session_key.key_data, block_size)
    _verify_mdc(plaintext)
    return plaintext[block_size + 2 :]


def _decrypt_openpgp_cfb(ciphertext: bytes, key: bytes, block_size: int) -> bytes:
    # SEIPD uses plain CFB with a zero IV over prefix and data together
    decryptor = Cipher(algorithms.AES(key), modes.CFB(bytes(block_size))).decryptor()
    plaintext = decryptor.update(ciphertext) + decryptor.finalize()

    # Last 2 bytes of the random prefix are repeated
    if plaintext[block_size - 2 : block_size] != plaintext[block_size : block_size + 2]:
        raise DecryptionError("CFB prefix verification failed, possibly wrong key")

    return plaintext


def _verify_mdc(plaintext: bytes) -> None:
    if len(plaintext) < _MDC_PACKET_SIZE:
        raise IntegrityError("Data too short for MDC")

    mdc_packet = plaintext[-_MDC_PACKET_SIZE:]
    if mdc_packet[:2] != _MDC_HEADER:
        raise IntegrityError(f"Invalid MDC header: {mdc_packet[:2].hex()}")

    computed_hash = hashlib.sha1(plaintext[:-_MDC_HASH_SIZE]).digest()
    if not hmac.compare_digest(computed_hash, mdc_packet[2:]):
        raise IntegrityError("MDC verification failed, data may be corrupted or tampered")
