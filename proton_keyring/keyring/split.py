"""
Key packet / data packet separation of self-encrypted messages.

An encrypted message is a run of public-key encrypted session key packets
followed by one encrypted data packet. Splitting it lets the data packet be
stored once while the key packet is re-encrypted per recipient.
"""

from typing import TYPE_CHECKING

import structlog

from proton_keyring.crypto.aes import decrypt_data_packet
from proton_keyring.crypto.packets import (
    TAG_PKESK,
    TAG_SEIPD,
    TAG_SYMMETRICALLY_ENCRYPTED_DATA,
    iter_packets,
)
from proton_keyring.exceptions import DecryptionError, ParseError, SplitError
from proton_keyring.models.crypto import EncryptedSplit, SessionKey

if TYPE_CHECKING:
    from proton_keyring.keyring.keyring import KeyRing

logger = structlog.get_logger(__name__)

_DATA_PACKET_TAGS = (TAG_SEIPD, TAG_SYMMETRICALLY_ENCRYPTED_DATA)


def find_data_packet(message: bytes) -> tuple[int, int, int]:
    """
    Locate the encrypted data packet of ``message``.

    Returns:
        ``(offset, total_length, body_length)`` of the data packet.

    Raises:
        SplitError: If the framing is malformed, uses partial or indeterminate
            lengths, or has no session key packet before the data packet.
    """
    try:
        for offset, header in iter_packets(message):
            if header.tag == TAG_PKESK:
                continue
            if header.tag not in _DATA_PACKET_TAGS:
                msg = f"Unexpected packet before the data packet: tag {header.tag}"
                raise SplitError(msg, offset=offset)
            if offset == 0:
                msg = "Message has no key packet"
                raise SplitError(msg)
            return offset, header.total_length, header.body_length
    except ParseError as e:
        msg = f"Cannot separate key and data packets: {e}"
        raise SplitError(msg) from e

    msg = "Message has no data packet"
    raise SplitError(msg)


def separate_key_and_data(ring: "KeyRing", message: bytes, plaintext_length: int) -> EncryptedSplit:
    """
    Split an encrypted message into its key packet and data packet.

    Args:
        ring: Key ring able to decrypt the key packet.
        message: Binary encrypted message.
        plaintext_length: Length in bytes of the encrypted plaintext.

    Returns:
        The split, with the symmetric algorithm read from the session key.

    Raises:
        SplitError: If the packet boundary cannot be found or the data packet
            is too short to hold the plaintext.
    """
    offset, total_length, body_length = find_data_packet(message)
    if body_length < plaintext_length:
        msg = "Data packet is shorter than the plaintext"
        raise SplitError(msg, body_length=body_length, plaintext_length=plaintext_length)

    key_packet = bytes(message[:offset])
    data_packet = bytes(message[offset : offset + total_length])
    session_key = ring.decrypt_session_key(key_packet)
    logger.debug(
        "Separated key and data packets",
        key_packet_length=len(key_packet),
        data_packet_length=len(data_packet),
        algorithm=session_key.algorithm.tag,
    )
    return EncryptedSplit(key_packet=key_packet, data_packet=data_packet, algorithm=session_key.algorithm)


def decrypt_data(split: EncryptedSplit, session_key: SessionKey) -> bytes:
    """
    Decrypt the data packet of ``split`` with a recovered session key.

    Raises:
        DecryptionError: If the session key does not match the split's algorithm
            or the data packet cannot be decrypted.
        IntegrityError: If the MDC check fails.
    """
    if session_key.algorithm != split.algorithm:
        msg = (
            f"Session key algorithm {session_key.algorithm.name} "
            f"does not match split algorithm {split.algorithm.name}"
        )
        raise DecryptionError(msg)
    return decrypt_data_packet(split.data_packet, session_key)
