"""
OpenPGP packet framing.

Only the packet headers are interpreted here; packet bodies are handed to the
engine or to the data packet decryption untouched.
"""

from collections.abc import Iterator

from proton_keyring.exceptions import ParseError
from proton_keyring.models.crypto import PacketHeader

TAG_PKESK = 1
TAG_COMPRESSED_DATA = 8
TAG_SYMMETRICALLY_ENCRYPTED_DATA = 9
TAG_LITERAL_DATA = 11
TAG_SEIPD = 18


def parse_packet_header(data: bytes, offset: int = 0) -> PacketHeader:
    """
    Parse the packet header starting at ``offset``.

    Args:
        data: Packet stream.
        offset: Position of the tag octet.

    Returns:
        Parsed header.

    Raises:
        ParseError: If the header is truncated, malformed, or uses partial or
            indeterminate body lengths.
    """
    if offset >= len(data):
        msg = "Missing packet header"
        raise ParseError(msg, offset=offset)

    first_byte = data[offset]
    rest = data[offset + 1 :]

    if _is_new_format_packet(first_byte):
        body_length, length_bytes = _parse_new_format_length(rest)
        return PacketHeader(tag=first_byte & 0x3F, header_length=1 + length_bytes, body_length=body_length)

    if _is_old_format_packet(first_byte):
        length_type = first_byte & 0x03
        body_length, length_bytes = _parse_old_format_length(rest, length_type)
        return PacketHeader(
            tag=(first_byte & 0x3C) >> 2, header_length=1 + length_bytes, body_length=body_length
        )

    msg = f"Invalid packet header: 0x{first_byte:02x}"
    raise ParseError(msg, offset=offset)


def iter_packets(data: bytes) -> Iterator[tuple[int, PacketHeader]]:
    """
    Walk a packet stream.

    Yields:
        ``(offset, header)`` for each packet in order.

    Raises:
        ParseError: If a header is malformed or a body runs past the end.
    """
    offset = 0
    while offset < len(data):
        header = parse_packet_header(data, offset)
        if offset + header.total_length > len(data):
            msg = "Packet body extends past end of data"
            raise ParseError(msg, offset=offset, tag=header.tag)
        yield offset, header
        offset += header.total_length


def literal_data_contents(data: bytes) -> bytes:
    """
    Return the contents of the first literal data packet in ``data``.

    One-pass signature and signature packets around it are skipped.

    Raises:
        ParseError: If there is no literal data packet.
    """
    for offset, header in iter_packets(data):
        if header.tag == TAG_COMPRESSED_DATA:
            msg = "Compressed data is not supported here"
            raise ParseError(msg)
        if header.tag != TAG_LITERAL_DATA:
            continue
        body = data[offset + header.header_length : offset + header.total_length]
        return _literal_body_contents(body)

    msg = "No literal data packet found"
    raise ParseError(msg)


def _literal_body_contents(body: bytes) -> bytes:
    # format(1) + filename length(1) + filename + date(4)
    if len(body) < 6:
        msg = "Literal data packet too short"
        raise ParseError(msg)
    filename_len = body[1]
    start = 2 + filename_len + 4
    if start > len(body):
        msg = "Literal data packet too short"
        raise ParseError(msg)
    return body[start:]


def _is_new_format_packet(first_byte: int) -> bool:
    return (first_byte & 0xC0) == 0xC0


def _is_old_format_packet(first_byte: int) -> bool:
    return (first_byte & 0x80) == 0x80


def _parse_new_format_length(data: bytes) -> tuple[int, int]:
    if not data:
        msg = "Missing length byte"
        raise ParseError(msg)

    first_byte = data[0]

    if first_byte < 192:
        return first_byte, 1

    if first_byte < 224:
        if len(data) < 2:
            msg = "Incomplete two-byte length"
            raise ParseError(msg)
        length = ((first_byte - 192) << 8) + data[1] + 192
        return length, 2

    if first_byte == 255:
        if len(data) < 5:
            msg = "Incomplete five-byte length"
            raise ParseError(msg)
        return int.from_bytes(data[1:5], "big"), 5

    msg = "Partial body length not supported"
    raise ParseError(msg)


def _parse_old_format_length(data: bytes, length_type: int) -> tuple[int, int]:
    if length_type == 0:
        if len(data) < 1:
            msg = "Missing length byte"
            raise ParseError(msg)
        return data[0], 1

    if length_type == 1:
        if len(data) < 2:
            msg = "Incomplete two-byte length"
            raise ParseError(msg)
        return int.from_bytes(data[:2], "big"), 2

    if length_type == 2:
        if len(data) < 4:
            msg = "Incomplete four-byte length"
            raise ParseError(msg)
        return int.from_bytes(data[:4], "big"), 4

    msg = "Indeterminate length not supported"
    raise ParseError(msg)
