"""
ASCII armor encoding and decoding.

Both directions go through pgpy: decoding uses its armor parser and encoding
wraps the bytes in an ``Armorable`` so the block layout is pgpy's own.
"""

import io
from typing import BinaryIO

from pgpy.types import Armorable, PGPObject

from proton_keyring.config import KeyRingConfig
from proton_keyring.crypto.protocol import ArmorBlock, WriteStream
from proton_keyring.exceptions import ArmorError
from proton_keyring.models.crypto import BlockType

_VERSION_HEADER = "proton-keyring"


class _ArmoredPayload(Armorable, PGPObject):
    """Opaque packet bytes, armored with pgpy's block layout."""

    def __init__(self, data: bytes = b"", block_type: str = BlockType.MESSAGE) -> None:
        super().__init__()
        self._data = bytearray(data)
        self._block_type = str(block_type)

    @property
    def magic(self) -> str:
        return self._block_type

    def parse(self, packet: bytearray) -> None:
        self._data = bytearray(packet)

    def __bytearray__(self) -> bytearray:
        return bytearray(self._data)


def armor(data: bytes, block_type: BlockType | str, config: KeyRingConfig) -> str:
    """
    Armor ``data`` as a ``block_type`` block.

    Args:
        data: Binary contents.
        block_type: Armor block type.
        config: Supplies the comment header.

    Returns:
        The armored text, ending with a newline.
    """
    payload = _ArmoredPayload(data, block_type)
    payload.ascii_headers["Version"] = _VERSION_HEADER
    if config.armor_comment:
        payload.ascii_headers["Comment"] = config.armor_comment
    return str(payload)


class ArmorWriter:
    """Buffers written bytes and emits one armored block on close."""

    def __init__(
        self, sink: WriteStream | BinaryIO, block_type: BlockType, config: KeyRingConfig
    ) -> None:
        self._sink = sink
        self._block_type = block_type
        self._config = config
        self._buffer = io.BytesIO()
        self._closed = False

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("write to closed armor stream")
        return self._buffer.write(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sink.write(armor(self._buffer.getvalue(), self._block_type, self._config).encode("ascii"))


class PgpyArmorCodec:
    """
    ArmorCodec implementation backed by pgpy's armor parser.

    Example:
        codec = PgpyArmorCodec(KeyRingConfig())
        block = codec.decode(armored_text)
    """

    def __init__(self, config: KeyRingConfig | None = None) -> None:
        self._config = config or KeyRingConfig()

    def encode(self, sink: WriteStream | BinaryIO, block_type: BlockType) -> ArmorWriter:
        return ArmorWriter(sink, block_type, self._config)

    @staticmethod
    def decode(data: bytes | str) -> ArmorBlock:
        """
        Decode an armored block.

        Raises:
            ArmorError: If ``data`` is binary or not valid armor.
        """
        if isinstance(data, (bytes, bytearray)) and not Armorable.is_ascii(data):
            msg = "Expected ASCII-armored data, got binary"
            raise ArmorError(msg)
        try:
            unarmored = Armorable.ascii_unarmor(data)
        except Exception as e:
            msg = f"Failed to decode armor: {e}"
            raise ArmorError(msg) from e

        if unarmored["magic"] is None:
            msg = "Missing armor header line"
            raise ArmorError(msg)

        return ArmorBlock(
            block_type=unarmored["magic"],
            body=bytes(unarmored["body"]),
            headers=dict(unarmored["headers"] or {}),
        )
