"""
PGP engine protocol definition.

The key ring only orchestrates; key parsing, public key operations and
symmetric encryption are delegated to an engine implementing this interface,
so the underlying OpenPGP library can be swapped without touching the key
ring policies.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Protocol, runtime_checkable

from proton_keyring.config import KeyRingConfig
from proton_keyring.crypto.passphrase import Passphrase
from proton_keyring.models.crypto import BlockType, SessionKey, VerificationOutcome
from proton_keyring.models.keys import Entity


@runtime_checkable
class WriteStream(Protocol):
    """A write-once byte sink; ``close`` completes the output."""

    def write(self, data: bytes) -> int: ...

    def close(self) -> None: ...


@dataclass(frozen=True, kw_only=True)
class EngineMessage:
    """
    Decrypted message as handed back by the engine.

    Attributes:
        body: Decrypted contents, readable once.
        signer_key_id: Issuer key ID of the message signature, None if unsigned.
        signer: Ring entity owning the issuer key, None if unsigned or unknown.
        verify: Checks the signature; only meaningful once ``body`` is drained.
    """

    body: BinaryIO
    signer_key_id: str | None = None
    signer: Entity | None = None
    verify: Callable[[], VerificationOutcome] | None = None

    @property
    def is_signed(self) -> bool:
        return self.signer_key_id is not None


@dataclass(frozen=True, kw_only=True)
class ArmorBlock:
    """
    A decoded ASCII armor block.

    Attributes:
        block_type: Text after ``BEGIN PGP``, e.g. ``MESSAGE``.
        body: Binary contents.
        headers: Armor headers.
    """

    block_type: str
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class ArmorCodec(Protocol):
    """ASCII armor encoding and decoding."""

    def encode(self, sink: WriteStream | BinaryIO, block_type: BlockType) -> WriteStream:
        """
        Wrap ``sink`` so that bytes written are armored as ``block_type``.

        The armored block is written to ``sink`` when the returned stream is closed.
        """
        ...

    def decode(self, data: bytes | str) -> ArmorBlock:
        """
        Decode an armored block.

        Raises:
            ArmorError: If ``data`` is not ASCII armor.
        """
        ...


@runtime_checkable
class PgpEngine(Protocol):
    """
    Abstract interface for the OpenPGP primitives the key ring composes.

    Entities returned by ``parse_keys`` carry engine handles; every other
    method only receives entities produced by the same engine.
    """

    def parse_keys(self, data: bytes | str, armored: bool) -> list[Entity]:
        """
        Parse zero or more transferable keys.

        Raises:
            ParseError: If the key material cannot be parsed.
        """
        ...

    def refresh_public_key(self, handle: Any) -> str:
        """
        Recompute the public metadata of a private key from its public half.

        Returns:
            The recomputed fingerprint.
        """
        ...

    def unlock_key(self, material: Any, passphrase: Passphrase) -> Any:
        """
        Decrypt one private key component in place.

        Returns:
            The decrypted key material.

        Raises:
            WrongPassphraseError: If the passphrase does not decrypt it.
        """
        ...

    def encrypt(
        self,
        sink: WriteStream | BinaryIO,
        recipients: Sequence[Entity],
        signer: Entity | None,
        *,
        canonicalize_text: bool,
        config: KeyRingConfig,
    ) -> WriteStream:
        """
        Open an encryption stream addressed to ``recipients``.

        The binary message is written to ``sink`` when the stream is closed.
        """
        ...

    def decrypt(
        self,
        data: bytes,
        entities: Sequence[Entity],
        config: KeyRingConfig,
        *,
        verifiers: Sequence[Entity] = (),
    ) -> EngineMessage:
        """
        Decrypt a binary message with the unlocked keys of ``entities``.

        The signer is looked up among ``entities`` and ``verifiers``.

        Raises:
            ParseError: If ``data`` is not an OpenPGP message.
            DecryptionError: If no usable key can decrypt it.
        """
        ...

    def decrypt_session_key(self, key_packet: bytes, entities: Sequence[Entity]) -> SessionKey:
        """
        Recover the session key of a public-key encrypted session key packet.

        Raises:
            DecryptionError: If no unlocked key of ``entities`` can decrypt it.
        """
        ...

    def detach_sign(
        self, signer: Entity, data: bytes, *, canonicalize_text: bool, config: KeyRingConfig
    ) -> bytes:
        """Create a binary detached signature over ``data``."""
        ...

    def verify_detached(
        self, entities: Sequence[Entity], data: bytes, signature: bytes, config: KeyRingConfig
    ) -> VerificationOutcome:
        """Check a binary detached signature against the public keys of ``entities``."""
        ...

    def serialize_entity(self, entity: Entity) -> bytes:
        """Serialize the public half of ``entity`` in binary form."""
        ...
