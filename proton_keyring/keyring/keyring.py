"""
Key ring: an ordered collection of entities and the operations composed over them.

Entities are kept in the order the API returns them, which is descending
priority. The key ring never touches key bytes itself: parsing, public key
operations and symmetric encryption are delegated to a ``PgpEngine`` and
ASCII armor to an ``ArmorCodec``.
"""

import io
import json
import re
import threading
from collections.abc import Iterable, Iterator, Sequence
from typing import Any, BinaryIO, Self

import structlog

from proton_keyring.config import KeyRingConfig
from proton_keyring.crypto.armor import PgpyArmorCodec
from proton_keyring.crypto.passphrase import Passphrase, derive_mailbox_passphrase
from proton_keyring.crypto.pgpy_engine import PgpyEngine
from proton_keyring.crypto.protocol import ArmorBlock, ArmorCodec, PgpEngine, WriteStream
from proton_keyring.exceptions import (
    ArmorError,
    KeyRingNotUnlockedError,
    NoKeyMaterialError,
    NoPrivateKeyError,
    NotAPgpMessageError,
    ParseError,
    SignatureInvalidError,
    WrongPassphraseError,
)
from proton_keyring.keyring.selector import (
    encryption_entity,
    require_signing_entity,
    signing_entity,
    signing_entity_with_passphrase,
)
from proton_keyring.keyring.signature import DecryptedMessage, Signature, SignedString, VerifyingReader
from proton_keyring.keyring.split import decrypt_data, separate_key_and_data
from proton_keyring.models.crypto import (
    BlockType,
    DetachedSignatureMode,
    EncryptedSplit,
    SessionKey,
    VerificationOutcome,
    VerificationStatus,
)
from proton_keyring.models.keys import Entity, Identity, KeyRecord, KeySalt, Subkey, UnlockedKey

logger = structlog.get_logger(__name__)

PassphraseLike = Passphrase | bytes | bytearray | str
Source = bytes | bytearray | BinaryIO

_PGP_MESSAGE = re.compile(r"^-----BEGIN PGP MESSAGE-----(?s:.+)-----END PGP MESSAGE-----")


def parse_key_records(data: bytes | str) -> list[KeyRecord]:
    """
    Decode the JSON key list returned by the API.

    Raises:
        ParseError: If ``data`` is not a JSON array of key objects.
    """
    try:
        raw = json.loads(data)
    except ValueError as e:
        msg = f"Malformed key list: {e}"
        raise ParseError(msg) from e

    if not isinstance(raw, list):
        msg = "Key list must be a JSON array"
        raise ParseError(msg, type=type(raw).__name__)

    records = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            msg = "Key record must be a JSON object"
            raise ParseError(msg, index=index)
        records.append(
            KeyRecord(
                key_id=str(item.get("ID", "")),
                private_key=item.get("PrivateKey") or "",
                version=int(item.get("Version") or 0),
                flags=int(item.get("Flags") or 0),
                fingerprint=item.get("Fingerprint"),
                public_key=item.get("PublicKey"),
                primary=item.get("Primary") == 1,
            )
        )
    return records


def _read_source(source: Source | str) -> bytes | str:
    if isinstance(source, (bytes, bytearray, str)):
        return source
    return source.read()


class _ArmorEncryptWriter:
    """Encryption stream wrapped in an armor stream."""

    def __init__(self, armor_writer: WriteStream, encrypt_writer: WriteStream) -> None:
        self._armor_writer = armor_writer
        self._encrypt_writer = encrypt_writer

    def write(self, data: bytes) -> int:
        return self._encrypt_writer.write(data)

    def close(self) -> None:
        # A failed inner close must not produce a complete-looking armor block
        self._encrypt_writer.close()
        self._armor_writer.close()


class KeyRing:
    """
    An ordered, non-empty collection of entities.

    Unlocking mutates the entities in place under the ring's lock; every other
    operation reads the ring without locking.

    Example:
        ring = KeyRing.from_armored(armored_private_key)
        ring.unlock("passphrase")
        armored = ring.encrypt_string("hello", signer=ring)
        assert ring.decrypt_string(armored).string == "hello"
    """

    def __init__(
        self,
        entities: Iterable[Entity],
        *,
        engine: PgpEngine | None = None,
        armor: ArmorCodec | None = None,
        config: KeyRingConfig | None = None,
        first_key_id: str | None = None,
    ) -> None:
        """
        Args:
            entities: Entities in priority order.
            engine: PGP engine, defaults to ``PgpyEngine``.
            armor: Armor codec, defaults to ``PgpyArmorCodec``.
            config: Key ring configuration.
            first_key_id: API ID of the first key record the ring was built from.

        Raises:
            NoKeyMaterialError: If ``entities`` is empty.
        """
        self._entities = list(entities)
        if not self._entities:
            raise NoKeyMaterialError()
        self.config = config or KeyRingConfig()
        self._engine = engine if engine is not None else PgpyEngine()
        self._armor = armor if armor is not None else PgpyArmorCodec(self.config)
        self.first_key_id = first_key_id
        self._lock = threading.Lock()

    @classmethod
    def from_armored(
        cls,
        data: bytes | str,
        *,
        engine: PgpEngine | None = None,
        config: KeyRingConfig | None = None,
    ) -> Self:
        """
        Build a key ring from ASCII-armored key material.

        Raises:
            NoKeyMaterialError: If no key was found.
            ParseError: If the key material cannot be parsed.
        """
        engine = engine if engine is not None else PgpyEngine()
        return cls(_read_keys(engine, data, armored=True), engine=engine, config=config)

    @classmethod
    def from_binary(
        cls,
        data: bytes,
        *,
        engine: PgpEngine | None = None,
        config: KeyRingConfig | None = None,
    ) -> Self:
        """
        Build a key ring from binary key material.

        Raises:
            NoKeyMaterialError: If no key was found.
            ParseError: If the key material cannot be parsed.
        """
        engine = engine if engine is not None else PgpyEngine()
        return cls(_read_keys(engine, data, armored=False), engine=engine, config=config)

    @classmethod
    def from_records(
        cls,
        records: Sequence[KeyRecord],
        *,
        engine: PgpEngine | None = None,
        config: KeyRingConfig | None = None,
    ) -> Self:
        """
        Build a key ring from API key records.

        The first record's ID becomes ``first_key_id``. Records whose private
        key cannot be parsed are skipped.

        Raises:
            NoKeyMaterialError: If no record yields a key.
        """
        engine = engine if engine is not None else PgpyEngine()
        entities: list[Entity] = []
        for index, record in enumerate(records):
            try:
                entities.extend(_read_keys(engine, record.private_key, armored=True))
            except ParseError as e:
                logger.warning("Skipping unreadable key record", index=index, key_id=record.key_id, error=str(e))

        first_key_id = records[0].key_id if records else None
        return cls(entities, engine=engine, config=config, first_key_id=first_key_id)

    @classmethod
    def from_json(
        cls,
        data: bytes | str,
        *,
        engine: PgpEngine | None = None,
        config: KeyRingConfig | None = None,
    ) -> Self:
        """
        Build a key ring from the JSON key list returned by the API.

        Raises:
            ParseError: If the JSON is malformed.
            NoKeyMaterialError: If no record yields a key.
        """
        return cls.from_records(parse_key_records(data), engine=engine, config=config)

    def with_entities(self, entities: Iterable[Entity]) -> "KeyRing":
        """A new key ring over ``entities`` sharing this ring's engine and configuration."""
        return KeyRing(
            entities, engine=self._engine, armor=self._armor, config=self.config, first_key_id=self.first_key_id
        )

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self._entities)

    def __repr__(self) -> str:
        return f"KeyRing(key_ids={self.key_ids()!r}, first_key_id={self.first_key_id!r})"

    @property
    def entities(self) -> tuple[Entity, ...]:
        return tuple(self._entities)

    @property
    def engine(self) -> PgpEngine:
        return self._engine

    def identities(self) -> list[Identity]:
        """Identities of every entity, in ring order."""
        return [identity for entity in self._entities for identity in entity.identities]

    def key_ids(self) -> list[str]:
        """Primary key IDs, in ring order."""
        return [entity.key_id for entity in self._entities]

    # Unlock

    def unlock(self, passphrase: PassphraseLike) -> int:
        """
        Decrypt every private key of the ring that ``passphrase`` opens.

        Candidates are all primary private keys plus the subkey private keys
        usable for encryption. Components already unlocked are skipped, so a
        ring may be unlocked piecewise with several passphrases.

        Args:
            passphrase: Key passphrase.

        Returns:
            The number of components unlocked by this call.

        Raises:
            NoPrivateKeyError: If the ring has no private key at all.
            WrongPassphraseError: If locked components were tried and none opened.
        """
        secret = Passphrase.coerce(passphrase)
        try:
            with self._lock:
                return self._unlock(secret)
        finally:
            if secret is not passphrase:
                secret.clear()

    def _unlock(self, passphrase: Passphrase) -> int:
        candidates = list(self._unlock_candidates())
        if not candidates:
            raise NoPrivateKeyError()

        unlocked = 0
        attempted = 0
        last_error: WrongPassphraseError | None = None
        for component in candidates:
            private_key = component.private_key
            if private_key is None or isinstance(private_key, UnlockedKey):
                continue
            attempted += 1
            try:
                material = self._engine.unlock_key(private_key.material, passphrase)
            except WrongPassphraseError as e:
                last_error = e
                continue
            component.private_key = UnlockedKey(material)
            unlocked += 1

        logger.debug("Unlocked key ring", unlocked=unlocked, attempted=attempted, candidates=len(candidates))
        if unlocked == 0 and attempted:
            raise WrongPassphraseError(attempted=attempted) from last_error
        return unlocked

    def _unlock_candidates(self) -> Iterator[Entity | Subkey]:
        for entity in self._entities:
            if entity.private_key is not None:
                yield entity
            for subkey in entity.subkeys:
                if subkey.private_key is not None and subkey.is_encryption_capable:
                    yield subkey

    def unlock_with_password(self, password: PassphraseLike, salts: Iterable[KeySalt]) -> int:
        """
        Unlock with the mailbox passphrase derived from the login password.

        The salt is the one of ``first_key_id``. Without a matching salt the
        password is used as the passphrase.
        """
        secret = Passphrase.coerce(password)
        salt = next((key_salt.salt for key_salt in salts if key_salt.key_id == self.first_key_id), None)
        if not salt:
            logger.debug("No key salt, unlocking with password", first_key_id=self.first_key_id)
            return self.unlock(secret)

        with derive_mailbox_passphrase(secret, salt) as passphrase:
            return self.unlock(passphrase)

    def get_signing_entity(self, passphrase: PassphraseLike) -> Entity | None:
        """First entity usable for signing, unlocking its primary key with ``passphrase`` if needed."""
        secret = Passphrase.coerce(passphrase)
        return signing_entity_with_passphrase(self._entities, self._engine, secret, lock=self._lock)

    # Encrypt

    def encrypt(
        self,
        sink: WriteStream | BinaryIO,
        signer: "KeyRing | None" = None,
        *,
        canonicalize_text: bool = False,
    ) -> WriteStream:
        """
        Open an encryption stream to the first entity of the ring.

        The binary message is written to ``sink`` when the stream is closed.

        Args:
            sink: Receives the encrypted message.
            signer: Key ring to sign with; its first unlocked entity is used.
            canonicalize_text: Encrypt as text with CRLF line endings.

        Raises:
            KeyRingNotUnlockedError: If ``signer`` has no unlocked entity.
        """
        recipient = encryption_entity(self._entities)
        signing = require_signing_entity(signer.entities) if signer is not None else None
        return self._engine.encrypt(
            sink, [recipient], signing, canonicalize_text=canonicalize_text, config=self.config
        )

    def encrypt_armored(
        self,
        sink: WriteStream | BinaryIO,
        signer: "KeyRing | None" = None,
        *,
        canonicalize_text: bool = False,
    ) -> WriteStream:
        """Like ``encrypt``, armoring the message as ``PGP MESSAGE``."""
        armor_writer = self._armor.encode(sink, BlockType.MESSAGE)
        encrypt_writer = self.encrypt(armor_writer, signer, canonicalize_text=canonicalize_text)
        return _ArmorEncryptWriter(armor_writer, encrypt_writer)

    def encrypt_string(self, text: str, signer: "KeyRing | None" = None) -> str:
        """Encrypt ``text`` to an armored message."""
        buffer = io.BytesIO()
        writer = self.encrypt_armored(buffer, signer)
        writer.write(text.encode("utf-8"))
        writer.close()
        return buffer.getvalue().decode("ascii")

    # Decrypt

    def decrypt(self, source: Source, *, verifier: "KeyRing | None" = None) -> DecryptedMessage:
        """
        Decrypt a binary message.

        The signature, if any, is checked against the entities of this ring and
        of ``verifier``. It is resolved only once the returned stream has been
        read to the end.

        Raises:
            KeyRingNotUnlockedError: If the keys the message is encrypted to are locked.
            DecryptionError: If no key of the ring can decrypt the message.
        """
        data = _read_source(source)
        verifiers = verifier.entities if verifier is not None else ()
        message = self._engine.decrypt(bytes(data), self._entities, self.config, verifiers=verifiers)
        if not message.is_signed or message.verify is None:
            return DecryptedMessage(stream=VerifyingReader(message.body))

        signature = Signature(signer_key_id=message.signer_key_id, signer=message.signer, owner=self)
        verify = message.verify

        def resolve() -> None:
            signature.resolve(verify())

        return DecryptedMessage(stream=VerifyingReader(message.body, resolve), signature=signature)

    def decrypt_armored(
        self, source: Source | str, *, verifier: "KeyRing | None" = None
    ) -> DecryptedMessage:
        """
        Decrypt an armored message.

        Raises:
            NotAPgpMessageError: If the armor block is not a ``PGP MESSAGE``.
        """
        block = self._decode_armor(source)
        if block.block_type != BlockType.MESSAGE:
            raise NotAPgpMessageError(block_type=block.block_type)
        return self.decrypt(block.body, verifier=verifier)

    def decrypt_string(self, text: str, *, verifier: "KeyRing | None" = None) -> SignedString:
        """
        Decrypt an armored message to a string.

        An expired signature does not prevent the content from being returned;
        neither does a signature by a key outside the ring, which is recorded as
        invalid. Callers use ``Signature.is_by`` to check who signed.

        Raises:
            SignatureInvalidError: If a known signer's signature does not verify.
        """
        message = self.decrypt_armored(text, verifier=verifier)
        content = message.read_all()
        signature = message.signature
        if signature is not None:
            outcome = signature.outcome
            if outcome.status is VerificationStatus.INVALID and signature.signer is not None:
                raise SignatureInvalidError("Signature verification failed", reason=outcome.reason)
            if outcome.status is VerificationStatus.EXPIRED:
                logger.debug("Returning content with expired signature", signer_key_id=signature.signer_key_id)
        return SignedString(string=content.decode("utf-8"), signature=signature)

    def decrypt_string_if_needed(self, text: str) -> str:
        """Decrypt ``text`` if it is an armored PGP message, otherwise return it unchanged."""
        if _PGP_MESSAGE.match(text) is None:
            return text
        return self.decrypt_string(text).string

    # Sign / verify

    def detached_sign(
        self, data: bytes | str, mode: DetachedSignatureMode = DetachedSignatureMode.BINARY_ARMORED
    ) -> bytes:
        """
        Create a detached signature with the first unlocked entity.

        Raises:
            KeyRingNotUnlockedError: If no entity is unlocked.
        """
        signer = require_signing_entity(self._entities)
        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        signature = self._engine.detach_sign(
            signer, payload, canonicalize_text=mode.canonicalize_text, config=self.config
        )
        if not mode.armored:
            return signature
        return self._encode_armor(signature, BlockType.SIGNATURE)

    def sign_string(self, message: str, canonicalize_text: bool = False) -> str:
        """Armored detached signature of ``message``."""
        mode = DetachedSignatureMode.TEXT_ARMORED if canonicalize_text else DetachedSignatureMode.BINARY_ARMORED
        return self.detached_sign(message, mode).decode("ascii")

    def verify_string(self, message: str, signature: str, signer: "KeyRing") -> VerificationOutcome:
        """
        Verify an armored detached signature against this ring's public keys.

        ``signer`` only gates the call: it must have an unlocked entity. Use
        ``Signature.is_by`` style checks for identity binding.

        Returns:
            A valid or expired outcome.

        Raises:
            KeyRingNotUnlockedError: If ``signer`` has no unlocked entity.
            SignatureInvalidError: If the signature does not verify.
        """
        if signing_entity(signer.entities) is None:
            raise KeyRingNotUnlockedError()

        block = self._decode_armor(signature)
        if block.block_type != BlockType.SIGNATURE:
            msg = "Expected an armored signature"
            raise ArmorError(msg, block_type=block.block_type)

        outcome = self._engine.verify_detached(self._entities, message.encode("utf-8"), block.body, self.config)
        if outcome.status is VerificationStatus.INVALID:
            raise SignatureInvalidError("Signature verification failed", reason=outcome.reason)
        return outcome

    # Symmetric split

    def encrypt_symmetric(self, text: str, canonicalize_text: bool = False) -> EncryptedSplit:
        """
        Encrypt and sign ``text`` with this ring, then split the message.

        Raises:
            KeyRingNotUnlockedError: If the ring is not unlocked.
            SplitError: If the message framing cannot be split.
        """
        plaintext = text.encode("utf-8")
        buffer = io.BytesIO()
        writer = self.encrypt(buffer, self, canonicalize_text=canonicalize_text)
        writer.write(plaintext)
        writer.close()
        return separate_key_and_data(self, buffer.getvalue(), len(plaintext))

    def decrypt_session_key(self, key_packet: bytes) -> SessionKey:
        """Recover the session key of a key packet with the ring's unlocked keys."""
        return self._engine.decrypt_session_key(key_packet, self._entities)

    def decrypt_split(self, split: EncryptedSplit) -> bytes:
        """Decrypt the data packet of ``split`` with the session key from its key packet."""
        return decrypt_data(split, self.decrypt_session_key(split.key_packet))

    # Export

    def write_armored_public_key(self, sink: WriteStream | BinaryIO) -> None:
        """Write the public keys of every entity as one armored ``PUBLIC KEY BLOCK``."""
        writer = self._armor.encode(sink, BlockType.PUBLIC_KEY)
        for entity in self._entities:
            writer.write(self._engine.serialize_entity(entity))
        writer.close()

    def armored_public_key(self) -> str:
        buffer = io.BytesIO()
        self.write_armored_public_key(buffer)
        return buffer.getvalue().decode("ascii")

    def _decode_armor(self, source: Source | str) -> ArmorBlock:
        return self._armor.decode(_read_source(source))

    def _encode_armor(self, data: bytes, block_type: BlockType) -> bytes:
        buffer = io.BytesIO()
        writer = self._armor.encode(buffer, block_type)
        writer.write(data)
        writer.close()
        return buffer.getvalue()


def _read_keys(engine: PgpEngine, data: Any, *, armored: bool) -> list[Entity]:
    entities = engine.parse_keys(data, armored)
    for entity in entities:
        if entity.private_key is not None:
            entity.fingerprint = engine.refresh_public_key(entity.handle)
        for subkey in entity.subkeys:
            if subkey.private_key is not None:
                subkey.fingerprint = engine.refresh_public_key(subkey.handle)
    return entities
