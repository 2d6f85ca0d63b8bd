"""
PGP engine implementation using pgpy library.

This is the current implementation that can be swapped out later
if we need to move to a custom OpenPGP parser or different library.
"""

import contextlib
import io
import re
import warnings
from collections.abc import Iterator, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, BinaryIO

import pgpy
import structlog
from pgpy.constants import CompressionAlgorithm, KeyFlags, SignatureType, SymmetricKeyAlgorithm
from pgpy.errors import PGPError
from pgpy.packet import Packet
from pgpy.packet.packets import PKESessionKey
from pgpy.types import Armorable

from proton_keyring.config import KeyRingConfig
from proton_keyring.crypto.passphrase import Passphrase
from proton_keyring.crypto.protocol import EngineMessage, WriteStream
from proton_keyring.exceptions import (
    CryptoError,
    DecryptionError,
    KeyRingNotUnlockedError,
    ParseError,
    WrongPassphraseError,
)
from proton_keyring.models.crypto import SessionKey, SymmetricAlgorithm, VerificationOutcome
from proton_keyring.models.keys import (
    Entity,
    Identity,
    KeyFlag,
    LockedKey,
    PrivateKey,
    Subkey,
    UnlockedKey,
)

logger = structlog.get_logger(__name__)

_KEY_FLAGS = {
    KeyFlags.Sign: KeyFlag.SIGN,
    KeyFlags.EncryptStorage: KeyFlag.ENCRYPT_STORAGE,
    KeyFlags.EncryptCommunications: KeyFlag.ENCRYPT_COMMUNICATIONS,
}
_LINE_ENDINGS = re.compile(r"\r?\n")
# Informational pgpy warnings; parse and checksum warnings stay visible
_PGPY_NOTICES = (
    r"Selected (hash|symmetric|compression) algorithm not in key preferences",
    r"TODO: ",
    r"Key .* has expired at ",
)


@contextlib.contextmanager
def _pgpy_notices_suppressed() -> Iterator[None]:
    with warnings.catch_warnings():
        for pattern in _PGPY_NOTICES:
            warnings.filterwarnings("ignore", message=pattern, category=UserWarning)
        yield


def _normalize_fingerprint(fingerprint: Any) -> str:
    return str(fingerprint).replace(" ", "").upper()


def _private_key(key: pgpy.PGPKey) -> PrivateKey | None:
    if key.is_public:
        return None
    if key.is_unlocked:
        return UnlockedKey(key)
    return LockedKey(key)


def _components(entity: Entity) -> Iterator[tuple[str, PrivateKey | None]]:
    yield entity.key_id, entity.private_key
    for subkey in entity.subkeys:
        yield subkey.key_id, subkey.private_key


def _find_entity(entities: Sequence[Entity], key_id: str) -> Entity | None:
    return next((entity for entity in entities if key_id in entity.key_ids), None)


def _literal_bytes(message: pgpy.PGPMessage) -> bytes:
    content = message.message
    if isinstance(content, str):
        # pgpy decodes 't' literals as latin-1 and 'u' literals as utf-8
        encoding = "latin-1" if message._message.format == "t" else "utf-8"
        return content.encode(encoding)
    return bytes(content)


def _aware(value: datetime) -> datetime:
    # some pgpy versions return naive UTC timestamps
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_expired(signature: pgpy.PGPSignature, now: datetime) -> bool:
    created = _aware(signature.created)
    if created > now:
        return True
    expires_at = signature.expires_at
    if expires_at is None:
        return False
    expires_at = _aware(expires_at)
    return expires_at != created and expires_at < now


def _outcome(verified: bool, signature: pgpy.PGPSignature, now: datetime) -> VerificationOutcome:
    if not verified:
        return VerificationOutcome.invalid("signature does not verify")
    if _is_expired(signature, now):
        logger.warning("Signature is expired", signer=signature.signer, created=signature.created.isoformat())
        return VerificationOutcome.expired()
    return VerificationOutcome.valid()


class _PgpyEncryptWriter:
    """Buffers plaintext and writes the encrypted message to the sink on close."""

    def __init__(
        self,
        engine: "PgpyEngine",
        sink: WriteStream | BinaryIO,
        recipient: Entity,
        signer: Entity | None,
        canonicalize_text: bool,
        config: KeyRingConfig,
    ) -> None:
        self._engine = engine
        self._sink = sink
        self._recipient = recipient
        self._signer = signer
        self._canonicalize_text = canonicalize_text
        self._config = config
        self._buffer = io.BytesIO()
        self._closed = False

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("write to closed encryption stream")
        return self._buffer.write(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        message = self._engine.encrypt_message(
            self._buffer.getvalue(),
            self._recipient,
            self._signer,
            canonicalize_text=self._canonicalize_text,
            config=self._config,
        )
        self._sink.write(message)


class PgpyEngine:
    """
    PgpEngine implementation using pgpy.

    pgpy is not a streaming library: encryption buffers the plaintext until
    the stream is closed and decryption materialises the whole message.

    Example:
        engine = PgpyEngine()
        entities = engine.parse_keys(armored_key, armored=True)
        engine.unlock_key(entities[0].private_key.material, passphrase)
    """

    def parse_keys(self, data: bytes | str, armored: bool) -> list[Entity]:
        """
        Parse zero or more transferable keys.

        Args:
            data: Key material.
            armored: Whether ``data`` is ASCII-armored.

        Returns:
            Parsed entities in key order.

        Raises:
            ParseError: If the key material cannot be parsed.
        """
        if not data:
            return []
        if armored and not Armorable.is_armor(data):
            msg = "Expected ASCII-armored key material"
            raise ParseError(msg)
        if not armored and isinstance(data, str):
            msg = "Expected binary key material, got text"
            raise ParseError(msg)

        try:
            with _pgpy_notices_suppressed():
                key, others = pgpy.PGPKey.from_blob(data)
        except Exception as e:
            msg = f"Failed to parse keys: {e}"
            raise ParseError(msg) from e

        keys = [key] if key.fingerprint is not None else []
        keys.extend(other for other in others.values() if other is not key and other.is_primary)
        entities = [self._to_entity(k) for k in keys]
        logger.debug("Parsed keys", count=len(entities), armored=armored)
        return entities

    @staticmethod
    def refresh_public_key(handle: pgpy.PGPKey) -> str:
        return _normalize_fingerprint(handle._key.pubkey().fingerprint)

    @staticmethod
    def unlock_key(material: pgpy.PGPKey, passphrase: Passphrase) -> pgpy.PGPKey:
        """
        Decrypt one private key component in place.

        Unlike ``PGPKey.unlock``, the decrypted material stays in memory
        after the call returns.

        Raises:
            WrongPassphraseError: If the passphrase is incorrect.
        """
        try:
            material._key.unprotect(passphrase.decode())
        except Exception as e:
            msg = f"Failed to unlock key: {e}"
            raise WrongPassphraseError(msg, attempted=1) from e
        return material

    def encrypt(
        self,
        sink: WriteStream | BinaryIO,
        recipients: Sequence[Entity],
        signer: Entity | None,
        *,
        canonicalize_text: bool,
        config: KeyRingConfig,
    ) -> WriteStream:
        if len(recipients) != 1:
            msg = f"Exactly one recipient is supported, got {len(recipients)}"
            raise ValueError(msg)
        return _PgpyEncryptWriter(self, sink, recipients[0], signer, canonicalize_text, config)

    @staticmethod
    def encrypt_message(
        data: bytes,
        recipient: Entity,
        signer: Entity | None,
        *,
        canonicalize_text: bool,
        config: KeyRingConfig,
    ) -> bytes:
        """Encrypt (and optionally sign) ``data`` in one go, returning the binary message."""
        compression = CompressionAlgorithm.ZIP if config.compress else CompressionAlgorithm.Uncompressed
        now = config.now()
        if canonicalize_text:
            text = _LINE_ENDINGS.sub("\r\n", data.decode("utf-8"))
            message = pgpy.PGPMessage.new(text, format="u", compression=compression)
        else:
            message = pgpy.PGPMessage.new(data, format="b", compression=compression)
        # literal data timestamp follows the configured clock
        message._message.mtime = now

        try:
            with _pgpy_notices_suppressed():
                if signer is not None:
                    message |= signer.handle.sign(message, created=now)
                public = recipient.handle.pubkey
                encrypted = public.encrypt(message, cipher=SymmetricKeyAlgorithm(int(config.cipher)))
        except PGPError as e:
            msg = f"Failed to encrypt message: {e}"
            raise CryptoError(msg) from e

        return bytes(encrypted)

    def decrypt(
        self,
        data: bytes,
        entities: Sequence[Entity],
        config: KeyRingConfig,
        *,
        verifiers: Sequence[Entity] = (),
    ) -> EngineMessage:
        """
        Decrypt a binary message.

        The signature, if any, is looked up among ``entities`` and ``verifiers`` and checked
        only when the returned ``verify`` is called.

        Raises:
            ParseError: If ``data`` is not an OpenPGP message.
            DecryptionError: If no key can decrypt it.
            KeyRingNotUnlockedError: If the matching keys are all locked.
        """
        try:
            message = pgpy.PGPMessage.from_blob(bytes(data))
        except Exception as e:
            msg = f"Failed to parse message: {e}"
            raise ParseError(msg) from e

        if not message.is_encrypted:
            msg = "Message is not encrypted"
            raise DecryptionError(msg)

        component = self._decryption_component(entities, message.encrypters)
        try:
            with _pgpy_notices_suppressed():
                decrypted = component.decrypt(message)
        except Exception as e:
            msg = f"Failed to decrypt message: {e}"
            raise DecryptionError(msg) from e

        body = io.BytesIO(_literal_bytes(decrypted))
        if not decrypted.is_signed:
            return EngineMessage(body=body)

        signature = decrypted.signatures[0]
        signer = _find_entity([*entities, *verifiers], signature.signer)

        def verify() -> VerificationOutcome:
            if signer is None:
                return VerificationOutcome.invalid("unknown signer")
            return self._verify(signer, decrypted, None, signature, config)

        return EngineMessage(body=body, signer_key_id=signature.signer, signer=signer, verify=verify)

    def decrypt_session_key(self, key_packet: bytes, entities: Sequence[Entity]) -> SessionKey:
        """
        Recover the session key from one or more PKESK packets.

        Raises:
            ParseError: If ``key_packet`` is not a packet sequence.
            DecryptionError: If no unlocked key of ``entities`` can decrypt it.
        """
        buffer = bytearray(key_packet)
        packets = []
        try:
            while buffer:
                packets.append(Packet(buffer))
        except Exception as e:
            msg = f"Failed to parse key packet: {e}"
            raise ParseError(msg) from e

        session_keys = [packet for packet in packets if isinstance(packet, PKESessionKey)]
        if not session_keys:
            msg = "Key packet contains no public-key encrypted session key"
            raise DecryptionError(msg)

        encrypters = {packet.encrypter for packet in session_keys}
        component = self._decryption_component(entities, encrypters)
        pkesk = next(packet for packet in session_keys if packet.encrypter == component.fingerprint.keyid)
        try:
            algorithm, key_data = pkesk.decrypt_sk(component._key)
            return SessionKey(algorithm=SymmetricAlgorithm(int(algorithm)), key_data=bytes(key_data))
        except Exception as e:
            msg = f"Failed to decrypt session key: {e}"
            raise DecryptionError(msg) from e

    @staticmethod
    def detach_sign(signer: Entity, data: bytes, *, canonicalize_text: bool, config: KeyRingConfig) -> bytes:
        if canonicalize_text:
            subject = pgpy.PGPMessage.new(data.decode("utf-8"), cleartext=True)
        else:
            subject = bytes(data)
        try:
            with _pgpy_notices_suppressed():
                signature = signer.handle.sign(subject, created=config.now())
        except PGPError as e:
            msg = f"Failed to sign: {e}"
            raise CryptoError(msg) from e
        return bytes(signature)

    def verify_detached(
        self, entities: Sequence[Entity], data: bytes, signature: bytes, config: KeyRingConfig
    ) -> VerificationOutcome:
        try:
            parsed = pgpy.PGPSignature.from_blob(bytes(signature))
        except Exception as e:
            msg = f"Failed to parse signature: {e}"
            raise ParseError(msg) from e

        signer = _find_entity(entities, parsed.signer)
        if signer is None:
            return VerificationOutcome.invalid("unknown signer")
        subject: str | bytes = bytes(data)
        if parsed.type == SignatureType.CanonicalDocument:
            subject = subject.decode("utf-8")
        return self._verify(signer, subject, parsed, parsed, config)

    @staticmethod
    def serialize_entity(entity: Entity) -> bytes:
        return bytes(entity.handle.pubkey)

    @staticmethod
    def _verify(
        signer: Entity,
        subject: pgpy.PGPMessage | str | bytes,
        detached: pgpy.PGPSignature | None,
        signature: pgpy.PGPSignature,
        config: KeyRingConfig,
    ) -> VerificationOutcome:
        try:
            with _pgpy_notices_suppressed():
                verification = signer.handle.pubkey.verify(subject, detached)
        except PGPError as e:
            return VerificationOutcome.invalid(str(e))
        return _outcome(bool(verification), signature, config.now())

    @staticmethod
    def _decryption_component(entities: Sequence[Entity], encrypters: set[str]) -> pgpy.PGPKey:
        locked = False
        for entity in entities:
            for key_id, private_key in _components(entity):
                if key_id not in encrypters:
                    continue
                if isinstance(private_key, UnlockedKey):
                    return private_key.material
                locked = locked or isinstance(private_key, LockedKey)

        if locked:
            msg = "Cannot decrypt message, key ring is not unlocked"
            raise KeyRingNotUnlockedError(msg)
        msg = "No key in the key ring can decrypt this message"
        raise DecryptionError(msg)

    def _to_entity(self, key: pgpy.PGPKey) -> Entity:
        return Entity(
            fingerprint=_normalize_fingerprint(key.fingerprint),
            key_id=key.fingerprint.keyid.upper(),
            handle=key,
            private_key=_private_key(key),
            subkeys=[self._to_subkey(key, subkey) for subkey in key.subkeys.values()],
            identities=[Identity(name=uid.name or "", email=uid.email or "") for uid in key.userids],
        )

    @staticmethod
    def _to_subkey(primary: pgpy.PGPKey, subkey: pgpy.PGPKey) -> Subkey:
        bindings = [
            sig
            for sig in subkey.__sig__
            if sig.type == SignatureType.Subkey_Binding and sig.signer == primary.fingerprint.keyid
        ]
        binding = max(bindings, key=lambda sig: sig.created, default=None)

        flags: frozenset[KeyFlag] = frozenset()
        expires_at = None
        if binding is not None:
            flags = frozenset(_KEY_FLAGS[flag] for flag in binding.key_flags if flag in _KEY_FLAGS)
            lifetime = binding.key_expiration
            # a zero lifetime means the subkey never expires
            if lifetime is not None and lifetime > timedelta(0):
                expires_at = _aware(subkey.created) + lifetime

        return Subkey(
            fingerprint=_normalize_fingerprint(subkey.fingerprint),
            key_id=subkey.fingerprint.keyid.upper(),
            handle=subkey,
            private_key=_private_key(subkey),
            flags=flags,
            flags_valid=binding is not None and bool(binding.key_flags),
            created=_aware(subkey.created),
            expires_at=expires_at,
        )
