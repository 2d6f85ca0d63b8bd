"""
Deferred signature verification.

The verification outcome of a signed message is only known once its
decrypted contents have been read to the end. ``VerifyingReader`` wraps the
decrypted body and resolves the attached ``Signature`` when it reports EOF;
reading the outcome before that raises ``SignatureNotReadyError``.
"""

import io
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO

from proton_keyring.exceptions import (
    SignatureError,
    SignatureExpiredError,
    SignatureInvalidError,
    SignatureNotReadyError,
)
from proton_keyring.models.crypto import PENDING, VerificationOutcome, VerificationStatus
from proton_keyring.models.keys import Entity

if TYPE_CHECKING:
    from proton_keyring.keyring.keyring import KeyRing


class Signature:
    """
    Verification handle for a signed message.

    The signer entity is held by weak reference: the handle identifies who
    signed but does not keep the signer's key ring alive.

    Attributes:
        signer_key_id: Issuer key ID of the signature.
    """

    def __init__(self, *, signer_key_id: str, signer: Entity | None, owner: "KeyRing") -> None:
        self.signer_key_id = signer_key_id
        self._signer_ref = weakref.ref(signer) if signer is not None else None
        self._signer_fingerprint = signer.fingerprint if signer is not None else None
        self._owner = weakref.ref(owner)
        self._outcome = PENDING

    def __repr__(self) -> str:
        return f"Signature(signer_key_id={self.signer_key_id!r}, status={self._outcome.status.value})"

    @property
    def signer(self) -> Entity | None:
        """The signer entity, if it was known and is still alive."""
        if self._signer_ref is None:
            return None
        return self._signer_ref()

    @property
    def is_resolved(self) -> bool:
        return self._outcome.status is not VerificationStatus.NOT_YET_CHECKED

    @property
    def outcome(self) -> VerificationOutcome:
        """
        The verification outcome.

        Raises:
            SignatureNotReadyError: If the decrypted stream has not been drained yet.
        """
        if not self.is_resolved:
            raise SignatureNotReadyError()
        return self._outcome

    def resolve(self, outcome: VerificationOutcome) -> None:
        """Record the outcome. Only the first resolution counts."""
        if self.is_resolved or outcome.status is VerificationStatus.NOT_YET_CHECKED:
            return
        self._outcome = outcome

    def error(self) -> SignatureError | None:
        """
        The typed error for the outcome, None for a valid signature.

        An expired signature yields ``SignatureExpiredError``, which callers
        may choose to tolerate.
        """
        outcome = self.outcome
        match outcome.status:
            case VerificationStatus.VALID:
                return None
            case VerificationStatus.EXPIRED:
                return SignatureExpiredError("Signature is expired", signer_key_id=self.signer_key_id)
            case _:
                return SignatureInvalidError(f"Signature is invalid: {outcome.reason}", reason=outcome.reason)

    def is_by(self, ring: "KeyRing") -> bool:
        """
        Check whether the signature was made by an entity of ``ring``.

        Compares fingerprints when the signer entity is known, key IDs otherwise.
        """
        if self._signer_fingerprint is not None:
            return any(entity.fingerprint == self._signer_fingerprint for entity in ring.entities)
        return any(self.signer_key_id in entity.key_ids for entity in ring.entities)

    def key_ring(self) -> "KeyRing | None":
        """A one-entity key ring holding the signer, or None if it is unknown or gone."""
        signer = self.signer
        owner = self._owner()
        if signer is None or owner is None:
            return None
        return owner.with_entities([signer])


class VerifyingReader(io.RawIOBase):
    """
    Read-once view of a decrypted body.

    Calls ``on_eof`` the first time a read returns no data.
    """

    def __init__(self, body: BinaryIO, on_eof: Callable[[], None] | None = None) -> None:
        super().__init__()
        self._body = body
        self._on_eof = on_eof
        self._finished = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:
        if self.closed:
            raise ValueError("read from closed stream")
        size = len(buffer)
        data = self._body.read(size)
        n = len(data)
        buffer[:n] = data
        if n == 0 and size > 0:
            self._finish()
        return n

    def close(self) -> None:
        if not self.closed:
            self._body.close()
        super().close()

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        if self._on_eof is not None:
            self._on_eof()


@dataclass(frozen=True)
class DecryptedMessage:
    """
    Result of decrypting a message.

    Attributes:
        stream: Decrypted contents, readable once.
        signature: Verification handle, None for unsigned messages. Resolved
            once ``stream`` has been read to the end.
    """

    stream: VerifyingReader
    signature: Signature | None = None

    def read_all(self) -> bytes:
        """Drain the stream, resolving the signature."""
        chunks = []
        while chunk := self.stream.read(io.DEFAULT_BUFFER_SIZE):
            chunks.append(chunk)
        return b"".join(chunks)


@dataclass(frozen=True)
class SignedString:
    """A decrypted string paired with its signature handle."""

    string: str
    signature: Signature | None = None
