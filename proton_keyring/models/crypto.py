"""
Cryptographic domain models.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum, StrEnum


class SymmetricAlgorithm(IntEnum):
    """OpenPGP symmetric algorithm identifiers."""

    PLAINTEXT = 0
    IDEA = 1
    TRIPLE_DES = 2
    CAST5 = 3
    BLOWFISH = 4
    AES_128 = 7
    AES_192 = 8
    AES_256 = 9
    TWOFISH = 10
    CAMELLIA_128 = 11
    CAMELLIA_192 = 12
    CAMELLIA_256 = 13

    @property
    def key_size(self) -> int:
        """Get key size in bytes for this algorithm."""
        match self:
            case self.AES_128 | self.CAST5 | self.BLOWFISH | self.CAMELLIA_128 | self.IDEA:
                return 16
            case self.AES_192 | self.TRIPLE_DES | self.CAMELLIA_192:
                return 24
            case self.AES_256 | self.TWOFISH | self.CAMELLIA_256:
                return 32
            case _:
                return 0

    @property
    def block_size(self) -> int:
        """Get block size in bytes for this algorithm."""
        match self:
            case self.CAST5 | self.BLOWFISH | self.TRIPLE_DES | self.IDEA:
                return 8
            case (
                self.AES_128
                | self.AES_192
                | self.AES_256
                | self.TWOFISH
                | self.CAMELLIA_128
                | self.CAMELLIA_192
                | self.CAMELLIA_256
            ):
                return 16
            case _:
                return 0

    @property
    def tag(self) -> str:
        """Short lowercase name used by the API, e.g. ``aes256``."""
        return self.name.lower().replace("_", "")


class BlockType(StrEnum):
    """ASCII armor block types."""

    MESSAGE = "MESSAGE"
    SIGNATURE = "SIGNATURE"
    PUBLIC_KEY = "PUBLIC KEY BLOCK"
    PRIVATE_KEY = "PRIVATE KEY BLOCK"


class DetachedSignatureMode(Enum):
    """Output formats of a detached signature."""

    TEXT_ARMORED = "text-armored"
    BINARY_ARMORED = "binary-armored"
    BINARY = "binary"

    @property
    def canonicalize_text(self) -> bool:
        return self is DetachedSignatureMode.TEXT_ARMORED

    @property
    def armored(self) -> bool:
        return self is not DetachedSignatureMode.BINARY


class VerificationStatus(Enum):
    NOT_YET_CHECKED = "not-yet-checked"
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass(frozen=True, kw_only=True)
class VerificationOutcome:
    """
    Result of checking one signature.

    Attributes:
        status: Verification status.
        reason: Why the signature is invalid, when it is.
    """

    status: VerificationStatus
    reason: str | None = None

    @property
    def is_valid(self) -> bool:
        """True for valid signatures, including expired ones."""
        return self.status in (VerificationStatus.VALID, VerificationStatus.EXPIRED)

    @classmethod
    def valid(cls) -> "VerificationOutcome":
        return cls(status=VerificationStatus.VALID)

    @classmethod
    def expired(cls) -> "VerificationOutcome":
        return cls(status=VerificationStatus.EXPIRED)

    @classmethod
    def invalid(cls, reason: str) -> "VerificationOutcome":
        return cls(status=VerificationStatus.INVALID, reason=reason)


PENDING = VerificationOutcome(status=VerificationStatus.NOT_YET_CHECKED)


@dataclass(frozen=True, kw_only=True)
class SessionKey:
    """
    Represents a decrypted message session key.

    Attributes:
        algorithm: The symmetric algorithm used.
        key_data: The raw key bytes.
    """

    algorithm: SymmetricAlgorithm
    key_data: bytes

    def __post_init__(self) -> None:
        """Validate key size matches algorithm."""
        expected = self.algorithm.key_size
        if not expected or (len(self.key_data) == expected):
            return
        msg = f"Key size mismatch: {self.algorithm.name} expects {expected} bytes, got {len(self.key_data)}"
        raise ValueError(msg)

    @property
    def block_size(self) -> int:
        """Get the block size for this key's algorithm."""
        return self.algorithm.block_size


@dataclass(frozen=True, kw_only=True)
class EncryptedSplit:
    """
    A PGP message separated into its key packet and its data packet.

    Attributes:
        key_packet: Public-key encrypted session key packet(s).
        data_packet: Symmetrically encrypted data packet.
        algorithm: Symmetric algorithm of the session key.
    """

    key_packet: bytes
    data_packet: bytes
    algorithm: SymmetricAlgorithm


@dataclass(frozen=True, kw_only=True)
class PacketHeader:
    """
    OpenPGP packet framing.

    Attributes:
        tag: Packet tag.
        header_length: Size of the tag and length octets.
        body_length: Size of the packet body.
    """

    tag: int
    header_length: int
    body_length: int

    @property
    def total_length(self) -> int:
        return self.header_length + self.body_length
