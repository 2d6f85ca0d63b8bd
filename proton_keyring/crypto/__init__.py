"""
Cryptographic collaborators of the key ring.

This module provides:
- The PGP engine and armor codec protocols, with pgpy-backed implementations
- OpenPGP packet framing helpers
- SEIPD data packet decryption with a known session key
- Passphrase handling and mailbox passphrase derivation
"""

from proton_keyring.crypto.aes import decrypt_data_packet
from proton_keyring.crypto.armor import PgpyArmorCodec, armor
from proton_keyring.crypto.packets import iter_packets, parse_packet_header
from proton_keyring.crypto.passphrase import Passphrase, derive_mailbox_passphrase
from proton_keyring.crypto.pgpy_engine import PgpyEngine
from proton_keyring.crypto.protocol import ArmorBlock, ArmorCodec, EngineMessage, PgpEngine, WriteStream

__all__ = [
    "Passphrase",
    "derive_mailbox_passphrase",
    "PgpEngine",
    "ArmorCodec",
    "ArmorBlock",
    "EngineMessage",
    "WriteStream",
    "PgpyEngine",
    "PgpyArmorCodec",
    "armor",
    "decrypt_data_packet",
    "iter_packets",
    "parse_packet_header",
]
