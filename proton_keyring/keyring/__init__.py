"""
Key ring orchestration: entity selection, unlocking, deferred signature
verification, expiry filtering and the symmetric split workflow.
"""

from proton_keyring.keyring.expiry import filter_expired_keys
from proton_keyring.keyring.keyring import KeyRing, parse_key_records
from proton_keyring.keyring.selector import (
    encryption_entity,
    require_signing_entity,
    signing_entity,
    signing_entity_with_passphrase,
)
from proton_keyring.keyring.signature import DecryptedMessage, Signature, SignedString, VerifyingReader
from proton_keyring.keyring.split import separate_key_and_data

__all__ = [
    "KeyRing",
    "parse_key_records",
    "Signature",
    "SignedString",
    "DecryptedMessage",
    "VerifyingReader",
    "encryption_entity",
    "signing_entity",
    "require_signing_entity",
    "signing_entity_with_passphrase",
    "filter_expired_keys",
    "separate_key_and_data",
]
