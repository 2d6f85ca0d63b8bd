"""
Entity selection policies.

Both policies are first-match over the ring order, which is the priority
order the API returns keys in. Only the first entity is ever used as an
encryption recipient; every other entity of the ring is ignored for
encryption.
"""

import contextlib
from collections.abc import Sequence
from typing import Any

import structlog

from proton_keyring.crypto.passphrase import Passphrase
from proton_keyring.crypto.protocol import PgpEngine
from proton_keyring.exceptions import KeyRingNotUnlockedError, NoKeyMaterialError, WrongPassphraseError
from proton_keyring.models.keys import Entity, LockedKey, UnlockedKey

logger = structlog.get_logger(__name__)


def encryption_entity(entities: Sequence[Entity]) -> Entity:
    """
    Select the encryption recipient: the first entity of the ring.

    Raises:
        NoKeyMaterialError: If there is no entity.
    """
    if not entities:
        raise NoKeyMaterialError()
    return entities[0]


def signing_entity(entities: Sequence[Entity]) -> Entity | None:
    """Return the first entity whose primary private key is unlocked, or None."""
    return next((entity for entity in entities if isinstance(entity.private_key, UnlockedKey)), None)


def require_signing_entity(entities: Sequence[Entity]) -> Entity:
    """
    Like ``signing_entity``, for call sites that cannot accept a passphrase.

    Raises:
        KeyRingNotUnlockedError: If no entity is unlocked.
    """
    entity = signing_entity(entities)
    if entity is None:
        raise KeyRingNotUnlockedError()
    return entity


def signing_entity_with_passphrase(
    entities: Sequence[Entity],
    engine: PgpEngine,
    passphrase: Passphrase,
    *,
    lock: contextlib.AbstractContextManager[Any] | None = None,
) -> Entity | None:
    """
    Return the first entity that is unlocked or can be unlocked with ``passphrase``.

    Locked primary keys met during the scan are unlocked in place. A
    passphrase that does not fit one entity is not an error: the scan moves
    on to the next entity.

    Returns:
        The signing entity, or None if no entity is usable.
    """
    with lock if lock is not None else contextlib.nullcontext():
        for index, entity in enumerate(entities):
            private_key = entity.private_key
            if isinstance(private_key, UnlockedKey):
                return entity
            if not isinstance(private_key, LockedKey):
                continue
            try:
                material = engine.unlock_key(private_key.material, passphrase)
            except WrongPassphraseError:
                logger.debug("Passphrase does not unlock entity", index=index, key_id=entity.key_id)
                continue
            entity.private_key = UnlockedKey(material)
            logger.debug("Unlocked signing entity", key_id=entity.key_id)
            return entity
    return None
