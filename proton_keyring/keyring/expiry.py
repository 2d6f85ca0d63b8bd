"""
Expiry filtering across contact key rings.
"""

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from proton_keyring.exceptions import AllKeysExpiredError
from proton_keyring.models.keys import Entity

if TYPE_CHECKING:
    from proton_keyring.keyring.keyring import KeyRing

logger = structlog.get_logger(__name__)


class EntityExpiry(Enum):
    UNEXPIRED = "unexpired"
    TOTALLY_EXPIRED = "totally-expired"
    UNKNOWN = "unknown"


def classify_entity(entity: Entity, now: datetime) -> EntityExpiry:
    """
    Classify an entity by the expiry of its subkeys.

    An entity with at least one live subkey is unexpired; one whose subkeys
    are all expired is totally expired. An entity without subkeys is neither.
    """
    has_expired = False
    for subkey in entity.subkeys:
        if not subkey.is_expired(now):
            return EntityExpiry.UNEXPIRED
        has_expired = True
    return EntityExpiry.TOTALLY_EXPIRED if has_expired else EntityExpiry.UNKNOWN


def filter_expired_keys(rings: Iterable["KeyRing"], now: datetime | None = None) -> list["KeyRing"]:
    """
    Keep the rings that have at least one unexpired entity.

    Rings with no unexpired entity are dropped. They count as expired only if
    one of their entities is totally expired; rings with nothing to check
    (no subkeys at all) are dropped silently.

    Args:
        rings: Contact key rings, in order.
        now: Reference time. Defaults to each ring's configured clock.

    Returns:
        The kept rings, in input order.

    Raises:
        AllKeysExpiredError: If no ring is kept and at least one was expired.
    """
    kept = []
    expired = 0
    for ring in rings:
        reference = now if now is not None else ring.config.now()
        states = {classify_entity(entity, reference) for entity in ring.entities}
        if EntityExpiry.UNEXPIRED in states:
            kept.append(ring)
        elif EntityExpiry.TOTALLY_EXPIRED in states:
            expired += 1
            logger.debug("Dropping expired key ring", key_ids=ring.key_ids())

    if not kept and expired:
        raise AllKeysExpiredError(expired=expired)
    return kept
