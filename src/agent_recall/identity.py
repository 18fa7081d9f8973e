"""
Identity / Addressing

Deterministic derivation of stable identifiers from platform-native raw
strings. The same raw string always maps to the same UUID, so re-ingesting
the same platform message is idempotent.
"""

from typing import Union
from uuid import UUID, uuid5

from agent_recall.errors import InvalidInputError

# Fixed namespace for every id derived by this package. Changing it would
# re-key every stored memory.
STABLE_ID_NAMESPACE = UUID("6f1c2b7e-9d3a-4c5e-8f21-3b7a9c0d4e51")


def to_stable_id(raw: str) -> UUID:
    """
    Derive a namespaced UUID v5 from a raw string.

    Raises:
        InvalidInputError: If raw is None, empty, or not a string
    """
    if not isinstance(raw, str) or raw == "":
        raise InvalidInputError("Cannot derive a stable id from an empty value")
    return uuid5(STABLE_ID_NAMESPACE, raw)


def room_id_from(raw_room_id: str) -> UUID:
    if not raw_room_id:
        raise InvalidInputError("Room id is required")
    return to_stable_id(raw_room_id)


def user_id_from(raw_user_id: str) -> UUID:
    if not raw_user_id:
        raise InvalidInputError("User id is required")
    return to_stable_id(raw_user_id)


def message_id_from(raw_message_id: str, agent_id: Union[UUID, str]) -> UUID:
    """Memory id for an inbound platform message, scoped to one agent."""
    if not raw_message_id:
        raise InvalidInputError("Message id is required")
    return to_stable_id(f"{raw_message_id}-{agent_id}")


def chunk_id(parent_id: Union[UUID, str], index: int) -> str:
    """Id of the index-th chunk of a knowledge item."""
    return f"{parent_id}-chunk-{index}"


def chunk_pattern(parent_id: Union[UUID, str]) -> str:
    """Pattern id that addresses every chunk of a knowledge item."""
    return f"{parent_id}-chunk-*"
