"""Inbound chain events and the broadcast envelope.

CDP delivers ``onchain.activity.detected`` payloads whose ``data`` field
names vary between provider versions (``lockUpId`` vs ``lockup_id``).
Every payload decodes to exactly one variant; anything not recognised
becomes ``UnrecognizedEvent`` and is dropped by the webhook.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

ACTIVITY_DETECTED = "onchain.activity.detected"


class EventType(str, Enum):
    """Broadcastable event types."""

    LOCKUP_CREATED = "lockup_created"
    UNLOCK = "unlock"
    TRANSFER = "transfer"


# ---------------------------------------------------------------------------
# Payload data
# ---------------------------------------------------------------------------


class LockupCreatedData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    lockup_id: int = Field(validation_alias=AliasChoices("lockUpId", "lockup_id"), serialization_alias="lockUpId")
    token: str | None = None
    receiver: str | None = None
    amount: str | None = None
    unlock_time: int | None = Field(
        default=None,
        validation_alias=AliasChoices("unlockTime", "unlock_time"),
        serialization_alias="unlockTime",
    )
    title: str | None = None


class UnlockData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    lockup_id: int = Field(validation_alias=AliasChoices("lockUpId", "lockup_id"), serialization_alias="lockUpId")
    token: str | None = None
    receiver: str | None = None


class TransferData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    sender: str | None = Field(default=None, alias="from")
    to: str | None = None
    value: str | None = None


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


class LockupCreatedEvent(BaseModel):
    type: Literal[EventType.LOCKUP_CREATED] = EventType.LOCKUP_CREATED
    data: LockupCreatedData


class UnlockEvent(BaseModel):
    type: Literal[EventType.UNLOCK] = EventType.UNLOCK
    data: UnlockData


class TransferEvent(BaseModel):
    type: Literal[EventType.TRANSFER] = EventType.TRANSFER
    data: TransferData


class UnrecognizedEvent(BaseModel):
    type: Literal["unrecognized"] = "unrecognized"
    event_type: str | None = None
    contract_address: str | None = None
    event_name: str | None = None


ChainEvent = LockupCreatedEvent | UnlockEvent | TransferEvent | UnrecognizedEvent


class BroadcastEvent(BaseModel):
    """What subscribers of the event stream receive."""

    id: str
    timestamp: int
    type: EventType
    data: dict[str, Any]


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def parse_cdp_payload(body: dict[str, Any], lockup_contract: str, token_address: str) -> ChainEvent:
    """Decode a CDP webhook body into one event variant.

    Raises ``pydantic.ValidationError`` when a recognised event lacks its
    required fields.
    """
    event_types = body.get("eventTypes") or []
    event_type = event_types[0] if event_types else None
    labels = body.get("labels") or {}
    data = body.get("data") or {}

    contract = (labels.get("contract_address") or "").lower()
    name = labels.get("event_name")

    if event_type == ACTIVITY_DETECTED:
        if contract == lockup_contract.lower() and name == "LockUpCreated":
            return LockupCreatedEvent(data=LockupCreatedData.model_validate(data))
        if contract == lockup_contract.lower() and name == "Unlock":
            return UnlockEvent(data=UnlockData.model_validate(data))
        if contract == token_address.lower() and name == "Transfer":
            return TransferEvent(data=TransferData.model_validate(data))

    return UnrecognizedEvent(event_type=event_type, contract_address=contract or None, event_name=name)
