"""
Defines the core Pydantic data models for the chat core.

These models are the validated data contract between the pillars. Field
aliases match the portal API's JSON so that records decode straight off
the wire, while Python code uses snake_case attribute names.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationFailed

# --- Constants ---
CUSTOMER_ROLE = "customer"
PROVIDER_ROLE = "service_provider"
ADMIN_ROLE = "admin"
Role = Literal[CUSTOMER_ROLE, PROVIDER_ROLE, ADMIN_ROLE]

ROLES = (CUSTOMER_ROLE, PROVIDER_ROLE, ADMIN_ROLE)
ROLE_SYNONYMS = {
    "supplier": PROVIDER_ROLE,
    "provider": PROVIDER_ROLE,
}


def normalize_role(role: str) -> str:
    """Maps a reported role (including legacy synonyms) to its canonical value."""
    if not isinstance(role, str):
        raise ValidationFailed(f"Invalid role: {role!r}")
    value = role.strip().lower()
    value = ROLE_SYNONYMS.get(value, value)
    if value not in ROLES:
        raise ValidationFailed(f"Unknown role: {role!r}")
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


# --- Models ---
class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Identity(_WireModel):
    """The current viewer as supplied by the session collaborator."""

    id: str
    role: Role

    @field_validator("role", mode="before")
    @classmethod
    def _normalize(cls, value):
        return normalize_role(value)

    @field_validator("id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("identity id must be non-empty")
        return value


class ChatRoom(_WireModel):
    """One conversation channel between a customer and a provider/admin context."""

    id: str = Field(alias="_id")
    customer_id: str = Field(alias="customerId")
    counterpart_id: Optional[str] = Field(default=None, alias="supplierId")
    order_id: Optional[str] = Field(default=None, alias="orderId")
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=_utcnow, alias="updatedAt")

    @property
    def is_support_room(self) -> bool:
        return self.order_id is None


class Message(_WireModel):
    """A single message owned by exactly one room."""

    id: str = Field(alias="_id")
    chat_room_id: str = Field(alias="chatRoomId")
    sender_type: Role = Field(alias="senderType")
    sender_id: str = Field(alias="senderId")
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    read_by: List[str] = Field(default_factory=list, alias="readBy")

    @field_validator("sender_type", mode="before")
    @classmethod
    def _normalize_sender(cls, value):
        return normalize_role(value)

    @field_validator("read_by", mode="before")
    @classmethod
    def _dedupe_readers(cls, value):
        if value is None:
            return []
        seen = []
        for reader in value:
            reader = str(reader)
            if reader not in seen:
                seen.append(reader)
        return seen

    def is_read_by(self, viewer_id: str) -> bool:
        return viewer_id in self.read_by


class RoomSummary(BaseModel):
    """A chat-list row: the room, its latest message and the viewer's unread count."""

    room: ChatRoom
    last_message: Optional[Message] = None
    last_activity: datetime
    unread_count: int = 0

    @property
    def has_unread(self) -> bool:
        return self.unread_count > 0

    @property
    def preview(self) -> str:
        if self.last_message is None:
            return "No messages yet"
        return self.last_message.content
