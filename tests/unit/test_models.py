"""
Tests for the core Pydantic data models.

These models form the data contract between all pillars and decode the
portal API's JSON directly, so aliasing and normalisation matter.
"""

from datetime import datetime

import pytest
from laundrychat.errors import ValidationFailed
from laundrychat.models import (
    ADMIN_ROLE,
    CUSTOMER_ROLE,
    PROVIDER_ROLE,
    ChatRoom,
    Identity,
    Message,
    RoomSummary,
    normalize_role,
)
from pydantic import ValidationError


class TestNormalizeRole:
    """Test role normalisation to the closed vocabulary."""

    def test_canonical_roles_unchanged(self):
        for role in (CUSTOMER_ROLE, PROVIDER_ROLE, ADMIN_ROLE):
            assert normalize_role(role) == role

    def test_supplier_synonym(self):
        """Legacy 'supplier' is stored as 'service_provider'."""
        assert normalize_role("supplier") == PROVIDER_ROLE
        assert normalize_role("Supplier ") == PROVIDER_ROLE
        assert normalize_role("provider") == PROVIDER_ROLE

    def test_unknown_role_rejected(self):
        with pytest.raises(ValidationFailed):
            normalize_role("laundromat")

        with pytest.raises(ValidationFailed):
            normalize_role(None)


class TestIdentity:
    """Test Identity validation."""

    def test_role_normalised_on_creation(self):
        identity = Identity(id="p1", role="supplier")
        assert identity.role == PROVIDER_ROLE

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            Identity(id="  ", role=CUSTOMER_ROLE)

    def test_unknown_role_rejected(self):
        with pytest.raises(ValidationError):
            Identity(id="x", role="guest")


class TestChatRoom:
    """Test ChatRoom decoding and defaults."""

    def test_decodes_api_json(self):
        room = ChatRoom.model_validate(
            {
                "_id": "r1",
                "customerId": "c1",
                "orderId": "o1",
                "supplierId": "p1",
                "createdAt": "2026-03-01T09:00:00Z",
                "updatedAt": "2026-03-01T09:05:00Z",
                "__v": 0,
            }
        )
        assert room.id == "r1"
        assert room.customer_id == "c1"
        assert room.order_id == "o1"
        assert room.counterpart_id == "p1"
        assert isinstance(room.created_at, datetime)
        assert not room.is_support_room

    def test_support_room_without_order(self):
        room = ChatRoom(id="r2", customer_id="c1")
        assert room.order_id is None
        assert room.counterpart_id is None
        assert room.is_support_room

    def test_customer_required(self):
        with pytest.raises(ValidationError) as exc_info:
            ChatRoom(id="r3")
        assert any(error["loc"] == ("customerId",) for error in exc_info.value.errors())


class TestMessage:
    """Test Message decoding and read tracking helpers."""

    def test_decodes_api_json(self):
        message = Message.model_validate(
            {
                "_id": "m1",
                "chatRoomId": "r1",
                "senderType": "supplier",
                "senderId": "p1",
                "content": "On my way",
                "timestamp": "2026-03-01T09:00:00Z",
                "readBy": ["c1", "c1", "a1"],
            }
        )
        assert message.id == "m1"
        assert message.chat_room_id == "r1"
        assert message.sender_type == PROVIDER_ROLE
        assert message.read_by == ["c1", "a1"]

    def test_read_by_starts_empty(self):
        message = Message(
            id="m1",
            chat_room_id="r1",
            sender_type=CUSTOMER_ROLE,
            sender_id="c1",
            content="Hello",
        )
        assert message.read_by == []
        assert not message.is_read_by("p1")

    def test_missing_read_by_tolerated(self):
        message = Message.model_validate(
            {
                "_id": "m1",
                "chatRoomId": "r1",
                "senderType": "customer",
                "senderId": "c1",
                "content": "Hi",
                "readBy": None,
            }
        )
        assert message.read_by == []

    def test_dump_by_alias_round_trips_wire_names(self, sample_messages):
        data = sample_messages[0].model_dump(by_alias=True, mode="json")
        assert data["_id"] == "m1"
        assert data["senderType"] == PROVIDER_ROLE
        assert "readBy" in data


class TestRoomSummary:
    """Test chat-list row helpers."""

    def test_preview_for_empty_room(self, base_time):
        summary = RoomSummary(
            room=ChatRoom(id="r1", customer_id="c1"), last_activity=base_time
        )
        assert summary.preview == "No messages yet"
        assert not summary.has_unread

    def test_preview_uses_last_message(self, sample_messages, base_time):
        summary = RoomSummary(
            room=ChatRoom(id="r1", customer_id="c1"),
            last_message=sample_messages[-1],
            last_activity=sample_messages[-1].timestamp,
            unread_count=2,
        )
        assert summary.preview == "Delivering at 5pm"
        assert summary.has_unread
