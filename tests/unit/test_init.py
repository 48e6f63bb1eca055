"""Unit tests for LaundryChat initialization and its viewer boundary."""

from unittest.mock import Mock

import pytest
from laundrychat import LaundryChat
from laundrychat.auth import Anonymous, Static
from laundrychat.config import Settings
from laundrychat.errors import ValidationFailed
from laundrychat.layout import Default
from laundrychat.store import Http, InMemory
from laundrychat.transport import Hub, SocketIO


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.setattr("laundrychat.config.load_dotenv", lambda: False)
    monkeypatch.delenv("LAUNDRYCHAT_SOCKET_URL", raising=False)
    monkeypatch.setenv("LAUNDRYCHAT_API_URL", "http://portal.test/api")
    monkeypatch.setenv("LAUNDRYCHAT_API_TOKEN", "tok")
    monkeypatch.setenv("LAUNDRYCHAT_BATCH_UNREAD", "false")
    return Settings()


class TestLaundryChatInit:
    """Test pillar defaults and injection."""

    def test_default_initialization(self, settings):
        chat = LaundryChat(settings=settings)
        assert isinstance(chat.store, InMemory)
        assert isinstance(chat.hub, Hub)
        assert isinstance(chat.auth, Anonymous)
        assert isinstance(chat.layout, Default)
        assert chat.unread.batch is False
        assert chat.resolver.store is chat.store
        assert chat.receipts.store is chat.store

    def test_custom_pillars(self, settings):
        store = Mock()
        factory = Mock()
        layout = Mock()
        chat = LaundryChat(
            store=store, transport_factory=factory, layout=layout, settings=settings
        )
        assert chat.store is store
        assert chat.transport_factory is factory
        assert chat.layout is layout
        assert chat.hub is None

    def test_from_settings(self, settings):
        chat = LaundryChat.from_settings(settings)
        assert isinstance(chat.store, Http)
        assert chat.store.base_url == "http://portal.test/api"
        transport = chat.transport_factory()
        assert isinstance(transport, SocketIO)
        assert transport.url == "http://portal.test"

    def test_from_settings_validates(self, settings):
        settings.API_URL = "not a url"
        with pytest.raises(ValueError):
            LaundryChat.from_settings(settings)


class TestViewerBoundary:
    def test_anonymous_viewer_rejected(self, settings, arun):
        chat = LaundryChat(settings=settings)
        with pytest.raises(ValidationFailed) as exc_info:
            arun(chat.unread_count("r1"))
        assert "please sign in" in str(exc_info.value)

    def test_session_viewer_used_when_omitted(self, settings, arun, customer):
        chat = LaundryChat(auth=Static(customer), settings=settings)

        async def scenario():
            room_id = await chat.resolve_room("c1", counterpart_id="p1", order_id="o1")
            await chat.store.append_message(room_id, "service_provider", "p1", "Ready")
            return await chat.unread_count(room_id), await chat.has_unread(room_id)

        assert arun(scenario()) == (1, True)

    def test_open_conversation_without_viewer(self, settings):
        chat = LaundryChat(settings=settings)
        with pytest.raises(ValidationFailed):
            chat.open_conversation("r1")


class TestAssignProvider:
    def test_admin_assigns(self, settings, arun, admin):
        chat = LaundryChat(settings=settings)

        async def scenario():
            room_id = await chat.resolve_room("c1")
            return await chat.assign_provider(room_id, "p7", viewer=admin)

        assert arun(scenario()).counterpart_id == "p7"

    def test_non_admin_refused(self, settings, arun, provider):
        chat = LaundryChat(settings=settings)

        async def scenario():
            room_id = await chat.resolve_room("c1")
            await chat.assign_provider(room_id, "p7", viewer=provider)

        with pytest.raises(ValidationFailed):
            arun(scenario())

    def test_order_badges_and_summaries(self, settings, arun, customer):
        chat = LaundryChat(settings=settings)

        async def scenario():
            room_id = await chat.resolve_room("c1", counterpart_id="p1", order_id="o1")
            await chat.store.append_message(room_id, "admin", "a1", "Refund issued")
            badges = await chat.order_badges("c1", ["o1"], viewer=customer)
            rows = await chat.room_summaries(viewer=customer)
            await chat.mark_as_read(room_id, viewer=customer)
            after = await chat.order_badges("c1", ["o1"], viewer=customer)
            return badges, rows, after

        badges, rows, after = arun(scenario())
        assert badges == {"o1": True}
        assert rows[0].unread_count == 1
        assert after == {"o1": False}
