"""
The main entrypoint for the laundrychat package.

This module contains the `LaundryChat` class, which wires the chat core's
pillars together: a store client for rooms and messages, a factory for
live transports, a session collaborator for the current viewer, and the
layout used to render conversations and unread badges.
"""

from typing import Callable, Dict, Iterable, List, Optional

from .auth import Anonymous, Auth, require_identity
from .config import Settings, get_settings
from .conversation import ConversationView
from .errors import (
    ChatError,
    DeliveryUncertain,
    HistoryUnavailable,
    ReadMarkFailed,
    ResolutionFailed,
    StoreError,
    TransportError,
    ValidationFailed,
)
from .layout import Default, Layout
from .models import ADMIN_ROLE, ChatRoom, Identity, Message, RoomSummary
from .receipts import ReadReceiptTracker
from .rooms import RoomResolver
from .store import Http, InMemory, Store
from .transport import Hub, SocketIO, Transport
from .unread import UnreadAggregator

__all__ = [
    "LaundryChat",
    "ChatRoom",
    "Identity",
    "Message",
    "RoomSummary",
    "ChatError",
    "DeliveryUncertain",
    "HistoryUnavailable",
    "ReadMarkFailed",
    "ResolutionFailed",
    "StoreError",
    "TransportError",
    "ValidationFailed",
]


class LaundryChat:
    """
    The chat core of the laundry portal.

    Every operation takes the viewer explicitly; when it is omitted the
    session collaborator (`auth`) is asked once, at this boundary.

    Parameters
    ----------
    store : Store, optional
        Conversation store client. Defaults to an in-memory store.
    transport_factory : callable, optional
        Returns a fresh `Transport` for each opened conversation. Defaults
        to transports attached to an in-process `Hub` over `store`.
    auth : Auth, optional
        Session collaborator. Defaults to `Anonymous` (nobody signed in).
    layout : Layout, optional
        Renderer for messages, chat lists and badges.
    settings : Settings, optional
        Runtime settings. Defaults to `get_settings()`.

    Examples
    --------
    >>> chat = LaundryChat()
    >>> room_id = await chat.resolve_room("c1", counterpart_id="p1", order_id="o1")
    >>> async with chat.open_conversation(room_id, viewer) as view:
    ...     await view.send("On my way")
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        transport_factory: Optional[Callable[[], Transport]] = None,
        auth: Optional[Auth] = None,
        layout: Optional[Layout] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        self.store = store if store is not None else InMemory()
        self.hub: Optional[Hub] = None
        if transport_factory is not None:
            self.transport_factory = transport_factory
        else:
            self.hub = Hub(self.store)
            self.transport_factory = self.hub.transport
        self.auth = auth if auth is not None else Anonymous()
        self.layout = layout if layout is not None else Default()

        self.resolver = RoomResolver(self.store)
        self.receipts = ReadReceiptTracker(self.store)
        self.unread = UnreadAggregator(
            self.store, self.resolver, batch=self.settings.BATCH_UNREAD
        )

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, auth: Optional[Auth] = None
    ) -> "LaundryChat":
        """Builds a client for the portal's REST API and socket server."""
        settings = settings if settings is not None else get_settings()
        settings.validate()
        return cls(
            store=Http(settings.API_URL, token=settings.API_TOKEN),
            transport_factory=lambda: SocketIO(settings.SOCKET_URL),
            auth=auth,
            settings=settings,
        )

    def viewer(self, viewer: Optional[Identity] = None, **kwargs) -> Identity:
        if viewer is None:
            viewer = self.auth.get_current_identity(**kwargs)
        return require_identity(viewer)

    async def resolve_room(
        self,
        customer_id: str,
        counterpart_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> str:
        return await self.resolver.resolve_room(customer_id, counterpart_id, order_id)

    def open_conversation(
        self, room_id: str, viewer: Optional[Identity] = None
    ) -> ConversationView:
        """Returns a conversation view; enter it with ``async with``."""
        return ConversationView(
            self.store,
            self.transport_factory(),
            room_id,
            self.viewer(viewer),
            receipts=self.receipts,
            token=self.settings.API_TOKEN,
        )

    async def mark_as_read(self, room_id: str, viewer: Optional[Identity] = None) -> bool:
        return await self.receipts.mark_as_read(room_id, self.viewer(viewer))

    async def unread_count(self, room_id: str, viewer: Optional[Identity] = None) -> int:
        return await self.unread.unread_count(room_id, self.viewer(viewer))

    async def has_unread(self, room_id: str, viewer: Optional[Identity] = None) -> bool:
        return await self.unread.has_unread(room_id, self.viewer(viewer))

    async def room_summaries(
        self, viewer: Optional[Identity] = None
    ) -> List[RoomSummary]:
        return await self.unread.summaries(self.viewer(viewer))

    async def order_badges(
        self,
        customer_id: str,
        order_ids: Iterable[str],
        viewer: Optional[Identity] = None,
    ) -> Dict[str, bool]:
        return await self.unread.unread_for_orders(
            customer_id, order_ids, self.viewer(viewer)
        )

    async def assign_provider(
        self, room_id: str, provider_id: str, viewer: Optional[Identity] = None
    ) -> ChatRoom:
        """Assigns a provider to a room. Only admins may do this."""
        viewer = self.viewer(viewer)
        if viewer.role != ADMIN_ROLE:
            raise ValidationFailed("Only admins can assign a provider to a chat")
        return await self.store.assign_counterpart(room_id, provider_id)

    async def close(self) -> None:
        await self.store.close()
