"""Viewer-relative unread computation and its aggregation across rooms."""

import logging
from typing import Dict, Iterable, List, Optional

from .errors import ChatError, HistoryUnavailable, ResolutionFailed
from .models import ADMIN_ROLE, CUSTOMER_ROLE, PROVIDER_ROLE, Identity, Message, RoomSummary
from .rooms import RoomResolver
from .store import Store, load_history

logger = logging.getLogger(__name__)


def is_from_other_side(message: Message, viewer: Identity) -> bool:
    """Customers hear from providers and admins; providers and admins hear from customers."""
    if message.sender_id == viewer.id:
        return False
    if viewer.role == CUSTOMER_ROLE:
        return message.sender_type in (PROVIDER_ROLE, ADMIN_ROLE)
    return message.sender_type == CUSTOMER_ROLE


def unread_messages(messages: Iterable[Message], viewer: Identity) -> List[Message]:
    return [
        m for m in messages if is_from_other_side(m, viewer) and not m.is_read_by(viewer.id)
    ]


def count_unread(messages: Iterable[Message], viewer: Identity) -> int:
    return len(unread_messages(messages, viewer))


def has_unread(messages: Iterable[Message], viewer: Identity) -> bool:
    return count_unread(messages, viewer) > 0


class UnreadAggregator:
    """Computes unread state for one or many rooms from the store's histories.

    Parameters
    ----------
    store : Store
        Source of room lists and message histories.
    resolver : RoomResolver, optional
        Needed only for order-row badges, which start from order ids.
    batch : bool, default=True
        Fetch many rooms' histories through `Store.fetch_histories` instead
        of one request after another.
    """

    def __init__(
        self, store: Store, resolver: Optional[RoomResolver] = None, batch: bool = True
    ):
        self.store = store
        self.resolver = resolver or RoomResolver(store)
        self.batch = batch

    async def _history(self, room_id: str) -> List[Message]:
        try:
            return await load_history(self.store, room_id)
        except HistoryUnavailable as e:
            logger.warning(str(e))
            return []

    async def _histories(self, room_ids: List[str]) -> Dict[str, List[Message]]:
        if self.batch:
            try:
                return await self.store.fetch_histories(room_ids)
            except ChatError as e:
                logger.warning(f"Batched history fetch failed, falling back per room: {e}")
        return {room_id: await self._history(room_id) for room_id in room_ids}

    async def unread_count(self, room_id: str, viewer: Identity) -> int:
        return count_unread(await self._history(room_id), viewer)

    async def has_unread(self, room_id: str, viewer: Identity) -> bool:
        return await self.unread_count(room_id, viewer) > 0

    async def unread_by_room(
        self, room_ids: Iterable[str], viewer: Identity
    ) -> Dict[str, int]:
        histories = await self._histories(list(dict.fromkeys(room_ids)))
        return {
            room_id: count_unread(messages, viewer)
            for room_id, messages in histories.items()
        }

    async def unread_for_orders(
        self, customer_id: str, order_ids: Iterable[str], viewer: Identity
    ) -> Dict[str, bool]:
        """Boolean badges for order rows, keyed by order id."""
        rooms: Dict[str, str] = {}
        badges: Dict[str, bool] = {}
        for order_id in order_ids:
            try:
                rooms[order_id] = await self.resolver.resolve_room(
                    customer_id, order_id=order_id
                )
            except ResolutionFailed as e:
                logger.warning(f"No chat badge for order {order_id}: {e}")
                badges[order_id] = False
        counts = await self.unread_by_room(rooms.values(), viewer)
        for order_id, room_id in rooms.items():
            badges[order_id] = counts.get(room_id, 0) > 0
        return badges

    async def summaries(self, viewer: Identity) -> List[RoomSummary]:
        """Chat-list rows for every room the viewer can see, newest activity first."""
        try:
            rooms = await self.store.list_rooms(viewer)
        except ChatError as e:
            logger.warning(f"Could not list chat rooms for {viewer.id}: {e}")
            return []

        histories = await self._histories([room.id for room in rooms])
        rows = []
        for room in rooms:
            messages = histories.get(room.id, [])
            last = messages[-1] if messages else None
            rows.append(
                RoomSummary(
                    room=room,
                    last_message=last,
                    last_activity=last.timestamp if last else room.created_at,
                    unread_count=count_unread(messages, viewer),
                )
            )
        rows.sort(key=lambda row: row.last_activity, reverse=True)
        return rows
