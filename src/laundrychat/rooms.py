"""Room resolution: one canonical room per (customer, order) conversation."""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from .errors import ResolutionFailed, StoreError
from .models import ChatRoom
from .store import Store, validate_id

logger = logging.getLogger(__name__)


class RoomResolver:
    """Maps `(customer_id, order_id)` to a single room through the store's find-or-create.

    Concurrent resolutions of the same key from different surfaces share one
    in-flight store request, so a single process never issues duplicate
    creates. Cross-process convergence is the store's find-or-create guarantee.
    """

    def __init__(self, store: Store):
        self.store = store
        self._inflight: Dict[Tuple[str, Optional[str]], "asyncio.Future[ChatRoom]"] = {}

    async def resolve_room(
        self,
        customer_id: str,
        counterpart_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> str:
        """Returns the id of the room for this conversation, creating it if needed.

        Raises `ValidationFailed` for a missing customer id and `ResolutionFailed`
        when the store cannot produce the room.
        """
        room = await self.resolve(customer_id, counterpart_id, order_id)
        return room.id

    async def resolve(
        self,
        customer_id: str,
        counterpart_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> ChatRoom:
        customer_id = validate_id(customer_id, "customer_id")

        key = (customer_id, order_id)
        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(
                self._find_or_create(customer_id, counterpart_id, order_id)
            )
            self._inflight[key] = pending
            pending.add_done_callback(lambda _: self._inflight.pop(key, None))
        return await asyncio.shield(pending)

    async def _find_or_create(self, customer_id, counterpart_id, order_id) -> ChatRoom:
        try:
            room = await self.store.find_or_create_room(
                customer_id, order_id=order_id, counterpart_id=counterpart_id
            )
        except StoreError as e:
            logger.error(
                f"Failed to resolve chat room for customer {customer_id}, order {order_id}: {e}"
            )
            raise ResolutionFailed(f"Failed to start chat: {e}") from e

        if room.customer_id != customer_id or room.order_id != order_id:
            raise ResolutionFailed(
                f"Store returned room {room.id} for a different conversation"
            )
        logger.debug(f"Resolved room {room.id} for customer {customer_id}")
        return room
