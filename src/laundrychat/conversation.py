"""A mounted conversation: history, live delivery and read receipts for one viewer."""

import logging
from typing import List, Optional, Set, Tuple

from .auth import require_identity
from .display import label_for
from .errors import DeliveryUncertain, HistoryUnavailable
from .models import Identity, Message
from .receipts import ReadReceiptTracker
from .store import Store, load_history
from .transport import LiveChannel, PendingSend, Transport

logger = logging.getLogger(__name__)


class ConversationView:
    """The local, discardable projection of one room for one viewer.

    `messages` holds the fetched history (oldest first) followed by live
    arrivals in the order the transport delivered them. The store remains the
    source of truth; two viewers of the same room never share this state.
    """

    def __init__(
        self,
        store: Store,
        transport: Transport,
        room_id: str,
        viewer: Optional[Identity],
        receipts: Optional[ReadReceiptTracker] = None,
        token: Optional[str] = None,
    ):
        self.viewer = require_identity(viewer)
        self.store = store
        self.room_id = room_id
        self.receipts = receipts or ReadReceiptTracker(store)
        self.channel = LiveChannel(transport, room_id, token=token)
        self.messages: List[Message] = []
        self.notice: Optional[str] = None
        self._ids: Set[str] = set()
        self._mounted = False

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def delivery_uncertain(self) -> bool:
        return self.channel.delivery_uncertain

    async def enter(self) -> None:
        """Joins the live channel, loads history and marks the room read."""
        self._mounted = True
        self.channel.subscribe(self._on_message)
        try:
            await self.channel.open()
        except DeliveryUncertain as e:
            logger.warning(f"Opening room {self.room_id} without live delivery: {e}")
            self.notice = DeliveryUncertain.user_message

        try:
            history = await load_history(self.store, self.room_id)
        except HistoryUnavailable as e:
            logger.warning(str(e))
            history = []

        if not self._mounted:
            logger.debug(f"Discarding history for room {self.room_id} after leave")
            return

        history_ids = {m.id for m in history}
        live = [m for m in self.messages if m.id not in history_ids]
        self.messages = list(history) + live
        self._ids = {m.id for m in self.messages}
        self.channel.prime(self.messages)

        await self.mark_read()

    async def mark_read(self) -> bool:
        return await self.receipts.mark_as_read(self.room_id, self.viewer)

    async def send(self, content: str) -> PendingSend:
        """Sends as the viewer. The stored copy arrives later through the channel."""
        try:
            return await self.channel.send(self.viewer, content)
        except DeliveryUncertain:
            self.notice = DeliveryUncertain.user_message
            raise

    async def retry_delivery(self) -> int:
        """Reconnects and re-sends anything left unsent. Returns how many were re-sent."""
        await self.channel.reconnect()
        sent = await self.channel.flush_unsent()
        self.notice = None
        return sent

    def _on_message(self, message: Message) -> None:
        if not self._mounted or message.id in self._ids:
            return
        self._ids.add(message.id)
        self.messages.append(message)
        logger.debug(f"Room {self.room_id} received message {message.id}")

    def labelled(self) -> List[Tuple[str, Message]]:
        return [(label_for(m.sender_type, self.viewer.role), m) for m in self.messages]

    async def leave(self) -> None:
        self._mounted = False
        await self.channel.close()

    async def __aenter__(self):
        try:
            await self.enter()
        except BaseException:
            await self.leave()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.leave()
