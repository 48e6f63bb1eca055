"""Read-receipt tracking."""

import logging

from .errors import ChatError, ReadMarkFailed
from .models import Identity
from .store import Store

logger = logging.getLogger(__name__)


class ReadReceiptTracker:
    """Marks a room's messages as read by a viewer.

    By default failures are logged and reported through the return value
    only, so a stale unread badge never blocks navigation or display.
    """

    def __init__(self, store: Store, raise_errors: bool = False):
        self.store = store
        self.raise_errors = raise_errors

    async def mark_as_read(self, room_id: str, viewer: Identity) -> bool:
        """Adds the viewer to `read_by` of the room's messages from other roles.

        Returns True on success and False if the store call failed.
        """
        try:
            await self.store.mark_read(room_id, viewer.id, skip_sender_type=viewer.role)
        except ChatError as e:
            logger.warning(f"Failed to mark room {room_id} read for {viewer.id}: {e}")
            if self.raise_errors:
                raise ReadMarkFailed(str(e)) from e
            return False
        logger.debug(f"Marked room {room_id} read for {viewer.id}")
        return True
