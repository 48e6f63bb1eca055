"""Concrete implementations for the conversation store client."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import aiohttp
from pydantic import ValidationError

from .errors import ChatError, HistoryUnavailable, StoreError, ValidationFailed
from .models import (
    ADMIN_ROLE,
    CUSTOMER_ROLE,
    PROVIDER_ROLE,
    ChatRoom,
    Identity,
    Message,
    new_id,
    normalize_role,
)

logger = logging.getLogger(__name__)


def validate_content(content: Optional[str]) -> str:
    """Returns trimmed message content, rejecting empty or whitespace-only text."""
    if content is None or not str(content).strip():
        raise ValidationFailed("Message content must not be empty")
    return str(content).strip()


def validate_id(value: Optional[str], name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationFailed(f"{name} is required")
    return str(value)


class Store(ABC):
    """Interface to the persistence collaborator holding rooms and messages."""

    @abstractmethod
    async def find_or_create_room(
        self,
        customer_id: str,
        order_id: Optional[str] = None,
        counterpart_id: Optional[str] = None,
    ) -> ChatRoom:
        """Returns the room for `(customer_id, order_id)`, creating it if absent."""
        pass

    @abstractmethod
    async def get_room(self, room_id: str) -> Optional[ChatRoom]:
        """Loads a single room, or None if it does not exist."""
        pass

    @abstractmethod
    async def list_rooms(self, viewer: Identity) -> List[ChatRoom]:
        """Lists the rooms visible to a viewer."""
        pass

    @abstractmethod
    async def assign_counterpart(self, room_id: str, counterpart_id: str) -> ChatRoom:
        """Assigns a provider to an existing room."""
        pass

    @abstractmethod
    async def fetch_history(self, room_id: str) -> List[Message]:
        """Fetches a room's messages, oldest first."""
        pass

    @abstractmethod
    async def append_message(
        self, room_id: str, sender_type: str, sender_id: str, content: str
    ) -> Message:
        """Stores a new message and returns it with its server-assigned id."""
        pass

    @abstractmethod
    async def mark_read(
        self, room_id: str, viewer_id: str, skip_sender_type: Optional[str] = None
    ) -> None:
        """Adds `viewer_id` to `read_by` of the room's messages. Idempotent."""
        pass

    async def fetch_histories(self, room_ids: Iterable[str]) -> Dict[str, List[Message]]:
        """Fetches several rooms' histories concurrently on the running loop."""
        room_ids = list(dict.fromkeys(room_ids))
        histories = await asyncio.gather(*(self.fetch_history(r) for r in room_ids))
        return dict(zip(room_ids, histories))

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class InMemory(Store):
    """Keeps rooms and messages in dictionaries. Ids and timestamps are assigned here."""

    def __init__(self):
        self._rooms: Dict[str, ChatRoom] = {}
        self._room_keys: Dict[Tuple[str, Optional[str]], str] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._last_timestamp: Optional[datetime] = None

    def _now(self) -> datetime:
        """Strictly increasing across the store, so activity order is total."""
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    async def find_or_create_room(self, customer_id, order_id=None, counterpart_id=None):
        customer_id = validate_id(customer_id, "customer_id")
        key = (customer_id, order_id)
        room_id = self._room_keys.get(key)
        if room_id is not None:
            return self._rooms[room_id].model_copy(deep=True)

        room = ChatRoom(
            id=new_id(),
            customer_id=customer_id,
            counterpart_id=counterpart_id,
            order_id=order_id,
            created_at=self._now(),
        )
        room.updated_at = room.created_at
        self._rooms[room.id] = room
        self._room_keys[key] = room.id
        self._messages[room.id] = []
        logger.info(f"Created chat room {room.id} for customer {customer_id}")
        return room.model_copy(deep=True)

    async def get_room(self, room_id):
        room = self._rooms.get(room_id)
        return room.model_copy(deep=True) if room else None

    async def list_rooms(self, viewer):
        if viewer.role == ADMIN_ROLE:
            rooms = list(self._rooms.values())
        elif viewer.role == PROVIDER_ROLE:
            rooms = [r for r in self._rooms.values() if r.counterpart_id == viewer.id]
        else:
            rooms = [r for r in self._rooms.values() if r.customer_id == viewer.id]
        rooms.sort(key=lambda r: r.created_at)
        return [r.model_copy(deep=True) for r in rooms]

    async def assign_counterpart(self, room_id, counterpart_id):
        room = self._rooms.get(room_id)
        if room is None:
            raise StoreError(f"Chat room not found: {room_id}", status=404)
        room.counterpart_id = counterpart_id
        room.updated_at = self._now()
        return room.model_copy(deep=True)

    async def fetch_history(self, room_id):
        messages = self._messages.get(room_id, [])
        ordered = sorted(messages, key=lambda m: m.timestamp)
        return [m.model_copy(deep=True) for m in ordered]

    async def append_message(self, room_id, sender_type, sender_id, content):
        content = validate_content(content)
        sender_id = validate_id(sender_id, "sender_id")
        sender_type = normalize_role(sender_type)
        if room_id not in self._rooms:
            raise StoreError(f"Chat room not found: {room_id}", status=404)

        messages = self._messages[room_id]
        timestamp = self._now()
        message = Message(
            id=new_id(),
            chat_room_id=room_id,
            sender_type=sender_type,
            sender_id=sender_id,
            content=content,
            timestamp=timestamp,
        )
        messages.append(message)
        self._rooms[room_id].updated_at = timestamp
        logger.debug(f"Stored message {message.id} in room {room_id}")
        return message.model_copy(deep=True)

    async def mark_read(self, room_id, viewer_id, skip_sender_type=None):
        viewer_id = validate_id(viewer_id, "viewer_id")
        for message in self._messages.get(room_id, []):
            if skip_sender_type and message.sender_type == skip_sender_type:
                continue
            if viewer_id not in message.read_by:
                message.read_by.append(viewer_id)


class Http(Store):
    """Talks to the portal's REST chat API with aiohttp.

    Parameters
    ----------
    base_url : str
        API root, e.g. ``http://localhost:5000/api``.
    token : str, optional
        Bearer token of the current session.
    history_limit : int, optional
        Keep only the newest N messages of a fetched history.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        history_limit: Optional[int] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.history_limit = history_limit
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._session = aiohttp.ClientSession(headers=headers)
            self._owns_session = True
        return self._session

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"Request: {method} {url}")
        try:
            async with self._get_session().request(method, url, json=json) as response:
                if response.status >= 400:
                    text = await response.text()
                    logger.error(
                        f"HTTP error {response.status}: {method} {url} - {text[:200]}"
                    )
                    raise StoreError(
                        f"{method} {path} failed with {response.status}",
                        status=response.status,
                    )
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    logger.error(f"Invalid JSON from {method} {url}: {e}")
                    raise StoreError(
                        f"{method} {path} returned a non-JSON body",
                        status=response.status,
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"API request failed: {method} {url} - {e!r}")
            raise StoreError(f"{method} {path} failed: {e!r}") from e

    def _decode(self, model, data, path: str):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Unexpected {model.__name__} record from {path}: {e}")
            raise StoreError(f"{path} returned an invalid {model.__name__}") from e

    def _decode_list(self, model, data, path: str) -> list:
        if data is None:
            return []
        if not isinstance(data, list):
            raise StoreError(f"{path} returned {type(data).__name__}, expected a list")
        return [self._decode(model, item, path) for item in data]

    async def find_or_create_room(self, customer_id, order_id=None, counterpart_id=None):
        customer_id = validate_id(customer_id, "customer_id")
        payload = {"customerId": customer_id, "orderId": order_id}
        if counterpart_id:
            payload["supplierId"] = counterpart_id
        data = await self._request("POST", "/chats/room", json=payload)
        return self._decode(ChatRoom, data, "/chats/room")

    async def get_room(self, room_id):
        try:
            data = await self._request("GET", f"/chats/{room_id}")
        except StoreError as e:
            if e.status == 404:
                return None
            raise
        return self._decode(ChatRoom, data, f"/chats/{room_id}")

    async def list_rooms(self, viewer):
        if viewer.role == CUSTOMER_ROLE:
            path = f"/chats/user/{viewer.id}"
        else:
            path = "/chats"
        data = await self._request("GET", path)
        return self._decode_list(ChatRoom, data, path)

    async def assign_counterpart(self, room_id, counterpart_id):
        path = f"/chats/{room_id}/assign"
        data = await self._request("PATCH", path, json={"supplierId": counterpart_id})
        return self._decode(ChatRoom, data, path)

    async def fetch_history(self, room_id):
        path = f"/chats/{room_id}/messages"
        try:
            data = await self._request("GET", path)
        except StoreError as e:
            # Missing and inaccessible rooms both read as empty
            if e.status in (403, 404):
                return []
            raise
        messages = self._decode_list(Message, data, path)
        messages.sort(key=lambda m: m.timestamp)
        if self.history_limit:
            messages = messages[-self.history_limit :]
        return messages

    async def append_message(self, room_id, sender_type, sender_id, content):
        payload = {
            "senderType": normalize_role(sender_type),
            "senderId": validate_id(sender_id, "sender_id"),
            "content": validate_content(content),
        }
        path = f"/chats/{room_id}/message"
        data = await self._request("POST", path, json=payload)
        return self._decode(Message, data, path)

    async def mark_read(self, room_id, viewer_id, skip_sender_type=None):
        payload = {"userId": validate_id(viewer_id, "viewer_id")}
        if skip_sender_type:
            payload["excludeSenderType"] = skip_sender_type
        await self._request("PATCH", f"/chats/{room_id}/messages/read", json=payload)

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


async def load_history(store: Store, room_id: str) -> List[Message]:
    """Fetches a room's history, raising `HistoryUnavailable` on any store fault."""
    try:
        return await store.fetch_history(room_id)
    except ChatError as e:
        raise HistoryUnavailable(f"History unavailable for room {room_id}: {e}") from e
