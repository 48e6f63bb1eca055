"""Concrete implementations for the live publish/subscribe transport."""

import inspect
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Set

import socketio
from pydantic import BaseModel, Field, ValidationError
from socketio.exceptions import SocketIOError

from .errors import ChatError, DeliveryUncertain, TransportError
from .models import Identity, Message, new_id, normalize_role
from .store import Store, validate_content

logger = logging.getLogger(__name__)

JOIN_ROOM = "joinRoom"
SEND_MESSAGE = "sendMessage"
NEW_MESSAGE = "newMessage"
ERROR = "error"
DISCONNECT = "disconnect"

Handler = Callable[[Any], Any]


async def _call(handler: Handler, data: Any) -> None:
    result = handler(data)
    if inspect.isawaitable(result):
        await result


class Transport(ABC):
    """Interface for a connection to the live messaging server."""

    @abstractmethod
    async def connect(self, token: Optional[str] = None) -> None:
        """Opens the connection, authenticating with the session credential."""
        pass

    @abstractmethod
    async def emit(self, event: str, data: Dict[str, Any]) -> None:
        """Sends an event without waiting for acknowledgment."""
        pass

    @abstractmethod
    def on(self, event: str, handler: Handler) -> None:
        """Registers a handler for an incoming event."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Closes the connection and releases its subscriptions."""
        pass

    @property
    @abstractmethod
    def connected(self) -> bool:
        pass


class SocketIO(Transport):
    """Socket.IO client transport (python-socketio `AsyncClient`)."""

    def __init__(self, url: str, client: Optional[socketio.AsyncClient] = None):
        self.url = url
        self._client = client or socketio.AsyncClient(reconnection=False)
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, event, handler):
        if event not in self._handlers:
            self._client.on(event, self._dispatcher(event))
        self._handlers[event].append(handler)

    def _dispatcher(self, event: str):
        async def dispatch(*args):
            data = args[0] if args else None
            for handler in list(self._handlers[event]):
                await _call(handler, data)

        return dispatch

    async def connect(self, token=None):
        try:
            await self._client.connect(
                self.url,
                auth={"token": token} if token else None,
                transports=["websocket"],
            )
        except SocketIOError as e:
            raise TransportError(f"Could not connect to {self.url}: {e}") from e
        logger.info(f"Connected to live transport at {self.url}")

    async def emit(self, event, data):
        if not self._client.connected:
            raise TransportError(f"Cannot emit {event}: not connected")
        try:
            await self._client.emit(event, data)
        except SocketIOError as e:
            raise TransportError(f"Failed to emit {event}: {e}") from e

    async def disconnect(self):
        if self._client.connected:
            await self._client.disconnect()

    @property
    def connected(self):
        return self._client.connected


class Hub:
    """An in-process stand-in for the messaging server.

    Persists `sendMessage` events to a store and broadcasts the stored
    message as `newMessage` to every transport joined to the room.
    """

    def __init__(self, store: Store, tokens: Optional[Set[str]] = None):
        self.store = store
        self.tokens = tokens
        self._members: Dict[str, List["InMemory"]] = defaultdict(list)

    def transport(self) -> "InMemory":
        return InMemory(self)

    def members(self, room_id: str) -> List["InMemory"]:
        return list(self._members.get(room_id, []))

    def _authenticate(self, token: Optional[str]) -> None:
        if self.tokens is not None and token not in self.tokens:
            raise TransportError("Authentication rejected")

    def _leave_all(self, transport: "InMemory") -> None:
        for members in self._members.values():
            if transport in members:
                members.remove(transport)

    async def _handle(self, transport: "InMemory", event: str, data: Dict[str, Any]):
        if event == JOIN_ROOM:
            room_id = data["chatRoomId"]
            if transport not in self._members[room_id]:
                self._members[room_id].append(transport)
            logger.debug(f"Transport joined room {room_id}")
        elif event == SEND_MESSAGE:
            try:
                message = await self.store.append_message(
                    data["chatRoomId"],
                    data["senderType"],
                    data["senderId"],
                    data["content"],
                )
            except ChatError as e:
                logger.error(f"Error saving message: {e}")
                await transport._deliver(ERROR, {"message": "Failed to send message."})
                return
            payload = message.model_dump(by_alias=True, mode="json")
            for member in self.members(message.chat_room_id):
                await member._deliver(NEW_MESSAGE, payload)


class InMemory(Transport):
    """A transport attached to a `Hub` in the same process."""

    def __init__(self, hub: Hub):
        self.hub = hub
        self._connected = False
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, event, handler):
        self._handlers[event].append(handler)

    async def connect(self, token=None):
        self.hub._authenticate(token)
        self._connected = True

    async def emit(self, event, data):
        if not self._connected:
            raise TransportError(f"Cannot emit {event}: not connected")
        await self.hub._handle(self, event, data)

    async def disconnect(self):
        self._connected = False
        self.hub._leave_all(self)

    async def drop(self) -> None:
        """Simulates the server dropping the connection."""
        await self.disconnect()
        await self._deliver(DISCONNECT, None)

    async def _deliver(self, event: str, data: Any) -> None:
        for handler in list(self._handlers[event]):
            await _call(handler, data)

    @property
    def connected(self):
        return self._connected


class ChannelState(str, Enum):
    IDLE = "idle"
    JOINED = "joined"
    UNCERTAIN = "uncertain"
    CLOSED = "closed"


class PendingSend(BaseModel):
    """A send emitted by this client, awaiting its stored copy."""

    token: str = Field(default_factory=new_id)
    room_id: str
    sender_type: str
    sender_id: str
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: Literal["pending", "confirmed", "unsent"] = "pending"
    message: Optional[Message] = None

    def payload(self) -> Dict[str, Any]:
        return {
            "chatRoomId": self.room_id,
            "senderType": self.sender_type,
            "senderId": self.sender_id,
            "content": self.content,
        }


class LiveChannel:
    """One room's live subscription, scoped to a conversation view.

    Use as ``async with LiveChannel(transport, room_id) as channel:``; the
    transport is disconnected on every exit path.
    """

    def __init__(self, transport: Transport, room_id: str, token: Optional[str] = None):
        self.transport = transport
        self.room_id = room_id
        self.token = token
        self.state = ChannelState.IDLE
        self.pending: List[PendingSend] = []
        self.unsent: List[PendingSend] = []
        self._seen_ids: Set[str] = set()
        self._subscribers: List[Handler] = []
        self._handlers_registered = False

    @property
    def delivery_uncertain(self) -> bool:
        return self.state == ChannelState.UNCERTAIN

    def subscribe(self, callback: Handler) -> None:
        """Registers a callback receiving each new, de-duplicated `Message`."""
        self._subscribers.append(callback)

    def prime(self, messages: List[Message]) -> None:
        """Marks already-rendered messages as seen so live repeats are discarded."""
        self._seen_ids.update(m.id for m in messages)

    def _register_handlers(self) -> None:
        if self._handlers_registered:
            return
        self.transport.on(NEW_MESSAGE, self._on_new_message)
        self.transport.on(ERROR, self._on_error)
        self.transport.on(DISCONNECT, self._on_disconnect)
        self._handlers_registered = True

    async def open(self) -> None:
        if self.state == ChannelState.CLOSED:
            raise DeliveryUncertain("Channel is closed")
        self._register_handlers()
        try:
            if not self.transport.connected:
                await self.transport.connect(self.token)
            await self.transport.emit(JOIN_ROOM, {"chatRoomId": self.room_id})
        except TransportError as e:
            self.state = ChannelState.UNCERTAIN
            logger.warning(f"Could not join room {self.room_id}: {e}")
            raise DeliveryUncertain(str(e)) from e
        self.state = ChannelState.JOINED
        logger.info(f"Joined room {self.room_id}")

    async def reconnect(self) -> None:
        """Re-establishes the connection and re-joins the room."""
        if self.transport.connected:
            await self.transport.disconnect()
        await self.open()

    async def close(self) -> None:
        if self.state == ChannelState.CLOSED:
            return
        self.state = ChannelState.CLOSED
        self._subscribers.clear()
        try:
            await self.transport.disconnect()
        except TransportError as e:
            logger.warning(f"Error while leaving room {self.room_id}: {e}")
        logger.debug(f"Left room {self.room_id}")

    async def __aenter__(self):
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def send(self, sender: Identity, content: str) -> PendingSend:
        """Emits a message and returns its pending record without awaiting the stored copy."""
        pending = PendingSend(
            room_id=self.room_id,
            sender_type=normalize_role(sender.role),
            sender_id=sender.id,
            content=validate_content(content),
        )
        if self.state != ChannelState.JOINED:
            pending.status = "unsent"
            self.unsent.append(pending)
            raise DeliveryUncertain(f"Not joined to room {self.room_id}")

        self.pending.append(pending)
        try:
            await self.transport.emit(SEND_MESSAGE, pending.payload())
        except TransportError as e:
            self._mark_uncertain(str(e))
            raise DeliveryUncertain(str(e)) from e
        return pending

    async def flush_unsent(self) -> int:
        """Re-emits sends made while the channel was uncertain. Returns how many were sent."""
        if self.state != ChannelState.JOINED:
            raise DeliveryUncertain(f"Not joined to room {self.room_id}")
        flushed = 0
        while self.unsent:
            pending = self.unsent.pop(0)
            pending.status = "pending"
            self.pending.append(pending)
            try:
                await self.transport.emit(SEND_MESSAGE, pending.payload())
            except TransportError as e:
                self._mark_uncertain(str(e))
                raise DeliveryUncertain(str(e)) from e
            flushed += 1
        return flushed

    def _mark_uncertain(self, reason: str) -> None:
        if self.state == ChannelState.CLOSED:
            return
        self.state = ChannelState.UNCERTAIN
        for pending in self.pending:
            pending.status = "unsent"
        self.unsent.extend(self.pending)
        self.pending = []
        logger.warning(f"Delivery uncertain in room {self.room_id}: {reason}")

    def _confirm(self, message: Message) -> None:
        for queue in (self.pending, self.unsent):
            for pending in queue:
                if (
                    pending.sender_id == message.sender_id
                    and pending.content == message.content
                ):
                    pending.status = "confirmed"
                    pending.message = message
                    queue.remove(pending)
                    return

    async def _on_new_message(self, data: Any) -> None:
        if self.state == ChannelState.CLOSED:
            return
        try:
            message = Message.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding malformed message in room {self.room_id}: {e}")
            return
        if message.chat_room_id != self.room_id or message.id in self._seen_ids:
            return
        self._seen_ids.add(message.id)
        self._confirm(message)
        for callback in list(self._subscribers):
            await _call(callback, message)

    async def _on_error(self, data: Any) -> None:
        if isinstance(data, dict):
            reason = data.get("message", "unknown error")
        else:
            reason = data or "unknown error"
        logger.warning(f"Server rejected a send in room {self.room_id}: {reason}")
        if self.pending:
            failed = self.pending.pop(0)
            failed.status = "unsent"
            self.unsent.append(failed)

    async def _on_disconnect(self, _data: Any = None) -> None:
        if self.state == ChannelState.JOINED:
            self._mark_uncertain("connection dropped")
