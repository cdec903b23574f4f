"""Room-scoped live chat for orders.

A room is the set of connections subscribed to one order id. The registry is
owned by the application (created in the lifespan, closed on shutdown).
Membership changes are synchronous under the registry lock, so that lock is
never held across a socket write. Each room has its own lock that serializes
fan-out, and every send is bounded by `chat_send_timeout_seconds`; a stalled
socket is dropped from its room and cannot hold up any other room. Publishing
persists the message through the order store first and only then fans it out,
so subscribers never see a message that was not stored.
"""

import asyncio
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from marketplace.common.config import settings
from marketplace.common.errors import ValidationError
from marketplace.common.logging import log_context, logger
from marketplace.common.metrics import (
    chat_messages_published_total,
    chat_publish_failures_total,
    chat_subscribers_total,
)
from marketplace.services.orders.schemas import ChatMessageIn, ChatMessageOut


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


class Room:
    """Subscribers of one order id; `lock` serializes broadcasts."""

    def __init__(self, order_id: str, send_timeout: float) -> None:
        self.order_id = order_id
        self.send_timeout = send_timeout
        self.subscribers: set[Connection] = set()
        self.lock = asyncio.Lock()

    def add(self, conn: Connection) -> None:
        self.subscribers.add(conn)

    def remove(self, conn: Connection) -> bool:
        """Drop `conn`; returns True when the room is left empty."""

        self.subscribers.discard(conn)
        return not self.subscribers

    async def broadcast(self, payload: dict) -> int:
        """Send `payload` to every subscriber in turn and return how many received it.

        The lock is held for the whole fan-out so two broadcasts to the same
        room reach each subscriber in the order they were started.
        """

        delivered = 0
        async with self.lock:
            dead = []
            for conn in list(self.subscribers):
                try:
                    await asyncio.wait_for(conn.send_json(payload), self.send_timeout)
                    delivered += 1
                except asyncio.TimeoutError:
                    logger.warning("chat_delivery_timeout order_id=%s timeout=%s", self.order_id, self.send_timeout)
                    dead.append(conn)
                except Exception as exc:
                    logger.warning("chat_delivery_failed order_id=%s error=%s", self.order_id, exc)
                    dead.append(conn)
            for conn in dead:
                self.subscribers.discard(conn)
        return delivered


class RoomRegistry:
    """Rooms indexed by order id plus the rooms each connection joined."""

    def __init__(self, send_timeout: float | None = None) -> None:
        self.send_timeout = settings.chat_send_timeout_seconds if send_timeout is None else send_timeout
        self._rooms: dict[str, Room] = {}
        self._memberships: dict[Connection, set[str]] = {}
        self._lock = asyncio.Lock()

    async def join(self, order_id: str, conn: Connection) -> Room:
        async with self._lock:
            room = self._rooms.get(order_id)
            if room is None:
                room = self._rooms[order_id] = Room(order_id, self.send_timeout)
            room.add(conn)
            self._memberships.setdefault(conn, set()).add(order_id)
            return room

    async def room(self, order_id: str) -> Room | None:
        async with self._lock:
            return self._rooms.get(order_id)

    async def leave_all(self, conn: Connection) -> list[str]:
        """Remove `conn` from every room it joined; empty rooms are discarded."""

        async with self._lock:
            order_ids = sorted(self._memberships.pop(conn, set()))
            for order_id in order_ids:
                room = self._rooms.get(order_id)
                if room is not None and room.remove(conn):
                    del self._rooms[order_id]
            return order_ids

    def subscriber_count(self, order_id: str) -> int:
        room = self._rooms.get(order_id)
        return len(room.subscribers) if room else 0

    def __len__(self) -> int:
        return len(self._rooms)

    async def close(self) -> None:
        async with self._lock:
            self._rooms.clear()
            self._memberships.clear()


class ChatChannel:
    """Subscribe/publish over a `RoomRegistry`, persisting through the order store."""

    def __init__(self, store, registry: RoomRegistry) -> None:
        self.store = store
        self.registry = registry

    async def subscribe(self, order_id: str, conn: Connection) -> None:
        await self.registry.join(order_id, conn)
        chat_subscribers_total.labels(service=settings.service_name).inc()
        logger.info("chat_subscribed order_id=%s", order_id)

    async def publish(self, order_id: str, message: ChatMessageIn | dict) -> ChatMessageOut:
        """Persist one message, then deliver it to every subscriber of `order_id`.

        Raises `ValidationError` for a malformed message and lets store errors
        propagate; in both cases nothing is broadcast.
        """

        with log_context(order_id=order_id):
            if not isinstance(message, ChatMessageIn):
                try:
                    message = ChatMessageIn.model_validate(message or {})
                except PydanticValidationError as exc:
                    chat_publish_failures_total.labels(service=settings.service_name, reason="invalid").inc()
                    raise ValidationError.from_pydantic(exc, "invalid chat message") from exc

            try:
                await run_in_threadpool(self.store.append_message, order_id, message)
            except Exception as exc:
                chat_publish_failures_total.labels(service=settings.service_name, reason="persist").inc()
                logger.error("chat_persist_failed order_id=%s error=%s", order_id, exc)
                raise

            out = ChatMessageOut.model_validate(message.model_dump())
            chat_messages_published_total.labels(service=settings.service_name).inc()
            room = await self.registry.room(order_id)
            if room is not None:
                delivered = await room.broadcast(
                    {
                        "event": "orderMessage",
                        "orderId": order_id,
                        "message": out.model_dump(mode="json", by_alias=True),
                    }
                )
                logger.info("chat_published order_id=%s delivered=%s", order_id, delivered)
            return out

    async def disconnect(self, conn: Connection) -> None:
        order_ids = await self.registry.leave_all(conn)
        logger.info("chat_disconnected rooms=%s", order_ids)
