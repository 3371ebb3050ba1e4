"""
Change-notification channel for bookmark rows.

Events only say "something changed for this owner"; subscribers reconcile by
refetching, so payloads are informational.
"""
import asyncio
import contextlib
import json
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Protocol

from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from core.redis import RedisClient

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "bookmarks:changes:"

# Resubscribe backoff after a dropped pub/sub connection, in seconds
RECONNECT_INITIAL_DELAY = 0.5
RECONNECT_MAX_DELAY = 30.0


class ChangeType(str, Enum):
    """Kind of row mutation."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """A mutation of one bookmark row."""

    type: ChangeType
    owner_id: str
    record_id: str

    def to_json(self) -> str:
        """Serialize for the wire."""
        data = asdict(self)
        data["type"] = self.type.value
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "ChangeEvent":
        """Parse an event published by to_json."""
        data = json.loads(raw)
        return cls(
            type=ChangeType(data["type"]),
            owner_id=data["owner_id"],
            record_id=data["record_id"],
        )


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


def channel_for(owner_id: str) -> str:
    """Pub/sub channel carrying one owner's events."""
    return f"{CHANNEL_PREFIX}{owner_id}"


class Subscription(Protocol):
    """Handle returned by subscribe(); release it to stop delivery."""

    async def unsubscribe(self) -> None:
        """Stop delivering events to the handler."""


class ChangeFeed(Protocol):
    """Publishes and delivers change events scoped by owner."""

    async def publish(self, event: ChangeEvent) -> None:
        """Deliver the event to every subscriber of its owner."""

    async def subscribe(self, owner_id: str, handler: ChangeHandler) -> Subscription:
        """Register handler for events whose owner_id matches."""

    async def close(self) -> None:
        """Release all subscriptions."""


async def _safe_dispatch(handler: ChangeHandler, event: ChangeEvent) -> None:
    """Keep one handler failure from affecting the others."""
    try:
        await handler(event)
    except Exception:
        logger.exception(
            "change_handler_failed",
            extra={"owner_id": event.owner_id, "event_type": event.type.value},
        )


class _LocalSubscription:
    def __init__(self, feed: "LocalChangeFeed", owner_id: str, handler: ChangeHandler) -> None:
        self._feed = feed
        self._owner_id = owner_id
        self._handler = handler

    async def unsubscribe(self) -> None:
        self._feed._remove(self._owner_id, self._handler)


class LocalChangeFeed:
    """
    In-process change feed.

    Each handler runs in its own task; pending tasks are tracked so callers
    (mostly tests) can wait for delivery with wait_until_idle().
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[ChangeHandler]] = defaultdict(list)
        self._pending_tasks: set[asyncio.Task] = set()

    async def publish(self, event: ChangeEvent) -> None:
        handlers = list(self._subscribers.get(event.owner_id, []))
        if not handlers:
            logger.debug("No subscribers for owner %s", event.owner_id)
            return
        for handler in handlers:
            task = asyncio.create_task(_safe_dispatch(handler, event))
            self._pending_tasks.add(task)
            task.add_done_callback(self._pending_tasks.discard)

    async def subscribe(self, owner_id: str, handler: ChangeHandler) -> Subscription:
        if handler not in self._subscribers[owner_id]:
            self._subscribers[owner_id].append(handler)
        return _LocalSubscription(self, owner_id, handler)

    def _remove(self, owner_id: str, handler: ChangeHandler) -> None:
        handlers = self._subscribers.get(owner_id, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._subscribers.pop(owner_id, None)

    def subscriber_count(self, owner_id: str) -> int:
        """Number of live handlers for an owner."""
        return len(self._subscribers.get(owner_id, []))

    async def wait_until_idle(self) -> None:
        """Wait until every dispatched handler, including ones they spawn, is done."""
        while self._pending_tasks:
            await asyncio.gather(*list(self._pending_tasks), return_exceptions=True)

    async def close(self) -> None:
        self._subscribers.clear()
        await self.wait_until_idle()


class _RedisSubscription:
    """
    One owner's pub/sub listener.

    When the connection drops, the handler is attached to in-process delivery,
    which carries events while publishing to Redis fails, and the channel is
    resubscribed with exponential backoff. The local attachment is released
    once Redis delivery is back.
    """

    def __init__(
        self,
        feed: "RedisChangeFeed",
        owner_id: str,
        handler: ChangeHandler,
        pubsub: PubSub,
    ) -> None:
        self._feed = feed
        self._owner_id = owner_id
        self._handler = handler
        self._pubsub = pubsub
        self._local: Subscription | None = None
        self._feed._subscriptions.add(self)
        self._task = asyncio.create_task(self._run())

    @property
    def degraded(self) -> bool:
        """True while events arrive through in-process delivery."""
        return self._local is not None

    async def _run(self) -> None:
        delay = RECONNECT_INITIAL_DELAY
        while True:
            try:
                await self._listen()
                return
            except RedisError as e:
                logger.warning(
                    "Redis subscription dropped, delivering locally: %s", e,
                    extra={"owner_id": self._owner_id},
                )
            if self._local is None:
                self._local = await self._feed._local.subscribe(self._owner_id, self._handler)
            while True:
                await asyncio.sleep(delay)
                delay = min(delay * 2, RECONNECT_MAX_DELAY)
                try:
                    await self._pubsub.subscribe(channel_for(self._owner_id))
                    break
                except RedisError as e:
                    logger.debug("Redis resubscribe failed: %s", e)
            await self._local.unsubscribe()
            self._local = None
            delay = RECONNECT_INITIAL_DELAY
            logger.info("redis_subscription_restored", extra={"owner_id": self._owner_id})

    async def _listen(self) -> None:
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                event = ChangeEvent.from_json(message["data"])
            except (ValueError, KeyError, TypeError):
                logger.warning("Ignoring malformed change event: %r", message["data"])
                continue
            await _safe_dispatch(self._handler, event)

    async def unsubscribe(self) -> None:
        if self not in self._feed._subscriptions:
            return
        self._feed._subscriptions.discard(self)
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        if self._local is not None:
            await self._local.unsubscribe()
            self._local = None
        try:
            await self._pubsub.unsubscribe()
        except RedisError as e:
            logger.warning("Redis UNSUBSCRIBE failed: %s", e)
        finally:
            await self._pubsub.aclose()


class RedisChangeFeed:
    """
    Change feed over Redis pub/sub, shared by every process serving the app.

    Falls back to in-process delivery while Redis is disabled or unreachable,
    so a single process keeps working in degraded mode.
    """

    def __init__(self, redis_client: RedisClient) -> None:
        self._redis = redis_client
        self._local = LocalChangeFeed()
        self._subscriptions: set[_RedisSubscription] = set()

    async def publish(self, event: ChangeEvent) -> None:
        published = await self._redis.publish(channel_for(event.owner_id), event.to_json())
        if not published:
            await self._local.publish(event)

    async def subscribe(self, owner_id: str, handler: ChangeHandler) -> Subscription:
        pubsub = self._redis.pubsub()
        if pubsub is None:
            return await self._local.subscribe(owner_id, handler)
        try:
            await pubsub.subscribe(channel_for(owner_id))
        except RedisError as e:
            logger.warning("Redis SUBSCRIBE failed, using local delivery: %s", e)
            await pubsub.aclose()
            return await self._local.subscribe(owner_id, handler)
        return _RedisSubscription(self, owner_id, handler, pubsub)

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.unsubscribe()
        await self._local.close()
