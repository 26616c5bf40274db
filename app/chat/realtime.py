"""
Realtime channel for new messages.

`MessageHub` is the local fan-out: websocket handlers subscribe per thread
and every message published for that thread reaches them. Messages get
published from two places: the store's own insert path, and
`SupabaseRealtimeBridge`, which listens to INSERTs on the `messages` table
through Supabase Realtime so that rows written by other workers (or
directly in the database) arrive too.

Delivery is best-effort: a failing subscriber is logged and skipped, and
the same message can arrive from both paths. Consumers dedupe by
`message_id` against messages they already hold.
"""

import asyncio
import itertools
import logging
import threading
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, Optional

from app.core.config import REALTIME_ENABLED, REALTIME_TIMEOUT_SECONDS
from app.core.errors import StoreUnavailableError
from app.core.records import parse_record
from app.core.supabase_client import connect_realtime

from .schemas import Message

logger = logging.getLogger(__name__)

OnInsert = Callable[[Message], None]
Unsubscribe = Callable[[], None]


class MessageHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[str, Dict[int, OnInsert]] = defaultdict(dict)
        self._tokens = itertools.count()

    def subscribe(self, thread_id: str, on_insert: OnInsert) -> Unsubscribe:
        with self._lock:
            token = next(self._tokens)
            self._subscribers[thread_id][token] = on_insert

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(thread_id)
                if callbacks is None:
                    return
                callbacks.pop(token, None)
                if not callbacks:
                    del self._subscribers[thread_id]

        return unsubscribe

    def publish(self, message: Message) -> int:
        """Deliver to every subscriber of the message's thread. Returns the delivery count."""
        with self._lock:
            callbacks = list(self._subscribers.get(message.thread_id, {}).values())

        delivered = 0
        for callback in callbacks:
            try:
                callback(message)
                delivered += 1
            except Exception:
                logger.exception(
                    f"realtime_delivery_failed thread_id={message.thread_id} message_id={message.message_id}"
                )
        return delivered

    def subscriber_count(self, thread_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(thread_id, {}))


def record_from_payload(payload: Dict[str, Any]) -> Optional[dict]:
    """The inserted row of a postgres_changes payload, across payload versions."""
    data = payload.get("data") or payload
    return data.get("record") or data.get("new") or None


class SupabaseRealtimeBridge:
    """
    Feeds `messages` INSERTs from Supabase Realtime into a `MessageHub`.

    The async realtime client runs on a private event loop in a daemon
    thread, so `watch` / `unwatch` can be called from sync code (the
    store contract is synchronous). One channel is open per watched
    thread and closed when its last watcher leaves.
    """

    def __init__(
        self,
        hub: MessageHub,
        connect: Callable[[], Awaitable[Any]],
        timeout: float = 10.0,
    ):
        self.hub = hub
        self.timeout = timeout
        self._connect = connect
        self._client = None
        self._lock = threading.Lock()
        self._channels: Dict[str, Any] = {}
        self._watchers: Dict[str, int] = defaultdict(int)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

    def _run(self, coro):
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(
                target=self._loop.run_forever, name="supabase-realtime", daemon=True
            )
            self._thread.start()
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(self.timeout)

    async def _open(self, thread_id: str):
        if self._client is None:
            self._client = await self._connect()

        channel = self._client.channel(f"messages:{thread_id}")
        channel.on_postgres_changes(
            "INSERT",
            schema="public",
            table="messages",
            filter=f"thread_id=eq.{thread_id}",
            callback=self._on_insert,
        )
        await channel.subscribe()
        return channel

    async def _close(self, channel) -> None:
        await self._client.remove_channel(channel)

    def _on_insert(self, payload: Dict[str, Any], *_) -> None:
        record = record_from_payload(payload)
        if record is None:
            logger.warning(f"realtime_payload_without_record keys={','.join(payload)}")
            return
        try:
            message = parse_record(Message, record, "realtime_insert")
        except StoreUnavailableError:
            return
        self.hub.publish(message)

    def watch(self, thread_id: str) -> None:
        with self._lock:
            if self._watchers[thread_id] == 0:
                try:
                    self._channels[thread_id] = self._run(self._open(thread_id))
                except Exception as error:
                    del self._watchers[thread_id]
                    logger.error(
                        f"realtime_subscribe_failed thread_id={thread_id} error={error!r}"
                    )
                    raise StoreUnavailableError(
                        "The realtime channel is unavailable.", thread_id=thread_id
                    ) from error
                logger.info(f"realtime_channel_opened thread_id={thread_id}")
            self._watchers[thread_id] += 1

    def unwatch(self, thread_id: str) -> None:
        with self._lock:
            if self._watchers.get(thread_id, 0) == 0:
                return
            self._watchers[thread_id] -= 1
            if self._watchers[thread_id] > 0:
                return

            del self._watchers[thread_id]
            channel = self._channels.pop(thread_id)
            try:
                self._run(self._close(channel))
            except Exception:
                logger.exception(f"realtime_channel_close_failed thread_id={thread_id}")
                return
            logger.info(f"realtime_channel_closed thread_id={thread_id}")

    def watched_threads(self) -> list[str]:
        with self._lock:
            return sorted(self._channels)

    def close(self) -> None:
        with self._lock:
            channels = list(self._channels.items())
            self._channels.clear()
            self._watchers.clear()

        for thread_id, channel in channels:
            try:
                self._run(self._close(channel))
            except Exception:
                logger.exception(f"realtime_channel_close_failed thread_id={thread_id}")

        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(self.timeout)
            self._loop.close()
            self._loop = None
            self._thread = None


message_hub = MessageHub()
_BRIDGE: Optional[SupabaseRealtimeBridge] = None


def get_realtime_bridge() -> Optional[SupabaseRealtimeBridge]:
    """Process-wide bridge feeding `message_hub`, or None when realtime is disabled."""
    global _BRIDGE
    if not REALTIME_ENABLED:
        return None
    if _BRIDGE is None:
        _BRIDGE = SupabaseRealtimeBridge(
            message_hub, connect_realtime, timeout=REALTIME_TIMEOUT_SECONDS
        )
    return _BRIDGE


def close_realtime_bridge() -> None:
    global _BRIDGE
    if _BRIDGE is not None:
        _BRIDGE.close()
        _BRIDGE = None
