import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

Message = dict[str, Any]


class Subscription:
    """Ordered, bounded mailbox for one subscriber of the event feed."""

    def __init__(self, fanout: "EventFanout", maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        self._fanout = fanout
        self._queue: asyncio.Queue[Message | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def deliver(self, message: Message) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._fanout._discard(self)
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Message:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        message = await self._queue.get()
        if message is None:
            raise StopAsyncIteration
        return message


class EventFanout:
    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscriptions: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, initial: Message) -> Subscription:
        subscription = Subscription(self, maxsize=self._queue_size)
        subscription.deliver(initial)
        self._subscriptions.append(subscription)
        logger.debug("Subscriber added (%d total)", len(self._subscriptions))
        return subscription

    def publish(self, message: Message) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.deliver(message):
                logger.warning("Subscriber queue full, dropping subscriber")
                subscription.close()

    def close_all(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()

    def _discard(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug("Subscriber removed (%d left)", len(self._subscriptions))
