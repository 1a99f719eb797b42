"""
backend/matchsync/listener/transport.py

Purpose:
    Pub/sub transport seam for the live-event listener, plus the Azure
    Service Bus implementation used in production. One receive loop per topic
    subscription; each message is handled and settled before the next one is
    received.

Dependencies:
    - azure-servicebus (aio)
    - matchsync.listener.messages
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from azure.servicebus.aio import ServiceBusClient, ServiceBusReceiver

from matchsync.listener.messages import decode_body

logger = logging.getLogger("matchsync.listener.transport")

_ERROR_BACKOFF_SECONDS = 5.0


@dataclass
class ReceivedMessage:
    topic: str
    body: dict[str, Any] = field(default_factory=dict)
    message_id: str | None = None


@dataclass
class MessageHandlers:
    process_message: Callable[[ReceivedMessage], Awaitable[None]]
    process_error: Callable[[BaseException, str], Awaitable[None]]
    # Called when a receive loop ends without close() being asked for.
    subscription_lost: Callable[[str, BaseException | None], None] | None = None


class Subscription(Protocol):
    topic: str

    async def close(self) -> None: ...


class Transport(Protocol):
    async def subscribe(self, topic: str, subscription_name: str, handlers: MessageHandlers) -> Subscription: ...

    async def close(self) -> None: ...


class ServiceBusSubscription:
    def __init__(
        self,
        topic: str,
        receiver: ServiceBusReceiver,
        handlers: MessageHandlers,
        *,
        max_wait: float,
        error_backoff: float = _ERROR_BACKOFF_SECONDS,
    ):
        self.topic = topic
        self._receiver = receiver
        self._handlers = handlers
        self._max_wait = max_wait
        self._error_backoff = error_backoff
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"listener:{self.topic}")
        self._task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        error = None if task.cancelled() else task.exception()
        if self._stopping.is_set() and error is None:
            return
        if error is not None:
            logger.error("Receive loop for %s stopped: %r", self.topic, error)
        else:
            logger.error("Receive loop for %s stopped unexpectedly", self.topic)
        if self._handlers.subscription_lost is not None:
            self._handlers.subscription_lost(self.topic, error)

    async def _report(self, error: BaseException) -> None:
        try:
            await self._handlers.process_error(error, self.topic)
        except Exception:
            logger.exception("Error handler for %s failed", self.topic)

    async def _settle(self, message: Any) -> None:
        received = ReceivedMessage(
            topic=self.topic,
            body=decode_body(message.body),
            message_id=getattr(message, "message_id", None),
        )
        try:
            await self._handlers.process_message(received)
        except Exception as exc:
            await self._report(exc)
            await self._receiver.abandon_message(message)
            return
        await self._receiver.complete_message(message)

    async def _backoff(self) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self._error_backoff)
        except asyncio.TimeoutError:
            pass

    async def _run(self) -> None:
        async with self._receiver:
            while not self._stopping.is_set():
                try:
                    batch = await self._receiver.receive_messages(max_message_count=1, max_wait_time=self._max_wait)
                    for message in batch:
                        await self._settle(message)
                except Exception as exc:
                    await self._report(exc)
                    await self._backoff()

    async def close(self) -> None:
        """Stop receiving; the message in hand is finished and settled first."""
        self._stopping.set()
        if self._task is not None:
            await asyncio.wait([self._task])
            self._task = None


class ServiceBusTransport:
    def __init__(self, connection_string: str, *, max_wait: float = 5.0):
        self._client = ServiceBusClient.from_connection_string(connection_string)
        self._max_wait = max_wait

    async def subscribe(self, topic: str, subscription_name: str, handlers: MessageHandlers) -> ServiceBusSubscription:
        receiver = self._client.get_subscription_receiver(
            topic_name=topic,
            subscription_name=subscription_name,
        )
        subscription = ServiceBusSubscription(topic, receiver, handlers, max_wait=self._max_wait)
        subscription.start()
        return subscription

    async def close(self) -> None:
        await self._client.close()
