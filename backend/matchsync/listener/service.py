"""
backend/matchsync/listener/service.py

Purpose:
    Long-running live-event listener. Subscribes to every configured provider
    topic, normalizes each message and forwards it to the cache invalidation
    gateway webhook. Shuts down cleanly on SIGTERM/SIGINT.

    Per topic: DISCONNECTED -> SUBSCRIBED -> RECEIVING -> SUBSCRIBED, and back
    to DISCONNECTED on shutdown.

Usage:
    cd backend
    python -m matchsync.listener.service
    python -m matchsync.listener.service --topics p-sb-smc-sef-allsvenskan --subscription my-sub

Dependencies:
    - matchsync.listener.transport
    - matchsync.listener.forwarder
    - matchsync.config
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from enum import Enum

from matchsync.config import settings
from matchsync.errors import ConfigurationError
from matchsync.listener.forwarder import WebhookForwarder
from matchsync.listener.messages import resolve_fields
from matchsync.listener.transport import (
    MessageHandlers,
    ReceivedMessage,
    ServiceBusTransport,
    Subscription,
    Transport,
)
from matchsync.middleware.logging import setup_logging

logger = logging.getLogger("matchsync.listener")


class TopicState(str, Enum):
    DISCONNECTED = "disconnected"
    SUBSCRIBED = "subscribed"
    RECEIVING = "receiving"


@dataclass
class ListenerConfig:
    connection_string: str
    topics: list[str]
    subscription: str
    webhook_url: str
    secret: str
    webhook_timeout: float = 10.0
    shutdown_timeout: float = 15.0
    max_wait: float = 5.0


def load_config(topics: list[str] | None = None, subscription: str | None = None) -> ListenerConfig:
    if not settings.SERVICE_BUS_CONNECTION_STRING:
        raise ConfigurationError("SERVICE_BUS_CONNECTION_STRING is required")
    if not settings.LISTENER_WEBHOOK_URL:
        raise ConfigurationError("LISTENER_WEBHOOK_URL is required")
    if not settings.REVALIDATE_SECRET:
        raise ConfigurationError("REVALIDATE_SECRET is required")
    subscription_name = subscription or settings.SERVICE_BUS_SUBSCRIPTION
    if not subscription_name:
        raise ConfigurationError("SERVICE_BUS_SUBSCRIPTION is required")
    topic_list = [t.strip() for t in topics if t.strip()] if topics else settings.topic_list()
    if not topic_list:
        raise ConfigurationError("SERVICE_BUS_TOPICS is empty")
    return ListenerConfig(
        connection_string=settings.SERVICE_BUS_CONNECTION_STRING,
        topics=topic_list,
        subscription=subscription_name,
        webhook_url=settings.LISTENER_WEBHOOK_URL,
        secret=settings.REVALIDATE_SECRET,
        webhook_timeout=settings.LISTENER_WEBHOOK_TIMEOUT_SECONDS,
        shutdown_timeout=settings.LISTENER_SHUTDOWN_TIMEOUT_SECONDS,
        max_wait=settings.LISTENER_MAX_WAIT_SECONDS,
    )


class LiveEventListener:
    def __init__(self, transport: Transport, forwarder: WebhookForwarder, topics: list[str], subscription_name: str):
        self._transport = transport
        self._forwarder = forwarder
        self._subscription_name = subscription_name
        self.states: dict[str, TopicState] = {topic: TopicState.DISCONNECTED for topic in topics}
        self._subscriptions: list[Subscription] = []

    @property
    def handlers(self) -> MessageHandlers:
        return MessageHandlers(
            process_message=self.process_message,
            process_error=self.process_error,
            subscription_lost=self.subscription_lost,
        )

    async def start(self) -> int:
        """Subscribe to every topic. Returns how many subscriptions succeeded."""
        for topic in self.states:
            try:
                subscription = await self._transport.subscribe(topic, self._subscription_name, self.handlers)
            except Exception as exc:
                logger.error("Failed to subscribe to %s: %s", topic, exc)
                continue
            self._subscriptions.append(subscription)
            self.states[topic] = TopicState.SUBSCRIBED
            logger.info("Listening to topic: %s", topic)
        return len(self._subscriptions)

    async def process_message(self, message: ReceivedMessage) -> None:
        """Forward one message. Never raises; the message is settled either way."""
        topic = message.topic
        self.states[topic] = TopicState.RECEIVING
        try:
            logger.info("Received message %s from %s", message.message_id or "-", topic)
            fields = resolve_fields(message.body)
            if fields["match_id"] is None:
                logger.warning("Message from %s has no match id, skipping revalidation", topic)
                return
            await self._forwarder.forward(fields, topic)
        except Exception:
            logger.exception("Unexpected error handling message from %s", topic)
        finally:
            if self.states.get(topic) == TopicState.RECEIVING:
                self.states[topic] = TopicState.SUBSCRIBED

    async def process_error(self, error: BaseException, topic: str) -> None:
        logger.error("Error from %s: %s", topic, error)

    def subscription_lost(self, topic: str, error: BaseException | None) -> None:
        logger.error("Subscription to %s lost, no longer receiving: %s", topic, error)
        self.states[topic] = TopicState.DISCONNECTED

    async def shutdown(self) -> None:
        logger.info("Shutting down listener...")
        for subscription in self._subscriptions:
            try:
                await subscription.close()
            except Exception as exc:
                logger.warning("Closing subscription %s failed: %s", subscription.topic, exc)
            self.states[subscription.topic] = TopicState.DISCONNECTED
        self._subscriptions.clear()
        await self._transport.close()
        await self._forwarder.aclose()
        logger.info("Listener stopped")


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))


async def run(config: ListenerConfig, transport: Transport | None = None, stop: asyncio.Event | None = None) -> int:
    if transport is None:
        transport = ServiceBusTransport(config.connection_string, max_wait=config.max_wait)
    forwarder = WebhookForwarder(config.webhook_url, config.secret, timeout=config.webhook_timeout)
    listener = LiveEventListener(transport, forwarder, config.topics, config.subscription)

    logger.info("Live-event listener starting: topics=%s subscription=%s", ", ".join(config.topics), config.subscription)
    logger.info("Webhook URL: %s", config.webhook_url)

    if await listener.start() == 0:
        logger.error("No topics subscribed successfully, exiting")
        await listener.shutdown()
        return 1

    if stop is None:
        stop = asyncio.Event()
        _install_signal_handlers(stop)
    logger.info("Listener is running...")
    await stop.wait()

    try:
        await asyncio.wait_for(listener.shutdown(), timeout=config.shutdown_timeout)
    except asyncio.TimeoutError:
        logger.error("Shutdown did not finish within %.0fs", config.shutdown_timeout)
        return 1
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Forward live match events to the cache invalidation gateway.")
    parser.add_argument("--topics", default=None, help="Comma separated topic names (default: SERVICE_BUS_TOPICS).")
    parser.add_argument("--subscription", default=None, help="Subscription name (default: SERVICE_BUS_SUBSCRIPTION).")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = parse_args(argv)
    try:
        config = load_config(args.topics.split(",") if args.topics else None, args.subscription)
    except ConfigurationError as exc:
        logger.error("ERROR: %s", exc)
        return 1
    try:
        return asyncio.run(run(config))
    except Exception:
        logger.exception("Fatal listener error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
