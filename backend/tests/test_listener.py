"""
backend/tests/test_listener.py

Purpose:
    Live-event listener: alias resolution at the ingestion boundary, webhook
    forwarding, per-topic state, startup validation, shutdown, and the Service
    Bus receive loop (settling order, abandon on crash, error recovery).
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from matchsync.config import settings
from matchsync.errors import ConfigurationError
from matchsync.listener.forwarder import WebhookForwarder
from matchsync.listener.messages import decode_body, resolve_fields
from matchsync.listener.service import (
    ListenerConfig,
    LiveEventListener,
    TopicState,
    load_config,
    run,
)
from matchsync.listener.transport import MessageHandlers, ReceivedMessage, ServiceBusSubscription


def test_aliases_resolve_in_order():
    assert resolve_fields({"matchId": 1, "id": 2, "leagueId": "L", "eventType": "GOAL"}) == {
        "match_id": 1,
        "league_id": "L",
        "event_type": "GOAL",
    }
    assert resolve_fields({"id": 9, "league": 3, "type": "RED_CARD"}) == {
        "match_id": 9,
        "league_id": 3,
        "event_type": "RED_CARD",
    }
    assert resolve_fields({"match_id": "m", "matchId": ""}) == {
        "match_id": "m",
        "league_id": None,
        "event_type": "MATCH_UPDATE",
    }


def test_decode_body_variants():
    assert decode_body({"a": 1}) == {"a": 1}
    assert decode_body(b'{"a": 1}') == {"a": 1}
    assert decode_body(iter([b'{"a"', b": 1}"])) == {"a": 1}
    assert decode_body("not json") == {}
    assert decode_body("[1, 2]") == {}


class _Forwarder:
    def __init__(self, fail: bool = False):
        self.forwarded: list[tuple[dict, str]] = []
        self.fail = fail
        self.closed = False

    async def forward(self, fields, topic):
        if self.fail:
            raise RuntimeError("unexpected")
        self.forwarded.append((fields, topic))
        return True

    async def aclose(self):
        self.closed = True


class _Subscription:
    def __init__(self, topic):
        self.topic = topic
        self.closed = False

    async def close(self):
        self.closed = True


class _Transport:
    def __init__(self, broken: set[str] | None = None):
        self.broken = broken or set()
        self.subscriptions: list[_Subscription] = []
        self.handlers = {}
        self.closed = False

    async def subscribe(self, topic, subscription_name, handlers):
        if topic in self.broken:
            raise RuntimeError(f"no such topic {topic}")
        sub = _Subscription(topic)
        self.subscriptions.append(sub)
        self.handlers[topic] = handlers
        return sub

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_messages_are_forwarded_and_state_returns_to_subscribed():
    transport = _Transport()
    forwarder = _Forwarder()
    listener = LiveEventListener(transport, forwarder, ["allsvenskan", "superettan"], "sub")

    assert await listener.start() == 2
    assert listener.states == {"allsvenskan": TopicState.SUBSCRIBED, "superettan": TopicState.SUBSCRIBED}

    await transport.handlers["allsvenskan"].process_message(
        ReceivedMessage(topic="allsvenskan", body={"matchId": 42, "leagueId": 7, "eventType": "GOAL"})
    )

    assert forwarder.forwarded == [({"match_id": 42, "league_id": 7, "event_type": "GOAL"}, "allsvenskan")]
    assert listener.states["allsvenskan"] == TopicState.SUBSCRIBED


@pytest.mark.asyncio
async def test_message_without_match_id_is_dropped():
    forwarder = _Forwarder()
    listener = LiveEventListener(_Transport(), forwarder, ["t"], "sub")
    await listener.start()

    await listener.process_message(ReceivedMessage(topic="t", body={"leagueId": 7}))

    assert forwarder.forwarded == []


@pytest.mark.asyncio
async def test_handler_never_raises():
    listener = LiveEventListener(_Transport(), _Forwarder(fail=True), ["t"], "sub")
    await listener.start()

    await listener.process_message(ReceivedMessage(topic="t", body={"matchId": 1}))
    await listener.process_error(RuntimeError("link detached"), "t")

    assert listener.states["t"] == TopicState.SUBSCRIBED


@pytest.mark.asyncio
async def test_one_broken_topic_does_not_block_the_rest():
    transport = _Transport(broken={"bad"})
    listener = LiveEventListener(transport, _Forwarder(), ["bad", "good"], "sub")

    assert await listener.start() == 1
    assert listener.states == {"bad": TopicState.DISCONNECTED, "good": TopicState.SUBSCRIBED}


@pytest.mark.asyncio
async def test_shutdown_closes_subscriptions_then_client():
    transport = _Transport()
    forwarder = _Forwarder()
    listener = LiveEventListener(transport, forwarder, ["a", "b"], "sub")
    await listener.start()

    await listener.shutdown()

    assert all(sub.closed for sub in transport.subscriptions)
    assert transport.closed and forwarder.closed
    assert set(listener.states.values()) == {TopicState.DISCONNECTED}


def _config(**overrides) -> ListenerConfig:
    values = dict(
        connection_string="Endpoint=sb://example/",
        topics=["a"],
        subscription="sub",
        webhook_url="https://gateway.example/api/revalidate-match",
        secret="s",
        shutdown_timeout=1.0,
    )
    values.update(overrides)
    return ListenerConfig(**values)


@pytest.mark.asyncio
async def test_run_exits_with_error_when_nothing_subscribes():
    code = await run(_config(topics=["a"]), transport=_Transport(broken={"a"}), stop=asyncio.Event())
    assert code == 1


@pytest.mark.asyncio
async def test_run_stops_cleanly_on_signal():
    transport = _Transport()
    stop = asyncio.Event()
    stop.set()

    assert await run(_config(), transport=transport, stop=stop) == 0
    assert transport.closed


def test_load_config_requires_connection_webhook_and_secret(monkeypatch):
    monkeypatch.setattr(settings, "SERVICE_BUS_CONNECTION_STRING", "")
    monkeypatch.setattr(settings, "LISTENER_WEBHOOK_URL", "https://gateway.example")
    monkeypatch.setattr(settings, "REVALIDATE_SECRET", "s")
    with pytest.raises(ConfigurationError):
        load_config()

    monkeypatch.setattr(settings, "SERVICE_BUS_CONNECTION_STRING", "Endpoint=sb://example/")
    monkeypatch.setattr(settings, "REVALIDATE_SECRET", "")
    with pytest.raises(ConfigurationError):
        load_config()

    monkeypatch.setattr(settings, "REVALIDATE_SECRET", "s")
    monkeypatch.setattr(settings, "SERVICE_BUS_SUBSCRIPTION", "sub")
    monkeypatch.setattr(settings, "SERVICE_BUS_TOPICS", "a, b,")
    config = load_config()
    assert config.topics == ["a", "b"]


@pytest.mark.asyncio
async def test_webhook_forwarder_body_and_failure_handling():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(401, json={"error": "Unauthorized"})

    forwarder = WebhookForwarder(
        "https://gateway.example/api/revalidate-match",
        "s",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    ok = await forwarder.forward({"match_id": 42, "league_id": 7, "event_type": "GOAL"}, "allsvenskan")

    assert ok is False
    body = seen[0]
    assert (body["matchId"], body["leagueId"], body["eventType"], body["secret"], body["topic"]) == (
        42, 7, "GOAL", "s", "allsvenskan",
    )
    assert "timestamp" in body


class _BusMessage:
    def __init__(self, message_id: str, body: dict):
        self.message_id = message_id
        self.body = json.dumps(body).encode()


class _Receiver:
    """Scripted receiver: each entry is a batch of messages or an exception to raise."""

    def __init__(self, script=(), enter_error: BaseException | None = None):
        self.script = list(script)
        self.enter_error = enter_error
        self.ops: list = []

    async def __aenter__(self):
        if self.enter_error is not None:
            raise self.enter_error
        return self

    async def __aexit__(self, *exc_info):
        self.ops.append("exit")

    async def receive_messages(self, max_message_count, max_wait_time):
        self.ops.append("receive")
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        await asyncio.sleep(0.01)
        return []

    async def complete_message(self, message):
        self.ops.append(("complete", message.message_id))

    async def abandon_message(self, message):
        self.ops.append(("abandon", message.message_id))


async def _until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def _recording_handlers(handled: list, errors: list, *, fail_on: str | None = None, error_handler_fails: bool = False):
    async def process_message(message):
        if message.message_id == fail_on:
            raise RuntimeError("handler crashed")
        handled.append(message)

    async def process_error(exc, topic):
        errors.append((exc, topic))
        if error_handler_fails:
            raise RuntimeError("error handler crashed")

    return MessageHandlers(process_message=process_message, process_error=process_error)


@pytest.mark.asyncio
async def test_bus_messages_are_settled_before_next_receive():
    handled, errors = [], []
    receiver = _Receiver([[_BusMessage("m1", {"matchId": 1})], [_BusMessage("m2", {"matchId": 2})]])
    subscription = ServiceBusSubscription("t", receiver, _recording_handlers(handled, errors), max_wait=0.01)
    subscription.start()

    await _until(lambda: len(handled) == 2)
    await subscription.close()

    assert [m.body for m in handled] == [{"matchId": 1}, {"matchId": 2}]
    assert receiver.ops[:4] == ["receive", ("complete", "m1"), "receive", ("complete", "m2")]
    assert receiver.ops[-1] == "exit"
    assert errors == []


@pytest.mark.asyncio
async def test_bus_message_is_abandoned_when_handler_crashes():
    handled, errors = [], []
    receiver = _Receiver([[_BusMessage("bad", {"matchId": 1})], [_BusMessage("good", {"matchId": 2})]])
    subscription = ServiceBusSubscription("t", receiver, _recording_handlers(handled, errors, fail_on="bad"), max_wait=0.01)
    subscription.start()

    await _until(lambda: len(handled) == 1)
    await subscription.close()

    assert ("abandon", "bad") in receiver.ops
    assert ("complete", "good") in receiver.ops
    assert isinstance(errors[0][0], RuntimeError)


@pytest.mark.asyncio
@pytest.mark.parametrize("error_handler_fails", [False, True])
async def test_receive_errors_are_reported_and_receiving_continues(error_handler_fails):
    handled, errors = [], []
    receiver = _Receiver([OSError("connection reset"), [_BusMessage("m1", {"matchId": 1})]])
    subscription = ServiceBusSubscription(
        "t",
        receiver,
        _recording_handlers(handled, errors, error_handler_fails=error_handler_fails),
        max_wait=0.01,
        error_backoff=0.01,
    )
    subscription.start()

    await _until(lambda: len(handled) == 1)
    await subscription.close()

    assert isinstance(errors[0][0], OSError)
    assert errors[0][1] == "t"
    assert ("complete", "m1") in receiver.ops


@pytest.mark.asyncio
async def test_close_waits_for_message_in_hand():
    gate = asyncio.Event()
    entered = asyncio.Event()

    async def process_message(message):
        entered.set()
        await gate.wait()

    async def process_error(exc, topic):
        return None

    receiver = _Receiver([[_BusMessage("m1", {"matchId": 1})]])
    subscription = ServiceBusSubscription(
        "t", receiver, MessageHandlers(process_message=process_message, process_error=process_error), max_wait=0.01
    )
    subscription.start()
    await asyncio.wait_for(entered.wait(), timeout=1.0)

    closing = asyncio.create_task(subscription.close())
    await asyncio.sleep(0.02)
    assert not closing.done()

    gate.set()
    await asyncio.wait_for(closing, timeout=1.0)
    assert receiver.ops[-2:] == [("complete", "m1"), "exit"]


@pytest.mark.asyncio
async def test_dead_receive_loop_marks_topic_disconnected():
    listener = LiveEventListener(_Transport(), _Forwarder(), ["t"], "sub")
    await listener.start()
    subscription = ServiceBusSubscription(
        "t", _Receiver(enter_error=OSError("link refused")), listener.handlers, max_wait=0.01
    )
    subscription.start()

    await _until(lambda: listener.states["t"] == TopicState.DISCONNECTED)
    await subscription.close()
