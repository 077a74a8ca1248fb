from __future__ import annotations

import json
import time
from datetime import datetime, timedelta, timezone
from threading import Event
from typing import Any, Optional

import pytest

from ticketing.kafka_producer import CommandEmitter
from ticketing.store import SnapshotStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(minutes=5)


class FakeKafkaError:
    def __init__(self, code: int, text: str = "boom"):
        self._code = code
        self._text = text

    def code(self) -> int:
        return self._code

    def __str__(self) -> str:
        return self._text


class FakeMessage:
    """Stand-in for confluent_kafka.Message."""

    def __init__(self, value: Any, topic: str = "t", partition: int = 0, offset: int = 0, error: Optional[FakeKafkaError] = None):
        if isinstance(value, dict):
            value = json.dumps(value).encode("utf-8")
        elif isinstance(value, str):
            value = value.encode("utf-8")
        self._value = value
        self._topic = topic
        self._partition = partition
        self._offset = offset
        self._error = error

    def value(self):
        return self._value

    def topic(self):
        return self._topic

    def partition(self):
        return self._partition

    def offset(self):
        return self._offset

    def error(self):
        return self._error


class FakeConsumer:
    """Replays a fixed list of messages, then sets the stop event."""

    def __init__(self, messages: list, stop_event: Optional[Event] = None):
        self.messages = list(messages)
        self.stop_event = stop_event
        self.subscribed: list[str] = []
        self.on_assign = None
        self.committed: list = []
        self.closed = False

    def subscribe(self, topics, on_assign=None):
        self.subscribed = list(topics)
        self.on_assign = on_assign

    def poll(self, timeout=None):
        if self.messages:
            return self.messages.pop(0)
        if self.stop_event is not None:
            self.stop_event.set()
        elif timeout:
            time.sleep(min(timeout, 0.01))
        return None

    def commit(self, message=None, asynchronous=True):
        self.committed.append(message)

    def close(self):
        self.closed = True


class FakeProducer:
    """Stand-in for confluent_kafka.Producer.

    `fail_with` makes produce() raise, `delivery_error` is handed to the
    delivery callback, `remaining` is what flush() reports as still queued.
    """

    def __init__(self, fail_with: Optional[BaseException] = None, delivery_error: Any = None, remaining: int = 0):
        self.fail_with = fail_with
        self.delivery_error = delivery_error
        self.remaining = remaining
        self.produced: list[dict] = []
        self._pending: list = []
        self.flushes = 0

    def produce(self, topic, key=None, value=None, callback=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.produced.append({"topic": topic, "key": key, "value": value})
        self._pending.append((callback, FakeMessage(value, topic=topic, offset=len(self.produced) - 1)))

    def flush(self, timeout=None):
        self.flushes += 1
        pending, self._pending = self._pending, []
        for callback, msg in pending:
            if callback is not None:
                callback(self.delivery_error, msg)
        return self.remaining


def inventory_payload(ticket_type: str, count: int, updated_at: datetime, **extra) -> dict:
    return {"ticketType": ticket_type, "availableCount": count, "updatedAt": updated_at.isoformat(), **extra}


def status_payload(purchase_id: str, status: str, updated_at: datetime, **extra) -> dict:
    return {"purchaseId": purchase_id, "status": status, "updatedAt": updated_at.isoformat(), **extra}


@pytest.fixture
def inventory_store():
    return SnapshotStore("inventory")


@pytest.fixture
def status_store():
    return SnapshotStore("status")


@pytest.fixture
def producer():
    return FakeProducer()


@pytest.fixture
def emitter(producer):
    return CommandEmitter(producer, topic="purchases.test", flush_timeout=0.1)
