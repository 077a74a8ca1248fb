"""Kafka producer and command emitter.

Key points to understand:

1) Producer is created once and reused
Creating a producer is relatively heavy; the host creates one at startup and
hands it to the CommandEmitter.

2) Delivery acknowledgement
`produce()` only queues the message locally. The broker's answer arrives
later through the delivery callback, which runs inside `flush()`/`poll()`.

3) Why flush per submission?
`submit()` returns only after Kafka confirmed delivery (or gave up), so an
accepted purchase really is in the topic. A failure is reported to the caller
as a retryable PublishFailure; the emitter itself never retries.

4) Message key
The key is purchaseId: same purchase => same partition => ordered.

Note: a flush timeout does not cancel the queued message; it may still be
delivered. A caller retrying with the same purchaseId is expected, and
downstream processors treat purchaseId as the idempotency key.
"""

from __future__ import annotations

import logging
from typing import Any

from confluent_kafka import KafkaException, Producer

from .config import KAFKA_BOOTSTRAP_SERVERS, KAFKA_FLUSH_TIMEOUT_SECONDS, KAFKA_PURCHASE_TOPIC
from .errors import PublishFailure
from .models import PurchaseRequest, PurchaseRequested, SubmitAck

logger = logging.getLogger(__name__)


def create_producer() -> Producer:
    """Create and configure a Confluent Kafka Producer."""
    conf: dict[str, Any] = {
        "bootstrap.servers": KAFKA_BOOTSTRAP_SERVERS,

        # Safer against duplicates when the client retries internally.
        "enable.idempotence": True,
    }
    return Producer(conf)


class CommandEmitter:
    """Publishes PurchaseRequested events to the outbound topic."""

    def __init__(self, producer: Producer, topic: str = KAFKA_PURCHASE_TOPIC, flush_timeout: float = KAFKA_FLUSH_TIMEOUT_SECONDS):
        self.producer = producer
        self.topic = topic
        self.flush_timeout = flush_timeout

    def submit(self, request: PurchaseRequest) -> SubmitAck:
        """Serialize and send one purchase to Kafka.

        Raises:
            PublishFailure: the broker rejected the message, the local queue is
                full, or delivery was not confirmed within `flush_timeout`.
        """
        event = PurchaseRequested.from_request(request)

        # Message value and key are bytes.
        payload: bytes = event.model_dump_json().encode("utf-8")
        key: bytes = event.purchaseId.encode("utf-8")

        delivery_errors: list[Any] = []

        def on_delivery(err, msg) -> None:
            if err is not None:
                logger.error("[Producer] Delivery failed purchaseId=%s: %s", event.purchaseId, err)
                delivery_errors.append(err)
            else:
                logger.info("[Producer] Delivered to %s [%s] @ offset %s", msg.topic(), msg.partition(), msg.offset())

        try:
            self.producer.produce(topic=self.topic, key=key, value=payload, callback=on_delivery)
            remaining = self.producer.flush(self.flush_timeout)
        except (BufferError, KafkaException) as e:
            logger.error("[Producer] Failed to produce purchaseId=%s: %s", event.purchaseId, e)
            raise PublishFailure(event.purchaseId, str(e)) from e

        if delivery_errors:
            raise PublishFailure(event.purchaseId, str(delivery_errors[0]))
        if remaining:
            logger.error("[Producer] Delivery not confirmed within %ss purchaseId=%s", self.flush_timeout, event.purchaseId)
            raise PublishFailure(event.purchaseId, f"delivery not confirmed within {self.flush_timeout}s")

        return SubmitAck(purchaseId=event.purchaseId, eventId=event.eventId, topic=self.topic)

    def close(self) -> None:
        remaining = self.producer.flush(self.flush_timeout)
        if remaining:
            logger.warning("[Producer] %d message(s) still queued at close", remaining)
