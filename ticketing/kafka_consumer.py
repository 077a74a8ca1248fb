"""Kafka ingestion consumers for the read models.

High-level flow (one consumer per inbound topic):
    poll -> decode JSON -> validate schema -> SnapshotStore.put -> commit offset

Important Kafka concepts used here:

1) Every process rebuilds its snapshots
- Snapshots live in memory, so after a restart they must be refilled from
  the topic. On partition assignment we rewind to the beginning.
- Each process must see every partition, so each consumer joins its own
  consumer group (prefix + random suffix) instead of sharing one.

2) Manual offset commit
- `enable.auto.commit=False`; we commit after a message reached the store.
- At-least-once delivery means duplicates happen. The store's
  last-writer-wins rule makes applying a duplicate a no-op.

3) poll(timeout)
- `poll(1.0)` waits up to one second for a message, so the loop notices the
  stop signal without ever cutting a message off halfway.

4) Ordering
- One consumer handles its messages strictly one after another. The two
  consumers (inventory, payment status) are independent of each other.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from threading import Event, Lock, Thread
from typing import Any, Callable, Generic, Optional, Type, TypeVar
from uuid import uuid4

from confluent_kafka import OFFSET_BEGINNING, Consumer, KafkaError, KafkaException
from pydantic import BaseModel, ValidationError

from .config import (
    KAFKA_BOOTSTRAP_SERVERS,
    KAFKA_GROUP_ID_PREFIX,
    KAFKA_INVENTORY_TOPIC,
    KAFKA_POLL_TIMEOUT_SECONDS,
    KAFKA_REPLAY_FROM_BEGINNING,
    KAFKA_STATUS_TOPIC,
)
from .errors import DecodeFailure
from .models import InventoryUpdated, PaymentStatusUpdated
from .store import SnapshotStore

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseModel)


class ConsumerState(str, Enum):
    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


def create_consumer(group_id: str) -> Consumer:
    """Create and configure a Confluent Kafka Consumer.

    - auto.offset.reset=earliest: with no committed offset, start at the
      beginning of the topic (the rewind on assignment covers the rest).
    - enable.auto.commit=False: commit only after the store was updated.
    """
    conf: dict[str, Any] = {
        "bootstrap.servers": KAFKA_BOOTSTRAP_SERVERS,
        "group.id": group_id,
        "auto.offset.reset": "earliest",
        "enable.auto.commit": False,
    }
    return Consumer(conf)


def new_group_id(stream: str) -> str:
    return f"{KAFKA_GROUP_ID_PREFIX}.{stream}.{uuid4().hex[:12]}"


def _rewind_on_assign(consumer, partitions) -> None:
    for partition in partitions:
        partition.offset = OFFSET_BEGINNING
    consumer.assign(partitions)


class IngestionConsumer(Generic[E]):
    """Feeds one SnapshotStore from one Kafka topic.

    The consumer is the only writer of its store. It is either STOPPED or
    RUNNING; `start()` runs the loop on a daemon thread and `stop()` asks it
    to finish after the message it is currently applying.

    Args:
        name: Short stream name used in logs and thread names.
        topic: Topic to subscribe to.
        event_model: Pydantic model every message must validate against.
        key_of: Extracts the snapshot key from a decoded event.
        store: The store this consumer owns.
        consumer_factory: Builds the Kafka client from a group id.
    """

    def __init__(
        self,
        name: str,
        topic: str,
        event_model: Type[E],
        key_of: Callable[[E], str],
        store: SnapshotStore[E],
        *,
        group_id: Optional[str] = None,
        consumer_factory: Callable[[str], Any] = create_consumer,
        poll_timeout: float = KAFKA_POLL_TIMEOUT_SECONDS,
        replay_from_beginning: bool = KAFKA_REPLAY_FROM_BEGINNING,
    ) -> None:
        self.name = name
        self.topic = topic
        self.event_model = event_model
        self.key_of = key_of
        self.store = store
        self.group_id = group_id or new_group_id(name)
        self.poll_timeout = poll_timeout
        self.replay_from_beginning = replay_from_beginning
        self._consumer_factory = consumer_factory

        self._state = ConsumerState.STOPPED
        self._lifecycle_lock = Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

        # Written by the consumer thread only.
        self.applied = 0
        self.stale = 0
        self.decode_failures = 0
        self.commit_failures = 0

    @property
    def state(self) -> ConsumerState:
        return self._state

    # --- Lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Run the consumer loop in a background thread."""
        with self._lifecycle_lock:
            if self._thread is not None and self._thread.is_alive():
                raise RuntimeError(f"{self.name} consumer is already running")
            self._stop_event = Event()
            # RUNNING from here on, so /health never sees a starting consumer as stopped.
            self._state = ConsumerState.RUNNING
            self._thread = Thread(
                target=self.run,
                args=(self._stop_event,),
                name=f"{self.name}-consumer",
                daemon=True,  # Daemon threads won't block process exit.
            )
            self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to stop and wait for the thread to finish."""
        with self._lifecycle_lock:
            self._stop_event.set()
            thread = self._thread
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("[%s] Consumer did not stop within %ss", self.name, timeout)

    # --- Loop ----------------------------------------------------------------

    def run(self, stop_event: Event) -> None:
        """Run the consumer loop until `stop_event.is_set()` becomes True.

        Poison-pill handling:
            A malformed message is logged and its offset committed, otherwise
            the consumer would re-read it forever.
        """
        logger.info("[%s] Starting consumer topic=%s group=%s", self.name, self.topic, self.group_id)

        self._state = ConsumerState.RUNNING
        consumer = None
        try:
            consumer = self._consumer_factory(self.group_id)
            if self.replay_from_beginning:
                consumer.subscribe([self.topic], on_assign=_rewind_on_assign)
            else:
                consumer.subscribe([self.topic])

            while not stop_event.is_set():
                msg = consumer.poll(self.poll_timeout)

                if msg is None:
                    continue

                # `msg.error()` is a Kafka-level error, not a payload problem.
                if msg.error():
                    if msg.error().code() != KafkaError._PARTITION_EOF:
                        logger.error("[%s] Kafka error: %s", self.name, msg.error())
                    continue

                self.handle_message(msg)
                self._commit(consumer, msg)
        except Exception:
            logger.exception("[%s] Consumer loop crashed", self.name)
            raise
        finally:
            self._state = ConsumerState.STOPPED
            if consumer is not None:
                consumer.close()
            logger.info(
                "[%s] Closed (applied=%d stale=%d decode_failures=%d commit_failures=%d)",
                self.name,
                self.applied,
                self.stale,
                self.decode_failures,
                self.commit_failures,
            )

    def _commit(self, consumer, msg) -> None:
        """Commit the offset of a processed message.

        Commit errors (rebalance in progress, no offset, coordinator moved) are
        transient and offsets are bookkeeping only, since snapshots are rebuilt
        by rewinding on assignment. Log and keep consuming.
        """
        try:
            consumer.commit(message=msg, asynchronous=False)
        except KafkaException as e:
            self.commit_failures += 1
            logger.warning(
                "[%s] Commit failed, continuing: %s (p=%s o=%s)", self.name, e, msg.partition(), msg.offset()
            )

    def handle_message(self, msg) -> bool:
        """Decode one message and apply it to the store.

        Returns True when the store took the event, False when it was stale or
        could not be decoded.
        """
        try:
            event = self.decode(msg)
        except DecodeFailure as e:
            self.decode_failures += 1
            logger.warning("[%s] %s. Skipping.", self.name, e)
            return False

        key = self.key_of(event)
        if self.store.put(key, event, event.updatedAt):
            self.applied += 1
            logger.info(
                "[%s] Applied %s key=%s updatedAt=%s (p=%s o=%s)",
                self.name,
                event.eventType,
                key,
                event.updatedAt.isoformat(),
                msg.partition(),
                msg.offset(),
            )
            return True

        self.stale += 1
        logger.debug("[%s] Stale event dropped key=%s updatedAt=%s", self.name, key, event.updatedAt.isoformat())
        return False

    def decode(self, msg) -> E:
        """Turn a Kafka message into `event_model`, or raise DecodeFailure."""
        where = {"partition": msg.partition(), "offset": msg.offset()}

        value = msg.value()
        if value is None:
            raise DecodeFailure(self.topic, "empty message value", **where)

        # --- Decode JSON payload -------------------------------------------------
        try:
            data = json.loads(value.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeFailure(self.topic, f"bad payload (decode/json): {e}", **where) from e

        # --- Validate event schema ----------------------------------------------
        try:
            return self.event_model.model_validate(data)
        except ValidationError as e:
            raise DecodeFailure(self.topic, f"bad event schema: {e.errors()!r}", **where) from e


def inventory_consumer(store: SnapshotStore[InventoryUpdated], **kwargs: Any) -> IngestionConsumer[InventoryUpdated]:
    """Consumer that keeps inventory-by-ticket-type up to date."""
    return IngestionConsumer(
        "inventory",
        kwargs.pop("topic", KAFKA_INVENTORY_TOPIC),
        InventoryUpdated,
        lambda event: event.ticketType,
        store,
        **kwargs,
    )


def status_consumer(store: SnapshotStore[PaymentStatusUpdated], **kwargs: Any) -> IngestionConsumer[PaymentStatusUpdated]:
    """Consumer that keeps payment-status-by-purchase-id up to date."""
    return IngestionConsumer(
        "status",
        kwargs.pop("topic", KAFKA_STATUS_TOPIC),
        PaymentStatusUpdated,
        lambda event: event.purchaseId,
        store,
        **kwargs,
    )
