"""Failures the read-model core can report.

NotFound is deliberately absent: a missing key is an ordinary result
(see `store.Lookup`), not an exception.

A stale event (older than the current snapshot) is not an error either:
`SnapshotStore.put` simply returns False.
"""

from __future__ import annotations

from typing import Optional


class DecodeFailure(Exception):
    """A consumed message could not be read as its expected envelope.

    Raised by the consumer's decoder and handled inside the run loop:
    the message is logged and skipped, the loop keeps going.
    """

    def __init__(self, topic: str, reason: str, *, partition: Optional[int] = None, offset: Optional[int] = None):
        self.topic = topic
        self.reason = reason
        self.partition = partition
        self.offset = offset
        super().__init__(f"cannot decode message from {topic} (p={partition} o={offset}): {reason}")


class PublishFailure(Exception):
    """The outbound topic rejected a submission or could not be reached.

    The emitter never retries; the caller decides whether and when to.
    """

    retryable = True

    def __init__(self, purchase_id: str, reason: str):
        self.purchase_id = purchase_id
        self.reason = reason
        super().__init__(f"failed to publish purchase {purchase_id}: {reason}")
