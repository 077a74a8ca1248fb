"""Read-model service configuration.

Like the rest of this service's plumbing, configuration is just environment
variables with development defaults. Override them per environment.

One process hosts everything:
- the command emitter (publishes purchase requests)
- two ingestion consumers (inventory updates, payment status updates)
- the query service that reads the in-memory snapshots they build
"""

from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# --- Kafka -------------------------------------------------------------------
# Kafka bootstrap servers (broker addresses). Example: "172.31.0.202:9092"
KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")

# Outbound: one message per submitted purchase, keyed by purchaseId.
KAFKA_PURCHASE_TOPIC: str = os.getenv("KAFKA_PURCHASE_TOPIC", "purchases.requested.v1")

# Inbound: produced by the (external) inventory and payment processors.
KAFKA_INVENTORY_TOPIC: str = os.getenv("KAFKA_INVENTORY_TOPIC", "inventory.updated.v1")
KAFKA_STATUS_TOPIC: str = os.getenv("KAFKA_STATUS_TOPIC", "payments.status.v1")

# Consumer group id prefix.
# Snapshots live in memory, so every process must see every partition of the
# inbound topics. Each consumer therefore joins its own group:
#   "<prefix>.<stream>.<random suffix>"
KAFKA_GROUP_ID_PREFIX: str = os.getenv("KAFKA_GROUP_ID_PREFIX", "ticketing-read-model")

# Rewind to the start of each assigned partition so the snapshots are rebuilt
# from the full stream after a restart.
KAFKA_REPLAY_FROM_BEGINNING: bool = _env_bool("KAFKA_REPLAY_FROM_BEGINNING", True)

# How long one poll() waits for a message before re-checking the stop signal.
KAFKA_POLL_TIMEOUT_SECONDS: float = float(os.getenv("KAFKA_POLL_TIMEOUT_SECONDS", "1.0"))

# How long submit() waits for the broker to acknowledge a purchase.
KAFKA_FLUSH_TIMEOUT_SECONDS: float = float(os.getenv("KAFKA_FLUSH_TIMEOUT_SECONDS", "5.0"))

# --- Logging -----------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
