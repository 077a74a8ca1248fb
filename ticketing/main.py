"""Ticketing read-model FastAPI application.

Responsibilities:
- Accept purchase requests and publish them to Kafka (`POST /purchases`)
- Serve the read models: inventory per ticket type, payment status per purchase
- Run the two ingestion consumers in background threads

Important note:
This service never writes a snapshot in a request handler. A purchase becomes
visible through `GET /purchases/{purchaseId}/status` only after the external
payment processor emits a status event and the status consumer ingests it.

Wiring is explicit: `build_components()` constructs each store once and hands
it to exactly the consumer that owns it and the query service that reads it.
Tests pass their own `Components` to `create_app()`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from .config import LOG_LEVEL
from .errors import PublishFailure
from .kafka_consumer import ConsumerState, IngestionConsumer, inventory_consumer, status_consumer
from .kafka_producer import CommandEmitter, create_producer
from .models import (
    InventoryUpdated,
    InventoryView,
    PaymentStatusUpdated,
    PurchaseRequest,
    StatusView,
    SubmitAck,
)
from .query import QueryService
from .store import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class Components:
    inventory_store: SnapshotStore[InventoryUpdated]
    status_store: SnapshotStore[PaymentStatusUpdated]
    query: QueryService
    emitter: CommandEmitter
    consumers: list[IngestionConsumer] = field(default_factory=list)


def build_components() -> Components:
    """Create the stores, their consumers, the query service and the emitter."""
    inventory_store: SnapshotStore[InventoryUpdated] = SnapshotStore("inventory")
    status_store: SnapshotStore[PaymentStatusUpdated] = SnapshotStore("status")
    return Components(
        inventory_store=inventory_store,
        status_store=status_store,
        query=QueryService(inventory_store, status_store),
        emitter=CommandEmitter(create_producer()),
        consumers=[inventory_consumer(inventory_store), status_consumer(status_store)],
    )


def _components(request: Request) -> Components:
    components: Optional[Components] = request.app.state.components
    if components is None:
        raise HTTPException(status_code=503, detail="service is starting")
    return components


def create_app(components: Optional[Components] = None) -> FastAPI:
    app = FastAPI(title="Ticketing Read Model")
    app.state.components = components

    @app.on_event("startup")
    def on_startup() -> None:
        """Startup hook.

        - Build the components unless they were injected.
        - Start the consumer threads.
        """
        logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
        if app.state.components is None:
            app.state.components = build_components()
        for consumer in app.state.components.consumers:
            consumer.start()

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        """Shutdown hook.

        Stop the consumers (each finishes the message it is applying) and
        flush the producer.
        """
        current: Optional[Components] = app.state.components
        if current is None:
            return
        for consumer in current.consumers:
            consumer.stop(timeout=10.0)
        current.emitter.close()

    @app.get("/health")
    def health(request: Request) -> JSONResponse:
        """Liveness plus consumer states and snapshot sizes.

        A consumer that is STOPPED while the app is up has died; its snapshot
        no longer follows the stream, so the service reports 503 "degraded".
        """
        current = _components(request)
        consumers = {c.name: c.state.value for c in current.consumers}
        degraded = any(c.state is ConsumerState.STOPPED for c in current.consumers)
        body = {
            "status": "degraded" if degraded else "ok",
            "consumers": consumers,
            "snapshots": {
                current.inventory_store.name: len(current.inventory_store),
                current.status_store.name: len(current.status_store),
            },
        }
        return JSONResponse(body, status_code=503 if degraded else 200)

    @app.post("/purchases", response_model=SubmitAck, status_code=status.HTTP_202_ACCEPTED)
    def submit_purchase(req: PurchaseRequest, request: Request) -> SubmitAck:
        """Publish a PurchaseRequested event.

        "accepted" means the event is in Kafka, not that it was processed.
        """
        try:
            return _components(request).emitter.submit(req)
        except PublishFailure as e:
            # 503 + Retry-After: the client may safely retry with the same purchaseId.
            raise HTTPException(status_code=503, detail=str(e), headers={"Retry-After": "1"}) from e

    @app.get("/inventory/{ticketType}", response_model=InventoryView)
    def get_inventory(ticketType: str, request: Request) -> InventoryView:
        lookup = _components(request).query.get_inventory(ticketType)
        if not lookup.found:
            raise HTTPException(status_code=404, detail=f"no inventory known for ticket type {ticketType}")
        event = lookup.snapshot.value
        return InventoryView(ticketType=event.ticketType, availableCount=event.availableCount, updatedAt=event.updatedAt)

    @app.get("/purchases/{purchaseId}/status", response_model=StatusView)
    def get_status(purchaseId: str, request: Request) -> StatusView:
        lookup = _components(request).query.get_status(purchaseId)
        if not lookup.found:
            raise HTTPException(status_code=404, detail=f"no status known for purchase {purchaseId}")
        event = lookup.snapshot.value
        return StatusView(purchaseId=event.purchaseId, status=event.status, updatedAt=event.updatedAt)

    return app


app = create_app()
