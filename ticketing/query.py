"""Point lookups against the read models.

Both lookups are pure reads. A key that no consumer has seen yet comes back
as `Lookup.found == False`; that is the normal answer right after startup or
before the payment processor has reported anything for a purchase.
"""

from __future__ import annotations

from .models import InventoryUpdated, PaymentStatusUpdated
from .store import Lookup, SnapshotStore


class QueryService:
    def __init__(
        self,
        inventory: SnapshotStore[InventoryUpdated],
        status: SnapshotStore[PaymentStatusUpdated],
    ) -> None:
        self._inventory = inventory
        self._status = status

    def get_inventory(self, ticket_type: str) -> Lookup[InventoryUpdated]:
        return self._inventory.get(ticket_type)

    def get_status(self, purchase_id: str) -> Lookup[PaymentStatusUpdated]:
        return self._status.get(purchase_id)
