# Overview: Catalog, sales and store-profile mutations with offline queueing.

"""
Inventory Service

Every mutation follows the same path:

1. validate the input (ValidationError, nothing queued)
2. check it against the current cache snapshot (ProductNotFoundError,
   NotEnoughStockError; nothing queued)
3. build a PendingAction and either
   - apply it through RemoteMutations when online, or
   - enqueue it when offline, when earlier actions are still queued, or when
     the remote store turns out to be unreachable mid-call

ORDERING: while the queue holds anything, new actions go behind it instead of
being written live, so the remote store always sees actions in the order they
were made on this device.

The snapshot checked in step 2 already includes queued actions, so two
offline sales of the last unit cannot both be accepted. The remote state is
re-checked when queued actions are replayed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .activity_service import ActivityLog
from .data_cache import StoreDataCache, StoreSnapshot
from .offline_queue import ActionType, OfflineQueue, PendingAction
from .remote_mutations import (
    NotEnoughStockError,
    ProductNotFoundError,
    RemoteMutations,
    SaleNotFoundError,
    describe_action,
)
from .remote_store import RemoteUnavailableError, generate_push_key
from .session_service import SessionService
from .sync_service import ConnectivityMonitor
from ..schemas import Product, price_to_remote
from ..time_utils import day_key, to_utc_z, utcnow
from ..validation import (
    PRODUCT_EDIT_POLICY,
    PRODUCT_POLICY,
    STORE_POLICY,
    ValidationError,
    enforce_rules_product,
    enforce_rules_store,
    validate_payload,
    validate_restock_quantity,
    validate_sale_quantity,
)

logger = logging.getLogger(__name__)


class MutationStatus(str, Enum):
    APPLIED = "applied"
    QUEUED = "queued"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class MutationResult:
    status: MutationStatus
    action: PendingAction

    @property
    def queued(self) -> bool:
        return self.status is MutationStatus.QUEUED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "action_id": self.action.action_id,
            "type": self.action.type.value,
            "data": self.action.payload,
        }


class InventoryService:
    def __init__(
        self,
        session: SessionService,
        cache: StoreDataCache,
        queue: OfflineQueue,
        mutations: RemoteMutations,
        connectivity: ConnectivityMonitor,
        activity: ActivityLog,
        *,
        clock: Callable = utcnow,
    ) -> None:
        self._session = session
        self._cache = cache
        self._queue = queue
        self._mutations = mutations
        self._connectivity = connectivity
        self._activity = activity
        self._clock = clock

    # ---- helpers ----

    def _snapshot(self) -> StoreSnapshot:
        self._session.require_identity()
        return self._cache.snapshot()

    def _require_product(self, snapshot: StoreSnapshot, barcode: str) -> Product:
        product = snapshot.product(barcode)
        if product is None:
            raise ProductNotFoundError("Product not found")
        return product

    def _submit(self, action_type: ActionType, payload: dict) -> MutationResult:
        identity = self._session.require_identity()
        if self._queue.uid != identity.uid:
            self._queue.bind(identity.uid)

        action = PendingAction(type=action_type, payload=payload, enqueued_at=self._clock())

        if not self._connectivity.is_online():
            return self._enqueue(action, "offline")
        if not self._queue.is_empty():
            return self._enqueue(action, "earlier actions pending")

        try:
            written = self._mutations.apply(identity.uid, action)
        except RemoteUnavailableError:
            self._connectivity.set_online(False)
            return self._enqueue(action, "remote store unreachable")

        if not written:
            return MutationResult(MutationStatus.SKIPPED, action)
        self._activity.record(identity.uid, describe_action(action))
        return MutationResult(MutationStatus.APPLIED, action)

    def _enqueue(self, action: PendingAction, reason: str) -> MutationResult:
        self._queue.enqueue(action)
        logger.info("%s queued (%s)", action.type.value, reason)
        return MutationResult(MutationStatus.QUEUED, action)

    # ---- catalog ----

    def add_product(self, payload: dict) -> MutationResult:
        patch = validate_payload(payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        self._snapshot()
        return self._submit(ActionType.ADD_PRODUCT, {
            "barcode": patch["barcode"],
            "name": patch["name"],
            "price": price_to_remote(patch["price"]),
            "quantity": patch["quantity"],
            "updatedAt": to_utc_z(self._clock()),
        })

    def update_product(self, barcode: str, payload: dict) -> MutationResult:
        patch = validate_payload(payload=payload, policy=PRODUCT_EDIT_POLICY, partial=True)
        enforce_rules_product(patch)
        if not patch:
            raise ValidationError("No fields to update")
        self._require_product(self._snapshot(), barcode)

        data: dict = {"barcode": barcode, "updatedAt": to_utc_z(self._clock())}
        for key, value in patch.items():
            data[key] = price_to_remote(value) if key == "price" else value
        return self._submit(ActionType.UPDATE_PRODUCT, data)

    def restock(self, barcode: str, quantity) -> MutationResult:
        """
        Adds `quantity` to stock. The action carries the delta, not a total,
        so it lands on whatever the remote quantity is when it is applied.
        """
        quantity = validate_restock_quantity(quantity)
        self._require_product(self._snapshot(), barcode)
        return self._submit(ActionType.UPDATE_PRODUCT, {
            "barcode": barcode,
            "restock": quantity,
            "updatedAt": to_utc_z(self._clock()),
        })

    def remove_product(self, barcode: str) -> MutationResult:
        """Products are never deleted; their quantity is set to 0."""
        self._require_product(self._snapshot(), barcode)
        return self._submit(ActionType.UPDATE_PRODUCT, {
            "barcode": barcode,
            "quantity": 0,
            "updatedAt": to_utc_z(self._clock()),
        })

    # ---- sales ----

    def sell(self, barcode: str, quantity=1) -> MutationResult:
        quantity = validate_sale_quantity(quantity)
        product = self._require_product(self._snapshot(), barcode)
        if product.quantity < quantity:
            raise NotEnoughStockError(
                f"Not enough stock: {product.quantity} of {product.name} available"
            )
        return self._submit(ActionType.SELL_PRODUCT, {
            "barcode": barcode,
            "quantity": quantity,
            "saleId": generate_push_key(),
            "saleTime": to_utc_z(self._clock()),
        })

    def remove_sale(self, sale_id: str) -> MutationResult:
        """Take a line off the open receipt and put its quantity back in stock."""
        snapshot = self._snapshot()
        sale = snapshot.sale(sale_id)
        if sale is None:
            raise SaleNotFoundError("Sale not found")
        return self._submit(ActionType.SELL_PRODUCT, {
            "barcode": sale.barcode,
            "quantity": -sale.sale_quantity,
            "saleId": sale.sale_id,
            "day": snapshot.day or day_key(self._clock()),
        })

    def reset_day_sales(self, restore_stock: bool) -> MutationResult:
        snapshot = self._snapshot()
        return self._submit(ActionType.RESET_SALES, {
            "day": snapshot.day or day_key(self._clock()),
            "restoreStock": bool(restore_stock),
        })

    # ---- store profile ----

    def update_store(self, payload: dict) -> MutationResult:
        patch = validate_payload(payload=payload, policy=STORE_POLICY, partial=False)
        enforce_rules_store(patch)
        self._snapshot()
        return self._submit(ActionType.UPDATE_STORE, {
            "name": patch["name"],
            "address": patch.get("address", ""),
            "phone": patch.get("phone", ""),
        })
