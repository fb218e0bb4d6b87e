# Overview: Turns each pending action type into one atomic write against the remote store.

"""
Remote Mutations

Every catalog, sales and store change goes through apply(uid, action), both
when it happens live and when the reconciler replays it from the offline
queue. Action payloads are JSON-safe (prices as two-place strings, times as
ISO-8601 "Z" strings) because they are persisted in local storage.

    AddProduct     {barcode, name, price, quantity, updatedAt}
    UpdateProduct  {barcode, [name], [price], [quantity], updatedAt}
                   {barcode, restock > 0, updatedAt}       (added to current stock)
    SellProduct    {barcode, quantity > 0, saleId, saleTime}
                   {barcode, quantity < 0, saleId, day}    (receipt line removal)
    UpdateStore    {name, address, phone}
    ResetSales     {day, restoreStock}

IDEMPOTENCY: each application writes users/<uid>/appliedActions/<action_id>
in the same multi-path update as the mutation itself. An action whose ledger
entry already exists is skipped, so replaying an action that reached the
store before a crash does not apply it twice.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable

from .offline_queue import ActionType, PendingAction
from .remote_store import RemoteStore
from ..schemas import Product, SaleRecord, SchemaError
from ..time_utils import day_key, parse_iso_datetime, to_utc_z, utcnow
from ..validation import ConflictError

logger = logging.getLogger(__name__)

LEDGER = "appliedActions"


class NotEnoughStockError(ConflictError):
    """Raised when a sale asks for more units than are in stock."""
    pass


class ProductNotFoundError(LookupError):
    """Raised when a barcode is not in the catalog."""
    pass


class SaleNotFoundError(LookupError):
    """Raised when a sale line does not exist in its day bucket."""
    pass


class UnknownActionError(ValueError):
    """Raised for an action type with no remote mutation."""
    pass


def describe_action(action: PendingAction) -> str:
    """Activity log wording for an applied action."""
    data = action.payload
    if action.type is ActionType.ADD_PRODUCT:
        return f"Added {data.get('name')} to stock"
    if action.type is ActionType.UPDATE_PRODUCT:
        if "restock" in data:
            return f"Restocked {data.get('barcode')} +{data.get('restock')}"
        return f"Updated {data.get('name') or data.get('barcode')}"
    if action.type is ActionType.SELL_PRODUCT:
        quantity = int(data.get("quantity", 0))
        if quantity < 0:
            return f"Removed {data.get('barcode')} x{-quantity} from receipt"
        return f"Sold {data.get('barcode')} x{quantity}"
    if action.type is ActionType.UPDATE_STORE:
        return "Updated store information"
    if action.type is ActionType.RESET_SALES:
        return "Reset sales and restored stock" if data.get("restoreStock") else "Reset sales"
    return action.type.value


class RemoteMutations:
    def __init__(self, remote: RemoteStore, clock: Callable = utcnow) -> None:
        self._remote = remote
        self._clock = clock
        self._handlers = {
            ActionType.ADD_PRODUCT: self._add_product,
            ActionType.UPDATE_PRODUCT: self._update_product,
            ActionType.SELL_PRODUCT: self._sell_product,
            ActionType.UPDATE_STORE: self._update_store,
            ActionType.RESET_SALES: self._reset_sales,
        }

    def is_applied(self, uid: str, action_id: str) -> bool:
        return self._remote.get(f"users/{uid}/{LEDGER}/{action_id}") is not None

    def apply(self, uid: str, action: PendingAction) -> bool:
        """
        Apply `action` for `uid`.

        Returns:
            True when the action was written, False when the ledger shows it
            was already applied.

        Raises:
            RemoteUnavailableError / RemoteStoreError from the store,
            ProductNotFoundError, NotEnoughStockError, SaleNotFoundError.
        """
        handler = self._handlers.get(action.type)
        if handler is None:
            raise UnknownActionError(f"No remote mutation for {action.type}")

        if self.is_applied(uid, action.action_id):
            logger.info("Skipping %s (%s): already applied", action.type.value, action.action_id)
            return False

        writes = handler(uid, action.payload)
        writes[f"{LEDGER}/{action.action_id}"] = to_utc_z(self._clock())
        self._remote.update(f"users/{uid}", writes)
        logger.debug("Applied %s (%s) for %s", action.type.value, action.action_id, uid)
        return True

    # ---- reads ----

    def _product(self, uid: str, barcode: str) -> Product:
        raw = self._remote.get(f"users/{uid}/stock/{barcode}")
        if raw is None:
            raise ProductNotFoundError("Product not found")
        try:
            return Product.from_remote(barcode, raw)
        except SchemaError as exc:
            raise ProductNotFoundError(f"Product {barcode} is unreadable: {exc}") from exc

    # ---- handlers: each returns the multi-path writes relative to users/<uid> ----

    def _add_product(self, uid: str, data: dict) -> dict:
        barcode = data["barcode"]
        return {
            f"stock/{barcode}": {
                "name": data["name"],
                "price": data["price"],
                "quantity": int(data["quantity"]),
                "updatedAt": data.get("updatedAt") or to_utc_z(self._clock()),
            }
        }

    def _update_product(self, uid: str, data: dict) -> dict:
        barcode = data["barcode"]
        product = self._product(uid, barcode)
        writes = {f"stock/{barcode}/updatedAt": data.get("updatedAt") or to_utc_z(self._clock())}
        for key in ("name", "price", "quantity"):
            if key in data:
                writes[f"stock/{barcode}/{key}"] = data[key]
        if "restock" in data:
            # Relative to the quantity the store holds now, not when queued
            writes[f"stock/{barcode}/quantity"] = product.quantity + int(data["restock"])
        return writes

    def _sell_product(self, uid: str, data: dict) -> dict:
        quantity = int(data["quantity"])
        if quantity < 0:
            return self._reverse_sale(uid, data)

        barcode = data["barcode"]
        product = self._product(uid, barcode)
        if product.quantity < quantity:
            raise NotEnoughStockError("Not enough stock")

        sale_time = data.get("saleTime") or to_utc_z(self._clock())
        sale = SaleRecord(
            sale_id=data["saleId"],
            barcode=barcode,
            name=product.name,
            price=product.price,
            sale_quantity=quantity,
            sale_time=parse_iso_datetime(sale_time),
        )
        return {
            f"stock/{barcode}/quantity": product.quantity - quantity,
            f"stock/{barcode}/updatedAt": sale_time,
            f"sales/{day_key(sale.sale_time)}/{sale.sale_id}": sale.to_remote(),
        }

    def _reverse_sale(self, uid: str, data: dict) -> dict:
        day, sale_id = data["day"], data["saleId"]
        raw = self._remote.get(f"users/{uid}/sales/{day}/{sale_id}")
        if raw is None:
            raise SaleNotFoundError("Sale not found")
        try:
            sale = SaleRecord.from_remote(sale_id, raw)
        except SchemaError as exc:
            raise SaleNotFoundError(f"Sale {sale_id} is unreadable: {exc}") from exc

        writes: dict = {f"sales/{day}/{sale_id}": None}
        try:
            product = self._product(uid, sale.barcode)
        except ProductNotFoundError:
            logger.warning("Sale %s removed; product %s no longer exists", sale_id, sale.barcode)
            return writes
        writes[f"stock/{sale.barcode}/quantity"] = product.quantity + sale.sale_quantity
        writes[f"stock/{sale.barcode}/updatedAt"] = to_utc_z(self._clock())
        return writes

    def _update_store(self, uid: str, data: dict) -> dict:
        return {
            "storeInfo": {
                "name": data["name"],
                "address": data.get("address", ""),
                "phone": data.get("phone", ""),
            }
        }

    def _reset_sales(self, uid: str, data: dict) -> dict:
        day = data["day"]
        writes: dict = {f"sales/{day}": None}
        if not data.get("restoreStock"):
            return writes

        bucket = self._remote.get(f"users/{uid}/sales/{day}") or {}
        sold: dict[str, int] = defaultdict(int)
        for sale_id, raw in bucket.items():
            try:
                sale = SaleRecord.from_remote(sale_id, raw)
            except SchemaError as exc:
                logger.warning("Quarantined sale %s during reset: %s", sale_id, exc)
                continue
            sold[sale.barcode] += sale.sale_quantity

        now = to_utc_z(self._clock())
        for barcode, quantity in sold.items():
            try:
                product = self._product(uid, barcode)
            except ProductNotFoundError:
                continue
            writes[f"stock/{barcode}/quantity"] = product.quantity + quantity
            writes[f"stock/{barcode}/updatedAt"] = now
        return writes
