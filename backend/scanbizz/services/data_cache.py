# Overview: In-memory projection of the remote catalog, today's sales and store profile.

"""
Store Data Cache

Three independent subscriptions feed the cache:

    users/<uid>/stock            -> catalog
    users/<uid>/sales/<day>      -> today's sales bucket
    users/<uid>/storeInfo        -> store profile

Each delivery is a full snapshot of its path. The cache parses it into typed
records and publishes a new immutable StoreSnapshot; readers hold whichever
StoreSnapshot they got and never observe a half-applied update. The three
streams are not joined: a snapshot may carry a newer catalog than sales
bucket for a moment.

snapshot() returns the delivered state with the actions still waiting in the
offline queue projected on top (apply_pending), so a sale or restock made
offline is visible, and checked against, before it reaches the remote store.
Listeners only ever see delivered state.

attach(uid) always resets to an empty snapshot before subscribing, so data of
a previous identity is never visible under a new one.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Sequence

from .local_storage import StorageError
from .offline_queue import ActionType, OfflineQueue, OfflineSnapshots, PendingAction
from .remote_store import RemoteStore, RemoteUnavailableError, Unsubscribe
from ..schemas import Product, SaleRecord, SchemaError, StoreProfile
from ..time_utils import day_key, parse_iso_datetime, utcnow

logger = logging.getLogger(__name__)

SnapshotListener = Callable[["StoreSnapshot"], None]


@dataclass(frozen=True)
class StoreSnapshot:
    uid: str | None = None
    day: str | None = None
    catalog: tuple[Product, ...] = ()
    today_sales: tuple[SaleRecord, ...] = ()
    store_profile: StoreProfile | None = None
    # Set while showing data restored from local storage instead of live streams
    from_offline: bool = False
    quarantined: int = 0
    # Queued actions projected onto this snapshot
    pending: int = 0

    def product(self, barcode: str) -> Product | None:
        for product in self.catalog:
            if product.barcode == barcode:
                return product
        return None

    def sale(self, sale_id: str) -> SaleRecord | None:
        for sale in self.today_sales:
            if sale.sale_id == sale_id:
                return sale
        return None


def parse_catalog(raw: Any) -> tuple[tuple[Product, ...], int]:
    """Typed products sorted by barcode, plus the count of quarantined records."""
    products = []
    rejected = 0
    for barcode, data in sorted((raw or {}).items()):
        try:
            products.append(Product.from_remote(barcode, data))
        except SchemaError as exc:
            rejected += 1
            logger.warning("Quarantined product %s: %s", barcode, exc)
    return tuple(products), rejected


def parse_sales(raw: Any) -> tuple[tuple[SaleRecord, ...], int]:
    """Typed sale records in key order (push keys sort chronologically)."""
    sales = []
    rejected = 0
    for sale_id, data in sorted((raw or {}).items()):
        try:
            sales.append(SaleRecord.from_remote(sale_id, data))
        except SchemaError as exc:
            rejected += 1
            logger.warning("Quarantined sale %s: %s", sale_id, exc)
    return tuple(sales), rejected


def parse_store_profile(raw: Any) -> StoreProfile | None:
    if raw is None:
        return None
    try:
        return StoreProfile.from_remote(raw)
    except SchemaError as exc:
        logger.warning("Quarantined store profile: %s", exc)
        return None


def apply_pending(snapshot: StoreSnapshot, actions: Sequence[PendingAction]) -> StoreSnapshot:
    """
    Project queued actions, in order, onto a delivered snapshot.

    Mirrors what RemoteMutations will write on replay: sales decrement stock
    and join today's sales, restocks add to the quantity, a negative sale
    takes its line off again, a reset empties today's sales (restoring stock
    when asked). An action that cannot be projected is logged and left out
    of the view; it stays queued regardless.
    """
    products = {product.barcode: product for product in snapshot.catalog}
    sales = list(snapshot.today_sales)
    profile = snapshot.store_profile

    def restore(sale: SaleRecord) -> None:
        product = products.get(sale.barcode)
        if product is not None:
            products[sale.barcode] = replace(product, quantity=product.quantity + sale.sale_quantity)

    for action in actions:
        data = action.payload
        try:
            if action.type is ActionType.ADD_PRODUCT:
                barcode = data["barcode"]
                products[barcode] = Product(
                    barcode=barcode,
                    name=data["name"],
                    price=Decimal(data["price"]),
                    quantity=int(data["quantity"]),
                    updated_at=parse_iso_datetime(data.get("updatedAt")),
                )

            elif action.type is ActionType.UPDATE_PRODUCT:
                product = products.get(data["barcode"])
                if product is None:
                    continue
                changes: dict = {}
                if "name" in data:
                    changes["name"] = data["name"]
                if "price" in data:
                    changes["price"] = Decimal(data["price"])
                if "quantity" in data:
                    changes["quantity"] = int(data["quantity"])
                if "restock" in data:
                    changes["quantity"] = product.quantity + int(data["restock"])
                changes["updated_at"] = parse_iso_datetime(data.get("updatedAt")) or product.updated_at
                products[product.barcode] = replace(product, **changes)

            elif action.type is ActionType.SELL_PRODUCT:
                quantity = int(data["quantity"])
                if quantity < 0:
                    for sale in [s for s in sales if s.sale_id == data["saleId"]]:
                        sales.remove(sale)
                        restore(sale)
                    continue
                product = products.get(data["barcode"])
                if product is None:
                    continue
                products[product.barcode] = replace(product, quantity=max(product.quantity - quantity, 0))
                sale_time = parse_iso_datetime(data.get("saleTime"))
                if sale_time is not None and day_key(sale_time) == snapshot.day:
                    sales.append(SaleRecord(
                        sale_id=data["saleId"],
                        barcode=product.barcode,
                        name=product.name,
                        price=product.price,
                        sale_quantity=quantity,
                        sale_time=sale_time,
                    ))

            elif action.type is ActionType.UPDATE_STORE:
                profile = StoreProfile(
                    name=data["name"],
                    address=data.get("address", ""),
                    phone=data.get("phone", ""),
                )

            elif action.type is ActionType.RESET_SALES:
                if data.get("day") != snapshot.day:
                    continue
                if data.get("restoreStock"):
                    for sale in sales:
                        restore(sale)
                sales = []

        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            logger.warning("Queued %s (%s) left out of the cached view: %s",
                           action.type.value, action.action_id, exc)

    return replace(
        snapshot,
        catalog=tuple(sorted(products.values(), key=lambda p: p.barcode)),
        today_sales=tuple(sales),
        store_profile=profile,
        pending=len(actions),
    )


class StoreDataCache:
    def __init__(
        self,
        remote: RemoteStore,
        offline: OfflineSnapshots,
        *,
        pending: OfflineQueue | None = None,
        default_store_name: str = "My Store",
        clock: Callable = utcnow,
    ) -> None:
        self._remote = remote
        self._offline = offline
        self._pending = pending
        self._default_profile = StoreProfile(name=default_store_name)
        self._clock = clock
        self._lock = threading.RLock()
        self._unsubscribers: list[Unsubscribe] = []
        self._listeners: list[SnapshotListener] = []
        self._snapshot = StoreSnapshot(store_profile=self._default_profile)
        self._sales_unsubscribe: Unsubscribe | None = None
        # Rejected record counts per stream; the snapshot carries their sum
        self._rejected = {"stock": 0, "sales": 0}

    # ---- publishing ----

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def _publish(self, snapshot: StoreSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
        for listener in self._listeners:
            listener(snapshot)

    def _update(self, uid: str, **changes) -> None:
        with self._lock:
            current = self._snapshot
            if current.uid != uid:
                # Delivery for an identity that is no longer attached
                return
            self._publish(replace(current, **changes))

    def snapshot(self) -> StoreSnapshot:
        """Delivered state plus whatever the offline queue still holds for this identity."""
        self._roll_day()
        current = self._snapshot
        if self._pending is None or current.uid is None or self._pending.uid != current.uid:
            return current
        try:
            actions = self._pending.drain()
        except StorageError as exc:
            logger.warning("Offline queue unreadable; showing delivered state only: %s", exc)
            return current
        if not actions:
            return current
        return apply_pending(current, actions)

    # ---- lifecycle ----

    def reset(self) -> None:
        with self._lock:
            for unsubscribe in self._unsubscribers:
                unsubscribe()
            self._unsubscribers = []
            self._sales_unsubscribe = None
            self._rejected = {"stock": 0, "sales": 0}
            self._publish(StoreSnapshot(store_profile=self._default_profile))

    def attach(self, uid: str | None) -> None:
        """Reset, then subscribe the three streams for `uid` (None only resets)."""
        self.reset()
        if uid is None:
            return
        day = day_key(self._clock())
        self._publish(StoreSnapshot(uid=uid, day=day, store_profile=self._default_profile))
        try:
            self._unsubscribers.append(
                self._remote.subscribe(f"users/{uid}/storeInfo", lambda raw: self._on_store_info(uid, raw))
            )
            self._unsubscribers.append(
                self._remote.subscribe(f"users/{uid}/stock", lambda raw: self._on_stock(uid, raw))
            )
            self._subscribe_sales(uid, day)
        except RemoteUnavailableError:
            logger.info("Remote store unreachable; loading offline snapshot for %s", uid)
            self.reset()
            self._load_offline(uid, day)

    def refresh(self) -> None:
        """Re-attach the current identity (used when connectivity returns)."""
        uid = self._snapshot.uid
        if uid is not None:
            self.attach(uid)

    def _subscribe_sales(self, uid: str, day: str) -> None:
        if self._sales_unsubscribe is not None:
            self._sales_unsubscribe()
            self._unsubscribers.remove(self._sales_unsubscribe)
        unsubscribe = self._remote.subscribe(
            f"users/{uid}/sales/{day}", lambda raw: self._on_sales(uid, day, raw)
        )
        self._sales_unsubscribe = unsubscribe
        self._unsubscribers.append(unsubscribe)

    def _roll_day(self) -> None:
        current = self._snapshot
        if current.uid is None or current.from_offline:
            return
        today = day_key(self._clock())
        if current.day == today:
            return
        self._update(current.uid, day=today, today_sales=())
        try:
            self._subscribe_sales(current.uid, today)
        except RemoteUnavailableError:
            logger.info("Could not move sales subscription to %s while offline", today)

    def _load_offline(self, uid: str, day: str) -> None:
        saved = self._offline.load(uid)
        catalog, rejected_products = parse_catalog(saved["stock"])
        sales_entry = saved["sales"] or {}
        bucket = sales_entry.get("bucket") if sales_entry.get("day") == day else None
        sales, rejected_sales = parse_sales(bucket)
        profile = parse_store_profile(saved["store_info"]) or self._default_profile
        self._publish(StoreSnapshot(
            uid=uid,
            day=day,
            catalog=catalog,
            today_sales=sales,
            store_profile=profile,
            from_offline=True,
            quarantined=rejected_products + rejected_sales,
        ))

    # ---- stream handlers ----

    def _save_offline(self, uid: str, **kwargs) -> None:
        try:
            self._offline.save(uid, **kwargs)
        except StorageError as exc:
            logger.warning("Offline snapshot not saved for %s: %s", uid, exc)

    def _on_stock(self, uid: str, raw: Any) -> None:
        catalog, rejected = parse_catalog(raw)
        self._rejected["stock"] = rejected
        self._update(uid, catalog=catalog, quarantined=sum(self._rejected.values()))
        self._save_offline(uid, stock=raw or {})

    def _on_sales(self, uid: str, day: str, raw: Any) -> None:
        if self._snapshot.day != day:
            return
        sales, rejected = parse_sales(raw)
        self._rejected["sales"] = rejected
        self._update(uid, today_sales=sales, quarantined=sum(self._rejected.values()))
        self._save_offline(uid, sales={"day": day, "bucket": raw or {}})

    def _on_store_info(self, uid: str, raw: Any) -> None:
        profile = parse_store_profile(raw) or self._default_profile
        self._update(uid, store_profile=profile)
        if raw is not None:
            self._save_offline(uid, store_info=raw)
