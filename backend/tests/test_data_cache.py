from datetime import datetime
from decimal import Decimal

from scanbizz.schemas import Product, SaleRecord, StoreProfile
from scanbizz.services.data_cache import StoreDataCache, StoreSnapshot, apply_pending, parse_catalog
from scanbizz.services.local_storage import LocalStorage
from scanbizz.services.offline_queue import ActionType, OfflineSnapshots, PendingAction
from scanbizz.services.remote_store import MemoryRemoteStore

from conftest import FixedClock


def _cache(remote, clock=None):
    return StoreDataCache(
        remote,
        OfflineSnapshots(LocalStorage()),
        clock=clock or FixedClock(datetime(2026, 3, 1, 9, 0)),
    )


def test_attach_projects_three_streams(app):
    remote = MemoryRemoteStore({
        "users/u1/stock/b": {"name": "Bread", "price": "2.00", "quantity": 4},
        "users/u1/stock/a": {"name": "Apple", "price": "0.50", "quantity": 40},
        "users/u1/sales/2026-03-01/k1": {
            "barcode": "a", "name": "Apple", "price": "0.50", "saleQuantity": 2,
            "saleTime": "2026-03-01T08:00:00.000Z",
        },
        "users/u1/sales/2026-02-28/k0": {
            "barcode": "b", "name": "Bread", "price": "2.00", "saleQuantity": 1,
            "saleTime": "2026-02-28T08:00:00.000Z",
        },
        "users/u1/storeInfo": {"name": "Shop", "address": "", "phone": ""},
    })
    cache = _cache(remote)

    cache.attach("u1")
    snapshot = cache.snapshot()

    assert [p.barcode for p in snapshot.catalog] == ["a", "b"]
    assert [s.sale_id for s in snapshot.today_sales] == ["k1"]
    assert snapshot.store_profile.name == "Shop"
    assert snapshot.day == "2026-03-01"
    assert snapshot.from_offline is False


def test_snapshots_are_replaced_not_mutated(app):
    remote = MemoryRemoteStore({"users/u1/stock/a": {"name": "Apple", "price": "0.50", "quantity": 40}})
    cache = _cache(remote)
    cache.attach("u1")
    before = cache.snapshot()

    remote.set("users/u1/stock/a/quantity", 39)
    after = cache.snapshot()

    assert before is not after
    assert before.product("a").quantity == 40
    assert after.product("a").quantity == 39


def test_listeners_receive_published_snapshots(app):
    remote = MemoryRemoteStore()
    cache = _cache(remote)
    seen = []
    cache.add_listener(seen.append)

    cache.attach("u1")
    remote.set("users/u1/storeInfo", {"name": "Shop"})

    assert all(isinstance(s, StoreSnapshot) for s in seen)
    assert seen[-1].store_profile.name == "Shop"


def test_malformed_records_are_quarantined(app):
    remote = MemoryRemoteStore({
        "users/u1/stock/ok": {"name": "Apple", "price": "0.50", "quantity": 1},
        "users/u1/stock/no-name": {"price": "1.00", "quantity": 1},
        "users/u1/stock/neg": {"name": "X", "price": "1.00", "quantity": -3},
        "users/u1/stock/text-price": {"name": "Y", "price": "lots", "quantity": 1},
    })
    cache = _cache(remote)

    cache.attach("u1")
    snapshot = cache.snapshot()

    assert [p.barcode for p in snapshot.catalog] == ["ok"]
    assert snapshot.quarantined == 3


def test_attach_resets_previous_identity(app):
    remote = MemoryRemoteStore({
        "users/u1/stock/a": {"name": "Apple", "price": "0.50", "quantity": 1},
        "users/u2/storeInfo": {"name": "Other"},
    })
    cache = _cache(remote)
    cache.attach("u1")

    cache.attach("u2")
    remote.set("users/u1/stock/b", {"name": "Bread", "price": "2.00", "quantity": 1})
    snapshot = cache.snapshot()

    assert snapshot.uid == "u2"
    assert snapshot.catalog == ()
    assert snapshot.store_profile.name == "Other"
    assert remote.subscription_count() == 3


def test_offline_attach_uses_saved_snapshot(app):
    remote = MemoryRemoteStore({"users/u1/stock/a": {"name": "Apple", "price": "0.50", "quantity": 7}})
    cache = _cache(remote)
    cache.attach("u1")
    cache.reset()

    remote.online = False
    restarted = _cache(remote)
    restarted.attach("u1")
    snapshot = restarted.snapshot()

    assert snapshot.from_offline is True
    assert snapshot.product("a").quantity == 7


def test_day_rollover_moves_sales_subscription(app):
    clock = FixedClock(datetime(2026, 3, 1, 23, 0))
    remote = MemoryRemoteStore({
        "users/u1/sales/2026-03-01/k1": {
            "barcode": "a", "name": "Apple", "price": "0.50", "saleQuantity": 2,
            "saleTime": "2026-03-01T22:00:00.000Z",
        },
    })
    cache = _cache(remote, clock)
    cache.attach("u1")
    assert len(cache.snapshot().today_sales) == 1

    clock.advance(hours=2)
    snapshot = cache.snapshot()

    assert snapshot.day == "2026-03-02"
    assert snapshot.today_sales == ()


def test_parse_catalog_empty():
    assert parse_catalog(None) == ((), 0)


def test_apply_pending_projects_queued_actions():
    snapshot = StoreSnapshot(
        uid="u1",
        day="2026-03-01",
        catalog=(Product("a", "Apple", Decimal("0.50"), 10),),
        today_sales=(SaleRecord("k1", "a", "Apple", Decimal("0.50"), 2, datetime(2026, 3, 1, 8, 0)),),
        store_profile=StoreProfile("Shop"),
    )
    actions = [
        PendingAction(ActionType.SELL_PRODUCT, {
            "barcode": "a", "quantity": 3, "saleId": "k2", "saleTime": "2026-03-01T09:30:00.000Z",
        }),
        PendingAction(ActionType.UPDATE_PRODUCT, {"barcode": "a", "restock": 5, "updatedAt": "2026-03-01T09:31:00.000Z"}),
        PendingAction(ActionType.SELL_PRODUCT, {"barcode": "a", "quantity": -2, "saleId": "k1", "day": "2026-03-01"}),
        PendingAction(ActionType.UPDATE_STORE, {"name": "Corner Shop", "address": "", "phone": ""}),
    ]

    projected = apply_pending(snapshot, actions)

    assert projected.product("a").quantity == 14
    assert [s.sale_id for s in projected.today_sales] == ["k2"]
    assert projected.store_profile.name == "Corner Shop"
    assert projected.pending == 4
    assert snapshot.product("a").quantity == 10

    reset = apply_pending(projected, [
        PendingAction(ActionType.RESET_SALES, {"day": "2026-03-01", "restoreStock": True}),
    ])

    assert reset.today_sales == ()
    assert reset.product("a").quantity == 17


def test_apply_pending_leaves_out_unknown_products():
    snapshot = StoreSnapshot(uid="u1", day="2026-03-01")

    projected = apply_pending(snapshot, [
        PendingAction(ActionType.SELL_PRODUCT, {
            "barcode": "zz", "quantity": 1, "saleId": "k9", "saleTime": "2026-03-01T09:30:00.000Z",
        }),
    ])

    assert projected.catalog == ()
    assert projected.today_sales == ()
    assert projected.pending == 1
