from datetime import date, datetime
from decimal import Decimal

from scanbizz.schemas import Product, SaleRecord
from scanbizz.services.analytics_service import (
    AnalyticsService,
    daily_series,
    filter_products,
    items_sold_today,
    low_stock_items,
    today_revenue,
    top_products,
)

from conftest import FixedClock


def _sale(sale_id, barcode, quantity, price, name=None, when=datetime(2026, 3, 1, 10, 0)):
    return SaleRecord(
        sale_id=sale_id,
        barcode=barcode,
        name=name or barcode,
        price=Decimal(price),
        sale_quantity=quantity,
        sale_time=when,
    )


def _product(barcode, quantity, updated_at=None, name=None):
    return Product(
        barcode=barcode,
        name=name or f"Item {barcode}",
        price=Decimal("1.00"),
        quantity=quantity,
        updated_at=updated_at,
    )


def test_revenue_and_items_sold():
    sales = [_sale("1", "A", 2, "10"), _sale("2", "B", 1, "50"), _sale("3", "A", 1, "10")]

    assert today_revenue(sales) == Decimal("80")
    assert items_sold_today(sales) == 4
    assert today_revenue([]) == Decimal("0")
    assert items_sold_today([]) == 0


def test_top_products_groups_and_orders_by_revenue():
    sales = [_sale("1", "A", 2, "10"), _sale("2", "B", 1, "50"), _sale("3", "A", 1, "10")]

    result = top_products(sales)

    assert [(t.barcode, t.revenue, t.quantity) for t in result] == [
        ("B", Decimal("50"), 1),
        ("A", Decimal("30"), 3),
    ]


def test_top_products_ties_keep_first_seen_order_and_limit():
    sales = [_sale(str(i), code, 1, "5") for i, code in enumerate("CABDEF")]

    result = top_products(sales, n=3)

    assert [t.barcode for t in result] == ["C", "A", "B"]


def test_low_stock_boundary_is_inclusive():
    catalog = [_product("five", 5), _product("six", 6), _product("zero", 0)]

    assert [p.barcode for p in low_stock_items(catalog)] == ["five", "zero"]


def test_daily_series_zero_fills_oldest_first():
    sales_by_day = {
        "2026-03-01": [_sale("1", "A", 2, "3.50")],
        "2026-02-27": [_sale("2", "B", 1, "10")],
    }

    series = daily_series(4, date(2026, 3, 1), sales_by_day)

    assert series == [
        ("2026-02-26", Decimal("0")),
        ("2026-02-27", Decimal("10")),
        ("2026-02-28", Decimal("0")),
        ("2026-03-01", Decimal("7.00")),
    ]


def test_filter_products():
    now = datetime(2026, 3, 1, 12, 0)
    catalog = [
        _product("4006381", 20, updated_at=datetime(2026, 2, 1), name="Pencil"),
        _product("5000112", 2, updated_at=datetime(2026, 3, 1, 9, 0), name="Cola"),
        _product("7622210", 40, updated_at=datetime(2026, 3, 1, 8, 0), name="Chocolate"),
    ]

    assert [p.name for p in filter_products(catalog, search="co", now=now)] == ["Cola", "Chocolate"]
    assert [p.name for p in filter_products(catalog, search="4006", now=now)] == ["Pencil"]
    assert [p.name for p in filter_products(catalog, low_stock=True, now=now)] == ["Cola"]
    assert [p.name for p in filter_products(catalog, recently_updated=True, now=now)] == ["Cola", "Chocolate"]


def _seed_day(services, uid, day, sale_id, quantity, price):
    services.remote.set(f"users/{uid}/sales/{day}/{sale_id}", {
        "barcode": "A",
        "name": "Tea",
        "price": price,
        "saleQuantity": quantity,
        "saleTime": f"{day}T10:00:00.000Z",
    })


def test_service_summary_reads_snapshot(services, authorized):
    today = services.cache.snapshot().day
    services.remote.set(f"users/{authorized.uid}/stock/A", {"name": "Tea", "price": "2.50", "quantity": 4})
    _seed_day(services, authorized.uid, today, "s1", 2, "2.50")

    summary = services.analytics.summary()

    assert summary["today_revenue"] == "5.00"
    assert summary["items_sold_today"] == 2
    assert [p["barcode"] for p in summary["low_stock_items"]] == ["A"]
    assert summary["top_products"] == [{"barcode": "A", "name": "Tea", "quantity": 2, "revenue": "5.00"}]


def test_service_daily_series_reads_history(services, authorized):
    clock = FixedClock(datetime(2026, 3, 3, 9, 0))
    analytics = AnalyticsService(services.cache, services.remote, clock=clock)
    _seed_day(services, authorized.uid, "2026-03-01", "s1", 1, "4.00")
    _seed_day(services, authorized.uid, "2026-03-02", "s2", 3, "1.00")

    result = analytics.daily_series(3)

    assert result["history_complete"] is True
    assert [d["revenue"] for d in result["days"]][:2] == ["4.00", "3.00"]
    assert [d["date"] for d in result["days"]] == ["2026-03-01", "2026-03-02", "2026-03-03"]


def test_service_daily_series_offline_flags_incomplete(services, authorized):
    clock = FixedClock(datetime(2026, 3, 3, 9, 0))
    analytics = AnalyticsService(services.cache, services.remote, clock=clock)
    _seed_day(services, authorized.uid, "2026-03-01", "s1", 1, "4.00")
    services.connectivity.set_online(False)

    result = analytics.daily_series(3)

    assert result["history_complete"] is False
    assert [d["revenue"] for d in result["days"]][:2] == ["0.00", "0.00"]
