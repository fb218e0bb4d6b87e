# Overview: Aggregations over the cached catalog and sales (revenue, low stock, top products).

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Sequence

from .data_cache import StoreDataCache, StoreSnapshot, parse_sales
from .remote_store import RemoteStore, RemoteUnavailableError
from ..schemas import Product, SaleRecord, price_to_remote
from ..time_utils import trailing_day_keys, utcnow

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5
TOP_PRODUCTS_LIMIT = 5
RECENTLY_UPDATED_WINDOW = timedelta(days=1)


class ReportError(Exception):
    """Raised when an analytics request is out of range."""
    pass


@dataclass(frozen=True)
class TopProduct:
    barcode: str
    name: str
    quantity: int
    revenue: Decimal

    def to_dict(self) -> dict:
        return {
            "barcode": self.barcode,
            "name": self.name,
            "quantity": self.quantity,
            "revenue": price_to_remote(self.revenue),
        }


def today_revenue(sales: Iterable[SaleRecord]) -> Decimal:
    return sum((sale.price * sale.sale_quantity for sale in sales), Decimal("0"))


def items_sold_today(sales: Iterable[SaleRecord]) -> int:
    return sum(sale.sale_quantity for sale in sales)


def low_stock_items(catalog: Iterable[Product], threshold: int = LOW_STOCK_THRESHOLD) -> list[Product]:
    return [product for product in catalog if product.quantity <= threshold]


def top_products(sales: Sequence[SaleRecord], n: int = TOP_PRODUCTS_LIMIT) -> list[TopProduct]:
    """
    Group by barcode, sum quantity and revenue, order by revenue descending.

    Groups keep the position of their first sale; sorted() is stable, so equal
    revenues stay in that order.
    """
    groups: dict[str, list] = {}
    for sale in sales:
        entry = groups.get(sale.barcode)
        if entry is None:
            groups[sale.barcode] = [sale.name, sale.sale_quantity, sale.line_total]
        else:
            entry[1] += sale.sale_quantity
            entry[2] += sale.line_total
    ranked = sorted(groups.items(), key=lambda item: item[1][2], reverse=True)
    return [
        TopProduct(barcode=barcode, name=name, quantity=quantity, revenue=revenue)
        for barcode, (name, quantity, revenue) in ranked[:n]
    ]


def daily_series(
    days: int,
    today: date,
    sales_by_day: Mapping[str, Sequence[SaleRecord]],
) -> list[tuple[str, Decimal]]:
    """Revenue per day for the trailing `days` dates, oldest first; missing days are 0."""
    return [
        (key, today_revenue(sales_by_day.get(key, ())))
        for key in trailing_day_keys(days, today)
    ]


def filter_products(
    catalog: Iterable[Product],
    *,
    search: str = "",
    low_stock: bool = False,
    recently_updated: bool = False,
    now: datetime | None = None,
    threshold: int = LOW_STOCK_THRESHOLD,
) -> list[Product]:
    """Catalog search: name (case-insensitive) or barcode substring, plus flags."""
    term = (search or "").strip().lower()
    cutoff = (now or utcnow()) - RECENTLY_UPDATED_WINDOW
    result = []
    for product in catalog:
        if term and term not in product.name.lower() and term not in product.barcode:
            continue
        if low_stock and product.quantity > threshold:
            continue
        if recently_updated and product.updated_at is not None and product.updated_at < cutoff:
            continue
        result.append(product)
    return result


class AnalyticsService:
    """Reads the cache on every call; nothing is maintained incrementally."""

    MAX_DAYS = 90

    def __init__(
        self,
        cache: StoreDataCache,
        remote: RemoteStore,
        *,
        low_stock_threshold: int = LOW_STOCK_THRESHOLD,
        top_limit: int = TOP_PRODUCTS_LIMIT,
        clock: Callable = utcnow,
    ) -> None:
        self._cache = cache
        self._remote = remote
        self.low_stock_threshold = low_stock_threshold
        self.top_limit = top_limit
        self._clock = clock

    def summary(self, snapshot: StoreSnapshot | None = None) -> dict:
        snapshot = snapshot or self._cache.snapshot()
        low = low_stock_items(snapshot.catalog, self.low_stock_threshold)
        return {
            "day": snapshot.day,
            "today_revenue": price_to_remote(today_revenue(snapshot.today_sales)),
            "items_sold_today": items_sold_today(snapshot.today_sales),
            "sales_count": len(snapshot.today_sales),
            "product_count": len(snapshot.catalog),
            "low_stock_threshold": self.low_stock_threshold,
            "low_stock_items": [p.to_dict() for p in low],
            "top_products": [t.to_dict() for t in top_products(snapshot.today_sales, self.top_limit)],
        }

    def daily_series(self, days: int = 7) -> dict:
        """
        Revenue for the trailing `days` dates.

        Today comes from the cache. Earlier days are read from their remote
        buckets; if the remote store is unreachable they are reported as 0
        and history_complete is False.
        """
        if days < 1 or days > self.MAX_DAYS:
            raise ReportError(f"days must be between 1 and {self.MAX_DAYS}")

        snapshot = self._cache.snapshot()
        today = self._clock().date()
        sales_by_day: dict[str, Sequence[SaleRecord]] = {}
        if snapshot.day is not None:
            sales_by_day[snapshot.day] = snapshot.today_sales

        history_complete = True
        if snapshot.uid is not None:
            try:
                for key in trailing_day_keys(days, today):
                    if key in sales_by_day:
                        continue
                    sales, _ = parse_sales(self._remote.get(f"users/{snapshot.uid}/sales/{key}"))
                    sales_by_day[key] = sales
            except RemoteUnavailableError:
                logger.info("Remote store unreachable; past days reported as zero")
                history_complete = False

        series = daily_series(days, today, sales_by_day)
        total = sum((revenue for _, revenue in series), Decimal("0"))
        return {
            "days": [{"date": key, "revenue": price_to_remote(revenue)} for key, revenue in series],
            "period_revenue": price_to_remote(total),
            "history_complete": history_complete,
        }
