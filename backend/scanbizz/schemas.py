# Overview: Typed records for the entities persisted in the remote keyed store.

"""
Schema types for remote payloads.

The remote store hands back loosely typed JSON trees. Every record is parsed
into one of the frozen dataclasses below at the service boundary; a record
that does not parse raises SchemaError so callers can quarantine it instead of
letting missing fields leak into aggregation.

Remote field names follow the stored layout (camelCase); Python attributes
are snake_case. to_remote() and from_remote() are the only translation points.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from .time_utils import parse_iso_datetime, to_utc_z


class SchemaError(ValueError):
    """Raised when a remote record is malformed."""


def _require(data: Any, key: str) -> Any:
    if not isinstance(data, dict):
        raise SchemaError("record must be an object")
    if key not in data or data[key] is None:
        raise SchemaError(f"missing field {key!r}")
    return data[key]


def _decimal(value: Any, key: str) -> Decimal:
    if isinstance(value, bool):
        raise SchemaError(f"{key} must be numeric")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise SchemaError(f"{key} must be numeric")
    if not result.is_finite() or result < 0:
        raise SchemaError(f"{key} must be a non-negative number")
    return result


def _int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise SchemaError(f"{key} must be an integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise SchemaError(f"{key} must be an integer")
    return value


def _timestamp(value: Any, key: str) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise SchemaError(f"{key} must be an ISO-8601 string")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise SchemaError(f"{key} must be an ISO-8601 string")


def price_to_remote(price: Decimal) -> str:
    return format(price.quantize(Decimal("0.01")), "f")


@dataclass(frozen=True)
class Product:
    barcode: str
    name: str
    price: Decimal
    quantity: int
    updated_at: datetime | None = None

    @classmethod
    def from_remote(cls, barcode: str, data: Any) -> "Product":
        name = _require(data, "name")
        if not isinstance(name, str):
            raise SchemaError("name must be a string")
        quantity = _int(_require(data, "quantity"), "quantity")
        if quantity < 0:
            raise SchemaError("quantity must be 0 or greater")
        return cls(
            barcode=barcode,
            name=name,
            price=_decimal(_require(data, "price"), "price"),
            quantity=quantity,
            updated_at=_timestamp(data.get("updatedAt"), "updatedAt"),
        )

    def to_remote(self) -> dict:
        return {
            "name": self.name,
            "price": price_to_remote(self.price),
            "quantity": self.quantity,
            "updatedAt": to_utc_z(self.updated_at),
        }

    def to_dict(self) -> dict:
        return {
            "barcode": self.barcode,
            "name": self.name,
            "price": price_to_remote(self.price),
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


@dataclass(frozen=True)
class SaleRecord:
    sale_id: str
    barcode: str
    name: str
    price: Decimal
    sale_quantity: int
    sale_time: datetime

    @property
    def line_total(self) -> Decimal:
        return self.price * self.sale_quantity

    @classmethod
    def from_remote(cls, sale_id: str, data: Any) -> "SaleRecord":
        barcode = _require(data, "barcode")
        name = _require(data, "name")
        if not isinstance(barcode, str) or not isinstance(name, str):
            raise SchemaError("barcode and name must be strings")
        sale_quantity = _int(_require(data, "saleQuantity"), "saleQuantity")
        if sale_quantity <= 0:
            raise SchemaError("saleQuantity must be greater than 0")
        sale_time = _timestamp(_require(data, "saleTime"), "saleTime")
        return cls(
            sale_id=sale_id,
            barcode=barcode,
            name=name,
            price=_decimal(_require(data, "price"), "price"),
            sale_quantity=sale_quantity,
            sale_time=sale_time,
        )

    def to_remote(self) -> dict:
        return {
            "barcode": self.barcode,
            "name": self.name,
            "price": price_to_remote(self.price),
            "saleQuantity": self.sale_quantity,
            "saleTime": to_utc_z(self.sale_time),
        }

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "barcode": self.barcode,
            "name": self.name,
            "price": price_to_remote(self.price),
            "sale_quantity": self.sale_quantity,
            "sale_time": to_utc_z(self.sale_time),
            "line_total": price_to_remote(self.line_total),
        }


@dataclass(frozen=True)
class StoreProfile:
    name: str
    address: str = ""
    phone: str = ""

    @classmethod
    def from_remote(cls, data: Any) -> "StoreProfile":
        name = _require(data, "name")
        if not isinstance(name, str) or not name.strip():
            raise SchemaError("store name must be a non-empty string")
        return cls(
            name=name,
            address=str(data.get("address") or ""),
            phone=str(data.get("phone") or ""),
        )

    def to_remote(self) -> dict:
        return {"name": self.name, "address": self.address, "phone": self.phone}

    def to_dict(self) -> dict:
        return self.to_remote()
