from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any


# Maximum price: $9,999,999.99
# This prevents nonsensical prices from reaching the remote store
MAX_PRICE = Decimal("9999999.99")

PIN_PATTERN = re.compile(r"^\d+$")

# Characters that cannot appear in a remote path segment
BARCODE_FORBIDDEN = frozenset("/.#$[]")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., not enough stock)."""


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required: fields that must be present and non-empty
    """
    writable_fields: set[str]
    required: set[str] = frozenset()  # type: ignore[assignment]


PRODUCT_POLICY = PayloadPolicy(
    writable_fields={"barcode", "name", "price", "quantity"},
    required={"barcode", "name", "price", "quantity"},
)

PRODUCT_EDIT_POLICY = PayloadPolicy(
    writable_fields={"name", "price", "quantity"},
)

STORE_POLICY = PayloadPolicy(
    writable_fields={"name", "address", "phone"},
    required={"name"},
)


def coerce_int(field: str, value: Any) -> int:
    """Strict integer coercion that rejects floats, bools and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_price(field: str, value: Any) -> Decimal:
    """Parse a price into a Decimal with two places; must be greater than 0."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not price.is_finite():
        raise ValidationError(f"{field} must be a number")
    if price <= 0:
        raise ValidationError("Price must be greater than 0")
    if price > MAX_PRICE:
        raise ValidationError(f"{field} exceeds maximum allowed ({MAX_PRICE})")
    return price.quantize(Decimal("0.01"))


def coerce_text(field: str, value: Any, *, max_length: int = 255) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def validate_payload(*, payload: dict, policy: PayloadPolicy, partial: bool) -> dict:
    """
    Validates + normalizes incoming JSON against a policy allowlist.

    partial=False: create semantics (enforce policy.required)
    partial=True: update semantics (only validate provided keys)
    """
    if not isinstance(payload, dict):
        raise ValidationError("JSON body must be an object")

    unknown = set(payload) - policy.writable_fields
    if unknown:
        raise ValidationError(f"Unknown or read-only fields: {', '.join(sorted(unknown))}")

    if not partial:
        missing = [k for k in sorted(policy.required) if payload.get(k) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    patch: dict = {}
    for key, value in payload.items():
        if key == "price":
            patch[key] = coerce_price(key, value)
        elif key == "quantity":
            patch[key] = coerce_int(key, value)
        else:
            patch[key] = coerce_text(key, value)
    return patch


def enforce_rules_product(patch: dict) -> None:
    if "barcode" in patch and not patch["barcode"]:
        raise ValidationError("Barcode is required")
    if "name" in patch and not patch["name"]:
        raise ValidationError("Product name is required")
    if "quantity" in patch and patch["quantity"] < 0:
        raise ValidationError("Quantity must be 0 or greater")
    if "barcode" in patch and any(c in patch["barcode"] for c in BARCODE_FORBIDDEN):
        raise ValidationError("Barcode must not contain any of: / . # $ [ ]")


def enforce_rules_store(patch: dict) -> None:
    if "name" in patch and not patch["name"]:
        raise ValidationError("Store name is required")


def validate_sale_quantity(value: Any) -> int:
    quantity = coerce_int("quantity", value)
    if quantity <= 0:
        raise ValidationError("quantity must be greater than 0")
    return quantity


def validate_restock_quantity(value: Any) -> int:
    quantity = coerce_int("quantity", value)
    if quantity <= 0:
        raise ValidationError("Restock quantity must be greater than 0")
    return quantity


def validate_pin(pin: Any, *, length: int) -> str:
    """A PIN is exactly `length` ASCII digits."""
    if not isinstance(pin, str) or len(pin) != length or not PIN_PATTERN.match(pin) or not pin.isascii():
        raise ValidationError(f"PIN must be exactly {length} digits")
    return pin
