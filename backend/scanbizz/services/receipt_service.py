# Overview: Plain-text receipt for today's open sales and its share link.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Sequence
from urllib.parse import quote

from ..schemas import SaleRecord

SHARE_URL = "https://wa.me/?text="
SEPARATOR = "-----------------------"


class EmptyReceiptError(ValueError):
    """Raised when a receipt is requested with no items."""
    pass


def format_currency(amount: Decimal) -> str:
    """$1,234.50 style; negative amounts as -$1.00."""
    amount = amount.quantize(Decimal("0.01"))
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def receipt_text(sales: Sequence[SaleRecord], now: datetime) -> str:
    """
    Numbered lines, "qty x price = line total", separator, total, timestamp
    and a thank-you line. `now` is rendered as given.
    """
    if not sales:
        raise EmptyReceiptError("No items in the receipt")

    lines = ["*RECEIPT*", ""]
    total = Decimal("0")
    for index, sale in enumerate(sales, start=1):
        lines.append(f"{index}. {sale.name}")
        lines.append(
            f"   {sale.sale_quantity} x {format_currency(sale.price)} = {format_currency(sale.line_total)}"
        )
        total += sale.line_total

    lines.append("")
    lines.append(SEPARATOR)
    lines.append(f"*TOTAL: {format_currency(total)}*")
    lines.append("")
    lines.append(f"Date: {now.strftime('%Y-%m-%d %H:%M:%S')}")
    lines.append("Thank you for your purchase!")
    return "\n".join(lines)


def share_link(text: str) -> str:
    return SHARE_URL + quote(text, safe="")


def build_receipt(sales: Sequence[SaleRecord], now: datetime) -> dict:
    text = receipt_text(sales, now)
    return {
        "items": [sale.to_dict() for sale in sales],
        "total": format_currency(sum((s.line_total for s in sales), Decimal("0"))),
        "text": text,
        "share_url": share_link(text),
    }
