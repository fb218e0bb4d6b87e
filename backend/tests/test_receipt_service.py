from datetime import datetime
from decimal import Decimal

import pytest
from scanbizz.schemas import SaleRecord
from scanbizz.services.receipt_service import (
    EmptyReceiptError,
    build_receipt,
    format_currency,
    receipt_text,
    share_link,
)


def _sale(sale_id, name, price, quantity):
    return SaleRecord(
        sale_id=sale_id,
        barcode=sale_id.upper(),
        name=name,
        price=Decimal(price),
        sale_quantity=quantity,
        sale_time=datetime(2026, 3, 1, 10, 0),
    )


@pytest.mark.parametrize("amount,expected", [
    ("0", "$0.00"),
    ("1.5", "$1.50"),
    ("1234.5", "$1,234.50"),
    ("-1", "-$1.00"),
])
def test_format_currency(amount, expected):
    assert format_currency(Decimal(amount)) == expected


def test_receipt_text_layout():
    sales = [_sale("k1", "Pencil", "1.50", 2), _sale("k2", "Cola", "10.00", 1)]

    text = receipt_text(sales, datetime(2026, 3, 1, 14, 5, 9))

    assert text.splitlines() == [
        "*RECEIPT*",
        "",
        "1. Pencil",
        "   2 x $1.50 = $3.00",
        "2. Cola",
        "   1 x $10.00 = $10.00",
        "",
        "-----------------------",
        "*TOTAL: $13.00*",
        "",
        "Date: 2026-03-01 14:05:09",
        "Thank you for your purchase!",
    ]


def test_empty_receipt_is_rejected():
    with pytest.raises(EmptyReceiptError):
        receipt_text([], datetime(2026, 3, 1))


def test_share_link_encodes_text():
    assert share_link("a b\n*") == "https://wa.me/?text=a%20b%0A%2A"


def test_build_receipt():
    sales = [_sale("k1", "Pencil", "1.50", 2)]

    receipt = build_receipt(sales, datetime(2026, 3, 1, 14, 0))

    assert receipt["total"] == "$3.00"
    assert [item["sale_id"] for item in receipt["items"]] == ["k1"]
    assert receipt["share_url"].startswith("https://wa.me/?text=%2ARECEIPT%2A")
