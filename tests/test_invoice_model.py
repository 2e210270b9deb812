from __future__ import annotations

import math

import pytest

from invoice_model import (
    DashboardSummary,
    Invoice,
    LineItem,
    coerce_tax_rate,
    default_invoice,
    format_money,
    grand_total,
    line_total,
    normalize_date,
    subtotal,
    summarize,
    tax_amount,
    to_number,
    total_revenue,
)


def _invoice(items, rate=18):
    return Invoice(client="Acme", invoice_number="A1", tax_rate_percent=rate, items=tuple(items))


def test_line_total_and_subtotal():
    items = [LineItem("Widget", 2, 10), LineItem("Gadget", 1, 5)]
    assert line_total(items[0]) == 20
    assert items[1].total == 5
    assert subtotal(items) == 25


def test_subtotal_is_order_independent():
    items = [LineItem("a", 3, 0.1), LineItem("b", 7, 1.15), LineItem("c", 0.5, 99.99), LineItem("d", 11, 0.01)]
    expected = math.fsum(it.quantity * it.unit_price for it in items)
    assert subtotal(items) == pytest.approx(expected)
    assert subtotal(reversed(items)) == pytest.approx(expected)


@pytest.mark.parametrize("rate", [5, 12, 18, 28])
def test_grand_total_has_no_intermediate_rounding(rate):
    inv = _invoice([LineItem("x", 3, 33.333), LineItem("y", 1.5, 0.07)], rate)
    sub = subtotal(inv.items)
    assert tax_amount(inv) == sub * rate / 100
    assert grand_total(inv) == sub + sub * rate / 100


def test_scenario_totals():
    inv = _invoice([LineItem("Widget", 2, 10), LineItem("Gadget", 1, 5)])
    assert tax_amount(inv) == 4.5
    assert grand_total(inv) == 29.5


def test_total_revenue_and_summary():
    a = _invoice([LineItem("x", 1, 100)], 5)
    b = _invoice([LineItem("y", 2, 50)], 28)
    assert total_revenue([a, b]) == 105 + 128
    assert summarize((a, b)) == DashboardSummary(invoice_count=2, total_revenue=233)
    assert summarize(()) == DashboardSummary(invoice_count=0, total_revenue=0)


def test_default_invoice_shape():
    inv = default_invoice()
    assert (inv.client, inv.invoice_number, inv.date) == ("", "", "")
    assert inv.tax_rate_percent == 18
    assert inv.items == (LineItem("", 1, 0),)
    assert inv.invoice_id
    assert default_invoice().invoice_id != inv.invoice_id


@pytest.mark.parametrize("raw, expected", [
    (2, 2.0),
    ("3.5", 3.5),
    (" 4 ", 4.0),
    ("abc", 0.0),
    ("", 0.0),
    (None, 0.0),
    (float("nan"), 0.0),
    ("inf", 0.0),
    (True, 0.0),
])
def test_to_number_is_lenient(raw, expected):
    assert to_number(raw) == expected


def test_to_number_custom_fallback():
    assert to_number("x", fallback=1) == 1


def test_coerce_tax_rate():
    assert coerce_tax_rate("12") == 12
    assert coerce_tax_rate(28.0) == 28
    assert type(coerce_tax_rate(28.0)) is int
    assert type(coerce_tax_rate("5")) is int
    with pytest.raises(ValueError):
        coerce_tax_rate(10)
    with pytest.raises(ValueError):
        coerce_tax_rate("eighteen")


def test_normalize_date():
    assert normalize_date("2024-01-31") == "2024-01-31"
    assert normalize_date("1/31/2024") == "2024-01-31"
    assert normalize_date("1/31/24") == "2024-01-31"
    assert normalize_date("next tuesday") == "next tuesday"
    assert normalize_date(None) == ""


def test_format_money_rounds_at_display_only():
    assert format_money(4.5) == "4.50"
    assert format_money(1234.567) == "1,234.57"
    assert format_money(1234.567, thousands=False) == "1234.57"
