# invoice_model.py
"""
Invoice records and the money math on top of them.

Records are frozen: every edit builds new objects, which is what lets the
store hand out snapshots that observers can compare by identity.
"""
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Tuple

TAX_RATES: Tuple[int, ...] = (5, 12, 18, 28)
DEFAULT_TAX_RATE = 18


# ---------- Helpers ----------
def new_invoice_id() -> str:
    return uuid.uuid4().hex


def to_number(value: Any, fallback: float = 0.0) -> float:
    """
    Lenient numeric coercion for user and spreadsheet input.
    Missing, non-numeric, NaN and infinite values all become `fallback`.
    """
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        num = float(value)
    else:
        text = str(value).strip()
        if not text:
            return fallback
        try:
            num = float(text)
        except ValueError:
            return fallback
    return num if math.isfinite(num) else fallback


def coerce_tax_rate(value: Any) -> int:
    """Return the matching entry of TAX_RATES or raise ValueError."""
    num = to_number(value, fallback=math.nan)
    for rate in TAX_RATES:
        if num == rate:
            return rate
    raise ValueError(f"Tax rate must be one of {', '.join(map(str, TAX_RATES))}")


def parse_user_date(s: str) -> datetime:
    """
    Accepts YYYY-MM-DD, M/D/YYYY, M/D/YY or M/D (current year).
    Raises ValueError for anything else.
    """
    s = s.strip()
    if not s:
        raise ValueError("Empty date")
    if "-" in s:
        return datetime.strptime(s, "%Y-%m-%d")
    parts = s.split('/')
    now = datetime.now()
    if len(parts) == 2:
        m, d = map(int, parts)
        y = now.year
    elif len(parts) == 3:
        m, d, y_raw = map(int, parts)
        y = 2000 + y_raw if y_raw < 100 else y_raw
    else:
        raise ValueError("Use YYYY-MM-DD, M/D, M/D/YY, or M/D/YYYY")
    return datetime(y, m, d)


def normalize_date(value: Any) -> str:
    """
    Date cell/field -> ISO string where possible.
    Unparseable text is kept as typed; the date field is free text.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        return ""
    try:
        return parse_user_date(text).date().isoformat()
    except ValueError:
        return text


# ---------- Domain ----------
@dataclass(frozen=True)
class LineItem:
    description: str = ""
    quantity: float = 1
    unit_price: float = 0

    @property
    def total(self) -> float:
        return line_total(self)


def blank_item() -> LineItem:
    return LineItem(description="", quantity=1, unit_price=0)


@dataclass(frozen=True)
class Invoice:
    client: str = ""
    invoice_number: str = ""
    date: str = ""
    tax_rate_percent: int = DEFAULT_TAX_RATE
    items: Tuple[LineItem, ...] = field(default_factory=lambda: (blank_item(),))
    invoice_id: str = field(default_factory=new_invoice_id)


def default_invoice() -> Invoice:
    """Empty client/number/date, 18% tax, one blank item."""
    return Invoice()


# ---------- Financial calculator ----------
# Full float precision throughout; rounding happens in format_money only.

def line_total(item: LineItem) -> float:
    return item.quantity * item.unit_price


def subtotal(items: Iterable[LineItem]) -> float:
    return sum((line_total(it) for it in items), 0.0)


def tax_amount(invoice: Invoice) -> float:
    return subtotal(invoice.items) * invoice.tax_rate_percent / 100


def grand_total(invoice: Invoice) -> float:
    return subtotal(invoice.items) + tax_amount(invoice)


def total_revenue(invoices: Iterable[Invoice]) -> float:
    return sum((grand_total(inv) for inv in invoices), 0.0)


def format_money(value: float, thousands: bool = True) -> str:
    return f"{value:,.2f}" if thousands else f"{value:.2f}"


def format_rate(rate: float) -> str:
    """18 -> '18%', 12.5 -> '12.5%'."""
    return f"{rate:g}%"


# ---------- Dashboard ----------
@dataclass(frozen=True)
class DashboardSummary:
    invoice_count: int
    total_revenue: float


def summarize(invoices: Iterable[Invoice]) -> DashboardSummary:
    """Recomputed from scratch on every call; collections are small."""
    invoices = tuple(invoices)
    return DashboardSummary(invoice_count=len(invoices), total_revenue=total_revenue(invoices))
