"""
Formatting helpers shared across Streamlit pages.
Currency formatting, status badges, period and date helpers.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, date
from typing import Iterable, Union, Mapping

from core.models.entities import Head


def format_currency(amount: Union[int, float, Decimal, str]) -> str:
    """Format amount as Indian Rupee currency string."""
    try:
        if isinstance(amount, str):
            amount = Decimal(amount)
        elif isinstance(amount, (int, float)):
            amount = Decimal(str(amount))
        return f"₹{amount:,.2f}"
    except (InvalidOperation, TypeError, ValueError):
        return f"₹{amount}"


def format_date(dt: Union[datetime, date, None]) -> str:
    """Format date for display."""
    if dt is None:
        return "N/A"
    if isinstance(dt, datetime):
        return dt.strftime("%d %b %Y, %I:%M %p")
    return dt.strftime("%d %b %Y")


def format_period(period: str) -> str:
    """'2025-01' -> 'Jan 2025'"""
    try:
        return datetime.strptime(period, "%Y-%m").strftime("%b %Y")
    except (TypeError, ValueError):
        return str(period)


def head_label(head: Head) -> str:
    return {
        Head.NOC: "NOC",
        Head.LEGACY: "Previous Outstanding",
    }.get(head, head.value.replace("_", " ").title())


def status_badge(status: str) -> str:
    """Return a display label for bill / payment status values."""
    badges = {
        "pending": "Pending",
        "partial": "Partially Paid",
        "paid": "Paid",
        "active": "Active",
        "voided": "Reversed",
    }
    return badges.get(status, status.replace("_", " ").title())


def amounts_table(amounts: Mapping[Head, Decimal]) -> list:
    """Rows for st.table / st.dataframe from a head -> amount mapping, zero heads dropped."""
    return [
        {"Head": head_label(head), "Amount": format_currency(amount)}
        for head, amount in amounts.items() if amount
    ]


def to_decimal(value: Union[float, int, str]) -> Decimal:
    """Safely convert a Streamlit number_input value to Decimal."""
    return Decimal(str(value)).quantize(Decimal("0.01"))


def breakdown_entries(rows: Iterable[dict]) -> list:
    """(head label, Decimal) pairs from the split-by-head editor; blank and zero rows dropped."""
    entries = []
    for row in rows:
        amount = row.get("Amount")
        # Empty editor cells come back as None or NaN
        if not row.get("Head") or amount is None or not amount > 0:
            continue
        entries.append((row["Head"], to_decimal(amount)))
    return entries
