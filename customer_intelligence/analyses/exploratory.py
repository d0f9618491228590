"""Exploratory snapshot of a cleaned transaction set.

Answers the first questions asked of a new dataset:
- How much revenue, from how many customers and transactions?
- What is the average transaction value?
- How do sales move day to day, month to month, and across the week?
- How concentrated is revenue among the top customers?
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Sequence

from customer_intelligence.foundation.transactions import CanonicalTransaction

DEFAULT_TOP_CUSTOMERS = 10
WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


@dataclass(frozen=True)
class ExploratorySummary:
    """Headline statistics and sales series for one transaction set.

    Attributes
    ----------
    total_revenue:
        Sum of all transaction totals
    unique_customers:
        Number of distinct customer IDs
    total_transactions:
        Number of transaction lines
    avg_order_value:
        total_revenue / total_transactions
    daily_sales:
        ISO date -> revenue, in date order
    monthly_sales:
        ``YYYY-MM`` -> revenue, in month order
    weekday_sales:
        Weekday name -> revenue, Monday first, all seven days present
    top_customers:
        (customer_id, revenue) pairs, highest revenue first
    """

    total_revenue: float
    unique_customers: int
    total_transactions: int
    avg_order_value: float
    daily_sales: dict[str, float]
    monthly_sales: dict[str, float]
    weekday_sales: dict[str, float]
    top_customers: list[tuple[str, float]]


def summarize_transactions(
    transactions: Sequence[CanonicalTransaction],
    top_n: int = DEFAULT_TOP_CUSTOMERS,
) -> ExploratorySummary | None:
    """Build the exploratory snapshot.

    Returns ``None`` when there are no transactions to summarise.

    Examples
    --------
    >>> from datetime import datetime, timezone
    >>> transactions = [
    ...     CanonicalTransaction("C1", f"I{day}", "Mug", datetime(2023, 1, day, tzinfo=timezone.utc), 1, 5.0, 5.0)
    ...     for day in (2, 3, 4)
    ... ]
    >>> summary = summarize_transactions(transactions)
    >>> summary.total_transactions
    3
    >>> list(summary.weekday_sales)[:2]
    ['Mon', 'Tue']
    """
    if not transactions:
        return None
    if top_n <= 0:
        raise ValueError(f"top_n must be positive: {top_n}")

    total_revenue = sum(t.total_price for t in transactions)
    daily: dict[str, float] = defaultdict(float)
    monthly: dict[str, float] = defaultdict(float)
    weekday = {name: 0.0 for name in WEEKDAY_NAMES}
    by_customer: dict[str, float] = defaultdict(float)

    for txn in transactions:
        day = txn.invoice_date.date()
        daily[day.isoformat()] += txn.total_price
        monthly[f"{day.year:04d}-{day.month:02d}"] += txn.total_price
        weekday[WEEKDAY_NAMES[day.weekday()]] += txn.total_price
        by_customer[txn.customer_id] += txn.total_price

    top_customers = sorted(by_customer.items(), key=lambda item: (-item[1], item[0]))[:top_n]

    return ExploratorySummary(
        total_revenue=total_revenue,
        unique_customers=len(by_customer),
        total_transactions=len(transactions),
        avg_order_value=total_revenue / len(transactions),
        daily_sales=dict(sorted(daily.items())),
        monthly_sales=dict(sorted(monthly.items())),
        weekday_sales=weekday,
        top_customers=top_customers,
    )
