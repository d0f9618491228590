"""RFM (Recency-Frequency-Monetary) scoring and segmentation.

RFM analysis segments customers based on three dimensions:
- Recency: How recently did the customer make a purchase?
- Frequency: How often do they purchase?
- Monetary: How much do they spend?

Each dimension is scored 1-5 by quintile rank against the whole customer
population, and the three-digit score is mapped onto a named segment. Scores
are always recomputed from the full transaction set; there is no incremental
update.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal, Mapping, Sequence

from customer_intelligence.foundation.transactions import CanonicalTransaction

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400
DEFAULT_SEGMENT = "Others"


def _segment_table(groups: Mapping[str, tuple[str, ...]]) -> Mapping[str, str]:
    return MappingProxyType(
        {code: segment for segment, codes in groups.items() for code in codes}
    )


#: RFM score -> segment label. Scores not listed fall into ``DEFAULT_SEGMENT``.
SEGMENT_MAP: Mapping[str, str] = _segment_table(
    {
        "Champions": ("555", "554", "545"),
        "Loyal Customers": ("544", "455", "454", "445"),
        "Potential Loyalist": ("535", "534", "435", "434"),
        "Recent Customers": ("525", "524", "523"),
        "Promising": ("355", "354", "345"),
        "Customers Needing Attention": ("255", "254", "245"),
        "About to Sleep": ("333", "332", "323"),
        "At Risk": ("233", "232", "223"),
        "Can't Lose Them": ("155", "154", "145"),
        "Lost": ("111", "112", "121"),
    }
)


@dataclass(frozen=True)
class RFMRecord:
    """RFM metrics, scores and segment for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    recency:
        Whole days between the customer's latest purchase and the snapshot date
    frequency:
        Number of transaction lines for the customer
    monetary:
        Total spend across the customer's transactions
    r_score:
        Recency score (1-5, where 5 = most recent)
    f_score:
        Frequency score (1-5, where 5 = most frequent)
    m_score:
        Monetary score (1-5, where 5 = highest spend)
    rfm_score:
        Combined score string (e.g., "555" for best customers)
    segment:
        Segment label looked up from :data:`SEGMENT_MAP`
    """

    customer_id: str
    recency: int
    frequency: int
    monetary: float
    r_score: int
    f_score: int
    m_score: int
    rfm_score: str
    segment: str

    def __post_init__(self) -> None:
        """Validate RFM metrics and scores."""
        if self.recency < 0:
            raise ValueError(
                f"Recency cannot be negative: {self.recency} (customer_id={self.customer_id})"
            )
        if self.frequency <= 0:
            raise ValueError(
                f"Frequency must be positive: {self.frequency} (customer_id={self.customer_id})"
            )
        if not self.monetary > 0:
            raise ValueError(
                f"Monetary value must be positive: {self.monetary} (customer_id={self.customer_id})"
            )
        for score_name, score_value in [
            ("r_score", self.r_score),
            ("f_score", self.f_score),
            ("m_score", self.m_score),
        ]:
            if not 1 <= score_value <= 5:
                raise ValueError(
                    f"{score_name} must be between 1 and 5: {score_value} (customer_id={self.customer_id})"
                )
        expected_rfm = f"{self.r_score}{self.f_score}{self.m_score}"
        if self.rfm_score != expected_rfm:
            raise ValueError(
                f"rfm_score ({self.rfm_score}) does not match r/f/m scores ({expected_rfm}) (customer_id={self.customer_id})"
            )

    def as_dict(self) -> dict[str, object]:
        return {
            "CustomerID": self.customer_id,
            "Recency": self.recency,
            "Frequency": self.frequency,
            "Monetary": self.monetary,
            "R_Score": self.r_score,
            "F_Score": self.f_score,
            "M_Score": self.m_score,
            "RFM_Score": self.rfm_score,
            "Segment": self.segment,
        }


def quintile_rank(value: float, sorted_values: Sequence[float]) -> int:
    """Rank ``value`` 1-5 against an ascending population.

    Thresholds sit at indices ``floor(n*k/5)`` for k = 1..4. The rank is the
    first bucket whose threshold is greater than or equal to ``value``, or 5
    when ``value`` exceeds all four thresholds.

    Examples
    --------
    >>> population = [1, 2, 3, 4, 5, 6, 7, 8, 9, 10]
    >>> quintile_rank(3, population)
    1
    >>> quintile_rank(10, population)
    5
    """
    if not sorted_values:
        raise ValueError("Cannot rank against an empty population")
    n = len(sorted_values)
    thresholds = [sorted_values[(n * k) // 5] for k in range(1, 5)]
    for rank, threshold in enumerate(thresholds, start=1):
        if value <= threshold:
            return rank
    return 5


def segment_for_score(rfm_score: str) -> str:
    """Look up the segment label for a three-digit RFM score."""
    return SEGMENT_MAP.get(rfm_score, DEFAULT_SEGMENT)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_rfm(transactions: Sequence[CanonicalTransaction]) -> list[RFMRecord]:
    """Aggregate transactions per customer and score them.

    The snapshot date is one day after the latest transaction in the set.
    Recency is the rounded number of days from a customer's most recent
    transaction to the snapshot, frequency counts transaction lines, and
    monetary sums their totals.

    Parameters
    ----------
    transactions:
        Cleaned transactions for the whole population being scored.

    Returns
    -------
    list[RFMRecord]
        One record per distinct customer ID, sorted by customer_id.

    Examples
    --------
    >>> from datetime import datetime, timezone
    >>> from customer_intelligence.foundation.transactions import CanonicalTransaction
    >>> txns = [
    ...     CanonicalTransaction("C1", "I1", "Mug", datetime(2023, 1, 1, tzinfo=timezone.utc), 2, 5.0, 10.0),
    ...     CanonicalTransaction("C1", "I2", "Tea", datetime(2023, 1, 10, tzinfo=timezone.utc), 1, 4.0, 4.0),
    ... ]
    >>> rfm = calculate_rfm(txns)
    >>> rfm[0].recency, rfm[0].frequency, rfm[0].monetary
    (1, 2, 14.0)
    """
    if not transactions:
        return []

    # Days to the snapshot (latest date + 1 day) without constructing it
    latest_date = max(t.invoice_date for t in transactions)

    customer_data: dict[str, dict[str, float]] = {}
    for txn in transactions:
        days = (latest_date - txn.invoice_date).total_seconds() / SECONDS_PER_DAY + 1
        data = customer_data.get(txn.customer_id)
        if data is None:
            customer_data[txn.customer_id] = {
                "recency": days,
                "frequency": 1,
                "monetary": txn.total_price,
            }
            continue
        data["recency"] = min(data["recency"], days)
        data["frequency"] += 1
        data["monetary"] += txn.total_price

    metrics = [
        (
            customer_id,
            _round_half_up(data["recency"]),
            int(data["frequency"]),
            data["monetary"],
        )
        for customer_id, data in customer_data.items()
    ]

    recency_sorted = sorted(m[1] for m in metrics)
    frequency_sorted = sorted(m[2] for m in metrics)
    monetary_sorted = sorted(m[3] for m in metrics)

    records: list[RFMRecord] = []
    for customer_id, recency, frequency, monetary in metrics:
        # Lower recency is better, so the recency rank is reversed
        r_score = 5 - (quintile_rank(recency, recency_sorted) - 1)
        f_score = quintile_rank(frequency, frequency_sorted)
        m_score = quintile_rank(monetary, monetary_sorted)
        rfm_score = f"{r_score}{f_score}{m_score}"
        records.append(
            RFMRecord(
                customer_id=customer_id,
                recency=recency,
                frequency=frequency,
                monetary=monetary,
                r_score=r_score,
                f_score=f_score,
                m_score=m_score,
                rfm_score=rfm_score,
                segment=segment_for_score(rfm_score),
            )
        )

    records.sort(key=lambda r: r.customer_id)
    logger.info(
        f"Scored {len(records)} customers from {len(transactions)} transactions "
        f"(latest transaction {latest_date.date()})"
    )
    return records


def segment_distribution(records: Sequence[RFMRecord]) -> dict[str, int]:
    """Customer count per segment, largest segment first."""
    counts = Counter(r.segment for r in records)
    return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))


def score_distribution(
    records: Sequence[RFMRecord], dimension: Literal["r", "f", "m"]
) -> dict[int, int]:
    """Customer count for each score 1-5 of one RFM dimension."""
    attribute = {"r": "r_score", "f": "f_score", "m": "m_score"}.get(dimension)
    if attribute is None:
        raise ValueError(f"dimension must be one of 'r', 'f', 'm': {dimension!r}")
    distribution = {score: 0 for score in range(1, 6)}
    for record in records:
        distribution[getattr(record, attribute)] += 1
    return distribution
