"""Heuristic Customer Lifetime Value projection from RFM output.

CLTV is projected per customer and per RFM segment from three business
parameters, without fitting any model:

    CLTV = (Avg Order Value × Purchase Frequency / (Churn Rate + Discount Rate))
           × Profit Margin

Where:
    - Avg Order Value: Monetary / Frequency
    - Churn Rate: 1 - share of customers with more than one purchase, unless
      the caller overrides it
    - Discount Rate: annual rate used to discount future value
    - Profit Margin: share of revenue retained as profit (e.g., 0.25 = 25%)

When ``Churn Rate + Discount Rate <= 0`` the formula has no finite value and
the projection falls back to ``Avg Order Value × Frequency × Profit Margin × 100``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from customer_intelligence.foundation.rfm import RFMRecord

logger = logging.getLogger(__name__)

DEFAULT_PROFIT_MARGIN = 0.25
DEFAULT_DISCOUNT_RATE = 0.10

#: Multiplier applied when churn + discount leaves no positive denominator.
DEGENERATE_DENOMINATOR_SCALE = 100


@dataclass(frozen=True)
class CLTVCustomerRecord:
    """Projected lifetime value for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    cltv:
        Projected customer lifetime value
    avg_order_value:
        Monetary / Frequency
    purchase_frequency:
        Number of purchases observed for the customer
    segment:
        RFM segment the customer belongs to
    """

    customer_id: str
    cltv: float
    avg_order_value: float
    purchase_frequency: float
    segment: str

    def as_dict(self) -> dict[str, object]:
        return {
            "CustomerID": self.customer_id,
            "CLTV": self.cltv,
            "AvgOrderValue": self.avg_order_value,
            "PurchaseFrequency": self.purchase_frequency,
            "Segment": self.segment,
        }


@dataclass(frozen=True)
class CLTVSegmentRecord:
    """Projected lifetime value of an average customer in one segment."""

    segment: str
    customer_count: int
    avg_cltv: float

    def __post_init__(self) -> None:
        if self.customer_count <= 0:
            raise ValueError(
                f"Segment must contain customers: {self.customer_count} (segment={self.segment})"
            )

    def as_dict(self) -> dict[str, object]:
        return {
            "Segment": self.segment,
            "CustomerCount": self.customer_count,
            "AvgCLTV": self.avg_cltv,
        }


@dataclass(frozen=True)
class CLTVResult:
    """Segment and customer projections for one parameter set.

    Attributes
    ----------
    segment_summaries:
        One record per segment, highest average CLTV first
    customer_details:
        One record per customer, in RFM input order
    effective_churn_rate:
        Churn rate used in the projection
    base_churn_rate:
        Churn rate derived from the data (1 - repeat rate)
    churn_overridden:
        Whether ``effective_churn_rate`` came from the caller
    """

    segment_summaries: list[CLTVSegmentRecord]
    customer_details: list[CLTVCustomerRecord]
    effective_churn_rate: float
    base_churn_rate: float
    churn_overridden: bool = False

    @property
    def total_projected_value(self) -> float:
        """Sum of segment average CLTV weighted by segment size."""
        return sum(s.avg_cltv * s.customer_count for s in self.segment_summaries)

    @property
    def avg_customer_lifetime(self) -> float:
        """Expected customer lifetime in periods (1 / churn), ``inf`` without churn."""
        if self.effective_churn_rate > 0:
            return 1 / self.effective_churn_rate
        return math.inf


def base_churn_rate(rfm_records: Sequence[RFMRecord]) -> float:
    """Share of customers who purchased only once.

    Returns 1.0 for an empty population (no repeat customers observed).
    """
    total_customers = len(rfm_records)
    if total_customers == 0:
        return 1.0
    repeat_customers = sum(1 for r in rfm_records if r.frequency > 1)
    return 1 - repeat_customers / total_customers


def project_cltv(
    avg_order_value: float,
    purchase_frequency: float,
    profit_margin: float,
    churn_rate: float,
    discount_rate: float,
) -> float:
    """Apply the CLTV formula, including the non-positive denominator fallback."""
    denominator = churn_rate + discount_rate
    if denominator <= 0:
        return (
            avg_order_value * purchase_frequency * profit_margin
        ) * DEGENERATE_DENOMINATOR_SCALE
    return (avg_order_value * purchase_frequency / denominator) * profit_margin


def calculate_cltv(
    rfm_records: Sequence[RFMRecord],
    profit_margin: float = DEFAULT_PROFIT_MARGIN,
    discount_rate: float = DEFAULT_DISCOUNT_RATE,
    churn_override: float | None = None,
) -> CLTVResult:
    """Project lifetime value per customer and per segment.

    Segment projections use pooled figures: average order value is the
    segment's summed monetary over its summed frequency, and purchase
    frequency is summed frequency over customer count.

    Parameters
    ----------
    rfm_records:
        Output of :func:`customer_intelligence.foundation.rfm.calculate_rfm`.
    profit_margin:
        Share of revenue kept as profit, typically in [0, 1].
    discount_rate:
        Discount rate, typically in [0, 1].
    churn_override:
        Churn rate to use instead of the data-derived rate, in [0, 1].

    Returns
    -------
    CLTVResult
        Segment summaries sorted by average CLTV (descending) and per-customer
        details.

    Raises
    ------
    ValueError
        If a parameter is not finite or ``churn_override`` is outside [0, 1].

    Examples
    --------
    >>> from customer_intelligence.foundation.rfm import RFMRecord
    >>> records = [RFMRecord("C1", 3, 2, 100.0, 5, 4, 4, "544", "Loyal Customers")]
    >>> result = calculate_cltv(records, profit_margin=0.25, discount_rate=0.10, churn_override=0.5)
    >>> result.segment_summaries[0].segment
    'Loyal Customers'
    >>> round(result.customer_details[0].cltv, 2)
    41.67
    """
    for name, value in (("profit_margin", profit_margin), ("discount_rate", discount_rate)):
        if not math.isfinite(value):
            raise ValueError(f"{name} must be a finite number: {value}")
    if churn_override is not None and not 0 <= churn_override <= 1:
        raise ValueError(f"churn_override must be between 0 and 1: {churn_override}")

    base_churn = base_churn_rate(rfm_records)
    effective_churn = churn_override if churn_override is not None else base_churn
    if effective_churn + discount_rate <= 0:
        logger.warning(
            f"Churn ({effective_churn}) + discount ({discount_rate}) is not positive; "
            f"using the x{DEGENERATE_DENOMINATOR_SCALE} fallback projection"
        )

    customer_details: list[CLTVCustomerRecord] = []
    segment_totals: dict[str, dict[str, float]] = {}
    for record in rfm_records:
        avg_order_value = (
            record.monetary / record.frequency if record.frequency > 0 else 0.0
        )
        customer_details.append(
            CLTVCustomerRecord(
                customer_id=record.customer_id,
                cltv=project_cltv(
                    avg_order_value,
                    record.frequency,
                    profit_margin,
                    effective_churn,
                    discount_rate,
                ),
                avg_order_value=avg_order_value,
                purchase_frequency=record.frequency,
                segment=record.segment,
            )
        )

        totals = segment_totals.setdefault(
            record.segment, {"monetary": 0.0, "frequency": 0, "count": 0}
        )
        totals["monetary"] += record.monetary
        totals["frequency"] += record.frequency
        totals["count"] += 1

    segment_summaries: list[CLTVSegmentRecord] = []
    for segment, totals in segment_totals.items():
        avg_order_value = (
            totals["monetary"] / totals["frequency"] if totals["frequency"] > 0 else 0.0
        )
        purchase_frequency = totals["frequency"] / totals["count"]
        segment_summaries.append(
            CLTVSegmentRecord(
                segment=segment,
                customer_count=int(totals["count"]),
                avg_cltv=project_cltv(
                    avg_order_value,
                    purchase_frequency,
                    profit_margin,
                    effective_churn,
                    discount_rate,
                ),
            )
        )
    segment_summaries.sort(key=lambda s: s.avg_cltv, reverse=True)

    logger.info(
        f"Projected CLTV for {len(customer_details)} customers across "
        f"{len(segment_summaries)} segments (churn={effective_churn:.4f})"
    )
    return CLTVResult(
        segment_summaries=segment_summaries,
        customer_details=customer_details,
        effective_churn_rate=effective_churn,
        base_churn_rate=base_churn,
        churn_overridden=churn_override is not None,
    )
