"""Foundational building blocks for customer intelligence.

This package exposes the canonical transaction contract, the cleaning
pipeline that produces it from raw CSV records, and RFM
(Recency-Frequency-Monetary) scoring and segmentation.
"""

from .rfm import (
    SEGMENT_MAP,
    RFMRecord,
    calculate_rfm,
    quintile_rank,
    score_distribution,
    segment_distribution,
)
from .transactions import (
    CanonicalTransaction,
    CleaningOptions,
    CleaningReport,
    ColumnMapping,
    clean_transactions,
    clean_transactions_report,
    parse_invoice_date,
)

__all__ = [
    "SEGMENT_MAP",
    "CanonicalTransaction",
    "CleaningOptions",
    "CleaningReport",
    "ColumnMapping",
    "RFMRecord",
    "calculate_rfm",
    "clean_transactions",
    "clean_transactions_report",
    "parse_invoice_date",
    "quintile_rank",
    "score_distribution",
    "segment_distribution",
]
