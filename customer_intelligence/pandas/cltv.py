"""Pandas DataFrame adapters for CLTV projections."""

from typing import Tuple
import pandas as pd  # type: ignore

from customer_intelligence.models.cltv import CLTVResult

SEGMENT_COLUMNS = ["Segment", "CustomerCount", "AvgCLTV"]
CUSTOMER_COLUMNS = ["CustomerID", "CLTV", "AvgOrderValue", "PurchaseFrequency", "Segment"]


def cltv_to_dataframes(result: CLTVResult) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Convert CLTVResult to DataFrames.

    Args:
        result: CLTVResult object

    Returns:
        Tuple of (segments_df, customers_df):
        - segments_df: Segment, CustomerCount, AvgCLTV (highest AvgCLTV first)
        - customers_df: CustomerID, CLTV, AvgOrderValue, PurchaseFrequency, Segment

    Example:
        >>> result = calculate_cltv(rfm_records, profit_margin=0.3)
        >>> segments_df, customers_df = cltv_to_dataframes(result)
        >>> customers_df.nlargest(10, "CLTV")
    """
    segments_df = pd.DataFrame(
        [s.as_dict() for s in result.segment_summaries], columns=SEGMENT_COLUMNS
    )
    customers_df = pd.DataFrame(
        [c.as_dict() for c in result.customer_details], columns=CUSTOMER_COLUMNS
    )
    return segments_df, customers_df
