"""Pandas DataFrame adapters for RFM scoring."""

from typing import Sequence
import pandas as pd  # type: ignore

from customer_intelligence.foundation.rfm import RFMRecord, calculate_rfm
from .transactions import dataframe_to_transactions

RFM_COLUMNS = [
    "CustomerID",
    "Recency",
    "Frequency",
    "Monetary",
    "R_Score",
    "F_Score",
    "M_Score",
    "RFM_Score",
    "Segment",
]


def rfm_to_dataframe(rfm_records: Sequence[RFMRecord]) -> pd.DataFrame:
    """Convert RFM records to pandas DataFrame.

    Args:
        rfm_records: Sequence of RFMRecord objects

    Returns:
        DataFrame with columns: CustomerID, Recency, Frequency, Monetary,
        R_Score, F_Score, M_Score, RFM_Score, Segment (sorted by CustomerID)

    Example:
        >>> rfm_df = rfm_to_dataframe(calculate_rfm(transactions))
        >>> rfm_df[rfm_df["Segment"] == "Champions"]
    """
    if not rfm_records:
        return pd.DataFrame(columns=RFM_COLUMNS)

    df = pd.DataFrame([r.as_dict() for r in rfm_records], columns=RFM_COLUMNS)
    df = df.sort_values("CustomerID").reset_index(drop=True)
    return df


def calculate_rfm_df(transactions_df: pd.DataFrame) -> pd.DataFrame:
    """Calculate RFM scores from a DataFrame of cleaned transactions.

    Convenience function that combines conversion and calculation.

    Args:
        transactions_df: DataFrame shaped like transactions_to_dataframe output

    Returns:
        DataFrame with RFM metrics, scores and segments

    Example:
        >>> clean_df = clean_dataframe(raw_df, mapping)
        >>> rfm_df = calculate_rfm_df(clean_df)
        >>> rfm_df["Segment"].value_counts()
    """
    transactions = dataframe_to_transactions(transactions_df)
    return rfm_to_dataframe(calculate_rfm(transactions))
