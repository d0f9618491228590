"""Pandas DataFrame adapters for customer intelligence components."""

from .transactions import (
    transactions_to_dataframe,
    dataframe_to_transactions,
    clean_dataframe,
)
from .rfm import (
    rfm_to_dataframe,
    calculate_rfm_df,
)
from .cltv import cltv_to_dataframes
from .market_basket import (
    rules_to_dataframe,
    frequent_items_to_dataframe,
)

__all__ = [
    # Transaction adapters
    "transactions_to_dataframe",
    "dataframe_to_transactions",
    "clean_dataframe",
    # RFM adapters
    "rfm_to_dataframe",
    "calculate_rfm_df",
    # CLTV adapters
    "cltv_to_dataframes",
    # Market basket adapters
    "rules_to_dataframe",
    "frequent_items_to_dataframe",
]
