"""MCP Tools for the customer intelligence pipeline.

This module exports all MCP tools, in pipeline order.
"""

from .data_loader import load_csv_transactions
from .cleaning import clean_loaded_transactions
from .rfm import calculate_rfm_segments
from .cltv import calculate_customer_lifetime_value
from .market_basket import run_market_basket_analysis
from .insights import build_insight_prompt, parse_column_mapping_reply

__all__ = [
    # Ingestion and cleaning
    "load_csv_transactions",
    "clean_loaded_transactions",
    # Analyses
    "calculate_rfm_segments",
    "calculate_customer_lifetime_value",
    "run_market_basket_analysis",
    # Insight prompts
    "build_insight_prompt",
    "parse_column_mapping_reply",
]
