"""Analyses built on cleaned transactions."""

from .exploratory import ExploratorySummary, summarize_transactions
from .market_basket import (
    AssociationRule,
    FrequentItem,
    MarketBasketResult,
    build_baskets,
    mine_association_rules,
)

__all__ = [
    "AssociationRule",
    "ExploratorySummary",
    "FrequentItem",
    "MarketBasketResult",
    "build_baskets",
    "mine_association_rules",
    "summarize_transactions",
]
