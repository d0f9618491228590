"""Pandas DataFrame adapters for Market Basket Analysis."""

from typing import Sequence
import pandas as pd  # type: ignore

from customer_intelligence.analyses.market_basket import AssociationRule, FrequentItem

RULE_COLUMNS = ["antecedent", "consequent", "support", "confidence", "lift"]
FREQUENT_ITEM_COLUMNS = ["item", "support"]


def rules_to_dataframe(rules: Sequence[AssociationRule]) -> pd.DataFrame:
    """Convert association rules to pandas DataFrame.

    Args:
        rules: Sequence of AssociationRule objects

    Returns:
        DataFrame with columns: antecedent, consequent, support, confidence,
        lift (input order is kept, so mined rules stay sorted by lift)

    Example:
        >>> result = mine_association_rules(transactions, min_support=0.02)
        >>> rules_df = rules_to_dataframe(result.rules)
        >>> rules_df[rules_df["confidence"] > 0.5]
    """
    return pd.DataFrame([r.as_dict() for r in rules], columns=RULE_COLUMNS)


def frequent_items_to_dataframe(items: Sequence[FrequentItem]) -> pd.DataFrame:
    """Convert frequent items to a two-column (item, support) DataFrame."""
    return pd.DataFrame([i.as_dict() for i in items], columns=FREQUENT_ITEM_COLUMNS)
