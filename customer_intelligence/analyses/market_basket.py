"""Market Basket Analysis: frequent items and pairwise association rules.

Transactions are grouped by invoice into baskets of distinct product
descriptions. Frequent single items are found first, every unordered pair of
frequent items becomes a candidate, and candidates that are themselves
frequent yield two directional rules (A -> B and B -> A).

Mining is deliberately bounded to 2-itemsets. Counting candidate pairs costs
O(baskets × candidate pairs), which is only acceptable because of that
bound; extending to larger itemsets changes the number of rules returned and
needs proper Apriori pruning.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from itertools import combinations
from typing import Sequence

from customer_intelligence.foundation.transactions import CanonicalTransaction

logger = logging.getLogger(__name__)

DEFAULT_MIN_SUPPORT = 0.01
DEFAULT_MIN_CONFIDENCE = 0.20
DEFAULT_MIN_LIFT = 1.0

NO_RULES_NOTICE = (
    "No association rules found with the current settings. "
    "Try lowering the Minimum Support or Confidence."
)


@dataclass(frozen=True)
class FrequentItem:
    """A single item whose basket support meets the threshold."""

    item: str
    support: float

    def __post_init__(self) -> None:
        if not 0 <= self.support <= 1:
            raise ValueError(f"Support must be between 0 and 1: {self.support} (item={self.item})")

    def as_dict(self) -> dict[str, object]:
        return {"item": self.item, "support": self.support}


@dataclass(frozen=True)
class AssociationRule:
    """Directional rule ``antecedent -> consequent``.

    Attributes
    ----------
    antecedent:
        Item already in the basket
    consequent:
        Item likely to be added
    support:
        Share of baskets containing both items
    confidence:
        support(A and B) / support(A)
    lift:
        confidence / support(B); above 1 means the items co-occur more often
        than if they were independent
    """

    antecedent: str
    consequent: str
    support: float
    confidence: float
    lift: float

    def as_dict(self) -> dict[str, object]:
        return {
            "antecedent": self.antecedent,
            "consequent": self.consequent,
            "support": self.support,
            "confidence": self.confidence,
            "lift": self.lift,
        }


@dataclass(frozen=True)
class MarketBasketResult:
    """Rules sorted by lift (descending) and the frequent single items."""

    rules: list[AssociationRule]
    frequent_items: list[FrequentItem]
    basket_count: int

    @property
    def notice(self) -> str | None:
        """Informational message when no rule passed the thresholds."""
        return NO_RULES_NOTICE if not self.rules else None


def build_baskets(transactions: Sequence[CanonicalTransaction]) -> dict[str, frozenset[str]]:
    """Group transactions by invoice into sets of distinct descriptions."""
    grouped: dict[str, set[str]] = {}
    for txn in transactions:
        grouped.setdefault(txn.invoice_id, set()).add(txn.description)
    return {invoice_id: frozenset(items) for invoice_id, items in grouped.items()}


def _check_threshold(name: str, value: float, upper: float | None) -> None:
    if value < 0 or (upper is not None and value > upper):
        bounds = f"between 0 and {upper}" if upper is not None else "non-negative"
        raise ValueError(f"{name} must be {bounds}: {value}")


def mine_association_rules(
    transactions: Sequence[CanonicalTransaction],
    min_support: float = DEFAULT_MIN_SUPPORT,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    min_lift: float = DEFAULT_MIN_LIFT,
) -> MarketBasketResult:
    """Mine frequent items and pairwise association rules.

    Parameters
    ----------
    transactions:
        Cleaned transactions; baskets are formed per invoice ID.
    min_support:
        Minimum share of baskets, in [0, 1], for items and pairs.
    min_confidence:
        Minimum rule confidence, in [0, 1].
    min_lift:
        Minimum rule lift, non-negative.

    Returns
    -------
    MarketBasketResult
        Rules meeting both the confidence and lift thresholds, sorted by lift
        descending, and frequent items sorted by support descending. Ties are
        broken by item name so results do not depend on input order.

    Raises
    ------
    ValueError
        If a threshold is out of range.

    Examples
    --------
    With two invoices that both contain Bread and Milk:

    >>> from datetime import datetime, timezone
    >>> day = datetime(2023, 1, 1, tzinfo=timezone.utc)
    >>> txns = [
    ...     CanonicalTransaction("C1", invoice, item, day, 1, 1.0, 1.0)
    ...     for invoice in ("I1", "I2")
    ...     for item in ("Bread", "Milk")
    ... ]
    >>> result = mine_association_rules(txns, 0.5, 0.5, 1.0)
    >>> [(i.item, i.support) for i in result.frequent_items]
    [('Bread', 1.0), ('Milk', 1.0)]
    >>> rule = result.rules[0]
    >>> (rule.antecedent, rule.consequent, rule.confidence, rule.lift)
    ('Bread', 'Milk', 1.0, 1.0)
    """
    _check_threshold("min_support", min_support, 1.0)
    _check_threshold("min_confidence", min_confidence, 1.0)
    _check_threshold("min_lift", min_lift, None)

    baskets = list(build_baskets(transactions).values())
    basket_count = len(baskets)
    if basket_count == 0:
        return MarketBasketResult(rules=[], frequent_items=[], basket_count=0)

    item_counts: Counter[str] = Counter()
    for basket in baskets:
        item_counts.update(basket)
    item_support = {item: count / basket_count for item, count in item_counts.items()}

    frequent_items = sorted(
        (
            FrequentItem(item=item, support=support)
            for item, support in item_support.items()
            if support >= min_support
        ),
        key=lambda fi: (-fi.support, fi.item),
    )

    candidate_pairs = {
        tuple(sorted(pair)): 0
        for pair in combinations((fi.item for fi in frequent_items), 2)
    }
    for basket in baskets:
        for pair in candidate_pairs:
            if pair[0] in basket and pair[1] in basket:
                candidate_pairs[pair] += 1

    rules: list[AssociationRule] = []
    for (item_a, item_b), count in candidate_pairs.items():
        pair_support = count / basket_count
        if pair_support < min_support:
            continue
        for antecedent, consequent in ((item_a, item_b), (item_b, item_a)):
            confidence = pair_support / item_support[antecedent]
            lift = confidence / item_support[consequent]
            if confidence >= min_confidence and lift >= min_lift:
                rules.append(
                    AssociationRule(
                        antecedent=antecedent,
                        consequent=consequent,
                        support=pair_support,
                        confidence=confidence,
                        lift=lift,
                    )
                )
    rules.sort(key=lambda r: (-r.lift, r.antecedent, r.consequent))

    logger.info(
        f"Mined {len(rules)} rules from {basket_count} baskets "
        f"({len(frequent_items)} frequent items, {len(candidate_pairs)} candidate pairs)"
    )
    return MarketBasketResult(
        rules=rules, frequent_items=frequent_items, basket_count=basket_count
    )
