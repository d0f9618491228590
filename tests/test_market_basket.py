"""Tests for pairwise Market Basket Analysis."""

from datetime import datetime, timezone

import pytest

from customer_intelligence.analyses.market_basket import (
    NO_RULES_NOTICE,
    FrequentItem,
    build_baskets,
    mine_association_rules,
)
from customer_intelligence.foundation.transactions import CanonicalTransaction


def basket_transactions(baskets):
    """One transaction line per (invoice, item)."""
    transactions = []
    for invoice_id, items in baskets.items():
        for item in items:
            transactions.append(
                CanonicalTransaction(
                    customer_id="C1",
                    invoice_id=invoice_id,
                    description=item,
                    invoice_date=datetime(2023, 1, 1, tzinfo=timezone.utc),
                    quantity=1.0,
                    unit_price=1.0,
                    total_price=1.0,
                )
            )
    return transactions


# Supports: A 0.6, B 0.4, C 0.4, D 0.2; pairs AB 0.4, AC 0.2
FIVE_BASKETS = {
    "I1": ["A", "B"],
    "I2": ["A", "B"],
    "I3": ["A", "C"],
    "I4": ["C"],
    "I5": ["D"],
}


def rule_keys(result):
    return {(r.antecedent, r.consequent) for r in result.rules}


class TestBuildBaskets:
    """Test basket construction."""

    def test_items_deduplicated_per_invoice(self):
        """Repeated lines of one product count once per basket."""
        baskets = build_baskets(basket_transactions({"I1": ["Mug", "Mug", "Tea"]}))

        assert baskets == {"I1": frozenset({"Mug", "Tea"})}


class TestMineAssociationRules:
    """Test frequent items and rules."""

    def test_bread_and_milk(self):
        """Two baskets with the same pair give symmetric rules."""
        transactions = basket_transactions({"I1": ["Bread", "Milk"], "I2": ["Bread", "Milk"]})

        result = mine_association_rules(transactions, 0.5, 0.5, 1.0)

        assert [(i.item, i.support) for i in result.frequent_items] == [
            ("Bread", 1.0),
            ("Milk", 1.0),
        ]
        assert [(r.antecedent, r.consequent) for r in result.rules] == [
            ("Bread", "Milk"),
            ("Milk", "Bread"),
        ]
        assert result.rules[0].confidence == pytest.approx(1.0)
        assert result.rules[0].lift == pytest.approx(1.0)
        assert result.notice is None

    def test_metrics(self):
        """Support, confidence and lift follow their definitions."""
        result = mine_association_rules(basket_transactions(FIVE_BASKETS), 0.2, 0.2, 1.0)

        assert result.basket_count == 5
        assert [i.item for i in result.frequent_items] == ["A", "B", "C", "D"]
        assert rule_keys(result) == {("A", "B"), ("B", "A")}
        rules = {(r.antecedent, r.consequent): r for r in result.rules}
        assert rules[("A", "B")].support == pytest.approx(0.4)
        assert rules[("A", "B")].confidence == pytest.approx(2 / 3)
        assert rules[("A", "B")].lift == pytest.approx(5 / 3)
        assert rules[("B", "A")].confidence == pytest.approx(1.0)

    def test_lift_threshold(self):
        """Lowering min_lift admits negatively associated pairs."""
        result = mine_association_rules(basket_transactions(FIVE_BASKETS), 0.2, 0.2, 0.0)

        assert rule_keys(result) == {("A", "B"), ("B", "A"), ("A", "C"), ("C", "A")}
        lifts = [r.lift for r in result.rules]
        assert lifts == sorted(lifts, reverse=True)

    def test_confidence_threshold(self):
        """Rules below min_confidence are excluded per direction."""
        result = mine_association_rules(basket_transactions(FIVE_BASKETS), 0.2, 0.9, 0.0)

        assert rule_keys(result) == {("B", "A")}

    def test_raising_support_never_adds_rules(self):
        """Rules and frequent items shrink monotonically as min_support rises."""
        transactions = basket_transactions(FIVE_BASKETS)

        low = mine_association_rules(transactions, 0.2, 0.2, 0.0)
        high = mine_association_rules(transactions, 0.4, 0.2, 0.0)

        assert rule_keys(high) <= rule_keys(low)
        assert rule_keys(high) == {("A", "B"), ("B", "A")}
        assert len(high.frequent_items) <= len(low.frequent_items)
        assert {fi.item for fi in high.frequent_items} <= {fi.item for fi in low.frequent_items}

    def test_no_rules_notice(self):
        """An empty rule set carries the informational notice."""
        result = mine_association_rules(basket_transactions(FIVE_BASKETS), 0.9, 0.2, 1.0)

        assert result.rules == []
        assert result.notice == NO_RULES_NOTICE

    def test_empty_input(self):
        """No transactions produce an empty result."""
        result = mine_association_rules([])

        assert result.basket_count == 0
        assert result.frequent_items == []
        assert result.notice == NO_RULES_NOTICE

    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"min_support": 1.5}, "min_support must be between 0 and 1.0"),
            ({"min_confidence": -0.1}, "min_confidence must be between 0 and 1.0"),
            ({"min_lift": -1.0}, "min_lift must be non-negative"),
        ],
    )
    def test_invalid_thresholds(self, kwargs, match):
        """Thresholds outside their ranges are rejected."""
        with pytest.raises(ValueError, match=match):
            mine_association_rules([], **kwargs)

    def test_frequent_item_support_validated(self):
        """Support must lie in [0, 1]."""
        with pytest.raises(ValueError, match="Support must be between 0 and 1"):
            FrequentItem(item="A", support=1.5)
