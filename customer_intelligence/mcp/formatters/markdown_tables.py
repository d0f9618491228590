"""Markdown table formatters for customer intelligence results.

Formats pipeline results as clean markdown tables suitable for display in
MCP clients, the batch CLI summary and other markdown renderers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from customer_intelligence.analyses.exploratory import ExploratorySummary
    from customer_intelligence.analyses.market_basket import MarketBasketResult
    from customer_intelligence.foundation.rfm import RFMRecord
    from customer_intelligence.models.cltv import CLTVResult

DEFAULT_RULE_ROWS = 10


def format_exploratory_table(summary: ExploratorySummary) -> str:
    """Format the exploratory snapshot as markdown tables.

    Parameters
    ----------
    summary:
        Output of ``summarize_transactions``

    Returns
    -------
    str:
        Headline metrics, monthly sales and top customers
    """
    table = f"""## Exploratory Summary

| Metric | Value |
|--------|-------|
| Total Revenue | ${summary.total_revenue:,.2f} |
| Unique Customers | {summary.unique_customers:,} |
| Total Transactions | {summary.total_transactions:,} |
| Average Order Value | ${summary.avg_order_value:,.2f} |
"""

    if summary.monthly_sales:
        table += "\n### Monthly Sales\n\n"
        table += "| Month | Revenue |\n"
        table += "|-------|---------|\n"
        for month, total in summary.monthly_sales.items():
            table += f"| {month} | ${total:,.2f} |\n"

    if summary.top_customers:
        table += "\n### Top Customers\n\n"
        table += "| Customer | Revenue |\n"
        table += "|----------|---------|\n"
        for customer_id, total in summary.top_customers:
            table += f"| {customer_id} | ${total:,.2f} |\n"

    return table


def format_rfm_segment_table(records: Sequence[RFMRecord]) -> str:
    """Format RFM segment sizes and average metrics as a markdown table.

    Parameters
    ----------
    records:
        Output of ``calculate_rfm``

    Returns
    -------
    str:
        One row per segment, largest segment first
    """
    total = len(records)
    table = f"""## RFM Segmentation

Customers scored: {total:,}

| Segment | Customers | Share | Avg Recency (days) | Avg Frequency | Avg Monetary |
|---------|-----------|-------|--------------------|---------------|--------------|
"""
    by_segment: dict[str, list[RFMRecord]] = {}
    for record in records:
        by_segment.setdefault(record.segment, []).append(record)

    for segment, members in sorted(
        by_segment.items(), key=lambda item: (-len(item[1]), item[0])
    ):
        count = len(members)
        avg_recency = sum(m.recency for m in members) / count
        avg_frequency = sum(m.frequency for m in members) / count
        avg_monetary = sum(m.monetary for m in members) / count
        table += (
            f"| {segment} | {count:,} | {count / total * 100:.1f}% | "
            f"{avg_recency:.1f} | {avg_frequency:.2f} | ${avg_monetary:,.2f} |\n"
        )

    return table


def format_cltv_table(result: CLTVResult) -> str:
    """Format CLTV segment projections as a markdown table.

    Parameters
    ----------
    result:
        Output of ``calculate_cltv``

    Returns
    -------
    str:
        Model parameters followed by one row per segment, highest CLTV first
    """
    churn_label = "override" if result.churn_overridden else "from data"
    lifetime = result.avg_customer_lifetime
    lifetime_formatted = f"{lifetime:.2f}" if lifetime != float("inf") else "unbounded"

    table = f"""## Customer Lifetime Value

| Metric | Value |
|--------|-------|
| Effective Churn Rate | {result.effective_churn_rate * 100:.2f}% ({churn_label}) |
| Base Churn Rate | {result.base_churn_rate * 100:.2f}% |
| Avg Customer Lifetime (periods) | {lifetime_formatted} |
| Total Projected Value | ${result.total_projected_value:,.2f} |

| Segment | Customers | Avg CLTV |
|---------|-----------|----------|
"""
    for segment in result.segment_summaries:
        table += (
            f"| {segment.segment} | {segment.customer_count:,} | "
            f"${segment.avg_cltv:,.2f} |\n"
        )

    return table


def format_rules_table(result: MarketBasketResult, limit: int = DEFAULT_RULE_ROWS) -> str:
    """Format the strongest association rules as a markdown table.

    Parameters
    ----------
    result:
        Output of ``mine_association_rules``
    limit:
        Maximum number of rules to show (rules are already sorted by lift)

    Returns
    -------
    str:
        Markdown table, or the no-rules notice when nothing was mined
    """
    table = f"""## Market Basket Analysis

Baskets analysed: {result.basket_count:,} | Frequent items: {len(result.frequent_items):,} | Rules: {len(result.rules):,}

"""
    if not result.rules:
        return table + f"{result.notice}\n"

    table += "| If customer buys | They also buy | Support | Confidence | Lift |\n"
    table += "|------------------|---------------|---------|------------|------|\n"
    for rule in result.rules[:limit]:
        table += (
            f"| {rule.antecedent} | {rule.consequent} | {rule.support * 100:.2f}% | "
            f"{rule.confidence * 100:.1f}% | {rule.lift:.2f} |\n"
        )

    return table
