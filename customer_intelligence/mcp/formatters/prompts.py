"""Prompt builders for the external text-generation service.

Each builder returns the single prompt string sent for one pipeline step.
The service itself is outside this package; only the column-mapping reply
is parsed back (:func:`parse_mapping_response`).
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Sequence

from customer_intelligence.foundation.rfm import segment_distribution
from customer_intelligence.foundation.transactions import ColumnMapping

if TYPE_CHECKING:
    from customer_intelligence.analyses.exploratory import ExploratorySummary
    from customer_intelligence.analyses.market_basket import MarketBasketResult
    from customer_intelligence.foundation.rfm import RFMRecord
    from customer_intelligence.models.cltv import CLTVResult

logger = logging.getLogger(__name__)

UNMAPPED_REPLY_MESSAGE = (
    "AI could not confidently map all fields. Please review the mapping manually."
)

_CODE_FENCE = re.compile(r"```(?:json)?")

TOP_SEGMENTS_IN_PROMPT = 5
TOP_CUSTOMERS_IN_PROMPT = 5
RECENT_MONTHS_IN_PROMPT = 6
TOP_RULES_IN_PROMPT = 10


def build_mapping_prompt(headers: Sequence[str]) -> str:
    """Ask for a header -> role mapping returned as bare JSON."""
    keys = ", ".join(ColumnMapping.EXTERNAL_KEYS.values())
    quoted_keys = ", ".join(f'"{key}"' for key in ColumnMapping.EXTERNAL_KEYS.values())
    return (
        f"Given the following CSV headers: [{', '.join(headers)}].\n"
        f"Map them to the required fields: {keys}.\n"
        "- customerId should uniquely identify a customer.\n"
        "- invoiceId should uniquely identify a single transaction or order.\n"
        "- invoiceDate should be the date of the transaction.\n"
        "- quantity is the number of items purchased.\n"
        "- unitPrice is the price of a single item.\n"
        "- description is the name or description of the product.\n"
        f"Return ONLY the mapping as a valid JSON object with keys {quoted_keys} "
        "and values corresponding to the provided headers. "
        "Do not include any other text or markdown formatting."
    )


def parse_mapping_response(text: str, headers: Sequence[str]) -> ColumnMapping:
    """Parse the service's mapping reply into a :class:`ColumnMapping`.

    Markdown code fences are stripped before JSON parsing. The mapping is
    accepted only when every role is present and names one of ``headers``.

    Raises
    ------
    ValueError
        If the reply is not a JSON object, names an unknown header, or leaves
        a role unmapped.

    Examples
    --------
    >>> headers = ["Customer", "Invoice", "Date", "Qty", "Price", "Item"]
    >>> reply = (
    ...     '```json\\n{"customerId": "Customer", "invoiceId": "Invoice", '
    ...     '"invoiceDate": "Date", "quantity": "Qty", "unitPrice": "Price", '
    ...     '"description": "Item"}\\n```'
    ... )
    >>> parse_mapping_response(reply, headers).customer_id
    'Customer'
    """
    cleaned = _CODE_FENCE.sub("", text).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ValueError(f"Mapping reply is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ValueError(f"Mapping reply must be a JSON object, got {type(payload).__name__}")

    available = set(headers)
    invalid = {
        key: value
        for key, value in payload.items()
        if not isinstance(value, str) or value not in available
    }
    for key, value in invalid.items():
        logger.warning(f"Suggested an invalid header {value!r} for field {key!r}")

    mapping = ColumnMapping.from_dict(
        {key: value for key, value in payload.items() if key not in invalid}
    )
    if invalid or mapping.missing_fields():
        raise ValueError(UNMAPPED_REPLY_MESSAGE)
    return mapping


def build_eda_prompt(summary: ExploratorySummary) -> str:
    """Ask for an exploratory data analysis report."""
    top_customers = ", ".join(
        f"Cust #{customer_id} (${total:.0f})"
        for customer_id, total in summary.top_customers[:TOP_CUSTOMERS_IN_PROMPT]
    )
    recent_months = ", ".join(
        f"{month} (${total:.0f})"
        for month, total in list(summary.monthly_sales.items())[-RECENT_MONTHS_IN_PROMPT:]
    )
    return (
        "Based on the following summary statistics and data trends from an e-commerce dataset:\n"
        f"- **Overall Stats:** Total Revenue: ${summary.total_revenue:.2f}, "
        f"Unique Customers: {summary.unique_customers}, "
        f"Total Transactions: {summary.total_transactions}, "
        f"Average Order Value: ${summary.avg_order_value:.2f}.\n"
        f"- **Top Customers:** The top customers include: {top_customers}.\n"
        f"- **Sales Trends:** Sales over the last few months were: {recent_months}. "
        "We also have data on sales distribution by day of the week.\n"
        "\n"
        "Generate a concise exploratory data analysis report. In a bulleted list, highlight:\n"
        "1. Key business performance takeaways from the overall stats.\n"
        "2. Observations about customer value concentration (based on top customers).\n"
        "3. Insights from sales seasonality (monthly and daily patterns).\n"
        "4. Potential areas for business growth or improvement based on these findings."
    )


def build_rfm_prompt(records: Sequence[RFMRecord]) -> str:
    """Ask for marketing recommendations per RFM segment."""
    distribution = ", ".join(
        f"{segment}: {count} customers"
        for segment, count in segment_distribution(records).items()
    )
    return (
        f"Here is the RFM segmentation of our customer base: {distribution}. "
        f"For each of the top {TOP_SEGMENTS_IN_PROMPT} segments, provide actionable "
        "marketing recommendations in a bulleted list to engage them effectively."
    )


def build_cltv_prompt(
    result: CLTVResult, profit_margin: float, discount_rate: float
) -> str:
    """Ask for retention, growth and VIP strategies given CLTV per segment.

    ``profit_margin`` and ``discount_rate`` are fractions (0.25 = 25%).
    """
    segments = ", ".join(
        f"{s.segment}: Avg CLTV ${s.avg_cltv:.2f}"
        for s in result.segment_summaries[:TOP_SEGMENTS_IN_PROMPT]
    )
    return (
        "Our CLTV model uses the following parameters:\n"
        f"- **Profit Margin:** {profit_margin * 100:g}%\n"
        f"- **Annual Discount Rate:** {discount_rate * 100:g}%\n"
        f"- **Effective Churn Rate:** {result.effective_churn_rate * 100:.2f}%\n"
        "\n"
        f"The resulting average CLTV for each key customer segment is: {segments}.\n"
        "\n"
        "Provide actionable, strategic advice to maximize the total customer lifetime "
        "value across our entire customer base. Structure your response with a separate "
        "bulleted list for each of the following objectives:\n"
        '1.  **Retention Strategies:** What specific actions can we take to reduce churn, '
        'especially for "At Risk" and "Customers Needing Attention" segments?\n'
        "2.  **Growth Strategies:** How can we increase the purchase frequency and average "
        'order value for high-potential segments like "Potential Loyalists" and '
        '"Loyal Customers"?\n'
        "3.  **VIP Strategies:** What premium services, loyalty programs, or exclusive "
        'offers can we use to maximize value from our "Champions" and ensure they remain '
        "advocates?"
    )


def format_rule_sentence(antecedent: str, consequent: str, confidence: float, lift: float) -> str:
    """Render one rule the way it is presented in prompts."""
    return (
        f"IF a customer buys {{{antecedent}}}, THEN they are likely to buy "
        f"{{{consequent}}} (Confidence: {confidence * 100:.1f}%, Lift: {lift:.2f})"
    )


def build_mba_prompt(result: MarketBasketResult) -> str | None:
    """Ask for bundling, layout and marketing strategies.

    Returns ``None`` when there are no rules to discuss.
    """
    if not result.rules:
        return None
    top_rules = "; ".join(
        format_rule_sentence(r.antecedent, r.consequent, r.confidence, r.lift)
        for r in result.rules[:TOP_RULES_IN_PROMPT]
    )
    return (
        "Based on a Market Basket Analysis, here are the top product association rules:\n"
        f"{top_rules}\n"
        "\n"
        "Provide actionable business strategies based on these findings. Structure your "
        "response into a bulleted list for each of the following areas:\n"
        "1.  **Product Bundling & Promotions:** Suggest specific product bundles that are "
        "likely to increase average order value.\n"
        "2.  **In-Store / Website Layout:** How can we use these insights to optimize "
        "product placement or website recommendations?\n"
        "3.  **Targeted Marketing:** Propose marketing campaigns (e.g., email, ads) that "
        "leverage these associations."
    )
