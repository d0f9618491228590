"""Market Basket MCP Tool"""

import structlog
from customer_intelligence.analyses.market_basket import (
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_MIN_LIFT,
    DEFAULT_MIN_SUPPORT,
    mine_association_rules,
)
from customer_intelligence.mcp.formatters.markdown_tables import format_rules_table
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.state import (
    MARKET_BASKET_KEY,
    TRANSACTIONS_KEY,
    get_shared_state,
)
from analytics.services.mcp_server.tools.rfm import NOT_CLEANED_MESSAGE

logger = structlog.get_logger(__name__)


class MarketBasketRequest(BaseModel):
    """Association rule thresholds."""

    min_support: float = Field(
        default=DEFAULT_MIN_SUPPORT,
        ge=0,
        le=1,
        description="Minimum share of baskets containing an item or pair (0.01 = 1%)",
    )
    min_confidence: float = Field(
        default=DEFAULT_MIN_CONFIDENCE,
        ge=0,
        le=1,
        description="Minimum rule confidence (0.20 = 20%)",
    )
    min_lift: float = Field(
        default=DEFAULT_MIN_LIFT, ge=0, description="Minimum rule lift"
    )
    max_rules: int = Field(
        default=20, gt=0, description="Maximum number of rules returned (strongest lift first)"
    )


class MarketBasketResponse(BaseModel):
    """Market basket analysis response."""

    basket_count: int
    frequent_item_count: int
    rule_count: int
    rules: list[dict]
    top_items: list[dict]
    rules_table: str
    notice: str | None = None


async def _run_market_basket_analysis_impl(
    request: MarketBasketRequest, ctx: Context
) -> MarketBasketResponse:
    """Implementation of market basket mining logic."""
    shared_state = get_shared_state()
    transactions = shared_state.get(TRANSACTIONS_KEY)
    if transactions is None:
        raise ValueError(NOT_CLEANED_MESSAGE)

    await ctx.info(f"Mining association rules from {len(transactions):,} transactions")
    result = mine_association_rules(
        transactions,
        min_support=request.min_support,
        min_confidence=request.min_confidence,
        min_lift=request.min_lift,
    )
    await ctx.report_progress(0.9, 1.0)

    shared_state.set(MARKET_BASKET_KEY, result)

    logger.info(
        "market_basket_mined",
        basket_count=result.basket_count,
        frequent_item_count=len(result.frequent_items),
        rule_count=len(result.rules),
        min_support=request.min_support,
        min_confidence=request.min_confidence,
        min_lift=request.min_lift,
    )

    return MarketBasketResponse(
        basket_count=result.basket_count,
        frequent_item_count=len(result.frequent_items),
        rule_count=len(result.rules),
        rules=[r.as_dict() for r in result.rules[: request.max_rules]],
        top_items=[i.as_dict() for i in result.frequent_items[: request.max_rules]],
        rules_table=format_rules_table(result, limit=request.max_rules),
        notice=result.notice,
    )


@mcp.tool()
async def run_market_basket_analysis(
    request: MarketBasketRequest, ctx: Context
) -> MarketBasketResponse:
    """
    Find products that are frequently bought together.

    Invoices are treated as baskets of distinct products. Frequent single
    products and frequent product pairs are found, and each frequent pair
    yields the rules A -> B and B -> A when confidence and lift meet the
    thresholds. Rules are ordered by lift. Requires clean_loaded_transactions
    to have run.

    Args:
        request: Support, confidence and lift thresholds

    Returns:
        Rules, frequent items and a markdown table of the strongest rules
    """
    return await _run_market_basket_analysis_impl(request, ctx)
