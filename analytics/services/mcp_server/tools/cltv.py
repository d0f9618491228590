"""CLTV MCP Tool

Projects customer lifetime value per customer and per RFM segment from
business parameters supplied by the caller.
"""

import math

import structlog
from customer_intelligence.models.cltv import (
    DEFAULT_DISCOUNT_RATE,
    DEFAULT_PROFIT_MARGIN,
    calculate_cltv,
)
from customer_intelligence.mcp.formatters.markdown_tables import format_cltv_table
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.state import (
    CLTV_PARAMETERS_KEY,
    CLTV_RESULT_KEY,
    RFM_RECORDS_KEY,
    get_shared_state,
)

logger = structlog.get_logger(__name__)

NO_RFM_MESSAGE = "RFM results not found. Run calculate_rfm_segments first."
NO_CUSTOMERS_NOTICE = "No scored customers available; no lifetime value was projected."


class CalculateCLTVRequest(BaseModel):
    """CLTV model parameters."""

    profit_margin: float = Field(
        default=DEFAULT_PROFIT_MARGIN,
        ge=0,
        le=1,
        description="Share of revenue kept as profit (0.25 = 25%)",
    )
    discount_rate: float = Field(
        default=DEFAULT_DISCOUNT_RATE,
        ge=0,
        le=1,
        description="Annual discount rate (0.10 = 10%)",
    )
    churn_override: float | None = Field(
        default=None,
        ge=0,
        le=1,
        description="Churn rate to use instead of 1 - repeat purchase rate",
    )
    top_customers: int = Field(
        default=10, ge=0, description="Number of highest-CLTV customers to return"
    )


class CLTVResponse(BaseModel):
    """CLTV projection response."""

    segments: list[dict]
    top_customers: list[dict]
    base_churn_rate: float
    effective_churn_rate: float
    churn_overridden: bool
    total_projected_value: float
    avg_customer_lifetime: float | None = None
    cltv_table: str | None = None
    notice: str | None = None


async def _calculate_customer_lifetime_value_impl(
    request: CalculateCLTVRequest, ctx: Context
) -> CLTVResponse:
    """Implementation of CLTV projection logic."""
    shared_state = get_shared_state()
    rfm_records = shared_state.get(RFM_RECORDS_KEY)
    if rfm_records is None:
        raise ValueError(NO_RFM_MESSAGE)

    await ctx.info(f"Projecting CLTV for {len(rfm_records):,} customers")
    result = calculate_cltv(
        rfm_records,
        profit_margin=request.profit_margin,
        discount_rate=request.discount_rate,
        churn_override=request.churn_override,
    )
    await ctx.report_progress(0.8, 1.0)

    shared_state.set(CLTV_RESULT_KEY, result)
    shared_state.set(
        CLTV_PARAMETERS_KEY,
        {"profit_margin": request.profit_margin, "discount_rate": request.discount_rate},
    )

    logger.info(
        "cltv_calculated",
        customer_count=len(result.customer_details),
        segment_count=len(result.segment_summaries),
        effective_churn_rate=result.effective_churn_rate,
        churn_overridden=result.churn_overridden,
    )

    lifetime = result.avg_customer_lifetime
    top_customers = sorted(
        result.customer_details, key=lambda c: (-c.cltv, c.customer_id)
    )[: request.top_customers]

    return CLTVResponse(
        segments=[s.as_dict() for s in result.segment_summaries],
        top_customers=[c.as_dict() for c in top_customers],
        base_churn_rate=result.base_churn_rate,
        effective_churn_rate=result.effective_churn_rate,
        churn_overridden=result.churn_overridden,
        total_projected_value=result.total_projected_value,
        avg_customer_lifetime=lifetime if math.isfinite(lifetime) else None,
        cltv_table=format_cltv_table(result) if rfm_records else None,
        notice=None if rfm_records else NO_CUSTOMERS_NOTICE,
    )


@mcp.tool()
async def calculate_customer_lifetime_value(
    request: CalculateCLTVRequest, ctx: Context
) -> CLTVResponse:
    """
    Project customer lifetime value per customer and per RFM segment.

    CLTV = (avg order value x purchase frequency / (churn + discount)) x margin.
    Churn defaults to the share of one-time buyers; pass churn_override to
    model a different retention scenario. Requires calculate_rfm_segments to
    have run.

    Args:
        request: Profit margin, discount rate and optional churn override

    Returns:
        Segment averages (highest first), top customers and churn figures
    """
    return await _calculate_customer_lifetime_value_impl(request, ctx)
