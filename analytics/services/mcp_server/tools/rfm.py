"""RFM MCP Tool"""

import structlog
from customer_intelligence.foundation.rfm import (
    calculate_rfm,
    score_distribution,
    segment_distribution,
)
from customer_intelligence.mcp.formatters.markdown_tables import format_rfm_segment_table
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.state import (
    RFM_RECORDS_KEY,
    TRANSACTIONS_KEY,
    get_shared_state,
)

logger = structlog.get_logger(__name__)

NOT_CLEANED_MESSAGE = "Cleaned transactions not found. Run clean_loaded_transactions first."
NO_CUSTOMERS_NOTICE = "No cleaned transactions available; no customers were scored."


class CalculateRFMRequest(BaseModel):
    """Request to score customers with RFM."""

    include_customers: bool = Field(
        default=False, description="Also return per-customer RFM records"
    )
    customer_limit: int = Field(
        default=100,
        gt=0,
        description="Maximum number of customer records returned when include_customers is set",
    )


class RFMResponse(BaseModel):
    """RFM segmentation response."""

    customer_count: int
    segment_distribution: dict[str, int]
    score_distributions: dict[str, dict[int, int]]
    segment_table: str | None = None
    customers: list[dict] | None = None
    notice: str | None = None


async def _calculate_rfm_segments_impl(
    request: CalculateRFMRequest, ctx: Context
) -> RFMResponse:
    """Implementation of RFM scoring logic."""
    shared_state = get_shared_state()
    transactions = shared_state.get(TRANSACTIONS_KEY)
    if transactions is None:
        raise ValueError(NOT_CLEANED_MESSAGE)

    await ctx.info(f"Scoring customers from {len(transactions):,} transactions")
    rfm_records = calculate_rfm(transactions)
    await ctx.report_progress(0.8, 1.0)

    shared_state.replace(RFM_RECORDS_KEY, rfm_records)

    logger.info(
        "rfm_calculated",
        customer_count=len(rfm_records),
        segment_count=len(segment_distribution(rfm_records)),
    )

    if not rfm_records:
        return RFMResponse(
            customer_count=0,
            segment_distribution={},
            score_distributions={},
            notice=NO_CUSTOMERS_NOTICE,
        )

    await ctx.info(f"RFM scoring complete: {len(rfm_records):,} customers")

    customers = None
    if request.include_customers:
        customers = [r.as_dict() for r in rfm_records[: request.customer_limit]]

    return RFMResponse(
        customer_count=len(rfm_records),
        segment_distribution=segment_distribution(rfm_records),
        score_distributions={
            dimension: score_distribution(rfm_records, dimension)
            for dimension in ("r", "f", "m")
        },
        segment_table=format_rfm_segment_table(rfm_records),
        customers=customers,
    )


@mcp.tool()
async def calculate_rfm_segments(
    request: CalculateRFMRequest, ctx: Context
) -> RFMResponse:
    """
    Score customers on Recency, Frequency and Monetary value and segment them.

    Each dimension is scored 1-5 by quintile against all customers, and the
    three-digit score maps to a named segment (Champions, Loyal Customers,
    At Risk, Lost, ...; unlisted scores fall into Others). Requires
    clean_loaded_transactions to have run.

    Args:
        request: Output options

    Returns:
        Segment and score distributions plus a markdown segment table
    """
    return await _calculate_rfm_segments_impl(request, ctx)
