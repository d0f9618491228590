"""Insight prompt MCP Tools

Builds the prompt text for the external text-generation service from stored
results, and parses its column-mapping reply. The service itself is not
called from here.
"""

from typing import Literal

import structlog
from customer_intelligence.mcp.formatters.prompts import (
    build_cltv_prompt,
    build_eda_prompt,
    build_mapping_prompt,
    build_mba_prompt,
    build_rfm_prompt,
    parse_mapping_response,
)
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.state import (
    CLTV_PARAMETERS_KEY,
    CLTV_RESULT_KEY,
    EXPLORATORY_SUMMARY_KEY,
    MARKET_BASKET_KEY,
    PARSE_RESULT_KEY,
    RFM_RECORDS_KEY,
    SUGGESTED_MAPPING_KEY,
    get_shared_state,
)
from analytics.services.mcp_server.tools.cleaning import NOT_LOADED_MESSAGE

logger = structlog.get_logger(__name__)

InsightStep = Literal["mapping", "eda", "rfm", "cltv", "mba"]

# step -> (state key, tool that produces it)
_PREREQUISITES: dict[str, tuple[str, str]] = {
    "mapping": (PARSE_RESULT_KEY, "load_csv_transactions"),
    "eda": (EXPLORATORY_SUMMARY_KEY, "clean_loaded_transactions"),
    "rfm": (RFM_RECORDS_KEY, "calculate_rfm_segments"),
    "cltv": (CLTV_RESULT_KEY, "calculate_customer_lifetime_value"),
    "mba": (MARKET_BASKET_KEY, "run_market_basket_analysis"),
}


class InsightPromptRequest(BaseModel):
    """Which pipeline step to build a prompt for."""

    step: InsightStep = Field(
        description="One of: mapping, eda, rfm, cltv, mba",
    )


class InsightPromptResponse(BaseModel):
    """Prompt text for the requested step."""

    step: str
    prompt: str | None = None
    notice: str | None = None


class MappingReplyRequest(BaseModel):
    """Reply from the text-generation service to the mapping prompt."""

    reply: str = Field(description="Raw reply text; markdown code fences are allowed")


class MappingReplyResponse(BaseModel):
    """Validated column mapping suggestion."""

    mapping: dict[str, str]
    message: str


async def _build_insight_prompt_impl(
    request: InsightPromptRequest, ctx: Context
) -> InsightPromptResponse:
    """Implementation of prompt building logic."""
    shared_state = get_shared_state()
    key, producer = _PREREQUISITES[request.step]
    if not shared_state.has(key):
        raise ValueError(f"No stored result for step '{request.step}'. Run {producer} first.")
    value = shared_state.get(key)

    if request.step == "mapping":
        prompt = build_mapping_prompt(value.headers)
    elif request.step == "eda":
        prompt = build_eda_prompt(value) if value is not None else None
    elif request.step == "rfm":
        prompt = build_rfm_prompt(value) if value else None
    elif request.step == "cltv":
        parameters = shared_state.get(CLTV_PARAMETERS_KEY)
        prompt = (
            build_cltv_prompt(value, **parameters) if value.segment_summaries else None
        )
    else:
        prompt = build_mba_prompt(value)

    notice = None
    if prompt is None:
        notice = f"Nothing to discuss for step '{request.step}': the stored result is empty."

    logger.info("insight_prompt_built", step=request.step, has_prompt=prompt is not None)
    await ctx.info(f"Built {request.step} prompt")
    return InsightPromptResponse(step=request.step, prompt=prompt, notice=notice)


async def _parse_column_mapping_reply_impl(
    request: MappingReplyRequest, ctx: Context
) -> MappingReplyResponse:
    """Implementation of mapping reply parsing."""
    shared_state = get_shared_state()
    parsed = shared_state.get(PARSE_RESULT_KEY)
    if parsed is None:
        raise ValueError(NOT_LOADED_MESSAGE)

    mapping = parse_mapping_response(request.reply, parsed.headers)
    shared_state.set(SUGGESTED_MAPPING_KEY, mapping)

    logger.info("mapping_suggestion_accepted", mapping=mapping.as_dict())
    await ctx.info("Mapping suggestion stored")
    return MappingReplyResponse(
        mapping=mapping.as_dict(),
        message="Mapping stored. Call clean_loaded_transactions with use_suggested_mapping=true.",
    )


@mcp.tool()
async def build_insight_prompt(
    request: InsightPromptRequest, ctx: Context
) -> InsightPromptResponse:
    """
    Build the text-generation prompt for one pipeline step.

    Steps: mapping (suggest a column mapping from the CSV headers), eda
    (exploratory report), rfm (marketing recommendations per segment), cltv
    (retention, growth and VIP strategies), mba (bundling, layout and
    marketing ideas from the top rules). The step's result must already be
    stored by its tool.

    Args:
        request: Pipeline step

    Returns:
        The prompt, or a notice when the stored result has nothing to discuss
    """
    return await _build_insight_prompt_impl(request, ctx)


@mcp.tool()
async def parse_column_mapping_reply(
    request: MappingReplyRequest, ctx: Context
) -> MappingReplyResponse:
    """
    Validate a column-mapping reply and store it as the suggested mapping.

    The reply must be a JSON object (optionally fenced as ```json) mapping
    customerId, invoiceId, invoiceDate, quantity, unitPrice and description
    to headers of the loaded CSV. Anything else is rejected.

    Args:
        request: Raw reply text

    Returns:
        The accepted mapping
    """
    return await _parse_column_mapping_reply_impl(request, ctx)
