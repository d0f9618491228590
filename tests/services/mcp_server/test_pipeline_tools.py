"""Integration tests for the pipeline MCP tools

Tests the tools in pipeline order against a small retail CSV:
1. load_csv_transactions
2. clean_loaded_transactions
3. calculate_rfm_segments
4. calculate_customer_lifetime_value
5. run_market_basket_analysis
6. build_insight_prompt / parse_column_mapping_reply
"""

import pytest
from unittest.mock import AsyncMock
from pydantic import ValidationError

from analytics.services.mcp_server.state import (
    EXPLORATORY_SUMMARY_KEY,
    RFM_RECORDS_KEY,
    TRANSACTIONS_KEY,
    get_shared_state,
)
from analytics.services.mcp_server.tools.data_loader import (
    DATA_ROOT_ENV,
    _load_csv_transactions_impl as load_csv_transactions,
    LoadCSVRequest,
)
from analytics.services.mcp_server.tools.cleaning import (
    NOT_LOADED_MESSAGE,
    _clean_loaded_transactions_impl as clean_loaded_transactions,
    CleanTransactionsRequest,
)
from analytics.services.mcp_server.tools.rfm import (
    NOT_CLEANED_MESSAGE,
    _calculate_rfm_segments_impl as calculate_rfm_segments,
    CalculateRFMRequest,
)
from analytics.services.mcp_server.tools.cltv import (
    NO_RFM_MESSAGE,
    _calculate_customer_lifetime_value_impl as calculate_customer_lifetime_value,
    CalculateCLTVRequest,
)
from analytics.services.mcp_server.tools.market_basket import (
    _run_market_basket_analysis_impl as run_market_basket_analysis,
    MarketBasketRequest,
)
from analytics.services.mcp_server.tools.insights import (
    _build_insight_prompt_impl as build_insight_prompt,
    _parse_column_mapping_reply_impl as parse_column_mapping_reply,
    InsightPromptRequest,
    MappingReplyRequest,
)

RETAIL_CSV = """Invoice,StockCode,Description,Quantity,InvoiceDate,Price,Customer ID,Country
536365,85123A,WHITE HANGING HEART,6,12/1/2010 8:26,2.55,17850,United Kingdom
536365,71053,WHITE METAL LANTERN,6,12/1/2010 8:26,3.39,17850,United Kingdom
536366,22633,HAND WARMER UNION JACK,6,12/1/2010 8:28,1.85,17850,United Kingdom
536367,85123A,WHITE HANGING HEART,32,12/1/2010 8:34,2.55,13047,United Kingdom
536367,71053,WHITE METAL LANTERN,6,12/1/2010 8:34,3.39,13047,United Kingdom
536368,22960,JAM MAKING SET,-1,12/2/2010 9:00,4.25,13047,United Kingdom
536369,21756,BATH BUILDING BLOCK,3,12/3/2010 10:00,5.95,,United Kingdom
"""

MAPPING_FIELDS = dict(
    customer_id="Customer ID",
    invoice_id="Invoice",
    invoice_date="InvoiceDate",
    quantity="Quantity",
    unit_price="Price",
    description="Description",
)


def create_mock_context():
    """Create a mock FastMCP Context for testing."""
    ctx = AsyncMock()
    ctx.info = AsyncMock()
    ctx.report_progress = AsyncMock()
    return ctx


@pytest.fixture(autouse=True)
def data_root(tmp_path, monkeypatch):
    """Point the loader at a temporary data root with a clean shared state."""
    monkeypatch.setenv(DATA_ROOT_ENV, str(tmp_path))
    (tmp_path / "retail.csv").write_text(RETAIL_CSV, encoding="utf-8")
    get_shared_state().clear()
    yield tmp_path
    get_shared_state().clear()


async def load_and_clean(ctx):
    await load_csv_transactions(LoadCSVRequest(file_path="retail.csv"), ctx)
    return await clean_loaded_transactions(CleanTransactionsRequest(**MAPPING_FIELDS), ctx)


@pytest.mark.asyncio
async def test_load_csv_workflow():
    """Test loading a CSV into shared state."""
    ctx = create_mock_context()

    response = await load_csv_transactions(LoadCSVRequest(file_path="retail.csv"), ctx)

    assert response.success is True
    assert response.row_count == 7
    assert response.truncated is False
    assert response.headers[0] == "Invoice"
    assert len(response.sample_rows) == 5
    assert response.sample_rows[0]["Customer ID"] == "17850"
    assert response.notice is None
    ctx.report_progress.assert_awaited()


@pytest.mark.asyncio
async def test_load_csv_row_limit():
    """Test that the row limit truncates loading and reports it."""
    ctx = create_mock_context()

    response = await load_csv_transactions(
        LoadCSVRequest(file_path="retail.csv", row_limit=3), ctx
    )

    assert response.row_count == 3
    assert response.truncated is True
    assert "Row limit of 3 reached" in response.notice


@pytest.mark.asyncio
async def test_load_csv_empty_headers(data_root):
    """Test empty header detection and placeholder repair."""
    (data_root / "blank.csv").write_text(
        "Invoice,,Quantity,InvoiceDate,Price\n1,a,2,1/1/2023,3\n", encoding="utf-8"
    )
    ctx = create_mock_context()

    failed = await load_csv_transactions(LoadCSVRequest(file_path="blank.csv"), ctx)
    repaired = await load_csv_transactions(
        LoadCSVRequest(file_path="blank.csv", auto_fix_headers=True), ctx
    )

    assert failed.success is False
    assert failed.has_empty_headers is True
    assert failed.errors
    assert repaired.success is True
    assert repaired.headers_repaired is True
    assert repaired.headers[1] == "Column_2"


@pytest.mark.asyncio
async def test_load_csv_rejects_paths_outside_data_root():
    """Test that files outside the data root cannot be loaded."""
    ctx = create_mock_context()

    with pytest.raises(ValueError, match="outside allowed directory"):
        await load_csv_transactions(LoadCSVRequest(file_path="../retail.csv"), ctx)

    with pytest.raises(FileNotFoundError):
        await load_csv_transactions(LoadCSVRequest(file_path="missing.csv"), ctx)


@pytest.mark.asyncio
async def test_cleaning_workflow():
    """Test cleaning with an explicit mapping."""
    ctx = create_mock_context()

    response = await load_and_clean(ctx)

    # 536368 has negative quantity, 536369 has no customer
    assert response.input_count == 7
    assert response.cleaned_count == 5
    assert response.dropped_count == 2
    assert response.customer_count == 2
    assert response.invoice_count == 3
    assert response.mapping["customerId"] == "Customer ID"
    assert response.date_range[0].startswith("2010-12-01T08:26")
    assert "## Exploratory Summary" in response.summary_table
    assert response.notice is None

    state = get_shared_state()
    assert len(state.get(TRANSACTIONS_KEY)) == 5
    assert state.get(EXPLORATORY_SUMMARY_KEY).unique_customers == 2


@pytest.mark.asyncio
async def test_cleaning_requires_loaded_rows():
    """Test that cleaning before loading fails."""
    ctx = create_mock_context()

    with pytest.raises(ValueError, match=NOT_LOADED_MESSAGE):
        await clean_loaded_transactions(CleanTransactionsRequest(**MAPPING_FIELDS), ctx)


@pytest.mark.asyncio
async def test_cleaning_requires_complete_mapping():
    """Test that every role must be mapped."""
    ctx = create_mock_context()
    await load_csv_transactions(LoadCSVRequest(file_path="retail.csv"), ctx)

    with pytest.raises(ValueError, match="Please map the following fields: unit_price"):
        await clean_loaded_transactions(
            CleanTransactionsRequest(**{**MAPPING_FIELDS, "unit_price": None}), ctx
        )


@pytest.mark.asyncio
async def test_cleaning_empty_result_notice():
    """Test that removing every row is reported, not raised."""
    ctx = create_mock_context()
    await load_csv_transactions(LoadCSVRequest(file_path="retail.csv"), ctx)

    response = await clean_loaded_transactions(
        CleanTransactionsRequest(**{**MAPPING_FIELDS, "invoice_date": "Country"}), ctx
    )

    assert response.cleaned_count == 0
    assert response.notice is not None
    assert response.summary_table is None


@pytest.mark.asyncio
async def test_rfm_cltv_and_basket_workflow():
    """Test the analysis tools chained on cleaned transactions."""
    ctx = create_mock_context()
    await load_and_clean(ctx)

    rfm = await calculate_rfm_segments(CalculateRFMRequest(include_customers=True), ctx)

    assert rfm.customer_count == 2
    assert sum(rfm.segment_distribution.values()) == 2
    assert set(rfm.score_distributions) == {"r", "f", "m"}
    assert [c["CustomerID"] for c in rfm.customers] == ["13047", "17850"]
    assert "## RFM Segmentation" in rfm.segment_table

    cltv = await calculate_customer_lifetime_value(
        CalculateCLTVRequest(profit_margin=0.3, discount_rate=0.1), ctx
    )

    # Both customers bought more than once
    assert cltv.base_churn_rate == 0.0
    assert cltv.churn_overridden is False
    assert cltv.avg_customer_lifetime is None
    assert len(cltv.top_customers) == 2
    assert cltv.top_customers[0]["CustomerID"] == "13047"
    assert cltv.total_projected_value > 0

    overridden = await calculate_customer_lifetime_value(
        CalculateCLTVRequest(churn_override=0.5), ctx
    )
    assert overridden.churn_overridden is True
    assert overridden.avg_customer_lifetime == pytest.approx(2.0)

    basket = await run_market_basket_analysis(MarketBasketRequest(), ctx)

    assert basket.basket_count == 3
    assert basket.rule_count == 2
    assert basket.rules[0]["antecedent"] == "WHITE HANGING HEART"
    assert basket.rules[0]["consequent"] == "WHITE METAL LANTERN"
    assert basket.rules[0]["lift"] == pytest.approx(1.5)
    assert basket.notice is None


@pytest.mark.asyncio
async def test_analysis_tools_require_prerequisites():
    """Test that each tool reports the step that must run first."""
    ctx = create_mock_context()

    with pytest.raises(ValueError, match=NOT_CLEANED_MESSAGE):
        await calculate_rfm_segments(CalculateRFMRequest(), ctx)
    with pytest.raises(ValueError, match=NO_RFM_MESSAGE):
        await calculate_customer_lifetime_value(CalculateCLTVRequest(), ctx)
    with pytest.raises(ValueError, match=NOT_CLEANED_MESSAGE):
        await run_market_basket_analysis(MarketBasketRequest(), ctx)
    with pytest.raises(ValueError, match="Run calculate_rfm_segments first"):
        await build_insight_prompt(InsightPromptRequest(step="rfm"), ctx)


@pytest.mark.asyncio
async def test_reloading_invalidates_derived_results():
    """Test that loading a new file drops results derived from the old one."""
    ctx = create_mock_context()
    await load_and_clean(ctx)
    await calculate_rfm_segments(CalculateRFMRequest(), ctx)

    await load_csv_transactions(LoadCSVRequest(file_path="retail.csv"), ctx)

    state = get_shared_state()
    assert not state.has(TRANSACTIONS_KEY)
    assert not state.has(RFM_RECORDS_KEY)
    with pytest.raises(ValueError, match=NOT_CLEANED_MESSAGE):
        await calculate_rfm_segments(CalculateRFMRequest(), ctx)


def test_request_validation():
    """Test parameter ranges on request models."""
    with pytest.raises(ValidationError):
        CalculateCLTVRequest(churn_override=1.5)
    with pytest.raises(ValidationError):
        MarketBasketRequest(min_support=2.0)
    with pytest.raises(ValidationError):
        LoadCSVRequest(file_path="retail.csv", row_limit=0)


@pytest.mark.asyncio
async def test_mapping_prompt_and_reply_workflow():
    """Test suggesting a mapping and cleaning with it."""
    ctx = create_mock_context()
    await load_csv_transactions(LoadCSVRequest(file_path="retail.csv"), ctx)

    prompt = await build_insight_prompt(InsightPromptRequest(step="mapping"), ctx)
    assert "Customer ID" in prompt.prompt

    reply = (
        '```json\n{"customerId": "Customer ID", "invoiceId": "Invoice", '
        '"invoiceDate": "InvoiceDate", "quantity": "Quantity", '
        '"unitPrice": "Price", "description": "Description"}\n```'
    )
    accepted = await parse_column_mapping_reply(MappingReplyRequest(reply=reply), ctx)
    assert accepted.mapping["unitPrice"] == "Price"

    cleaned = await clean_loaded_transactions(
        CleanTransactionsRequest(use_suggested_mapping=True), ctx
    )
    assert cleaned.cleaned_count == 5


@pytest.mark.asyncio
async def test_mapping_reply_rejected():
    """Test that incomplete mapping replies are rejected."""
    ctx = create_mock_context()
    await load_csv_transactions(LoadCSVRequest(file_path="retail.csv"), ctx)

    with pytest.raises(ValueError, match="could not confidently map"):
        await parse_column_mapping_reply(
            MappingReplyRequest(reply='{"customerId": "Customer ID"}'), ctx
        )


@pytest.mark.asyncio
async def test_insight_prompts_for_each_step():
    """Test prompts built from stored results."""
    ctx = create_mock_context()
    await load_and_clean(ctx)
    await calculate_rfm_segments(CalculateRFMRequest(), ctx)
    await calculate_customer_lifetime_value(
        CalculateCLTVRequest(profit_margin=0.25, discount_rate=0.1), ctx
    )
    await run_market_basket_analysis(MarketBasketRequest(), ctx)

    eda = await build_insight_prompt(InsightPromptRequest(step="eda"), ctx)
    rfm = await build_insight_prompt(InsightPromptRequest(step="rfm"), ctx)
    cltv = await build_insight_prompt(InsightPromptRequest(step="cltv"), ctx)
    mba = await build_insight_prompt(InsightPromptRequest(step="mba"), ctx)

    assert "exploratory data analysis report" in eda.prompt
    assert "RFM segmentation" in rfm.prompt
    assert "**Profit Margin:** 25%" in cltv.prompt
    assert "IF a customer buys {WHITE HANGING HEART}" in mba.prompt


@pytest.mark.asyncio
async def test_insight_prompt_without_rules():
    """Test that an empty rule set yields a notice instead of a prompt."""
    ctx = create_mock_context()
    await load_and_clean(ctx)
    await run_market_basket_analysis(MarketBasketRequest(min_lift=5.0), ctx)

    response = await build_insight_prompt(InsightPromptRequest(step="mba"), ctx)

    assert response.prompt is None
    assert "Nothing to discuss" in response.notice
