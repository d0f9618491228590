"""Cleaning MCP Tool

Applies a column mapping and cleaning switches to the loaded rows and
stores canonical transactions plus an exploratory summary.
"""

from dataclasses import asdict

import structlog
from customer_intelligence.analyses.exploratory import summarize_transactions
from customer_intelligence.foundation.transactions import (
    CleaningOptions,
    ColumnMapping,
    clean_transactions_report,
)
from customer_intelligence.mcp.formatters.markdown_tables import format_exploratory_table
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.state import (
    EXPLORATORY_SUMMARY_KEY,
    PARSE_RESULT_KEY,
    SUGGESTED_MAPPING_KEY,
    TRANSACTIONS_KEY,
    get_shared_state,
)

logger = structlog.get_logger(__name__)

NOT_LOADED_MESSAGE = "Transactions not loaded. Run load_csv_transactions first."


class CleanTransactionsRequest(BaseModel):
    """Column mapping and cleaning switches."""

    customer_id: str | None = Field(default=None, description="Header holding the customer ID")
    invoice_id: str | None = Field(default=None, description="Header holding the invoice / order ID")
    invoice_date: str | None = Field(default=None, description="Header holding the transaction date")
    quantity: str | None = Field(default=None, description="Header holding the quantity")
    unit_price: str | None = Field(default=None, description="Header holding the unit price")
    description: str | None = Field(default=None, description="Header holding the product name")
    use_suggested_mapping: bool = Field(
        default=False,
        description="Start from the mapping stored by parse_column_mapping_reply; "
        "explicit fields override it",
    )
    remove_duplicate_transactions: bool = Field(default=True, description="Drop exact duplicate rows")
    remove_null_customer_id: bool = Field(default=True, description="Drop rows without a customer ID")
    remove_negative_quantity: bool = Field(
        default=True, description="Drop rows whose quantity is zero, negative or not numeric"
    )
    handle_missing_unit_price: bool = Field(
        default=True, description="Drop rows whose unit price is zero, negative or not numeric"
    )


class CleanTransactionsResponse(BaseModel):
    """Cleaning outcome with headline statistics."""

    mapping: dict[str, str]
    input_count: int
    cleaned_count: int
    dropped_count: int
    customer_count: int
    invoice_count: int
    date_range: tuple[str, str] | None = None
    total_revenue: float
    avg_order_value: float | None = None
    summary_table: str | None = None
    notice: str | None = None


def _resolve_mapping(request: CleanTransactionsRequest) -> ColumnMapping:
    values: dict[str, str] = {}
    if request.use_suggested_mapping:
        suggested = get_shared_state().get(SUGGESTED_MAPPING_KEY)
        if suggested is None:
            raise ValueError(
                "No suggested mapping stored. Run parse_column_mapping_reply first."
            )
        values.update(suggested.roles())
    for role in ColumnMapping.EXTERNAL_KEYS:
        header = getattr(request, role)
        if header:
            values[role] = header
    return ColumnMapping.from_dict(values)


async def _clean_loaded_transactions_impl(
    request: CleanTransactionsRequest, ctx: Context
) -> CleanTransactionsResponse:
    """Implementation of cleaning logic."""
    shared_state = get_shared_state()
    parsed = shared_state.get(PARSE_RESULT_KEY)
    if parsed is None:
        raise ValueError(NOT_LOADED_MESSAGE)

    mapping = _resolve_mapping(request)
    mapping.validate_against(parsed.headers)
    options = CleaningOptions(
        remove_duplicate_transactions=request.remove_duplicate_transactions,
        remove_null_customer_id=request.remove_null_customer_id,
        remove_negative_quantity=request.remove_negative_quantity,
        handle_missing_unit_price=request.handle_missing_unit_price,
    )

    await ctx.info(f"Cleaning {parsed.row_count:,} rows")
    report = clean_transactions_report(parsed.rows, mapping, options)
    transactions = report.transactions
    await ctx.report_progress(0.8, 1.0)

    summary = summarize_transactions(transactions)
    shared_state.replace(TRANSACTIONS_KEY, transactions)
    shared_state.set(EXPLORATORY_SUMMARY_KEY, summary)

    date_range = None
    if transactions:
        dates = [t.invoice_date for t in transactions]
        date_range = (min(dates).isoformat(), max(dates).isoformat())

    logger.info(
        "transactions_cleaned",
        input_count=report.input_count,
        cleaned_count=len(transactions),
        dropped_count=report.dropped_count,
        options=asdict(options),
    )
    await ctx.info(
        f"Cleaning complete: {len(transactions):,} of {report.input_count:,} rows kept"
    )

    return CleanTransactionsResponse(
        mapping=mapping.as_dict(),
        input_count=report.input_count,
        cleaned_count=len(transactions),
        dropped_count=report.dropped_count,
        customer_count=summary.unique_customers if summary else 0,
        invoice_count=len({t.invoice_id for t in transactions}),
        date_range=date_range,
        total_revenue=summary.total_revenue if summary else 0.0,
        avg_order_value=summary.avg_order_value if summary else None,
        summary_table=format_exploratory_table(summary) if summary else None,
        notice=report.notice,
    )


@mcp.tool()
async def clean_loaded_transactions(
    request: CleanTransactionsRequest, ctx: Context
) -> CleanTransactionsResponse:
    """
    Clean the loaded rows into canonical transactions.

    Maps the CSV headers to customer ID, invoice ID, invoice date, quantity,
    unit price and description, then removes duplicates, rows without a
    customer, and rows with non-positive quantity or price (each switch can
    be turned off). Rows with an unparseable date or non-positive total are
    always dropped.

    An empty result is reported through `notice` rather than as an error.

    Args:
        request: Column mapping and cleaning switches

    Returns:
        Counts, date range, revenue statistics and a markdown summary
    """
    return await _clean_loaded_transactions_impl(request, ctx)
