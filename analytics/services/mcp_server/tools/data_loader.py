"""CSV loading tool for MCP server."""

import asyncio
import os
from pathlib import Path

import structlog
from customer_intelligence.ingestion.header_repair import repair_empty_headers
from customer_intelligence.ingestion.parser import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_ROW_LIMIT,
    aiter_file_chunks,
    aparse_csv_stream,
    parse_csv_text,
)
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.state import PARSE_RESULT_KEY, get_shared_state

logger = structlog.get_logger(__name__)

DATA_ROOT_ENV = "CUSTOMER_INTEL_DATA_ROOT"
SAMPLE_ROWS = 5


def _data_root() -> Path:
    """Directory files may be loaded from (project root unless overridden)."""
    configured = os.getenv(DATA_ROOT_ENV)
    if configured:
        return Path(configured).resolve()
    # analytics/services/mcp_server/tools/data_loader.py -> project root
    return Path(__file__).parent.parent.parent.parent.parent.resolve()


def resolve_data_path(file_path: str) -> Path:
    """Resolve ``file_path`` against the data root and keep it inside it.

    Raises:
        ValueError: If the resolved path escapes the data root
        FileNotFoundError: If the file does not exist
    """
    root = _data_root()
    path = Path(file_path)
    if not path.is_absolute():
        path = root / path

    resolved_path = path.resolve()
    try:
        resolved_path.relative_to(root)
    except ValueError as e:
        raise ValueError(
            f"Path {resolved_path} is outside allowed directory {root}. "
            f"Only files within the data directory can be loaded."
        ) from e

    if not resolved_path.is_file():
        raise FileNotFoundError(f"Transaction file not found: {resolved_path}")
    return resolved_path


class LoadCSVRequest(BaseModel):
    """Request to stream a transactions CSV file into memory."""

    file_path: str = Field(
        description="Path to the CSV file (relative to the data root or absolute within it)",
    )
    row_limit: int = Field(
        default=DEFAULT_ROW_LIMIT,
        gt=0,
        description="Maximum number of data rows to load; the rest of the file is not read",
    )
    auto_fix_headers: bool = Field(
        default=False,
        description="Replace empty column headers with Column_<n> placeholders and retry",
    )


class LoadCSVResponse(BaseModel):
    """Summary of one ingestion attempt."""

    file_path: str
    success: bool
    row_count: int
    truncated: bool
    headers: list[str]
    errors: list[str]
    has_empty_headers: bool
    headers_repaired: bool
    sample_rows: list[dict[str, str]]
    message: str
    notice: str | None = None


async def _load_csv_transactions_impl(
    request: LoadCSVRequest, ctx: Context
) -> LoadCSVResponse:
    """Implementation of CSV loading logic."""
    path = resolve_data_path(request.file_path)
    await ctx.info(f"Streaming {path.name} (row limit {request.row_limit:,})")

    result = await aparse_csv_stream(
        aiter_file_chunks(path, DEFAULT_CHUNK_SIZE), row_limit=request.row_limit
    )

    headers_repaired = False
    if result.has_empty_headers and request.auto_fix_headers:
        await ctx.info("Empty column headers found; retrying with placeholder names")
        text = await asyncio.to_thread(
            path.read_text, encoding="utf-8", errors="replace"
        )
        result = parse_csv_text(repair_empty_headers(text), row_limit=request.row_limit)
        headers_repaired = True

    await ctx.report_progress(1.0, 1.0)

    if not result.ok:
        logger.warning(
            "csv_load_failed",
            file_path=str(path),
            errors=result.errors,
            has_empty_headers=result.has_empty_headers,
        )
        return LoadCSVResponse(
            file_path=str(path),
            success=False,
            row_count=0,
            truncated=False,
            headers=list(result.headers),
            errors=result.errors,
            has_empty_headers=result.has_empty_headers,
            headers_repaired=headers_repaired,
            sample_rows=[],
            message=f"Could not load {path.name}",
        )

    invalidated = get_shared_state().replace(PARSE_RESULT_KEY, result)

    notice = None
    if result.truncated:
        notice = (
            f"Row limit of {request.row_limit:,} reached; only the first "
            f"{result.row_count:,} rows were loaded."
        )

    logger.info(
        "csv_loaded",
        file_path=str(path),
        row_count=result.row_count,
        column_count=len(result.headers),
        truncated=result.truncated,
        headers_repaired=headers_repaired,
        invalidated=invalidated,
    )
    await ctx.info(f"Loaded {result.row_count:,} rows from {path.name}")

    return LoadCSVResponse(
        file_path=str(path),
        success=True,
        row_count=result.row_count,
        truncated=result.truncated,
        headers=list(result.headers),
        errors=[],
        has_empty_headers=False,
        headers_repaired=headers_repaired,
        sample_rows=result.rows[:SAMPLE_ROWS],
        message=f"Loaded {result.row_count:,} rows from {path.name}",
        notice=notice,
    )


@mcp.tool()
async def load_csv_transactions(
    request: LoadCSVRequest, ctx: Context
) -> LoadCSVResponse:
    """
    Load raw transaction rows from a CSV file.

    The file is streamed and validated (at least 4 columns, unique non-empty
    headers, consistent row widths). Loading stops at the row limit without
    reading the rest of the file. Structural problems are returned in
    `errors`; with `auto_fix_headers` empty headers are replaced by
    Column_<n> placeholders and the file is parsed again.

    Loaded rows replace any previously loaded data and every result derived
    from it.

    Args:
        request: File path, row limit and header repair switch

    Returns:
        Row count, headers, sample rows and any validation errors
    """
    return await _load_csv_transactions_impl(request, ctx)
