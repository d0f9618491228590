"""
Customer Intelligence Pipeline MCP Server

Exposes CSV ingestion, cleaning, RFM segmentation, CLTV projection, market
basket analysis and insight prompt building as MCP tools. Intermediate
results live in process memory for the life of the server.
"""

import logging
import os
import sys
from contextlib import asynccontextmanager

import structlog

from analytics.services.mcp_server.instance import VERSION

LOG_LEVEL = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

# Configure structlog to write to stderr, not stdout (to avoid interfering with MCP JSON protocol)
logging.basicConfig(
    format="%(message)s",
    stream=sys.stderr,
    level=LOG_LEVEL,
)

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL),
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def app_lifespan(app):
    """Log server startup and shutdown, and reset shared state on exit."""
    from analytics.services.mcp_server.state import get_shared_state

    logger.info(
        "mcp_server_starting",
        version=VERSION,
        environment=os.getenv("ENVIRONMENT", "development"),
        data_root=os.getenv("CUSTOMER_INTEL_DATA_ROOT"),
    )

    yield

    get_shared_state().clear()
    logger.info("mcp_server_stopping")


# Import MCP server instance (must be imported before tools to avoid circular imports)
from analytics.services.mcp_server.instance import mcp  # noqa: E402

# Configure lifespan
mcp.lifespan = app_lifespan

# These imports MUST happen before mcp.run() is called
# Each module registers its tools using the @mcp.tool() decorator
from analytics.services.mcp_server.tools import (  # noqa: E402, F401
    cleaning,
    cltv,
    data_loader,
    insights,
    market_basket,
    rfm,
)

logger.info(
    "mcp_server_initialized",
    tools_registered=7,
    tools=[
        "load_csv_transactions",
        "clean_loaded_transactions",
        "calculate_rfm_segments",
        "calculate_customer_lifetime_value",
        "run_market_basket_analysis",
        "build_insight_prompt",
        "parse_column_mapping_reply",
    ],
)


if __name__ == "__main__":
    mcp.run()
