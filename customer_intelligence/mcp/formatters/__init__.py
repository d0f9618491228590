"""Presentation helpers for customer intelligence results.

This package provides formatters for converting pipeline results into
presentation-ready text:

- Markdown tables for readable text output
- Prompt builders for the external text-generation service, plus parsing of
  its column-mapping reply
"""

from customer_intelligence.mcp.formatters.markdown_tables import (
    format_cltv_table,
    format_exploratory_table,
    format_rfm_segment_table,
    format_rules_table,
)
from customer_intelligence.mcp.formatters.prompts import (
    build_cltv_prompt,
    build_eda_prompt,
    build_mapping_prompt,
    build_mba_prompt,
    build_rfm_prompt,
    format_rule_sentence,
    parse_mapping_response,
)

__all__ = [
    # Markdown tables
    "format_exploratory_table",
    "format_rfm_segment_table",
    "format_cltv_table",
    "format_rules_table",
    # Prompts
    "build_mapping_prompt",
    "parse_mapping_response",
    "build_eda_prompt",
    "build_rfm_prompt",
    "build_cltv_prompt",
    "build_mba_prompt",
    "format_rule_sentence",
]
