"""CSV ingestion: tokenising, streaming validation, header repair and export."""

from .export import records_to_csv, write_csv
from .header_repair import needs_header_repair, repair_empty_headers
from .parser import (
    DEFAULT_ROW_LIMIT,
    CSVRecordParser,
    ParseResult,
    aparse_csv_stream,
    parse_csv_file,
    parse_csv_stream,
    parse_csv_text,
)
from .tokenizer import quote_field, serialize_row, tokenize_row

__all__ = [
    "DEFAULT_ROW_LIMIT",
    "CSVRecordParser",
    "ParseResult",
    "aparse_csv_stream",
    "needs_header_repair",
    "parse_csv_file",
    "parse_csv_stream",
    "parse_csv_text",
    "quote_field",
    "records_to_csv",
    "repair_empty_headers",
    "serialize_row",
    "tokenize_row",
    "write_csv",
]
