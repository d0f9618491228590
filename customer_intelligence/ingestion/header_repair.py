"""Repair CSV documents whose header row contains blank column names."""

from __future__ import annotations

import logging
import re

from customer_intelligence.ingestion.tokenizer import serialize_row, tokenize_row

logger = logging.getLogger(__name__)

PLACEHOLDER_TEMPLATE = "Column_{index}"

_LINE_BREAK = re.compile(r"\r\n|\n|\r")
_BOM = "\ufeff"


def _locate_header(text: str) -> tuple[int, int] | None:
    """Return the (start, end) span of the first non-blank line."""
    position = 0
    while True:
        match = _LINE_BREAK.search(text, position)
        end = match.start() if match else len(text)
        if text[position:end].lstrip(_BOM).strip():
            return position, end
        if match is None:
            return None
        position = match.end()


def placeholder_headers(headers: list[str]) -> list[str]:
    """Replace blank header names with ``Column_<1-based index>``.

    >>> placeholder_headers(["A", " ", "C"])
    ['A', 'Column_2', 'C']
    """
    return [
        PLACEHOLDER_TEMPLATE.format(index=index) if header.strip() == "" else header
        for index, header in enumerate(headers, start=1)
    ]


def needs_header_repair(text: str) -> bool:
    """Whether the document's header row contains a blank column name."""
    span = _locate_header(text)
    if span is None:
        return False
    headers = tokenize_row(text[span[0] : span[1]].lstrip(_BOM))
    return any(header.strip() == "" for header in headers)


def repair_empty_headers(text: str) -> str:
    """Rewrite the header row so that every column has a name.

    Only the header line is touched. All other lines, including their line
    terminators, are returned verbatim. The rewritten header uses the export
    quoting rule, so the result can be fed straight back into
    :func:`customer_intelligence.ingestion.parser.parse_csv_text`.

    Parameters
    ----------
    text:
        Full CSV document.

    Returns
    -------
    str
        The document with blank headers replaced by placeholders, or the
        input unchanged when there was nothing to repair.

    Examples
    --------
    >>> repair_empty_headers("A,,C,D\\n1,2,3,4\\n")
    'A,Column_2,C,D\\n1,2,3,4\\n'
    """
    span = _locate_header(text)
    if span is None:
        return text

    start, end = span
    header_line = text[start:end]
    prefix = _BOM if header_line.startswith(_BOM) else ""
    headers = tokenize_row(header_line[len(prefix) :])
    repaired = placeholder_headers(headers)
    if repaired == headers:
        return text

    renamed = sum(1 for old, new in zip(headers, repaired) if old != new)
    logger.info(f"Replaced {renamed} empty column headers with placeholders")
    return text[:start] + prefix + serialize_row(repaired) + text[end:]
