"""Export analysis records to CSV text using the ingestion quoting rule."""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping

from customer_intelligence.ingestion.tokenizer import serialize_row

logger = logging.getLogger(__name__)


def _record_to_mapping(record: Any) -> Mapping[str, Any]:
    if isinstance(record, Mapping):
        return record
    as_dict = getattr(record, "as_dict", None)
    if callable(as_dict):
        return as_dict()
    if dataclasses.is_dataclass(record) and not isinstance(record, type):
        return dataclasses.asdict(record)
    raise TypeError(f"Cannot export record of type {type(record).__name__}")


def _render(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def records_to_csv(records: Iterable[Any]) -> str:
    """Serialise records to a CSV document.

    The header row is the keys of the first record in insertion order. Every
    following row looks up the same keys; missing keys and ``None`` values
    render as empty cells. Rows are joined with ``\\n`` and no trailing
    newline is written.

    Parameters
    ----------
    records:
        Mappings, or dataclass records. Records exposing ``as_dict()`` are
        exported with their external column names (``CustomerID``, ...).

    Returns
    -------
    str
        CSV text, or an empty string when there are no records.

    Examples
    --------
    >>> print(records_to_csv([{"item": "Mug, large", "qty": 2}, {"item": "Tea"}]))
    item,qty
    "Mug, large",2
    Tea,
    """
    rows = [_record_to_mapping(record) for record in records]
    if not rows:
        return ""

    headers = list(rows[0].keys())
    lines = [serialize_row(headers)]
    for row in rows:
        lines.append(serialize_row(_render(row.get(header)) for header in headers))
    return "\n".join(lines)


def write_csv(records: Iterable[Any], output_path: str | Path) -> Path | None:
    """Write records to ``output_path`` as UTF-8 CSV.

    Returns the written path, or ``None`` when there was nothing to export.
    """
    content = records_to_csv(records)
    if not content:
        logger.info(f"No records to export to {output_path}")
        return None

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8", newline="") as fh:
        fh.write(content)

    logger.info(f"Exported {content.count(chr(10))} rows to {output_path}")
    return output_path
