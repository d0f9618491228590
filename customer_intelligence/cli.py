"""Command line entry points for the customer intelligence pipeline."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from customer_intelligence.analyses.exploratory import summarize_transactions
from customer_intelligence.analyses.market_basket import (
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_MIN_LIFT,
    DEFAULT_MIN_SUPPORT,
    mine_association_rules,
)
from customer_intelligence.foundation.rfm import calculate_rfm
from customer_intelligence.foundation.transactions import (
    CleaningOptions,
    ColumnMapping,
    clean_transactions_report,
)
from customer_intelligence.ingestion.export import write_csv
from customer_intelligence.ingestion.header_repair import repair_empty_headers
from customer_intelligence.ingestion.parser import (
    DEFAULT_ROW_LIMIT,
    ParseResult,
    parse_csv_file,
    parse_csv_text,
)
from customer_intelligence.mcp.formatters.markdown_tables import (
    format_cltv_table,
    format_exploratory_table,
    format_rfm_segment_table,
    format_rules_table,
)
from customer_intelligence.models.cltv import (
    DEFAULT_DISCOUNT_RATE,
    DEFAULT_PROFIT_MARGIN,
    calculate_cltv,
)

logger = logging.getLogger(__name__)


def _ingest(path: Path, row_limit: int, fix_headers: bool) -> ParseResult:
    result = parse_csv_file(path, row_limit=row_limit)
    if result.has_empty_headers and fix_headers:
        logger.info(f"Repairing empty column headers in {path}")
        text = path.read_text(encoding="utf-8", errors="replace")
        result = parse_csv_text(repair_empty_headers(text), row_limit=row_limit)
    return result


def _build_mapping(args: argparse.Namespace) -> ColumnMapping:
    values: dict[str, str] = {}
    if args.mapping:
        with args.mapping.open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
        if not isinstance(payload, dict):
            raise ValueError(f"Mapping file {args.mapping} must contain a JSON object")
        values.update(payload)
    for role in ColumnMapping.EXTERNAL_KEYS:
        flag_value = getattr(args, role)
        if flag_value:
            values[role] = flag_value
    return ColumnMapping.from_dict(values)


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Clean a transactions CSV and run RFM, CLTV and market basket analysis"
    )
    parser.add_argument("input", type=Path, help="Path to the transactions CSV file")
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory for the CSV exports and summary.md",
    )
    parser.add_argument(
        "--mapping",
        type=Path,
        help="JSON file mapping roles (customerId, invoiceId, ...) to CSV headers",
    )

    mapping_group = parser.add_argument_group(
        "column mapping", "Override or supply individual role -> header mappings"
    )
    mapping_group.add_argument("--customer-id", dest="customer_id", help="Customer ID column")
    mapping_group.add_argument("--invoice-id", dest="invoice_id", help="Invoice ID column")
    mapping_group.add_argument("--invoice-date", dest="invoice_date", help="Invoice date column")
    mapping_group.add_argument("--quantity", help="Quantity column")
    mapping_group.add_argument("--unit-price", dest="unit_price", help="Unit price column")
    mapping_group.add_argument("--description", help="Product description column")

    parser.add_argument(
        "--row-limit",
        type=_positive_int,
        default=DEFAULT_ROW_LIMIT,
        help=f"Maximum number of data rows to load (default: {DEFAULT_ROW_LIMIT:,})",
    )
    parser.add_argument(
        "--fix-headers",
        action="store_true",
        help="Replace empty column headers with Column_<n> placeholders and retry",
    )

    cleaning_group = parser.add_argument_group("cleaning", "All filters are on by default")
    cleaning_group.add_argument(
        "--keep-duplicates", action="store_true", help="Keep duplicate rows"
    )
    cleaning_group.add_argument(
        "--keep-null-customers",
        action="store_true",
        help="Keep rows without a customer ID",
    )
    cleaning_group.add_argument(
        "--keep-non-positive-quantity",
        action="store_true",
        help="Do not filter rows with zero or negative quantity before conversion",
    )
    cleaning_group.add_argument(
        "--keep-missing-unit-price",
        action="store_true",
        help="Do not filter rows with a missing or non-positive unit price before conversion",
    )

    parser.add_argument(
        "--profit-margin",
        type=float,
        default=DEFAULT_PROFIT_MARGIN,
        help="Profit margin as decimal (default: 0.25 = 25%%)",
    )
    parser.add_argument(
        "--discount-rate",
        type=float,
        default=DEFAULT_DISCOUNT_RATE,
        help="Annual discount rate as decimal (default: 0.10 = 10%%)",
    )
    parser.add_argument(
        "--churn-override",
        type=float,
        help="Churn rate to use instead of the rate derived from the data (0-1)",
    )
    parser.add_argument(
        "--min-support",
        type=float,
        default=DEFAULT_MIN_SUPPORT,
        help="Minimum basket support for items and pairs (default: 0.01 = 1%%)",
    )
    parser.add_argument(
        "--min-confidence",
        type=float,
        default=DEFAULT_MIN_CONFIDENCE,
        help="Minimum rule confidence (default: 0.20 = 20%%)",
    )
    parser.add_argument(
        "--min-lift",
        type=float,
        default=DEFAULT_MIN_LIFT,
        help="Minimum rule lift (default: 1.0)",
    )
    return parser


def run_pipeline_cli(argv: list[str] | None = None) -> int:
    """Run the full pipeline over a CSV file and export every result.

    This command:
    1. Streams the CSV through header and row validation (optionally
       repairing empty headers)
    2. Cleans the raw rows using the column mapping and cleaning switches
    3. Scores customers with RFM and projects CLTV per customer and segment
    4. Mines pairwise association rules
    5. Writes cleaned_transactions.csv, rfm.csv, cltv_segments.csv,
       cltv_customers.csv, association_rules.csv, frequent_items.csv and
       summary.md into the output directory

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, 1 when ingestion, mapping or cleaning fails)
    """
    args = build_parser().parse_args(argv)

    if not args.input.is_file():
        logger.error(f"Input file not found: {args.input}")
        return 1

    logger.info(f"Loading transactions from {args.input}")
    parsed = _ingest(args.input, args.row_limit, args.fix_headers)
    if not parsed.ok:
        for error in parsed.errors:
            logger.error(error)
        if parsed.has_empty_headers:
            logger.error("Re-run with --fix-headers to use placeholder column names")
        return 1
    if parsed.truncated:
        logger.warning(f"Only the first {parsed.row_count:,} rows were loaded")

    try:
        mapping = _build_mapping(args)
        mapping.validate_against(parsed.headers)
    except ValueError as e:
        logger.error(str(e))
        return 1

    options = CleaningOptions(
        remove_duplicate_transactions=not args.keep_duplicates,
        remove_null_customer_id=not args.keep_null_customers,
        remove_negative_quantity=not args.keep_non_positive_quantity,
        handle_missing_unit_price=not args.keep_missing_unit_price,
    )
    report = clean_transactions_report(parsed.rows, mapping, options)
    if report.notice:
        logger.error(report.notice)
        return 1
    transactions = report.transactions

    rfm_records = calculate_rfm(transactions)
    try:
        cltv = calculate_cltv(
            rfm_records,
            profit_margin=args.profit_margin,
            discount_rate=args.discount_rate,
            churn_override=args.churn_override,
        )
        basket = mine_association_rules(
            transactions,
            min_support=args.min_support,
            min_confidence=args.min_confidence,
            min_lift=args.min_lift,
        )
    except ValueError as e:
        logger.error(str(e))
        return 1
    summary = summarize_transactions(transactions)

    output_dir = args.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)
    exports = {
        "cleaned_transactions.csv": transactions,
        "rfm.csv": rfm_records,
        "cltv_segments.csv": cltv.segment_summaries,
        "cltv_customers.csv": cltv.customer_details,
        "association_rules.csv": basket.rules,
        "frequent_items.csv": basket.frequent_items,
    }
    for filename, records in exports.items():
        written = write_csv(records, output_dir / filename)
        if written is None:
            logger.info(f"Nothing to export for {filename}")

    report_lines = [
        "# Customer Intelligence Report\n",
        f"- **Source:** {args.input.name}",
        f"- **Rows Loaded:** {parsed.row_count:,}"
        + (" (row limit reached)" if parsed.truncated else ""),
        f"- **Transactions After Cleaning:** {len(transactions):,} "
        f"({report.dropped_count:,} dropped)\n",
    ]
    if summary is not None:
        report_lines.append(format_exploratory_table(summary))
    report_lines.append(format_rfm_segment_table(rfm_records))
    report_lines.append(format_cltv_table(cltv))
    report_lines.append(format_rules_table(basket))

    summary_path = output_dir / "summary.md"
    with summary_path.open("w", encoding="utf-8") as f:
        f.write("\n".join(report_lines))

    logger.info(f"Pipeline results exported to {output_dir}")
    logger.info(
        f"Scored {len(rfm_records)} customers, "
        f"{len(cltv.segment_summaries)} CLTV segments, "
        f"{len(basket.rules)} association rules"
    )
    return 0


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    raise SystemExit(run_pipeline_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
