"""Canonical transaction contract and the cleaning pipeline that produces it.

Raw records coming out of ingestion are opaque ``header -> string`` mappings.
The :class:`ColumnMapping` names which header plays each canonical role, and
:func:`clean_transactions` filters the raw records and derives immutable
:class:`CanonicalTransaction` objects that every downstream engine consumes.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Sequence

logger = logging.getLogger(__name__)

NO_TRANSACTIONS_NOTICE = (
    "Cleaning process resulted in 0 valid transactions. "
    "Please review your mapping and cleaning options."
)

# Leading numeric prefix, e.g. "3 pcs" -> 3, "1.5e2x" -> 150
_NUMBER_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

# M/D/YYYY or M-D-YYYY with an optional [ T]H:MM[:SS] suffix
_MONTH_DAY_YEAR = re.compile(
    r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})(?:[ T](\d{1,2}):(\d{2})(?::(\d{1,2}))?)?"
)


@dataclass(frozen=True)
class ColumnMapping:
    """Names of the source headers that play each canonical role.

    Attributes
    ----------
    customer_id:
        Header identifying the customer.
    invoice_id:
        Header identifying an order / invoice (one basket).
    invoice_date:
        Header holding the transaction date.
    quantity:
        Header holding the number of units purchased.
    unit_price:
        Header holding the price of a single unit.
    description:
        Header holding the product name.
    """

    customer_id: str
    invoice_id: str
    invoice_date: str
    quantity: str
    unit_price: str
    description: str

    #: External (camelCase) configuration keys for each role.
    EXTERNAL_KEYS = {
        "customer_id": "customerId",
        "invoice_id": "invoiceId",
        "invoice_date": "invoiceDate",
        "quantity": "quantity",
        "unit_price": "unitPrice",
        "description": "description",
    }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ColumnMapping:
        """Build a mapping from snake_case or camelCase keys.

        Missing roles become empty strings so that :meth:`missing_fields`
        can report them.
        """
        values = {}
        for role, external in cls.EXTERNAL_KEYS.items():
            value = data.get(role, data.get(external, ""))
            values[role] = "" if value is None else str(value)
        return cls(**values)

    def roles(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def missing_fields(self) -> list[str]:
        """Roles that have not been assigned a header."""
        return [role for role, header in self.roles().items() if not header]

    def validate_against(self, headers: Iterable[str]) -> None:
        """Raise ``ValueError`` unless every role maps to one of ``headers``."""
        missing = self.missing_fields()
        if missing:
            raise ValueError(
                f"Please map the following fields: {', '.join(missing)}."
            )
        available = set(headers)
        unknown = {
            role: header
            for role, header in self.roles().items()
            if header not in available
        }
        if unknown:
            details = ", ".join(f"{role}={header!r}" for role, header in unknown.items())
            raise ValueError(f"Mapped columns not found in data: {details}")

    def as_dict(self) -> dict[str, str]:
        return {
            external: getattr(self, role) for role, external in self.EXTERNAL_KEYS.items()
        }


@dataclass(frozen=True)
class CleaningOptions:
    """Independent switches for the cleaning filters. All default to on."""

    remove_duplicate_transactions: bool = True
    remove_null_customer_id: bool = True
    remove_negative_quantity: bool = True
    handle_missing_unit_price: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CleaningOptions:
        camel = {
            "removeDuplicateTransactions": "remove_duplicate_transactions",
            "removeNullCustomerId": "remove_null_customer_id",
            "removeNegativeQuantity": "remove_negative_quantity",
            "handleMissingUnitPrice": "handle_missing_unit_price",
        }
        values = {}
        for key, value in data.items():
            name = camel.get(key, key)
            if name not in cls.__dataclass_fields__:
                raise ValueError(f"Unknown cleaning option: {key}")
            values[name] = bool(value)
        return cls(**values)


@dataclass(frozen=True)
class CanonicalTransaction:
    """A cleaned transaction line.

    Attributes
    ----------
    customer_id:
        Customer identifier (may be empty when null customers are kept)
    invoice_id:
        Invoice / order identifier, never empty
    description:
        Product description, never empty
    invoice_date:
        Transaction timestamp, timezone-aware UTC
    quantity:
        Units purchased
    unit_price:
        Price per unit
    total_price:
        quantity × unit_price, always positive
    """

    customer_id: str
    invoice_id: str
    description: str
    invoice_date: datetime
    quantity: float
    unit_price: float
    total_price: float

    def __post_init__(self) -> None:
        if not self.invoice_id:
            raise ValueError(
                f"Invoice ID cannot be empty (customer_id={self.customer_id})"
            )
        if not self.description:
            raise ValueError(
                f"Description cannot be empty (invoice_id={self.invoice_id})"
            )
        if not isinstance(self.invoice_date, datetime) or self.invoice_date.tzinfo is None:
            raise ValueError(
                f"Invoice date must be a timezone-aware datetime: {self.invoice_date!r} "
                f"(invoice_id={self.invoice_id})"
            )
        if not math.isfinite(self.total_price) or self.total_price <= 0:
            raise ValueError(
                f"Total price must be positive: {self.total_price} "
                f"(invoice_id={self.invoice_id})"
            )

    def as_dict(self) -> dict[str, object]:
        return {
            "CustomerID": self.customer_id,
            "InvoiceID": self.invoice_id,
            "Description": self.description,
            "InvoiceDate": self.invoice_date.isoformat(),
            "Quantity": self.quantity,
            "UnitPrice": self.unit_price,
            "TotalPrice": self.total_price,
        }


@dataclass(frozen=True)
class CleaningReport:
    """Cleaned transactions plus counts for reporting.

    ``notice`` carries an informational message when nothing survived
    cleaning. It is not an error: the caller should revisit the mapping or
    relax the options.
    """

    transactions: list[CanonicalTransaction]
    input_count: int
    dropped_count: int
    notice: str | None = None


def parse_number(value: Any) -> float:
    """Parse the leading numeric portion of a cell, NaN when there is none.

    >>> parse_number(" 12.5 units")
    12.5
    >>> math.isnan(parse_number("n/a"))
    True
    """
    if value is None:
        return math.nan
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = _NUMBER_PREFIX.match(str(value))
    if match is None:
        return math.nan
    return float(match.group(1))


def parse_invoice_date(value: Any) -> datetime | None:
    """Parse a transaction date into a UTC datetime.

    ISO-8601 strings are tried first; naive results are taken as UTC and
    aware results converted to UTC. Otherwise ``M/D/YYYY [H:MM[:SS]]`` (or
    with ``-`` separators) is built in UTC, and rejected unless the year,
    month and day survive construction unchanged.

    Returns ``None`` when the value cannot be parsed.

    Examples
    --------
    >>> parse_invoice_date("12/1/2010 8:26")
    datetime.datetime(2010, 12, 1, 8, 26, tzinfo=datetime.timezone.utc)
    >>> parse_invoice_date("2/30/2023") is None
    True
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        try:
            return parsed.astimezone(timezone.utc)
        except OverflowError:
            return None

    match = _MONTH_DAY_YEAR.match(text)
    if match is None:
        return None

    month, day, year = (int(part) for part in match.group(1, 2, 3))
    hour, minute, second = (int(part or 0) for part in match.group(4, 5, 6))
    try:
        midnight = datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None

    # Out-of-range times roll over like a calendar would; reject if that
    # moves the date away from what was written.
    try:
        parsed = midnight + timedelta(hours=hour, minutes=minute, seconds=second)
    except OverflowError:
        return None
    if (parsed.year, parsed.month, parsed.day) != (year, month, day):
        return None
    return parsed


def _deduplicate(records: Sequence[Mapping[str, str]]) -> list[Mapping[str, str]]:
    seen: set[tuple[tuple[str, Any], ...]] = set()
    unique = []
    for record in records:
        key = tuple(record.items())
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def _to_canonical(
    record: Mapping[str, str], mapping: ColumnMapping
) -> CanonicalTransaction | None:
    invoice_date = parse_invoice_date(record.get(mapping.invoice_date))
    quantity = parse_number(record.get(mapping.quantity))
    unit_price = parse_number(record.get(mapping.unit_price))
    total_price = quantity * unit_price
    invoice_id = record.get(mapping.invoice_id) or ""
    description = record.get(mapping.description) or ""

    if invoice_date is None:
        return None
    if not math.isfinite(total_price) or total_price <= 0:
        return None
    if not invoice_id or not description:
        return None

    return CanonicalTransaction(
        customer_id=record.get(mapping.customer_id) or "",
        invoice_id=invoice_id,
        description=description,
        invoice_date=invoice_date,
        quantity=quantity,
        unit_price=unit_price,
        total_price=total_price,
    )


def clean_transactions_report(
    raw_records: Sequence[Mapping[str, str]],
    mapping: ColumnMapping,
    options: CleaningOptions | None = None,
) -> CleaningReport:
    """Run the cleaning pipeline and report what survived.

    Filters run in a fixed order: duplicate removal (first occurrence wins),
    empty customer IDs, non-positive quantities, non-positive unit prices.
    Every remaining record is then converted, and records with an unparseable
    date, a non-positive or non-numeric total, or an empty invoice ID or
    description are dropped.

    Parameters
    ----------
    raw_records:
        Records as produced by ingestion. All records share one header set.
    mapping:
        Column roles. Every mapped header must exist in the records.
    options:
        Filter switches (defaults: all enabled).

    Returns
    -------
    CleaningReport
        Cleaned transactions in input order plus counts.

    Raises
    ------
    ValueError
        If a role is unmapped or maps to a header absent from the records.
    """
    if options is None:
        options = CleaningOptions()
    if raw_records:
        mapping.validate_against(raw_records[0].keys())

    records: Sequence[Mapping[str, str]] = raw_records
    if options.remove_duplicate_transactions:
        records = _deduplicate(records)
    if options.remove_null_customer_id:
        records = [r for r in records if r.get(mapping.customer_id)]
    if options.remove_negative_quantity:
        records = [r for r in records if parse_number(r.get(mapping.quantity)) > 0]
    if options.handle_missing_unit_price:
        records = [r for r in records if parse_number(r.get(mapping.unit_price)) > 0]

    transactions = []
    for record in records:
        transaction = _to_canonical(record, mapping)
        if transaction is not None:
            transactions.append(transaction)

    dropped = len(raw_records) - len(transactions)
    logger.info(
        f"Cleaned {len(raw_records)} raw records into {len(transactions)} "
        f"transactions ({dropped} dropped)"
    )
    return CleaningReport(
        transactions=transactions,
        input_count=len(raw_records),
        dropped_count=dropped,
        notice=None if transactions else NO_TRANSACTIONS_NOTICE,
    )


def clean_transactions(
    raw_records: Sequence[Mapping[str, str]],
    mapping: ColumnMapping,
    options: CleaningOptions | None = None,
) -> list[CanonicalTransaction]:
    """Clean raw records into canonical transactions.

    See :func:`clean_transactions_report` for the filter order and rules.
    """
    return clean_transactions_report(raw_records, mapping, options).transactions
