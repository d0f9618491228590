"""Pandas DataFrame adapters for transaction cleaning."""

from typing import List, Optional, Sequence
import pandas as pd  # type: ignore

from customer_intelligence.foundation.transactions import (
    CanonicalTransaction,
    CleaningOptions,
    ColumnMapping,
    clean_transactions,
)

TRANSACTION_COLUMNS = [
    "CustomerID",
    "InvoiceID",
    "Description",
    "InvoiceDate",
    "Quantity",
    "UnitPrice",
    "TotalPrice",
]


def transactions_to_dataframe(
    transactions: Sequence[CanonicalTransaction],
) -> pd.DataFrame:
    """Convert canonical transactions to pandas DataFrame.

    Args:
        transactions: Sequence of CanonicalTransaction objects

    Returns:
        DataFrame with columns: CustomerID, InvoiceID, Description,
        InvoiceDate (datetime64[ns, UTC]), Quantity, UnitPrice, TotalPrice.
        Rows keep the input order.

    Example:
        >>> transactions = clean_transactions(parsed.rows, mapping)
        >>> df = transactions_to_dataframe(transactions)
        >>> df.groupby("CustomerID")["TotalPrice"].sum()
    """
    if not transactions:
        return pd.DataFrame(columns=TRANSACTION_COLUMNS)

    rows = [
        {
            "CustomerID": t.customer_id,
            "InvoiceID": t.invoice_id,
            "Description": t.description,
            "InvoiceDate": t.invoice_date,
            "Quantity": t.quantity,
            "UnitPrice": t.unit_price,
            "TotalPrice": t.total_price,
        }
        for t in transactions
    ]
    return pd.DataFrame(rows, columns=TRANSACTION_COLUMNS)


def dataframe_to_transactions(df: pd.DataFrame) -> List[CanonicalTransaction]:
    """Convert pandas DataFrame to canonical transactions.

    Args:
        df: DataFrame with the columns produced by transactions_to_dataframe

    Returns:
        List of validated CanonicalTransaction objects. InvoiceDate values are
        converted to timezone-aware UTC datetimes.

    Raises:
        ValueError: If DataFrame missing required columns, has null values, or
            a row violates the transaction invariants

    Example:
        >>> transactions = dataframe_to_transactions(pd.read_parquet("clean.parquet"))
        >>> rfm = calculate_rfm(transactions)
    """
    missing_cols = set(TRANSACTION_COLUMNS) - set(df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {missing_cols}")

    if df.empty:
        return []

    null_cols = df[TRANSACTION_COLUMNS].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValueError(
            f"Null/NaN values found in columns: {null_col_names}. "
            "Transactions require complete data."
        )

    transactions = []
    for record in df.to_dict("records"):
        transactions.append(
            CanonicalTransaction(
                customer_id=str(record["CustomerID"]),
                invoice_id=str(record["InvoiceID"]),
                description=str(record["Description"]),
                invoice_date=pd.to_datetime(
                    record["InvoiceDate"], utc=True
                ).to_pydatetime(),
                quantity=float(record["Quantity"]),
                unit_price=float(record["UnitPrice"]),
                total_price=float(record["TotalPrice"]),
            )
        )
    return transactions


def clean_dataframe(
    raw_df: pd.DataFrame,
    mapping: ColumnMapping,
    options: Optional[CleaningOptions] = None,
) -> pd.DataFrame:
    """Run the cleaning pipeline over a DataFrame of raw cells.

    Convenience function combining conversion and cleaning. Missing cells are
    treated as empty strings and every other cell as its string form, so read
    the source with ``dtype=str`` to keep identifiers such as ``"00123"``
    intact.

    Args:
        raw_df: DataFrame with one column per source header
        mapping: Which column plays each canonical role
        options: Cleaning switches (default: all enabled)

    Returns:
        DataFrame of cleaned transactions (see transactions_to_dataframe)

    Raises:
        ValueError: If a mapped column is missing from the DataFrame

    Example:
        >>> raw_df = pd.read_csv("online_retail.csv", dtype=str)
        >>> mapping = ColumnMapping.from_dict({"customerId": "Customer ID", ...})
        >>> clean_df = clean_dataframe(raw_df, mapping)
    """
    mapping.validate_against(raw_df.columns)
    records = raw_df.fillna("").astype(str).to_dict("records")
    return transactions_to_dataframe(clean_transactions(records, mapping, options))
