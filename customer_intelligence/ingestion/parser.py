"""CSV ingestion with header and row validation.

A single parser core (:class:`CSVRecordParser`) is fed one physical line at a
time. The public entry points only differ in how they obtain lines:

- :func:`parse_csv_stream` pulls byte or text chunks from an iterable,
  buffering partial lines across chunk boundaries, and stops pulling as soon
  as the row limit is reached.
- :func:`aparse_csv_stream` does the same over an async iterable. Awaiting the
  next chunk is its only suspension point.
- :func:`parse_csv_file` streams a file from disk.
- :func:`parse_csv_text` validates a fully materialised document (used after
  header repair).

Structural problems are returned as data on :class:`ParseResult`, never
raised, so that callers can decide how to remediate them.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, Iterable, Union

from customer_intelligence.ingestion.tokenizer import tokenize_row

logger = logging.getLogger(__name__)

#: Maximum number of data rows loaded for analysis by default.
DEFAULT_ROW_LIMIT = 100_000

#: Minimum number of header columns required for analysis.
MIN_HEADER_COLUMNS = 4

#: Column-count mismatches among the first N accepted rows abort the parse.
#: Later mismatches are skipped so one bad line cannot sink a large file.
STRICT_ROW_CHECK_LIMIT = 10

DEFAULT_CHUNK_SIZE = 64 * 1024

EMPTY_HEADERS_MESSAGE = (
    "CSV contains one or more empty column headers. "
    "You can attempt to fix this automatically."
)
EMPTY_FILE_MESSAGE = "The CSV file is empty or could not be parsed."
HEADER_ONLY_MESSAGE = "The CSV file is empty or contains only a header row."
STREAM_FAILURE_MESSAGE = (
    "A critical error occurred during file streaming. "
    "The file might be corrupted or in an unsupported format."
)

_LINE_BREAK = re.compile(r"\r\n|\n|\r")
_BOM = "\ufeff"

Chunk = Union[bytes, str]
RawRecord = dict[str, str]


@dataclass(frozen=True)
class ParseResult:
    """Outcome of one ingestion attempt.

    Attributes
    ----------
    rows:
        Parsed records, one mapping of header to cell value per data row.
        Always empty when ``errors`` is non-empty.
    errors:
        Fatal structural errors. Empty on success.
    truncated:
        True when parsing stopped because the row limit was reached. This is
        not an error: ``rows`` holds the first ``row_count`` records.
    has_empty_headers:
        True when the header line contains a blank column name. The caller
        may repair the headers and retry with :func:`parse_csv_text`.
    row_count:
        Number of records in ``rows``.
    headers:
        Header names as read from the source (empty on header errors).
    """

    rows: list[RawRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    truncated: bool = False
    has_empty_headers: bool = False
    row_count: int = 0
    headers: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        """Whether the attempt produced usable rows without fatal errors."""
        return not self.errors

    @classmethod
    def failure(cls, message: str, *, has_empty_headers: bool = False) -> ParseResult:
        return cls(errors=[message], has_empty_headers=has_empty_headers)


def validate_headers(headers: list[str]) -> tuple[str | None, bool]:
    """Check a header row and return ``(error, has_empty_headers)``.

    Only the first failing check is reported: column count, then blank
    names, then duplicates.
    """
    if len(headers) < MIN_HEADER_COLUMNS:
        return (
            f"File must contain at least {MIN_HEADER_COLUMNS} columns for analysis "
            f"(found {len(headers)}).",
            False,
        )

    trimmed = [header.strip() for header in headers]
    if any(name == "" for name in trimmed):
        return EMPTY_HEADERS_MESSAGE, True

    seen: set[str] = set()
    duplicates: list[str] = []
    for name in trimmed:
        if name in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(name)
    if duplicates:
        return (
            f"Duplicate headers found: {', '.join(duplicates)}. "
            "Please ensure all column headers are unique.",
            False,
        )

    return None, False


class CSVRecordParser:
    """Incremental validator turning CSV lines into raw records.

    Feed lines with :meth:`feed` until it returns False (a fatal error or the
    row limit was hit) or the input is exhausted, then call :meth:`finish`.

    Parameters
    ----------
    row_limit:
        Stop after this many data rows. ``None`` disables the limit.
    """

    def __init__(self, row_limit: int | None = DEFAULT_ROW_LIMIT) -> None:
        if row_limit is not None and row_limit <= 0:
            raise ValueError(f"row_limit must be positive: {row_limit}")
        self.row_limit = row_limit
        self._headers: list[str] | None = None
        self._rows: list[RawRecord] = []
        self._error: str | None = None
        self._has_empty_headers = False
        self._truncated = False
        self._skipped_rows = 0

    @property
    def done(self) -> bool:
        return self._error is not None or self._truncated

    def feed(self, line: str) -> bool:
        """Process one physical line. Returns False once no more input is wanted."""
        if self.done:
            return False
        if line.strip() == "":
            return True

        if self._headers is None:
            headers = tokenize_row(line)
            error, has_empty_headers = validate_headers(headers)
            if error is not None:
                self._error = error
                self._has_empty_headers = has_empty_headers
                return False
            self._headers = headers
            return True

        values = tokenize_row(line)
        if len(values) == len(self._headers):
            self._rows.append(dict(zip(self._headers, values)))
        elif len(self._rows) < STRICT_ROW_CHECK_LIMIT:
            self._error = (
                "Found a row with an incorrect number of columns. "
                f"Expected {len(self._headers)}, but found {len(values)}. "
                "This may indicate a file corruption or encoding issue."
            )
            return False
        else:
            self._skipped_rows += 1
            logger.debug(
                f"Skipping row after record {len(self._rows)}: "
                f"expected {len(self._headers)} columns, found {len(values)}"
            )

        if self.row_limit is not None and len(self._rows) >= self.row_limit:
            self._truncated = True
            return False
        return True

    def feed_lines(self, lines: Iterable[str]) -> bool:
        for line in lines:
            if not self.feed(line):
                return False
        return True

    def finish(self) -> ParseResult:
        """Build the result for everything fed so far."""
        if self._error is not None:
            logger.info(f"CSV validation failed: {self._error}")
            return ParseResult.failure(
                self._error, has_empty_headers=self._has_empty_headers
            )
        if self._headers is None:
            return ParseResult.failure(EMPTY_FILE_MESSAGE)
        if not self._rows:
            return ParseResult(errors=[HEADER_ONLY_MESSAGE], headers=tuple(self._headers))

        if self._truncated:
            logger.warning(
                f"Row limit of {self.row_limit} reached; remaining input was not read"
            )
        if self._skipped_rows:
            logger.info(f"Skipped {self._skipped_rows} rows with a mismatched column count")
        logger.info(
            f"Parsed {len(self._rows)} rows with {len(self._headers)} columns"
        )
        return ParseResult(
            rows=self._rows,
            truncated=self._truncated,
            row_count=len(self._rows),
            headers=tuple(self._headers),
        )


class _LineSplitter:
    """Turn a sequence of chunks into complete lines.

    Bytes are decoded as UTF-8 incrementally so multi-byte characters split
    across chunk boundaries survive. The trailing partial line is held back
    until more input arrives or :meth:`flush` is called.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")
        self._buffer = ""
        self._started = False

    def push(self, chunk: Chunk) -> list[str]:
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
            if not self._started:
                text = text.lstrip(_BOM)
        if text:
            self._started = True
        self._buffer += text
        lines = _LINE_BREAK.split(self._buffer)
        self._buffer = lines.pop()
        return lines

    def flush(self) -> list[str]:
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return _LINE_BREAK.split(tail) if tail else []


def parse_csv_stream(
    chunks: Iterable[Chunk], row_limit: int | None = DEFAULT_ROW_LIMIT
) -> ParseResult:
    """Parse a CSV source delivered as an iterable of chunks.

    Parameters
    ----------
    chunks:
        Iterable yielding ``bytes`` (decoded as UTF-8) or ``str`` pieces of
        the document. Chunk boundaries may fall anywhere, including inside a
        line or a multi-byte character.
    row_limit:
        Maximum number of data rows to load. Once reached, the iterable is
        not consumed any further (generators are closed) and the result is
        flagged ``truncated``.

    Returns
    -------
    ParseResult
        Parsed rows or structural errors. I/O failures while reading are
        reported as a single critical streaming error.

    Examples
    --------
    >>> result = parse_csv_stream([b"a,b,c,d\\n1,2,", b"3,4\\n"])
    >>> result.rows
    [{'a': '1', 'b': '2', 'c': '3', 'd': '4'}]
    """
    parser = CSVRecordParser(row_limit)
    splitter = _LineSplitter()
    iterator = iter(chunks)
    try:
        for chunk in iterator:
            if not parser.feed_lines(splitter.push(chunk)):
                break
        else:
            parser.feed_lines(splitter.flush())
    except (OSError, ValueError):
        logger.exception("Streaming CSV parser failed")
        return ParseResult.failure(STREAM_FAILURE_MESSAGE)
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()
    return parser.finish()


async def aparse_csv_stream(
    chunks: AsyncIterable[Chunk], row_limit: int | None = DEFAULT_ROW_LIMIT
) -> ParseResult:
    """Async counterpart of :func:`parse_csv_stream`.

    Only awaiting the next chunk suspends; tokenising and validation run
    inline. Async generators are closed as soon as the row limit is hit.
    """
    parser = CSVRecordParser(row_limit)
    splitter = _LineSplitter()
    iterator = chunks.__aiter__()
    exhausted = True
    try:
        async for chunk in iterator:
            if not parser.feed_lines(splitter.push(chunk)):
                exhausted = False
                break
        if exhausted:
            parser.feed_lines(splitter.flush())
    except (OSError, ValueError):
        logger.exception("Streaming CSV parser failed")
        return ParseResult.failure(STREAM_FAILURE_MESSAGE)
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
    return parser.finish()


def iter_file_chunks(path: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
    """Yield binary chunks of a file, closing it when the generator is closed."""
    with open(path, "rb") as fh:
        while True:
            chunk = fh.read(chunk_size)
            if not chunk:
                return
            yield chunk


async def aiter_file_chunks(
    path: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> AsyncIterator[bytes]:
    """Yield binary chunks of a file, reading in a worker thread."""
    fh = await asyncio.to_thread(open, path, "rb")
    try:
        while True:
            chunk = await asyncio.to_thread(fh.read, chunk_size)
            if not chunk:
                return
            yield chunk
    finally:
        fh.close()


def parse_csv_file(
    path: str | Path,
    row_limit: int | None = DEFAULT_ROW_LIMIT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> ParseResult:
    """Stream a CSV file from disk through :func:`parse_csv_stream`."""
    return parse_csv_stream(iter_file_chunks(path, chunk_size), row_limit=row_limit)


def parse_csv_text(text: str, row_limit: int | None = None) -> ParseResult:
    """Validate and parse a CSV document held in memory.

    Applies exactly the same header and row rules as the streaming entry
    points. Used to re-ingest a document after header repair.
    """
    parser = CSVRecordParser(row_limit)
    parser.feed_lines(_LINE_BREAK.split(text.lstrip(_BOM)))
    return parser.finish()
