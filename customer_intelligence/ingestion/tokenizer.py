"""Single-line CSV tokenizer and the matching serialisation helpers.

The tokenizer follows RFC 4180 quoting rules applied to one physical line at
a time. Quoted fields spanning several lines are not supported: every line of
the source is treated as a complete record.

Malformed quoting never raises. The tokenizer extracts whatever fields it can
and leaves structural validation (column counts) to the parser.
"""

from __future__ import annotations

from typing import Any, Iterable

QUOTE = '"'
DELIMITER = ","
_LEADING_WHITESPACE = (" ", "\t")
_CHARS_REQUIRING_QUOTES = (DELIMITER, QUOTE, "\n")


def tokenize_row(line: str) -> list[str]:
    """Split a single CSV line into its fields.

    Parameters
    ----------
    line:
        One physical line of CSV text without its line terminator.

    Returns
    -------
    list[str]
        Field values with quoting removed. Unquoted fields are stripped of
        surrounding whitespace; quoted fields keep their inner whitespace.

    Examples
    --------
    >>> tokenize_row('a, "b ""q"" x",c')
    ['a', 'b "q" x', 'c']
    >>> tokenize_row("a,b,")
    ['a', 'b', '']
    """
    fields: list[str] = []
    position = 0
    length = len(line)

    while position < length:
        while position < length and line[position] in _LEADING_WHITESPACE:
            position += 1

        if position < length and line[position] == QUOTE:
            position += 1
            chars: list[str] = []
            while position < length:
                char = line[position]
                if char == QUOTE:
                    if position + 1 < length and line[position + 1] == QUOTE:
                        chars.append(QUOTE)
                        position += 2
                        continue
                    position += 1
                    break
                chars.append(char)
                position += 1
            value = "".join(chars)
        else:
            next_delimiter = line.find(DELIMITER, position)
            if next_delimiter == -1:
                next_delimiter = length
            value = line[position:next_delimiter].strip()
            position = next_delimiter

        fields.append(value)

        # Anything left between a closing quote and the next delimiter is
        # picked up as the start of the following field.
        if position < length and line[position] == DELIMITER:
            position += 1

    if line.strip().endswith(DELIMITER):
        fields.append("")

    return fields


def quote_field(value: Any) -> str:
    """Render one value using the export quoting rule.

    ``None`` renders as an empty string. Values containing a comma, a double
    quote or a newline are wrapped in quotes with internal quotes doubled.

    >>> quote_field('say "hi", bob')
    '"say ""hi"", bob"'
    >>> quote_field(None)
    ''
    """
    text = "" if value is None else str(value)
    if any(char in text for char in _CHARS_REQUIRING_QUOTES):
        return QUOTE + text.replace(QUOTE, QUOTE * 2) + QUOTE
    return text


def serialize_row(values: Iterable[Any]) -> str:
    """Join values into one CSV line using :func:`quote_field`."""
    return DELIMITER.join(quote_field(value) for value in values)
