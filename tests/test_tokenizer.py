"""Tests for the single-line CSV tokenizer and export quoting helpers."""

import pytest

from customer_intelligence.ingestion.tokenizer import (
    quote_field,
    serialize_row,
    tokenize_row,
)


class TestTokenizeRow:
    """Test tokenize_row field splitting."""

    def test_simple_fields(self):
        """Plain comma-separated values split into fields."""
        assert tokenize_row("a,b,c") == ["a", "b", "c"]

    def test_unquoted_fields_are_trimmed(self):
        """Whitespace around unquoted fields is removed."""
        assert tokenize_row("  a , b ,\tc") == ["a", "b", "c"]

    def test_quoted_field_with_delimiter(self):
        """Commas inside quotes belong to the field."""
        assert tokenize_row('x,"hello, world",y') == ["x", "hello, world", "y"]

    def test_escaped_quotes(self):
        """Doubled quotes inside a quoted field become one quote."""
        assert tokenize_row('"say ""hi""",z') == ['say "hi"', "z"]

    def test_quoted_field_keeps_inner_whitespace(self):
        """Quoted fields are not trimmed."""
        assert tokenize_row('" padded ",x') == [" padded ", "x"]

    def test_empty_middle_field(self):
        """Adjacent delimiters produce an empty field."""
        assert tokenize_row("a,,c") == ["a", "", "c"]

    def test_trailing_delimiter_adds_empty_field(self):
        """A line ending with a comma has one extra empty field."""
        assert tokenize_row("a,b,") == ["a", "b", ""]

    def test_text_after_closing_quote_starts_next_field(self):
        """Characters between a closing quote and the next comma form a field."""
        assert tokenize_row('"ab"cd,e') == ["ab", "cd", "e"]

    def test_unterminated_quote_does_not_raise(self):
        """A missing closing quote consumes the rest of the line."""
        assert tokenize_row('"abc,def') == ["abc,def"]

    def test_empty_line(self):
        """An empty line has no fields."""
        assert tokenize_row("") == []


class TestQuoteField:
    """Test the export quoting rule."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("plain", "plain"),
            ("a,b", '"a,b"'),
            ('say "hi"', '"say ""hi"""'),
            ("line\nbreak", '"line\nbreak"'),
            (None, ""),
            (3.5, "3.5"),
        ],
    )
    def test_quoting(self, value, expected):
        """Only values with a comma, quote or newline are quoted."""
        assert quote_field(value) == expected

    def test_serialize_row(self):
        """Rows join quoted values with commas and render None as empty."""
        assert serialize_row(["a", "b,c", None, 2]) == 'a,"b,c",,2'

    @pytest.mark.parametrize("field", ["a,b", 'x"y', '"', ",", 'he said "a, b"'])
    def test_quoted_value_tokenizes_back(self, field):
        """Tokenizing a quoted single-line value returns the value."""
        assert tokenize_row(quote_field(field)) == [field]
