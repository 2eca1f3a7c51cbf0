"""Tests for delimited line decoding and the line cursor."""

import pytest

from neatly.cursor import BlockCursor, read_lines
from neatly.delimited import DelimitedRecord, split_line
from neatly.errors import DecodeError


class TestSplitLine:
    def test_plain(self):
        assert split_line("a,b,,c") == ["a", "b", "", "c"]

    def test_quoted_delimiter(self):
        assert split_line(',"a,b",c') == ["", "a,b", "c"]

    def test_escaped_quote(self):
        assert split_line('x,"{""k"": 1}"') == ["x", '{"k": 1}']

    def test_custom_delimiter(self):
        assert split_line("a;b", ";") == ["a", "b"]

    def test_unterminated_quote(self):
        with pytest.raises(DecodeError):
            split_line('a,"b')


class TestDelimitedRecord:
    def test_from_header_strips_columns(self):
        record = DelimitedRecord.from_header("Root, Name ,Info")
        assert record.columns == ["Root", "Name", "Info"]

    def test_header_needs_tag(self):
        with pytest.raises(DecodeError):
            DelimitedRecord.from_header(",Name")

    def test_decode(self):
        record = DelimitedRecord.from_header("Root,Name,,Info")
        assert record.decode(",demo,ignored,x") == {"Root": "", "Name": "demo", "Info": "x"}
        assert not record.is_empty()

    def test_short_row(self):
        record = DelimitedRecord.from_header("Root,Name,Info")
        assert record.decode(",demo") == {"Root": "", "Name": "demo"}

    def test_empty_row(self):
        record = DelimitedRecord.from_header("Root,Name")
        record.decode(",")
        assert record.is_empty()


class TestReadLines:
    def test_skips_comments_and_leading_blanks(self):
        text = "\n\nRoot,Name\n// note\n,demo\n"
        assert read_lines(text) == ["Root,Name", ",demo"]

    def test_keeps_inner_blank_lines(self):
        assert read_lines("Root\n\n,x") == ["Root", "", ",x"]

    def test_custom_comment_prefix(self):
        assert read_lines("Root\n# c\n,x", "#") == ["Root", ",x"]


class TestBlockCursor:
    def test_advance_and_rewind(self):
        cursor = BlockCursor(["Root", "Items", ",a", ",b"])
        assert cursor.line == "Items"
        cursor.advance(2)
        assert cursor.line == ",b"
        assert cursor.is_last()
        cursor.rewind(1)
        assert cursor.line == ",a"

    def test_following(self):
        cursor = BlockCursor(["Root", ",a", ",b", ",c"])
        assert list(cursor.following()) == [(2, ",b"), (3, ",c")]

    def test_at_end(self):
        cursor = BlockCursor(["Root"])
        assert cursor.at_end()
