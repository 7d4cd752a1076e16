"""Tests for the credential CSV codec."""

import pytest

from backend.app.core.errors import ValidationError
from backend.app.services.csv_codec import escape_field, parse_credentials, render, tokenize


class TestEscape:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("plain", "plain"),
            ("a,b", '"a,b"'),
            ('say "hi"', '"say ""hi"""'),
            ("two\nlines", '"two\nlines"'),
            ("", ""),
            (None, ""),
            (True, "True"),
        ],
    )
    def test_escape_field(self, value, expected):
        assert escape_field(value) == expected

    def test_render_joins_rows(self):
        assert render([["a", "b,c"], ["d", None]]) == 'a,"b,c"\nd,'


class TestTokenize:

    def test_quoted_commas_quotes_and_newlines(self):
        text = 'Title,Notes\n"Mail, Inc","said ""hi""\nthen left"\n'
        assert tokenize(text) == [["Title", "Notes"], ["Mail, Inc", 'said "hi"\nthen left']]

    def test_crlf_and_blank_lines(self):
        assert tokenize("a,b\r\n\r\nc,d\r\n") == [["a", "b"], ["c", "d"]]

    def test_trailing_empty_field(self):
        assert tokenize("a,\nb,c") == [["a", ""], ["b", "c"]]

    def test_unterminated_quote(self):
        with pytest.raises(ValidationError):
            tokenize('a,"never closed\nb')


class TestParseCredentials:

    def test_maps_headers_case_insensitively(self):
        text = "NAME,url,Password,Tags,Favorite\nMail,mail.com,pw,a; b,Yes\nShop,,pw2,,no\n"
        assert parse_credentials(text) == [
            {"title": "Mail", "website": "mail.com", "password": "pw",
             "tags": ["a", "b"], "is_favorite": True},
            {"title": "Shop", "website": "", "password": "pw2", "tags": [], "is_favorite": False},
        ]

    def test_unknown_columns_are_ignored(self):
        rows = parse_credentials("Title,Password,Created\nA,b,2024-01-01\n")
        assert rows == [{"title": "A", "password": "b"}]

    def test_rows_with_wrong_field_count_are_skipped(self):
        rows = parse_credentials("Title,Password\nA,b\nonly-one\nC,d,extra\nE,f\n")
        assert [row["title"] for row in rows] == ["A", "E"]

    def test_incomplete_rows_are_kept_for_reporting(self):
        assert parse_credentials("Title,Password\nA,\n") == [{"title": "A", "password": ""}]

    def test_header_only(self):
        with pytest.raises(ValidationError):
            parse_credentials("Title,Password\n")

    def test_header_without_required_columns(self):
        with pytest.raises(ValidationError):
            parse_credentials("Website,Username\nmail.com,me\n")
