"""Tests for identifier quoting."""

import pytest

from pgconsole.core.exceptions import InvalidIdentifier
from pgconsole.core.identifiers import (
    MAX_IDENTIFIER_BYTES,
    escape_fragment,
    qualified_name,
    quote_identifier,
    unquote_identifier,
    validate_identifier,
)


@pytest.mark.unit
class TestQuoteIdentifier:
    def test_plain(self):
        assert quote_identifier("users") == '"users"'

    def test_mixed_case_preserved(self):
        assert quote_identifier("UserAccounts") == '"UserAccounts"'

    def test_embedded_quote_doubled(self):
        assert quote_identifier('say "hi"') == '"say ""hi"""'

    def test_documented(self):
        assert quote_identifier.__doc__.startswith("Wrap a catalog name")

    def test_injection_attempt_stays_one_identifier(self):
        quoted = quote_identifier('x"; DROP TABLE users; --')
        assert quoted == '"x""; DROP TABLE users; --"'

    @pytest.mark.parametrize(
        "name", ["users", 'a"b', '""', "with space", "ünïcødé", "semi;colon", "x" * 63]
    )
    def test_unquote_restores_original(self, name):
        assert unquote_identifier(quote_identifier(name)) == name


@pytest.mark.unit
class TestValidateIdentifier:
    def test_empty_rejected(self):
        with pytest.raises(InvalidIdentifier):
            quote_identifier("")

    def test_non_string_rejected(self):
        with pytest.raises(InvalidIdentifier):
            quote_identifier(5)

    def test_nul_rejected(self):
        with pytest.raises(InvalidIdentifier, match="NUL"):
            validate_identifier("bad\x00name")

    def test_max_length_accepted(self):
        name = "a" * MAX_IDENTIFIER_BYTES
        assert validate_identifier(name) == name

    def test_too_long_rejected(self):
        with pytest.raises(InvalidIdentifier, match="exceeds 63 bytes"):
            validate_identifier("a" * 64)

    def test_length_counted_in_utf8_bytes(self):
        # 32 two-byte characters is 64 bytes.
        with pytest.raises(InvalidIdentifier):
            validate_identifier("é" * 32)


@pytest.mark.unit
class TestUnquote:
    def test_rejects_unquoted(self):
        with pytest.raises(InvalidIdentifier):
            unquote_identifier("users")

    def test_rejects_lone_inner_quote(self):
        with pytest.raises(InvalidIdentifier):
            unquote_identifier('"a"b"')


@pytest.mark.unit
class TestHelpers:
    def test_qualified_name(self):
        assert qualified_name("users", "public") == '"public"."users"'

    def test_qualified_name_without_schema(self):
        assert qualified_name("users") == '"users"'

    def test_escape_fragment(self):
        assert escape_fragment("name LIKE 'a%'") == "name LIKE 'a%%'"
