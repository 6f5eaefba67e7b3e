"""Unit tests for identifier quoting and string escaping."""

import pytest

from db_dump_mcp.dialects import MySQLDialect, PostgreSQLDialect, SQLiteDialect
from db_dump_mcp.dialects.quoting import IdentifierQuoter, StringEscaper
from db_dump_mcp.errors import InvalidIdentifier

DIALECTS = [MySQLDialect(), PostgreSQLDialect(), SQLiteDialect()]

NAMES = [
    "users",
    "order items",
    "we`ird",
    'dou"ble',
    "x``y",
    '""',
    "ünïcödé",
    "semi;colon",
    "'quoted'",
    "trailing ",
    "a.b",
]


@pytest.mark.parametrize("dialect", DIALECTS, ids=lambda d: d.name)
class TestRoundTrip:
    """parse(quote(name)) recovers every accepted name."""

    @pytest.mark.parametrize("name", NAMES)
    def test_round_trip(self, dialect, name):
        quoted = dialect.quote(name)
        assert dialect.parse_identifier(quoted) == name

    def test_injective(self, dialect):
        quoted = {dialect.quote(name) for name in NAMES}
        assert len(quoted) == len(NAMES)

    def test_quoting_is_not_idempotent(self, dialect):
        once = dialect.quote("users")
        twice = dialect.quote(once)
        assert twice != once
        assert dialect.parse_identifier(twice) == once

    @pytest.mark.parametrize("name", ["", "nul\x00byte"])
    def test_rejects_unrepresentable(self, dialect, name):
        with pytest.raises(InvalidIdentifier):
            dialect.quote(name)


class TestDialectQuoting:
    """Per-dialect delimiters and limits."""

    def test_mysql_backticks(self):
        assert MySQLDialect().quote("we`ird") == "`we``ird`"

    def test_postgresql_double_quotes(self):
        assert PostgreSQLDialect().quote('dou"ble') == '"dou""ble"'

    def test_mysql_length_limit_in_characters(self):
        dialect = MySQLDialect()
        assert dialect.quote("é" * 64) == f"`{'é' * 64}`"
        with pytest.raises(InvalidIdentifier, match="64 characters"):
            dialect.quote("a" * 65)

    def test_postgresql_length_limit_in_bytes(self):
        dialect = PostgreSQLDialect()
        dialect.quote("a" * 63)
        dialect.quote("é" * 31)  # 62 bytes
        with pytest.raises(InvalidIdentifier, match="63 bytes"):
            dialect.quote("é" * 32)  # 64 bytes

    def test_sqlite_has_no_length_limit(self):
        name = "t" * 300
        assert SQLiteDialect().parse_identifier(SQLiteDialect().quote(name)) == name

    def test_qualify_skips_missing_schema(self):
        dialect = MySQLDialect()
        assert dialect.qualify(None, "orders") == "`orders`"
        assert dialect.qualify("shop", "orders") == "`shop`.`orders`"

    def test_sqlite_main_schema_is_implicit(self):
        dialect = SQLiteDialect()
        assert dialect.qualify("main", "orders") == '"orders"'
        assert dialect.qualify("aux", "orders") == '"aux"."orders"'


class TestParse:
    """Malformed quoted text is rejected."""

    @pytest.mark.parametrize("text", ["`abc", "abc`", "abc", "`a`b`", "`", "``"])
    def test_malformed(self, text):
        with pytest.raises(InvalidIdentifier):
            IdentifierQuoter("`", max_length=64).parse(text)

    def test_asymmetric_delimiters(self):
        quoter = IdentifierQuoter("[", "]")
        assert quoter.quote("a]b") == "[a]]b]"
        assert quoter.parse("[a]]b]") == "a]b"


class TestStringEscaper:
    """String literal escaping."""

    def test_standard_doubles_quotes(self):
        assert StringEscaper().escape("O'Brien") == "'O''Brien'"

    def test_standard_keeps_backslashes(self):
        assert StringEscaper().escape("C:\\temp") == "'C:\\temp'"

    def test_mysql_backslash_escapes(self):
        escaper = StringEscaper(backslash_escapes=True)
        assert escaper.escape("O'Brien\n") == "'O\\'Brien\\n'"
        assert escaper.escape("C:\\temp") == "'C:\\\\temp'"
        assert escaper.escape("nul\x00") == "'nul\\0'"
