"""Identifier quoting and string-literal escaping rules."""

from typing import Optional

from db_dump_mcp.errors import InvalidIdentifier


class IdentifierQuoter:
    """
    Quotes identifiers by wrapping them in delimiters and doubling any
    embedded closing delimiter.

    Quoting is injective: ``parse(quote(name)) == name`` for every accepted
    name. Names the dialect would silently alter (truncation, NUL bytes) are
    rejected instead of quoted.
    """

    def __init__(
        self,
        open_char: str = '"',
        close_char: Optional[str] = None,
        max_length: Optional[int] = None,
        length_in_bytes: bool = False,
    ):
        """
        Args:
            open_char: Opening delimiter
            close_char: Closing delimiter (defaults to the opening one)
            max_length: Longest identifier the server keeps intact
            length_in_bytes: Measure max_length in UTF-8 bytes, not characters
        """
        self.open_char = open_char
        self.close_char = close_char or open_char
        self.max_length = max_length
        self.length_in_bytes = length_in_bytes

    def validate(self, identifier: str) -> None:
        """Raise InvalidIdentifier if the name cannot round-trip."""
        if not isinstance(identifier, str) or identifier == "":
            raise InvalidIdentifier(str(identifier), "identifier is empty")
        if "\x00" in identifier:
            raise InvalidIdentifier(identifier, "identifier contains a NUL character")
        if self.max_length is not None:
            length = (
                len(identifier.encode("utf-8"))
                if self.length_in_bytes
                else len(identifier)
            )
            if length > self.max_length:
                unit = "bytes" if self.length_in_bytes else "characters"
                raise InvalidIdentifier(
                    identifier,
                    f"longer than {self.max_length} {unit} and would be truncated",
                )

    def quote(self, identifier: str) -> str:
        """Quote a single identifier."""
        self.validate(identifier)
        escaped = identifier.replace(self.close_char, self.close_char * 2)
        return f"{self.open_char}{escaped}{self.close_char}"

    def qualify(self, *parts: Optional[str]) -> str:
        """Quote and dot-join the given parts, skipping empty ones."""
        return ".".join(self.quote(part) for part in parts if part)

    def parse(self, quoted: str) -> str:
        """
        Recover the identifier from its quoted form.

        Raises:
            InvalidIdentifier: If the text is not a well-formed quoted name
        """
        if (
            len(quoted) < 2
            or not quoted.startswith(self.open_char)
            or not quoted.endswith(self.close_char)
        ):
            raise InvalidIdentifier(quoted, "not a quoted identifier")

        inner = quoted[len(self.open_char) : len(quoted) - len(self.close_char)]
        doubled = self.close_char * 2
        chars = []
        i = 0
        while i < len(inner):
            if inner.startswith(doubled, i):
                chars.append(self.close_char)
                i += len(doubled)
            elif inner.startswith(self.close_char, i):
                raise InvalidIdentifier(quoted, "unescaped closing delimiter")
            else:
                chars.append(inner[i])
                i += 1

        identifier = "".join(chars)
        self.validate(identifier)
        return identifier


class StringEscaper:
    """Renders Python strings as single-quoted SQL string literals."""

    # mysql_real_escape_string conventions
    BACKSLASH_ESCAPES = {
        "\\": "\\\\",
        "'": "\\'",
        '"': '\\"',
        "\x00": "\\0",
        "\n": "\\n",
        "\r": "\\r",
        "\x1a": "\\Z",
    }

    def __init__(self, backslash_escapes: bool = False):
        self.backslash_escapes = backslash_escapes

    def escape(self, value: str) -> str:
        if self.backslash_escapes:
            body = "".join(self.BACKSLASH_ESCAPES.get(ch, ch) for ch in value)
        else:
            body = value.replace("'", "''")
        return f"'{body}'"
