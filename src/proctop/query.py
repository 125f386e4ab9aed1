"""
Process search queries.

A query is a list of terms. Terms next to each other must all match; ``or``
(or ``||``) splits alternatives, ``and`` (or ``&&``) can be written out, and
parentheses group. A bare term matches the process name, or the command line
when the command column is shown. Prefixed terms target one field:

    name = sshd        user != root      state = sleeping
    cpu > 5            mem <= 0.5        memb > 100 MB
    rps >= 1KB         wps > 0           read > 1 GiB      pid = 1

Text terms honour the whole-word, ignore-case and regex flags. Values with
spaces can be quoted.
"""

import operator
import re
from collections.abc import Callable
from dataclasses import dataclass

from proctop.models import ProcessRecord


class QueryError(ValueError):
    """Raised when a search query cannot be parsed."""


_TEXT_FIELDS = {
    "name": "name",
    "cmd": "command",
    "command": "command",
    "user": "user",
    "state": "state",
}

_NUMERIC_FIELDS = {
    "pid": "pid",
    "cpu": "cpu_percent",
    "cpu%": "cpu_percent",
    "mem": "mem_percent",
    "mem%": "mem_percent",
    "memb": "mem_bytes",
    "rps": "read_bytes_per_sec",
    "wps": "write_bytes_per_sec",
    "read": "total_read_bytes",
    "tread": "total_read_bytes",
    "write": "total_write_bytes",
    "twrite": "total_write_bytes",
}

_BYTE_FIELDS = {
    "mem_bytes",
    "read_bytes_per_sec",
    "write_bytes_per_sec",
    "total_read_bytes",
    "total_write_bytes",
}

_UNITS = {
    "b": 1,
    "kb": 1000,
    "mb": 1000**2,
    "gb": 1000**3,
    "tb": 1000**4,
    "kib": 1024,
    "mib": 1024**2,
    "gib": 1024**3,
    "tib": 1024**4,
}

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_OR = {"or", "||"}
_AND = {"and", "&&"}
_SPECIAL = '()<>=!"'
_NUMBER_RE = re.compile(r"^(\d+(?:\.\d*)?|\.\d+)([a-zA-Z%]*)$")


@dataclass(slots=True, frozen=True)
class _Token:
    text: str
    quoted: bool = False

    def is_op(self) -> bool:
        return not self.quoted and self.text in _OPERATORS

    def is_keyword(self, words: set[str]) -> bool:
        return not self.quoted and self.text.lower() in words


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    i = 0
    while i < len(text):
        char = text[i]
        if char.isspace():
            i += 1
        elif char in "()":
            tokens.append(_Token(char))
            i += 1
        elif char == '"':
            end = text.find('"', i + 1)
            if end == -1:
                raise QueryError("Missing closing quote")
            tokens.append(_Token(text[i + 1 : end], quoted=True))
            i = end + 1
        elif char in "<>=!":
            two = text[i : i + 2]
            if two in _OPERATORS:
                tokens.append(_Token(two))
                i += 2
            elif char in _OPERATORS:
                tokens.append(_Token(char))
                i += 1
            else:
                raise QueryError(f"Unexpected '{char}'")
        else:
            start = i
            while i < len(text) and not text[i].isspace() and text[i] not in _SPECIAL:
                i += 1
            tokens.append(_Token(text[start:i]))
    return tokens


@dataclass(slots=True, frozen=True)
class _TextTerm:
    attribute: str | None  # None means name or command, decided at check time
    pattern: re.Pattern[str]
    negate: bool = False

    def check(self, record: ProcessRecord, is_using_command: bool) -> bool:
        if self.attribute is None:
            value = record.command if is_using_command else record.name
        else:
            value = getattr(record, self.attribute)
        return (self.pattern.search(value) is not None) != self.negate


@dataclass(slots=True, frozen=True)
class _NumericTerm:
    attribute: str
    compare: Callable[[float, float], bool]
    value: float

    def check(self, record: ProcessRecord, is_using_command: bool) -> bool:
        return self.compare(getattr(record, self.attribute), self.value)


@dataclass(slots=True, frozen=True)
class _And:
    children: tuple

    def check(self, record: ProcessRecord, is_using_command: bool) -> bool:
        return all(child.check(record, is_using_command) for child in self.children)


@dataclass(slots=True, frozen=True)
class _Or:
    children: tuple

    def check(self, record: ProcessRecord, is_using_command: bool) -> bool:
        return any(child.check(record, is_using_command) for child in self.children)


class _Parser:
    def __init__(
        self,
        tokens: list[_Token],
        is_whole_word: bool,
        is_ignoring_case: bool,
        is_using_regex: bool,
    ) -> None:
        self._tokens = tokens
        self._pos = 0
        self._is_whole_word = is_whole_word
        self._is_ignoring_case = is_ignoring_case
        self._is_using_regex = is_using_regex

    def _peek(self) -> _Token | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _next(self) -> _Token:
        token = self._peek()
        if token is None:
            raise QueryError("Unexpected end of query")
        self._pos += 1
        return token

    def parse(self):
        node = self._parse_or()
        leftover = self._peek()
        if leftover is not None:
            raise QueryError(f"Unexpected '{leftover.text}'")
        return node

    def _parse_or(self):
        children = [self._parse_and()]
        while (token := self._peek()) is not None and token.is_keyword(_OR):
            self._pos += 1
            children.append(self._parse_and())
        return children[0] if len(children) == 1 else _Or(tuple(children))

    def _parse_and(self):
        children = [self._parse_primary()]
        while (token := self._peek()) is not None:
            if token.is_keyword(_OR) or (token.text == ")" and not token.quoted):
                break
            if token.is_keyword(_AND):
                self._pos += 1
            children.append(self._parse_primary())
        return children[0] if len(children) == 1 else _And(tuple(children))

    def _parse_primary(self):
        token = self._next()
        if not token.quoted and token.text == "(":
            node = self._parse_or()
            closing = self._peek()
            if closing is None or closing.quoted or closing.text != ")":
                raise QueryError("Missing closing parenthesis")
            self._pos += 1
            return node
        if not token.quoted and (token.text == ")" or token.is_op()):
            raise QueryError(f"Unexpected '{token.text}'")
        if token.is_keyword(_OR | _AND):
            raise QueryError(f"Missing term before '{token.text}'")

        following = self._peek()
        key = token.text.lower()
        if not token.quoted and following is not None and following.is_op():
            if key in _TEXT_FIELDS:
                return self._parse_text_comparison(_TEXT_FIELDS[key])
            if key in _NUMERIC_FIELDS:
                return self._parse_numeric_comparison(_NUMERIC_FIELDS[key])
            raise QueryError(f"Unknown field '{token.text}'")
        return _TextTerm(None, self._compile(token.text))

    def _parse_text_comparison(self, attribute: str) -> _TextTerm:
        op = self._next().text
        if op not in ("=", "==", "!="):
            raise QueryError(f"Cannot use '{op}' on a text field")
        value = self._next()
        if not value.quoted and (value.is_op() or value.text in "()"):
            raise QueryError(f"Missing value after '{op}'")
        return _TextTerm(attribute, self._compile(value.text), negate=op == "!=")

    def _parse_numeric_comparison(self, attribute: str) -> _NumericTerm:
        op = self._next().text
        value_token = self._next()
        match = _NUMBER_RE.match(value_token.text)
        if value_token.quoted or match is None:
            raise QueryError(f"Expected a number, got '{value_token.text}'")

        value = float(match.group(1))
        unit = match.group(2).lower()
        if not unit:
            # Units may also be written as a separate word: "memb > 10 MB".
            following = self._peek()
            if (
                following is not None
                and not following.quoted
                and following.text.lower() in _UNITS
                and attribute in _BYTE_FIELDS
            ):
                unit = following.text.lower()
                self._pos += 1
        if unit == "%" and attribute not in _BYTE_FIELDS:
            unit = ""
        if unit:
            if attribute not in _BYTE_FIELDS or unit not in _UNITS:
                raise QueryError(f"Unknown unit '{unit}'")
            value *= _UNITS[unit]

        return _NumericTerm(attribute, _OPERATORS[op], value)

    def _compile(self, text: str) -> re.Pattern[str]:
        pattern = text if self._is_using_regex else re.escape(text)
        if self._is_whole_word:
            pattern = rf"\b(?:{pattern})\b"
        flags = re.IGNORECASE if self._is_ignoring_case else 0
        try:
            return re.compile(pattern, flags)
        except re.error as err:
            raise QueryError(f"Invalid regex: {err}") from err


class Query:
    """A parsed search query."""

    def __init__(self, text: str, root) -> None:
        self.text = text
        self._root = root

    def check(self, record: ProcessRecord, is_using_command: bool) -> bool:
        """Return whether the record matches the query."""
        return self._root.check(record, is_using_command)

    def __repr__(self) -> str:
        return f"Query({self.text!r})"


def parse_query(
    text: str,
    is_whole_word: bool,
    is_ignoring_case: bool,
    is_using_regex: bool,
) -> Query:
    """
    Parse a search query.

    Raises:
        QueryError: If the query is empty or malformed.
    """
    tokens = _tokenize(text)
    if not tokens:
        raise QueryError("Empty query")
    parser = _Parser(tokens, is_whole_word, is_ignoring_case, is_using_regex)
    return Query(text, parser.parse())
