"""
Filter expression compiler.

Turns a compact predicate such as::

    age>=18 && name=~Jo
    (role=admin || role=owner) && active=1

into a parameterized SQL WHERE fragment over the JSON ``value`` column,
plus the ordered JSON paths and literals to bind.

The grammar is flat: a left-to-right list of clauses joined by ``&&`` or
``||``. Parentheses are grouping markers that are carried verbatim into
the SQL text around clauses; there is no expression tree and no
precedence beyond what the parentheses already say.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from .errors import FilterSyntaxError

# Longest operators first so ">=" is not read as ">" followed by "="
OPERATORS = ("=~", ">=", "<=", "!=", "=", "<", ">")
LIKE_OPERATOR = "=~"

CONNECTORS = {"&&": "AND", "||": "OR"}

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<open>\()
  | (?P<close>\))
  | (?P<connector>&&|\|\|)
  | (?P<op>=~|>=|<=|!=|=|<|>)
  | (?P<quoted>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<word>[\w.\[\]%+-]+)
""", re.VERBOSE)

# name(.name|[index])*
_PATH_RE = re.compile(r"^[\w-]+(?:\.[\w-]+|\[\d+\])*$")

_NUMERIC_RE = re.compile(r"^[+-]?\d+(?:\.\d+)?$")
_ESCAPE_RE = re.compile(r"\\(.)")

INT32_MIN, INT32_MAX = -(2 ** 31), 2 ** 31 - 1
INT64_MIN, INT64_MAX = -(2 ** 63), 2 ** 63 - 1

# Literal kinds, by bound storage type
INTEGER = "integer"
BIGINT = "bigint"
DOUBLE = "double"
TEXT = "text"


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


@dataclass(frozen=True)
class Literal:
    """A filter literal with its inferred storage type."""
    kind: str
    value: Any


@dataclass(frozen=True)
class Clause:
    """One ``PATH OP VALUE`` comparison and what follows it."""
    path: str
    operator: str
    value: str
    quoted: bool = False
    opens: int = 0
    closes: int = 0
    connector: Optional[str] = None  # "AND" / "OR", None on the last clause

    @property
    def json_path(self) -> str:
        return f"$.{self.path}"

    def literal(self) -> Literal:
        if self.quoted or self.operator == LIKE_OPERATOR:
            return Literal(TEXT, self.value)
        return infer_literal(self.value)

    def to_sql(self) -> str:
        op = "LIKE" if self.operator == LIKE_OPERATOR else self.operator
        sql = "(" * self.opens + f"json_extract(value, ?) {op} ?" + ")" * self.closes
        if self.connector:
            sql += f" {self.connector}"
        return sql


@dataclass(frozen=True)
class CompiledFilter:
    """A compiled filter: WHERE fragment plus clauses in binding order."""
    source: str
    clauses: tuple[Clause, ...]

    @property
    def where(self) -> str:
        return " ".join(c.to_sql() for c in self.clauses)

    @property
    def paths(self) -> list[str]:
        return [c.path for c in self.clauses]

    @property
    def values(self) -> list[str]:
        return [c.value for c in self.clauses]

    def parameters(self) -> list[Any]:
        """Bind parameters: JSON path then typed literal, per clause."""
        params: list[Any] = []
        for clause in self.clauses:
            params.append(clause.json_path)
            params.append(clause.literal().value)
        return params


def infer_literal(text: str) -> Literal:
    """
    Infer the storage type of an unquoted literal.

    Numbers with a decimal point bind as doubles, whole numbers as
    integers (32-bit, else 64-bit), everything else as text.

    Raises:
        FilterSyntaxError: If a whole number does not fit in 64 bits
    """
    if not _NUMERIC_RE.match(text):
        return Literal(TEXT, text)
    if "." in text:
        return Literal(DOUBLE, float(text))
    number = int(text)
    if INT32_MIN <= number <= INT32_MAX:
        return Literal(INTEGER, number)
    if INT64_MIN <= number <= INT64_MAX:
        return Literal(BIGINT, number)
    raise FilterSyntaxError(f"Integer literal out of range: {text}")


def like_pattern(value: str) -> str:
    """Wrap a value in % wildcards unless it already carries one."""
    if "%" in value or "_" in value:
        return value
    return f"%{value}%"


def tokenize(source: str) -> list[Token]:
    """Split a filter expression into tokens, dropping whitespace."""
    tokens = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise FilterSyntaxError(f"Unexpected character {source[pos]!r}", pos)
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    return tokens


def _unquote(text: str) -> str:
    return _ESCAPE_RE.sub(r"\1", text[1:-1])


class _Parser:
    """Linear scan over tokens producing clauses."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0
        self.depth = 0

    def peek(self) -> Optional[Token]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def take(self, *kinds: str, expected: str) -> Token:
        token = self.peek()
        if token is None:
            raise FilterSyntaxError(f"Expected {expected} at end of filter", len(self.source))
        if token.kind not in kinds:
            raise FilterSyntaxError(f"Expected {expected}, got {token.text!r}", token.position)
        self.index += 1
        return token

    def count(self, kind: str) -> int:
        n = 0
        while self.peek() is not None and self.peek().kind == kind:
            self.index += 1
            n += 1
        return n

    def clause(self) -> Clause:
        opens = self.count("open")
        self.depth += opens

        path = self.take("word", expected="a path")
        if not _PATH_RE.match(path.text):
            raise FilterSyntaxError(f"Invalid path {path.text!r}", path.position)
        op = self.take("op", expected="an operator")
        value = self.take("word", "quoted", expected="a value")

        close_token = self.peek()
        closes = self.count("close")
        if closes > self.depth:
            raise FilterSyntaxError("Unbalanced ')'", close_token.position)
        self.depth -= closes

        quoted = value.kind == "quoted"
        text = _unquote(value.text) if quoted else value.text
        if op.text == LIKE_OPERATOR:
            text = like_pattern(text)

        connector = None
        token = self.peek()
        if token is not None:
            connector = CONNECTORS[self.take("connector", expected="'&&' or '||'").text]

        return Clause(
            path=path.text,
            operator=op.text,
            value=text,
            quoted=quoted,
            opens=opens,
            closes=closes,
            connector=connector,
        )

    def parse(self) -> CompiledFilter:
        if not self.tokens:
            raise FilterSyntaxError("Empty filter")
        clauses = [self.clause()]
        while clauses[-1].connector is not None:
            clauses.append(self.clause())
        if self.depth:
            raise FilterSyntaxError("Unclosed '('", len(self.source))
        return CompiledFilter(self.source, tuple(clauses))


def compile_filter(source: str) -> CompiledFilter:
    """
    Compile a filter expression.

    Raises:
        FilterSyntaxError: If the expression is malformed
    """
    return _Parser(source).parse()
