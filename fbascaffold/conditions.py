"""Boolean conditions evaluated against a parameter binding.

Conditions appear in two places: the ``condition`` of a manifest file rule
(deciding whether a file is generated at all) and the ``#if (...)`` lines of
a preprocessed text file.  Both are parsed into the same small expression tree
and evaluated against the resolved parameter values.

Grammar::

    expr    := or
    or      := and ("||" and)*
    and     := unary ("&&" unary)*
    unary   := "!" unary | compare
    compare := primary (("==" | "!=") primary)?
    primary := "(" expr ")" | STRING | "true" | "false" | IDENT

Identifiers are parameter names; string literals use single or double quotes.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Union

from fbascaffold.errors import InvalidTemplate

Value = Union[str, bool]


# ---------------------------------------------------------------------------
# Expression tree
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Value

    def evaluate(self, values: Mapping[str, Value]) -> Value:
        return self.value


@dataclass(frozen=True)
class ParamRef:
    name: str

    def evaluate(self, values: Mapping[str, Value]) -> Value:
        if self.name not in values:
            raise InvalidTemplate(f"Condition references unknown parameter '{self.name}'")
        return values[self.name]


@dataclass(frozen=True)
class Equals:
    left: "Condition"
    right: "Condition"
    negated: bool = False

    def evaluate(self, values: Mapping[str, Value]) -> Value:
        same = _as_text(self.left.evaluate(values)) == _as_text(self.right.evaluate(values))
        return same != self.negated


@dataclass(frozen=True)
class Not:
    operand: "Condition"

    def evaluate(self, values: Mapping[str, Value]) -> Value:
        return not truthy(self.operand.evaluate(values))


@dataclass(frozen=True)
class And:
    left: "Condition"
    right: "Condition"

    def evaluate(self, values: Mapping[str, Value]) -> Value:
        return truthy(self.left.evaluate(values)) and truthy(self.right.evaluate(values))


@dataclass(frozen=True)
class Or:
    left: "Condition"
    right: "Condition"

    def evaluate(self, values: Mapping[str, Value]) -> Value:
        return truthy(self.left.evaluate(values)) or truthy(self.right.evaluate(values))


Condition = Union[Literal, ParamRef, Equals, Not, And, Or]


def truthy(value: Value) -> bool:
    """Booleans are themselves; strings are true unless empty or ``"false"``."""
    if isinstance(value, bool):
        return value
    return value != "" and value.lower() != "false"


def _as_text(value: Value) -> str:
    # Booleans compare equal to their lowercase spelling: EnableAot == "true"
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def evaluate(condition: Condition, values: Mapping[str, Value]) -> bool:
    """Evaluate *condition* against *values* and coerce the result to ``bool``."""
    return truthy(condition.evaluate(values))


def referenced_names(condition: Condition) -> set[str]:
    """Return every parameter name referenced anywhere in *condition*."""
    if isinstance(condition, ParamRef):
        return {condition.name}
    if isinstance(condition, Not):
        return referenced_names(condition.operand)
    if isinstance(condition, (Equals, And, Or)):
        return referenced_names(condition.left) | referenced_names(condition.right)
    return set()


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<op>\|\||&&|==|!=|!|\(|\))
      | "(?P<dq>[^"]*)"
      | '(?P<sq>[^']*)'
      | (?P<ident>[A-Za-z_][A-Za-z0-9_.\-]*)
    )
    """,
    re.VERBOSE,
)


def _tokenize(source: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    text = source.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise InvalidTemplate(
                f"Unexpected character {text[pos:].lstrip()[:1]!r} in condition {source!r}"
            )
        pos = match.end()
        if match.group("op") is not None:
            tokens.append(("op", match.group("op")))
        elif match.group("dq") is not None:
            tokens.append(("str", match.group("dq")))
        elif match.group("sq") is not None:
            tokens.append(("str", match.group("sq")))
        else:
            tokens.append(("ident", match.group("ident")))
    return tokens


class _Parser:
    def __init__(self, source: str) -> None:
        self.source = source
        self.tokens = _tokenize(source)
        self.pos = 0

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _accept(self, op: str) -> bool:
        token = self._peek()
        if token == ("op", op):
            self.pos += 1
            return True
        return False

    def _fail(self, message: str) -> InvalidTemplate:
        return InvalidTemplate(f"{message} in condition {self.source!r}")

    def parse(self) -> Condition:
        if not self.tokens:
            raise self._fail("Empty expression")
        node = self._or()
        if self._peek() is not None:
            raise self._fail(f"Unexpected token {self._peek()[1]!r}")
        return node

    def _or(self) -> Condition:
        node = self._and()
        while self._accept("||"):
            node = Or(node, self._and())
        return node

    def _and(self) -> Condition:
        node = self._unary()
        while self._accept("&&"):
            node = And(node, self._unary())
        return node

    def _unary(self) -> Condition:
        if self._accept("!"):
            return Not(self._unary())
        return self._compare()

    def _compare(self) -> Condition:
        node = self._primary()
        if self._accept("=="):
            return Equals(node, self._primary())
        if self._accept("!="):
            return Equals(node, self._primary(), negated=True)
        return node

    def _primary(self) -> Condition:
        token = self._peek()
        if token is None:
            raise self._fail("Unexpected end of expression")
        kind, text = token
        if kind == "op":
            if text != "(":
                raise self._fail(f"Unexpected token {text!r}")
            self.pos += 1
            node = self._or()
            if not self._accept(")"):
                raise self._fail("Missing closing parenthesis")
            return node
        self.pos += 1
        if kind == "str":
            return Literal(text)
        if text.lower() == "true":
            return Literal(True)
        if text.lower() == "false":
            return Literal(False)
        return ParamRef(text)


def parse_condition(source: str) -> Condition:
    """Parse a condition string into an expression tree.

    Raises:
        InvalidTemplate: If *source* is not a well-formed expression.
    """
    return _Parser(source).parse()
