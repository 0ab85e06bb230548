"""Conditional blocks inside text files.

Lines of the form ``#if (expr)``, ``#elif (expr)``, ``#else`` and ``#endif``
(optionally written as ``//#if ...`` so they stay comments in C-like
languages) select which lines of a file survive.  Directive lines themselves
are always dropped.  Blocks nest.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

from fbascaffold.conditions import Value, evaluate, parse_condition
from fbascaffold.errors import InvalidTemplate

_DIRECTIVE_RE = re.compile(r"^\s*(?://)?#(?P<kind>if|elif|else|endif)\b(?P<rest>.*)$")


@dataclass
class _Frame:
    parent_active: bool
    taken: bool
    active: bool
    seen_else: bool = False
    line: int = 0


def preprocess(text: str, values: Mapping[str, Value], source: str = "<text>") -> str:
    """Evaluate the conditional blocks of *text* against *values*.

    Line endings of kept lines are preserved exactly.

    Raises:
        InvalidTemplate: On malformed expressions or unbalanced directives.
    """
    output: list[str] = []
    stack: list[_Frame] = []

    for number, line in enumerate(text.splitlines(keepends=True), start=1):
        match = _DIRECTIVE_RE.match(line.rstrip("\r\n"))
        if match is None:
            if not stack or stack[-1].active:
                output.append(line)
            continue

        kind = match.group("kind")
        rest = match.group("rest").strip()
        enclosing = stack[-1].active if stack else True

        if kind == "if":
            result = enclosing and _check(rest, values, source, number)
            stack.append(_Frame(parent_active=enclosing, taken=result, active=result, line=number))
        elif kind == "elif":
            frame = _top(stack, kind, source, number)
            if frame.seen_else:
                raise InvalidTemplate(f"line {number}: #elif after #else", source)
            result = (
                frame.parent_active
                and not frame.taken
                and _check(rest, values, source, number)
            )
            frame.active = result
            frame.taken = frame.taken or result
        elif kind == "else":
            frame = _top(stack, kind, source, number)
            if frame.seen_else:
                raise InvalidTemplate(f"line {number}: duplicate #else", source)
            frame.seen_else = True
            frame.active = frame.parent_active and not frame.taken
            frame.taken = True
        else:
            _top(stack, kind, source, number)
            stack.pop()

    if stack:
        raise InvalidTemplate(f"line {stack[-1].line}: #if without matching #endif", source)
    return "".join(output)


def _top(stack: list[_Frame], kind: str, source: str, number: int) -> _Frame:
    if not stack:
        raise InvalidTemplate(f"line {number}: #{kind} without matching #if", source)
    return stack[-1]


def _check(expression: str, values: Mapping[str, Value], source: str, number: int) -> bool:
    if not expression:
        raise InvalidTemplate(f"line {number}: directive is missing its condition", source)
    try:
        return evaluate(parse_condition(expression), values)
    except InvalidTemplate as exc:
        raise InvalidTemplate(f"line {number}: {exc}", source) from exc
