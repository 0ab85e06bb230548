"""Literal placeholder substitution.

Two kinds of token are replaced in a single left-to-right pass:

* ``{{Name}}`` (whitespace inside the braces allowed) where ``Name`` must be
  a parameter of the binding; any other name is an error.
* Bare tokens a parameter declares in its ``replaces`` list, such as
  ``NET_TFM`` for the target framework.  They only match as whole
  identifiers, so ``NET_TFM`` leaves ``MY_NET_TFM`` alone.

Replacement text is never scanned again, so a value that itself looks like a
placeholder is written out verbatim.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import PurePosixPath
from typing import Optional

from fbascaffold.errors import UnresolvedPlaceholder, WriteFailed
from fbascaffold.registry.models import TemplateDescriptor
from fbascaffold.resolver.binding import ParameterBinding

PLACEHOLDER_PATTERN = r"\{\{\s*(?P<name>[A-Za-z_][A-Za-z0-9_]*)\s*\}\}"

_IDENTIFIER_CHAR = "[A-Za-z0-9_]"


class PlaceholderSubstituter:
    """Substitutes one binding's values into file contents and paths."""

    def __init__(self, descriptor: TemplateDescriptor, binding: ParameterBinding) -> None:
        self.binding = binding
        self._literals: dict[str, str] = {}
        for declaration in descriptor.parameters:
            for token in declaration.replaces:
                self._literals[token] = declaration.name

        alternatives = [PLACEHOLDER_PATTERN]
        # Longest first so NET_TFM_PARAM wins over NET_TFM
        for token in sorted(self._literals, key=len, reverse=True):
            alternatives.append(
                f"(?<!{_IDENTIFIER_CHAR})(?P<lit_{len(alternatives)}>{re.escape(token)})(?!{_IDENTIFIER_CHAR})"
            )
        self._pattern = re.compile("|".join(alternatives))

    def substitute(
        self,
        text: str,
        source: str,
        quote: Optional[Callable[[str], str]] = None,
    ) -> str:
        """Return *text* with every token replaced.

        When *quote* is given it is applied to each substituted value, for
        example ``shlex.quote`` for a shell command line.

        Raises:
            UnresolvedPlaceholder: If a ``{{Name}}`` token names no bound parameter.
        """

        def _replace(match: re.Match[str]) -> str:
            name = match.group("name")
            if name is not None:
                if name not in self.binding:
                    raise UnresolvedPlaceholder(match.group(0), source)
                value = self.binding.text(name)
            else:
                value = self.binding.text(self._literals[match.group(0)])
            return quote(value) if quote is not None else value

        return self._pattern.sub(_replace, text)

    def substitute_path(self, relative: str) -> str:
        """Substitute placeholders in a relative path, segment by segment.

        Raises:
            UnresolvedPlaceholder: If a segment names no bound parameter.
            WriteFailed: If a segment becomes empty.
        """
        parts = []
        for part in PurePosixPath(relative).parts:
            rendered = self.substitute(part, relative)
            if not rendered:
                raise WriteFailed(relative, "a path segment renders to an empty name")
            parts.append(rendered)
        return "/".join(parts)
