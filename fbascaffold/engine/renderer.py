"""Jinja2 rendering for ``.j2`` payload files.

Most payload files only need literal placeholder substitution.  A template
author who wants loops, filters or expressions names the file ``*.j2``; it is
rendered here with the binding as context and written without the suffix.
Undefined names are errors rather than empty strings.
"""

from __future__ import annotations

import re
from typing import Any

from jinja2 import (
    Environment,
    StrictUndefined,
    TemplateError,
    TemplateSyntaxError,
    UndefinedError,
)

from fbascaffold.errors import InvalidTemplate, UnresolvedPlaceholder

JINJA_SUFFIX = ".j2"

_UNDEFINED_NAME_RE = re.compile(r"'([^']+)' is undefined")


class TemplateRenderer:
    """Renders Jinja2 template strings for the instantiation engine.

    The environment keeps trailing newlines and never autoescapes, since
    payload files are source code rather than HTML.
    """

    def __init__(self) -> None:
        self.env = Environment(
            autoescape=False,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
            finalize=_finalize,
        )
        # Register custom filters
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["pascal_case"] = _pascal_case_filter
        self.env.filters["snake_case"] = _snake_case_filter
        self.env.filters["camel_case"] = _camel_case_filter

    def render_string(self, template_string: str, context: dict[str, Any], source: str) -> str:
        """Render *template_string* with *context*.

        Raises:
            UnresolvedPlaceholder: If the template uses a name missing from *context*.
            InvalidTemplate: If the template has a Jinja syntax error or an
                expression fails while rendering.
        """
        try:
            template = self.env.from_string(template_string)
            return template.render(**context)
        except TemplateSyntaxError as exc:
            raise InvalidTemplate(f"line {exc.lineno}: {exc.message}", source) from exc
        except UndefinedError as exc:
            match = _UNDEFINED_NAME_RE.search(str(exc))
            token = match.group(1) if match else str(exc)
            raise UnresolvedPlaceholder(token, source) from exc
        except TemplateError as exc:
            raise InvalidTemplate(f"render error: {exc}", source) from exc
        except (TypeError, ValueError, ArithmeticError, LookupError, AttributeError) as exc:
            # Raised by expressions and filters applied to unsuitable values
            raise InvalidTemplate(f"render error: {type(exc).__name__}: {exc}", source) from exc


def strip_jinja_suffix(path: str) -> str:
    return path[: -len(JINJA_SUFFIX)] if path.endswith(JINJA_SUFFIX) else path


def _finalize(value: Any) -> Any:
    """Spell booleans ``true``/``false``, as literal placeholders do."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def _slugify_filter(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", value)
    return "".join(word[:1].upper() + word[1:] for word in parts if word)


def _snake_case_filter(value: str) -> str:
    """Convert ``SomeThing`` or ``some-thing`` to ``some_thing``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", value)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[-\s]+", "_", s2).lower()


def _camel_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = _pascal_case_filter(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""
