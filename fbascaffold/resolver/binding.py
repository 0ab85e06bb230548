"""Parameter resolution.

Merges caller-supplied overrides with a template's declared defaults into a
:class:`ParameterBinding`.  Resolution is all-or-nothing: on any failure an
exception is raised and no partial binding escapes.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Optional

from fbascaffold.conditions import Value
from fbascaffold.errors import MissingParameter, UnknownParameter
from fbascaffold.registry.models import TemplateDescriptor


class ParameterBinding(Mapping[str, Value]):
    """Read-only ``{parameter name: value}`` mapping for one instantiation run.

    Values are ``bool`` for boolean parameters and ``str`` otherwise.
    :meth:`text` gives the form substituted into files, where booleans are
    spelled ``true``/``false``.
    """

    def __init__(self, values: Mapping[str, Value]) -> None:
        self._values: Mapping[str, Value] = MappingProxyType(dict(values))

    def __getitem__(self, name: str) -> Value:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParameterBinding({dict(self._values)!r})"

    def text(self, name: str) -> str:
        value = self._values[name]
        if isinstance(value, bool):
            return "true" if value else "false"
        return value

    def as_dict(self) -> dict[str, Value]:
        return dict(self._values)


class ParameterResolver:
    """Builds bindings for templates.

    Override keys are matched against declarations case-insensitively, so
    ``--framework`` and ``--Framework`` address the same parameter.
    """

    def resolve(
        self,
        descriptor: TemplateDescriptor,
        overrides: Optional[Mapping[str, Value]] = None,
    ) -> ParameterBinding:
        """Resolve every declared parameter of *descriptor*.

        Args:
            descriptor: The template whose declarations drive resolution.
            overrides: Caller-supplied ``{name: raw value}`` pairs; raw values
                are strings from the command line or already-typed values.

        Returns:
            A binding holding exactly the declared parameters.

        Raises:
            UnknownParameter: If an override names no declared parameter.
            InvalidParameterValue: If an override or default fails validation.
            MissingParameter: If a required parameter ends up without a value.
        """
        overrides = dict(overrides or {})

        unknown = [key for key in overrides if descriptor.parameter(key) is None]
        if unknown:
            raise UnknownParameter(unknown, descriptor.name)

        by_name: dict[str, Value] = {}
        for key, raw in overrides.items():
            declaration = descriptor.parameter(key)
            by_name[declaration.name] = raw

        values: dict[str, Value] = {}
        for declaration in descriptor.parameters:
            if declaration.name in by_name:
                values[declaration.name] = declaration.normalize(by_name[declaration.name])
                continue
            fallback = declaration.fallback()
            if fallback is None:
                raise MissingParameter(declaration.name)
            values[declaration.name] = fallback

        return ParameterBinding(values)


def resolve(
    descriptor: TemplateDescriptor,
    overrides: Optional[Mapping[str, Value]] = None,
) -> ParameterBinding:
    """Module-level shortcut for :meth:`ParameterResolver.resolve`."""
    return ParameterResolver().resolve(descriptor, overrides)
