"""Parameter resolver -- turns CLI overrides into a validated binding."""

from fbascaffold.resolver.binding import ParameterBinding, ParameterResolver, resolve

__all__ = [
    "ParameterBinding",
    "ParameterResolver",
    "resolve",
]
