"""Instantiation engine -- renders a template tree into a destination directory.

Quick usage::

    from fbascaffold.engine import InstantiationEngine
    from fbascaffold.registry import TemplateRegistry
    from fbascaffold.resolver import resolve

    descriptor = TemplateRegistry(roots).find("console")
    binding = resolve(descriptor, {"ProjectName": "Demo"})
    result = InstantiationEngine().instantiate(descriptor, binding, "Demo")
"""

from fbascaffold.engine.instantiate import (
    EngineState,
    InstantiationEngine,
    InstantiationResult,
    RenderedFile,
    check_destination,
    confine,
)
from fbascaffold.engine.placeholders import PlaceholderSubstituter
from fbascaffold.engine.preprocess import preprocess
from fbascaffold.engine.renderer import TemplateRenderer

__all__ = [
    "EngineState",
    "InstantiationEngine",
    "InstantiationResult",
    "PlaceholderSubstituter",
    "RenderedFile",
    "TemplateRenderer",
    "check_destination",
    "confine",
    "preprocess",
]
