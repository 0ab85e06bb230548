"""Template registry -- discovers templates and validates their manifests.

Quick usage::

    from fbascaffold.registry import TemplateRegistry

    registry = TemplateRegistry(["/path/to/templates"])
    for descriptor in registry.list():
        print(descriptor.name, descriptor.title)
    console = registry.find("console")
"""

from fbascaffold.registry.catalog import TemplateRegistry, find_manifest, load_manifest
from fbascaffold.registry.models import (
    FileRule,
    HookSpec,
    ParameterDeclaration,
    ParameterKind,
    TemplateDescriptor,
    TemplateFileEntry,
)

__all__ = [
    "FileRule",
    "HookSpec",
    "ParameterDeclaration",
    "ParameterKind",
    "TemplateDescriptor",
    "TemplateFileEntry",
    "TemplateRegistry",
    "find_manifest",
    "load_manifest",
]
