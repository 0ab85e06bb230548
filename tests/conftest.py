"""Shared pytest fixtures for the fbascaffold test suite.

Provides reusable fixtures for:
- Temporary content roots and a factory that writes template directories
- A small "greeter" template exercising every manifest feature
- Registries over temporary roots and over the bundled templates
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from fbascaffold.config import BUNDLED_TEMPLATE_ROOT
from fbascaffold.registry import TemplateRegistry

TemplateFactory = Callable[..., Path]


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------

@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    """Empty content root for hand-built templates."""
    root = tmp_path / "templates"
    root.mkdir()
    return root


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Destination directory that does not exist yet."""
    return tmp_path / "out" / "Demo"


# ---------------------------------------------------------------------------
# Template factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_template(content_root: Path) -> TemplateFactory:
    """Factory writing ``<content_root>/<dir_name>/template.json`` plus files.

    ``files`` maps relative paths to ``str`` (written as UTF-8) or ``bytes``.
    """

    def _make(
        manifest: dict[str, Any],
        files: dict[str, str | bytes] | None = None,
        dir_name: str | None = None,
    ) -> Path:
        template_dir = content_root / (dir_name or manifest.get("name", "template"))
        template_dir.mkdir(parents=True, exist_ok=True)
        (template_dir / "template.json").write_text(json.dumps(manifest), encoding="utf-8")
        for rel, content in (files or {}).items():
            target = template_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content, encoding="utf-8")
        return template_dir

    return _make


GREETER_MANIFEST: dict[str, Any] = {
    "name": "greeter",
    "title": "Greeter App",
    "description": "Prints a greeting.",
    "tags": ["console", "sample"],
    "parameters": [
        {"name": "ProjectName", "kind": "text", "required": True},
        {
            "name": "Framework",
            "kind": "choice",
            "default": "net10.0",
            "choices": ["net8.0", "net9.0", "net10.0"],
            "replaces": ["NET_TFM"],
        },
        {"name": "EnableAot", "kind": "bool", "default": False},
        {"name": "Greeting", "kind": "text", "default": "Hello"},
    ],
    "files": [{"path": "aot.txt", "condition": "EnableAot"}],
    "preprocess": ["*.cs"],
}

GREETER_FILES: dict[str, str | bytes] = {
    "{{ProjectName}}.cs": (
        "#:property TargetFramework=NET_TFM\n"
        "#if (EnableAot)\n"
        "#:property PublishAot=True\n"
        "#else\n"
        "#:property PublishAot=False\n"
        "#endif\n"
        'Console.WriteLine("{{Greeting}} from {{ProjectName}}!");\n'
    ),
    "aot.txt": "AOT enabled for {{ProjectName}}\n",
    "docs/README.md.j2": "# {{ ProjectName | upper }}\n{% if EnableAot %}aot{% else %}jit{% endif %}\n",
    "assets/logo.bin": b"\x89PNG\x00{{ProjectName}}\xff",
}


@pytest.fixture
def greeter_dir(make_template: TemplateFactory) -> Path:
    """The greeter template written into the temporary content root."""
    return make_template(GREETER_MANIFEST, GREETER_FILES)


@pytest.fixture
def registry(content_root: Path, greeter_dir: Path) -> TemplateRegistry:
    """Registry over the temporary content root (holding ``greeter``)."""
    return TemplateRegistry([content_root])


@pytest.fixture
def bundled_registry() -> TemplateRegistry:
    """Registry over the templates shipped with the package."""
    return TemplateRegistry([BUNDLED_TEMPLATE_ROOT])
