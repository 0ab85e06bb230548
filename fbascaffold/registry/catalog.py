"""Template discovery and lookup.

The registry scans each content root for immediate subdirectories holding a
manifest, validates every manifest into a :class:`TemplateDescriptor` and
exposes lookup by name.  Scanning happens once, on first access; the
filesystem is only ever read.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from fbascaffold.errors import InvalidTemplate, TemplateNotFound
from fbascaffold.registry.models import MANIFEST_NAMES, TemplateDescriptor
from fbascaffold.utils import load_json, load_yaml


class TemplateRegistry:
    """Enumerates templates found under one or more content roots.

    Roots are searched in order; when two roots define the same template
    name (compared case-insensitively) the first one wins and the later one
    is recorded in :attr:`errors`.  Invalid manifests are recorded there too
    and never stop the remaining templates from loading.
    """

    def __init__(self, roots: Iterable[str | Path]) -> None:
        self.roots = [Path(root) for root in roots]
        self._templates: dict[str, TemplateDescriptor] | None = None
        self.errors: list[InvalidTemplate] = []

    # -- Public API --------------------------------------------------------

    def list(self) -> Iterator[TemplateDescriptor]:
        """Yield every valid template ordered by name.

        Each call returns a fresh iterator over the same finite set.
        """
        templates = self._load()
        for key in sorted(templates):
            yield templates[key]

    def __iter__(self) -> Iterator[TemplateDescriptor]:
        return self.list()

    def names(self) -> list[str]:
        return [descriptor.name for descriptor in self.list()]

    def find(self, name: str) -> TemplateDescriptor:
        """Return the template whose name matches *name* case-insensitively.

        Raises:
            TemplateNotFound: If no template matches.
        """
        descriptor = self._load().get(name.strip().lower())
        if descriptor is None:
            raise TemplateNotFound(name, self.names())
        return descriptor

    def reload(self) -> None:
        """Forget scanned templates so the next access rescans the roots."""
        self._templates = None
        self.errors = []

    # -- Scanning ----------------------------------------------------------

    def _load(self) -> dict[str, TemplateDescriptor]:
        if self._templates is not None:
            return self._templates

        templates: dict[str, TemplateDescriptor] = {}
        for root in self.roots:
            if not root.is_dir():
                continue
            for template_dir in sorted(p for p in root.iterdir() if p.is_dir()):
                if template_dir.name.startswith((".", "_")):
                    continue
                manifest = find_manifest(template_dir)
                if manifest is None:
                    continue
                try:
                    descriptor = load_manifest(manifest)
                except InvalidTemplate as exc:
                    self.errors.append(exc)
                    continue

                key = descriptor.name.lower()
                if key in templates:
                    self.errors.append(
                        InvalidTemplate(
                            f"duplicate template name '{descriptor.name}' "
                            f"(already defined in {templates[key].root})",
                            manifest,
                        )
                    )
                    continue
                templates[key] = descriptor

        self._templates = templates
        return templates


# ---------------------------------------------------------------------------
# Manifest loading
# ---------------------------------------------------------------------------


def find_manifest(template_dir: Path) -> Path | None:
    """Return the first manifest file present in *template_dir*, if any."""
    for candidate in MANIFEST_NAMES:
        path = template_dir / candidate
        if path.is_file():
            return path
    return None


def load_manifest(path: str | Path) -> TemplateDescriptor:
    """Parse and validate a manifest file into a descriptor.

    The descriptor's ``root`` is the directory containing the manifest.

    Raises:
        InvalidTemplate: If the file cannot be parsed or fails validation.
    """
    manifest = Path(path)
    try:
        if manifest.suffix == ".json":
            raw: dict[str, Any] = load_json(manifest)
        else:
            raw = load_yaml(manifest)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        # json.JSONDecodeError is a ValueError
        raise InvalidTemplate(f"cannot read manifest: {exc}", manifest) from exc

    raw.pop("root", None)
    try:
        return TemplateDescriptor(root=manifest.parent, **raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'manifest'}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidTemplate(f"invalid manifest: {problems}", manifest) from exc
    except TypeError as exc:
        raise InvalidTemplate(f"invalid manifest: {exc}", manifest) from exc

