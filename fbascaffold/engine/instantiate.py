"""Template instantiation.

Materialises a template into a destination directory under a resolved
parameter binding.  A run moves through the states

    IDLE -> VALIDATING -> RENDERING -> WRITING -> DONE

and any error moves it to FAILED.  Every file is rendered in memory before
the first one is written, so bad placeholders or escaping paths never leave
partial output behind; I/O errors during writing do, and are not rolled back.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from rich.markup import escape

from fbascaffold.config import Config
from fbascaffold.engine.hooks import HookResult, render_hook_command, run_hook
from fbascaffold.engine.placeholders import PlaceholderSubstituter
from fbascaffold.engine.preprocess import preprocess
from fbascaffold.engine.renderer import JINJA_SUFFIX, TemplateRenderer, strip_jinja_suffix
from fbascaffold.errors import (
    DestinationUnwritable,
    HookFailed,
    WriteFailed,
)
from fbascaffold.registry.models import TemplateDescriptor, TemplateFileEntry
from fbascaffold.resolver.binding import ParameterBinding
from fbascaffold.utils import console, print_warning


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class EngineState(str, Enum):
    """Lifecycle of a single instantiation run."""
    IDLE = "idle"
    VALIDATING = "validating"
    RENDERING = "rendering"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RenderedFile:
    """A file ready to be written: output path relative to the destination."""

    path: str
    source: str
    content: bytes
    mode: int


@dataclass
class InstantiationResult:
    """Summary of a completed run."""

    template: str
    destination: Path
    files: list[RenderedFile] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    dry_run: bool = False
    hook: Optional[HookResult] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def written(self) -> list[Path]:
        """Absolute paths of the generated files (not written on a dry run)."""
        return [self.destination / f.path for f in self.files]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class InstantiationEngine:
    """Renders template trees and writes them to disk.

    One engine may be reused for several runs, one at a time; :attr:`state`
    reflects the most recent run.
    """

    def __init__(self, config: Config | None = None, quiet: bool = False) -> None:
        self.config = config or Config()
        self.renderer = TemplateRenderer()
        self.quiet = quiet
        self.state = EngineState.IDLE

    # -- Public API --------------------------------------------------------

    def instantiate(
        self,
        descriptor: TemplateDescriptor,
        binding: ParameterBinding,
        destination: str | Path,
        *,
        force: bool = False,
        dry_run: bool = False,
    ) -> InstantiationResult:
        """Materialise *descriptor* into *destination*.

        Args:
            descriptor: Template to instantiate.
            binding: Resolved parameter values.
            destination: Output directory; created if missing.
            force: Allow writing into a non-empty directory, overwriting
                files with the same names.
            dry_run: Validate and render only; nothing is written and the
                hook does not run.

        Returns:
            An :class:`InstantiationResult` describing the generated files.

        Raises:
            DestinationUnwritable: If the destination cannot be used.
            UnresolvedPlaceholder: If a file references an unbound parameter.
            InvalidTemplate: If a file's conditional blocks are malformed.
            WriteFailed: If a path escapes the destination or a write fails.
        """
        self.state = EngineState.IDLE
        dest = Path(destination).absolute()
        result = InstantiationResult(template=descriptor.name, destination=dest, dry_run=dry_run)

        try:
            self._transition(EngineState.VALIDATING)
            check_destination(dest, force)
            included: list[TemplateFileEntry] = []
            for entry in descriptor.entries():
                if entry.included(binding):
                    included.append(entry)
                else:
                    result.skipped.append(entry.path)

            self._transition(EngineState.RENDERING)
            substituter = PlaceholderSubstituter(descriptor, binding)
            result.files = self._render_all(included, substituter, binding, dest)

            if dry_run:
                self._transition(EngineState.DONE)
                return result

            self._transition(EngineState.WRITING)
            self._write_all(result.files, dest)

            if descriptor.hook is not None and self.config.run_hooks:
                result.hook = self._run_hook(descriptor, substituter, dest, result)

            self._transition(EngineState.DONE)
            return result
        except BaseException:
            self.state = EngineState.FAILED
            raise

    # -- Rendering ---------------------------------------------------------

    def _render_all(
        self,
        entries: list[TemplateFileEntry],
        substituter: PlaceholderSubstituter,
        binding: ParameterBinding,
        dest: Path,
    ) -> list[RenderedFile]:
        rendered: list[RenderedFile] = []
        seen: dict[str, str] = {}
        for entry in entries:
            out = self._render_entry(entry, substituter, binding)
            confine(dest, out.path)
            key = os.path.normcase(out.path)
            if key in seen:
                raise WriteFailed(
                    dest / out.path,
                    f"produced by both '{seen[key]}' and '{entry.path}'",
                )
            seen[key] = entry.path
            rendered.append(out)
        return rendered

    def _render_entry(
        self,
        entry: TemplateFileEntry,
        substituter: PlaceholderSubstituter,
        binding: ParameterBinding,
    ) -> RenderedFile:
        is_jinja = not entry.binary and entry.path.endswith(JINJA_SUFFIX)
        out_path = substituter.substitute_path(
            strip_jinja_suffix(entry.path) if is_jinja else entry.path
        )

        if entry.binary:
            return RenderedFile(out_path, entry.path, entry.content, entry.mode)

        text = entry.content.decode("utf-8")

        if entry.preprocess:
            text = preprocess(text, binding, entry.path)
        if is_jinja:
            text = self.renderer.render_string(text, binding.as_dict(), entry.path)
        else:
            text = substituter.substitute(text, entry.path)

        return RenderedFile(out_path, entry.path, text.encode("utf-8"), entry.mode)

    # -- Writing -----------------------------------------------------------

    def _write_all(self, files: list[RenderedFile], dest: Path) -> None:
        try:
            dest.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DestinationUnwritable(dest, exc.strerror or str(exc)) from exc

        for rendered in files:
            target = dest / rendered.path
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(rendered.content)
                os.chmod(target, rendered.mode | 0o200)
            except OSError as exc:
                raise WriteFailed(target, exc) from exc
            if not self.quiet:
                console.print(f"  [green]create[/green] {escape(rendered.path)}", highlight=False)

    # -- Hook --------------------------------------------------------------

    def _run_hook(
        self,
        descriptor: TemplateDescriptor,
        substituter: PlaceholderSubstituter,
        dest: Path,
        result: InstantiationResult,
    ) -> Optional[HookResult]:
        hook = descriptor.hook
        command = render_hook_command(hook, substituter)
        timeout = hook.timeout or self.config.hook_timeout
        if not self.quiet:
            label = hook.description or "Running post-generation hook"
            console.print(f"[dim]{escape(label)}...[/dim]")
        try:
            return run_hook(command, dest, timeout)
        except HookFailed as exc:
            result.warnings.append(str(exc))
            if not self.quiet:
                print_warning(f"{exc} (generated files are complete)")
            return None

    def _transition(self, state: EngineState) -> None:
        self.state = state


# ---------------------------------------------------------------------------
# Destination checks
# ---------------------------------------------------------------------------


def check_destination(dest: Path, force: bool) -> None:
    """Verify *dest* exists as a usable directory or can be created.

    Raises:
        DestinationUnwritable: If *dest* is a file, a non-empty directory
            without *force*, or lies under a path that cannot be written.
    """
    if dest.exists():
        if not dest.is_dir():
            raise DestinationUnwritable(dest, "path exists and is not a directory")
        if not os.access(dest, os.W_OK | os.X_OK):
            raise DestinationUnwritable(dest, "permission denied")
        if not force and any(dest.iterdir()):
            raise DestinationUnwritable(
                dest, "directory is not empty (use --force to overwrite)"
            )
        return

    ancestor = dest.parent
    while not ancestor.exists() and ancestor != ancestor.parent:
        ancestor = ancestor.parent
    if not ancestor.is_dir():
        raise DestinationUnwritable(dest, f"'{ancestor}' is not a directory")
    if not os.access(ancestor, os.W_OK | os.X_OK):
        raise DestinationUnwritable(dest, f"permission denied on '{ancestor}'")


def confine(dest: Path, relative: str) -> Path:
    """Return the absolute output path for *relative*, which must stay under *dest*.

    Symlinks already present under *dest* are followed before the check.

    Raises:
        WriteFailed: If the path resolves to *dest* itself or outside it.
    """
    root = dest.resolve()
    target = (root / relative).resolve()
    if target == root or root not in target.parents:
        raise WriteFailed(relative, f"path escapes the destination directory '{dest}'")
    return target
