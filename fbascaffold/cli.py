"""Command-line interface.

Commands::

    fbascaffold list-templates [--tag TAG]
    fbascaffold show <template>
    fbascaffold new <template> [-n NAME] [-o DIR] [--force] [--dry-run]
                               [--no-hook] [--<Param> value ...]

Template parameters are passed as extra long options after the template name:
``--Framework net9.0``, ``--Framework=net9.0`` or, for booleans, a bare
``--EnableAot``.  Each failure kind exits with its own code (see
:mod:`fbascaffold.errors`).
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from rich.markup import escape

from fbascaffold.config import Config
from fbascaffold.engine import InstantiationEngine
from fbascaffold.errors import ScaffoldError
from fbascaffold.registry import TemplateRegistry
from fbascaffold.registry.models import TemplateDescriptor
from fbascaffold.resolver import ParameterResolver
from fbascaffold.utils import console, print_error, print_success, print_summary_table, print_warning

EXIT_USAGE = 64


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser whose usage errors exit with ``EXIT_USAGE``.

    The default exit status 2 would collide with InvalidParameterValue.
    """

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


class UsageError(Exception):
    """Raised for malformed template options after argparse has run."""


# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="fbascaffold",
        description="Create file-based app projects from templates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  fbascaffold list-templates\n"
            "  fbascaffold show console\n"
            "  fbascaffold new console -n Demo\n"
            "  fbascaffold new minimal-api -n Api --Framework net9.0 --EnableAot\n"
        ),
        allow_abbrev=False,
    )
    parser.add_argument(
        "--template-path",
        action="append",
        default=[],
        metavar="DIR",
        help="Extra content root to search for templates (repeatable)",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    list_parser = subparsers.add_parser(
        "list-templates", help="List available templates", allow_abbrev=False
    )
    list_parser.add_argument("--tag", default=None, help="Only show templates with this tag")

    show_parser = subparsers.add_parser(
        "show", help="Show a template's parameters", allow_abbrev=False
    )
    show_parser.add_argument("template", help="Template name")

    new_parser = subparsers.add_parser(
        "new",
        help="Create a project from a template",
        allow_abbrev=False,
        epilog="Template parameters follow as --<Param> value (see `show <template>`).",
    )
    new_parser.add_argument("template", help="Template name")
    new_parser.add_argument(
        "--name", "-n",
        default=None,
        help="Project name (default: name of the output directory)",
    )
    new_parser.add_argument(
        "--output-dir", "-o",
        default=None,
        help="Output directory (default: ./<name>, or the current directory)",
    )
    new_parser.add_argument(
        "--force",
        action="store_true",
        help="Allow writing into a non-empty directory",
    )
    new_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the files that would be created without writing them",
    )
    new_parser.add_argument(
        "--no-hook",
        action="store_true",
        help="Skip the template's post-generation hook",
    )
    return parser


def parse_template_options(tokens: list[str]) -> dict[str, str]:
    """Turn leftover ``--Param value`` tokens into an overrides mapping.

    A bare ``--Param`` followed by another option (or nothing) means ``true``.

    Raises:
        UsageError: On tokens that are not long options.
    """
    overrides: dict[str, str] = {}
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if not token.startswith("--") or token == "--":
            raise UsageError(f"unexpected argument '{token}'")
        key = token[2:]
        if "=" in key:
            key, value = key.split("=", 1)
            index += 1
        elif index + 1 < len(tokens) and not tokens[index + 1].startswith("--"):
            value = tokens[index + 1]
            index += 2
        else:
            value = "true"
            index += 1
        if not key:
            raise UsageError(f"malformed option '{token}'")
        overrides[key] = value
    return overrides


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _report_registry_errors(registry: TemplateRegistry) -> None:
    for error in registry.errors:
        print_warning(f"Skipping template: {error}")


def cmd_list_templates(registry: TemplateRegistry, tag: Optional[str]) -> int:
    rows = []
    for descriptor in registry.list():
        if tag and tag.lower() not in (t.lower() for t in descriptor.tags):
            continue
        rows.append((descriptor.name, descriptor.title, ", ".join(descriptor.tags)))
    _report_registry_errors(registry)

    if not rows:
        console.print("No templates found.")
        return 0
    print_summary_table(rows, columns=("Name", "Title", "Tags"), title="Templates")
    return 0


def cmd_show(registry: TemplateRegistry, name: str) -> int:
    descriptor = registry.find(name)
    console.print(
        f"[bold]{escape(descriptor.title)}[/bold] ({escape(descriptor.name)})", highlight=False
    )
    if descriptor.description:
        console.print(descriptor.description, markup=False, highlight=False)

    rows = []
    for declaration in descriptor.parameters:
        default = declaration.fallback()
        if isinstance(default, bool):
            default = "true" if default else "false"
        rows.append((
            f"--{declaration.name}",
            declaration.kind.value,
            "(required)" if default is None else default,
            " | ".join(declaration.choices),
            declaration.description,
        ))
    if rows:
        print_summary_table(
            rows,
            columns=("Option", "Kind", "Default", "Choices", "Description"),
            title="Parameters",
        )
    else:
        console.print("This template has no parameters.")
    return 0


def cmd_new(args: argparse.Namespace, extras: list[str], config: Config, registry: TemplateRegistry) -> int:
    descriptor = registry.find(args.template)
    overrides = parse_template_options(extras)

    if args.output_dir:
        destination = Path(args.output_dir)
    elif args.name:
        destination = Path.cwd() / args.name
    else:
        destination = Path.cwd()

    _apply_name(descriptor, overrides, args.name or destination.absolute().name)

    binding = ParameterResolver().resolve(descriptor, overrides)

    if args.no_hook:
        config = config.model_copy(update={"run_hooks": False})
    engine = InstantiationEngine(config, quiet=args.dry_run)
    result = engine.instantiate(
        descriptor,
        binding,
        destination,
        force=args.force,
        dry_run=args.dry_run,
    )

    if result.dry_run:
        rows = [(f.path, f.source) for f in result.files]
        print_summary_table(rows, columns=("Would create", "From"), title="Dry run")
        for skipped in result.skipped:
            console.print(f"  [dim]skip[/dim] {escape(skipped)}", highlight=False)
        return 0

    print_success(
        f"Created '{descriptor.title}' in {result.destination} ({len(result.files)} files)"
    )
    return 0


def _apply_name(descriptor: TemplateDescriptor, overrides: dict[str, str], name: str) -> None:
    """Feed the project name to the template's name parameter unless set explicitly."""
    declaration = descriptor.parameter(descriptor.name_parameter)
    if declaration is None:
        return
    if any(key.lower() == declaration.name.lower() for key in overrides):
        return
    overrides[declaration.name] = name


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def main(argv: Optional[list[str]] = None) -> int:
    """Parse *argv*, run the command and return the process exit code."""
    parser = build_parser()
    args, extras = parser.parse_known_args(argv)
    if extras and args.command != "new":
        parser.error(f"unrecognized arguments: {' '.join(extras)}")

    try:
        config = Config.from_env()
    except ValueError as exc:
        parser.error(str(exc))
    if args.template_path:
        config = config.model_copy(
            update={"template_paths": [*config.template_paths, *map(Path, args.template_path)]}
        )
    registry = TemplateRegistry(config.content_roots)

    try:
        if args.command == "list-templates":
            return cmd_list_templates(registry, args.tag)
        if args.command == "show":
            return cmd_show(registry, args.template)
        return cmd_new(args, extras, config, registry)
    except UsageError as exc:
        parser.error(str(exc))
    except ScaffoldError as exc:
        print_error(str(exc))
        return exc.exit_code
    return EXIT_USAGE


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
