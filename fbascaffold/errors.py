"""Exception hierarchy for the scaffolder.

Every error carries the process exit code the CLI should use when it reaches
the top level, so ``main`` can map failures without a lookup table.  Messages
always name the offending template, parameter, value or path.
"""

from __future__ import annotations

from pathlib import Path


class ScaffoldError(Exception):
    """Base class for every failure surfaced to the caller."""

    exit_code: int = 1


class TemplateNotFound(ScaffoldError):
    """Raised when no registered template matches the requested name."""

    exit_code = 1

    def __init__(self, name: str, available: list[str] | None = None) -> None:
        self.name = name
        self.available = available or []
        message = f"Template '{name}' not found."
        if self.available:
            message += f" Available templates: {', '.join(self.available)}"
        super().__init__(message)


class InvalidParameterValue(ScaffoldError):
    """Raised when an override fails validation against its declaration."""

    exit_code = 2

    def __init__(self, parameter: str, value: object, reason: str = "") -> None:
        self.parameter = parameter
        self.value = value
        message = f"Invalid value '{value}' for parameter '{parameter}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class MissingParameter(InvalidParameterValue):
    """Raised when a required parameter has neither a default nor an override."""

    def __init__(self, parameter: str) -> None:
        self.parameter = parameter
        self.value = None
        ScaffoldError.__init__(
            self, f"Parameter '{parameter}' is required but no value was supplied"
        )


class WriteFailed(ScaffoldError):
    """Raised when an output file cannot be written."""

    exit_code = 3

    def __init__(self, path: str | Path, reason: str | OSError) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Failed to write '{path}': {reason}")


class UnknownParameter(ScaffoldError):
    """Raised when overrides name parameters the template does not declare."""

    exit_code = 4

    def __init__(self, names: list[str], template: str = "") -> None:
        self.names = list(names)
        self.template = template
        joined = ", ".join(f"'{n}'" for n in self.names)
        message = f"Unknown parameter(s) {joined}"
        if template:
            message += f" for template '{template}'"
        super().__init__(message)


class DestinationUnwritable(ScaffoldError):
    """Raised when the destination directory cannot be used for output."""

    exit_code = 5

    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = Path(path)
        super().__init__(f"Cannot write to destination '{path}': {reason}")


class UnresolvedPlaceholder(ScaffoldError):
    """Raised when a template file references a parameter missing from the binding."""

    exit_code = 6

    def __init__(self, token: str, file: str | Path) -> None:
        self.token = token
        self.file = str(file)
        super().__init__(f"Unresolved placeholder '{token}' in '{file}'")


class InvalidTemplate(ScaffoldError):
    """Raised for malformed manifests, conditions or conditional blocks."""

    exit_code = 7

    def __init__(self, message: str, source: str | Path | None = None) -> None:
        self.source = str(source) if source is not None else None
        if source is not None:
            message = f"{source}: {message}"
        super().__init__(message)


class HookFailed(ScaffoldError):
    """Raised by the hook runner; the engine downgrades it to a warning."""

    exit_code = 0

    def __init__(self, command: str, reason: str, returncode: int | None = None) -> None:
        self.command = command
        self.returncode = returncode
        self.reason = reason
        super().__init__(f"Post-generation hook '{command}' failed: {reason}")
