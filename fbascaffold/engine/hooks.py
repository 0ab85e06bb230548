"""Post-generation hook execution.

A template may declare one command (for example a package restore) that runs
in the destination directory after every file has been written.  The hook is
awaited to completion; any failure is raised as :class:`HookFailed` for the
engine to downgrade into a warning.
"""

from __future__ import annotations

import asyncio
import shlex
from dataclasses import dataclass
from pathlib import Path

from fbascaffold.engine.placeholders import PlaceholderSubstituter
from fbascaffold.errors import HookFailed
from fbascaffold.registry.models import HookSpec
from fbascaffold.utils import format_command, run_command


@dataclass
class HookResult:
    """Outcome of a hook that exited successfully."""

    command: str
    returncode: int
    stdout: str
    stderr: str


def render_hook_command(hook: HookSpec, substituter: PlaceholderSubstituter) -> str | list[str]:
    """Substitute placeholders in the hook command (string or argv list).

    Values spliced into a shell string are quoted; argv elements are passed
    to the child process as they are.
    """
    if isinstance(hook.command, str):
        return substituter.substitute(hook.command, "hook", quote=shlex.quote)
    return [substituter.substitute(arg, "hook") for arg in hook.command]


def run_hook(command: str | list[str], cwd: Path, timeout: int) -> HookResult:
    """Run *command* in *cwd*, blocking until it exits.

    Raises:
        HookFailed: On a non-zero exit, a timeout or a missing executable.
    """
    printable = format_command(command)
    try:
        returncode, stdout, stderr = asyncio.run(
            run_command(command, cwd=cwd, timeout=timeout)
        )
    except OSError as exc:
        # FileNotFoundError / PermissionError for the executable itself
        raise HookFailed(printable, str(exc)) from exc

    if returncode == -1 and stderr.startswith("Command timed out"):
        raise HookFailed(printable, f"timed out after {timeout}s", returncode)
    if returncode != 0:
        detail = stderr.splitlines()[-1] if stderr else f"exit code {returncode}"
        raise HookFailed(printable, detail, returncode)
    return HookResult(command=printable, returncode=returncode, stdout=stdout, stderr=stderr)
