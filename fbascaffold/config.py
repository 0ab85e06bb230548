"""Scaffolder configuration.

Typed settings for template discovery and post-generation hooks.  Uses
Pydantic v2 so values are validated at construction time, whether they come
from the CLI or from environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

BUNDLED_TEMPLATE_ROOT = Path(__file__).parent / "templates"

_FALSE_STRINGS = {"", "0", "false", "no", "off"}


class Config(BaseModel):
    """Global scaffolder configuration.

    Instances are created once by the CLI entry point (usually through
    :meth:`from_env`) and passed to the registry and the engine.
    """

    template_paths: list[Path] = Field(
        default_factory=list,
        description="Extra content roots searched after the bundled templates",
    )
    include_bundled: bool = Field(
        default=True, description="Whether the bundled templates are registered"
    )
    run_hooks: bool = Field(default=True, description="Run post-generation hooks")
    hook_timeout: int = Field(
        default=300, ge=1, description="Post-generation hook timeout in seconds"
    )

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def content_roots(self) -> list[Path]:
        """Every content root in search order, bundled templates first."""
        roots: list[Path] = []
        if self.include_bundled:
            roots.append(BUNDLED_TEMPLATE_ROOT)
        roots.extend(self.template_paths)
        return roots

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            FBA_TEMPLATE_PATH  extra content roots, separated by ``os.pathsep``
            FBA_SKIP_HOOKS     any value other than 0/false/no/off disables hooks
            FBA_HOOK_TIMEOUT   hook timeout in seconds

        Raises:
            ValueError: If a variable holds an unusable value.
        """
        raw_paths = os.environ.get("FBA_TEMPLATE_PATH", "")
        paths = [Path(p) for p in raw_paths.split(os.pathsep) if p.strip()]

        skip_hooks = os.environ.get("FBA_SKIP_HOOKS", "").strip().lower()

        kwargs: dict[str, object] = {
            "template_paths": paths,
            "run_hooks": skip_hooks in _FALSE_STRINGS,
        }
        raw_timeout = os.environ.get("FBA_HOOK_TIMEOUT", "").strip()
        if raw_timeout:
            try:
                timeout = int(raw_timeout)
            except ValueError:
                timeout = 0
            if timeout < 1:
                raise ValueError(
                    f"FBA_HOOK_TIMEOUT must be a positive number of seconds, got '{raw_timeout}'"
                )
            kwargs["hook_timeout"] = timeout

        return cls(**kwargs)
