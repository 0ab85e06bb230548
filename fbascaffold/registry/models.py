"""Pydantic v2 models for template manifests.

A template is a directory holding a manifest (``template.json`` or
``template.yaml``) next to its payload files.  The manifest is validated into
a :class:`TemplateDescriptor`, which is immutable once loaded.
"""

from __future__ import annotations

import os
import stat
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fbascaffold.conditions import (
    And,
    Condition,
    Value,
    evaluate,
    parse_condition,
    referenced_names,
)
from fbascaffold.errors import InvalidParameterValue, InvalidTemplate

MANIFEST_NAMES: tuple[str, ...] = ("template.json", "template.yaml", "template.yml")

IGNORED_NAMES: frozenset[str] = frozenset({".git", "__pycache__", ".DS_Store", "Thumbs.db"})

# How much of a file is sniffed for NUL bytes before it is treated as binary.
_BINARY_SNIFF_BYTES = 8192


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ParameterKind(str, Enum):
    """How a parameter's values are validated and normalised."""
    TEXT = "text"
    BOOL = "bool"
    CHOICE = "choice"


# ---------------------------------------------------------------------------
# Manifest sections
# ---------------------------------------------------------------------------

class ParameterDeclaration(BaseModel):
    """A parameter a template accepts, with its default and constraints."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_]*$", description="Parameter name")
    kind: ParameterKind = Field(default=ParameterKind.TEXT, description="Value kind")
    default: Optional[Union[bool, str]] = Field(default=None, description="Default value")
    choices: list[str] = Field(default_factory=list, description="Allowed values for choice parameters")
    required: bool = Field(default=False, description="Whether a value must be supplied")
    description: str = Field(default="", description="Help text shown by `show`")
    replaces: list[str] = Field(
        default_factory=list,
        description="Literal tokens in payload files replaced by this parameter's value",
    )

    @model_validator(mode="after")
    def _check_default(self) -> "ParameterDeclaration":
        if self.kind is ParameterKind.CHOICE and not self.choices:
            raise ValueError(f"choice parameter '{self.name}' declares no choices")
        if self.kind is not ParameterKind.CHOICE and self.choices:
            raise ValueError(f"only choice parameters may declare choices ('{self.name}')")
        if self.default is not None:
            try:
                self.normalize(self.default)
            except InvalidParameterValue as exc:
                raise ValueError(str(exc)) from exc
        elif self.kind is ParameterKind.CHOICE and not self.required:
            raise ValueError(f"optional choice parameter '{self.name}' needs a default")
        return self

    def normalize(self, raw: Value) -> Value:
        """Validate *raw* against this declaration and return the canonical value.

        Booleans accept only ``true`` and ``false``; they and choice values are
        matched case-insensitively, and choices normalise to the declared
        spelling.  Required text parameters reject blank values.

        Raises:
            InvalidParameterValue: If *raw* is not acceptable.
        """
        if self.kind is ParameterKind.BOOL:
            if isinstance(raw, bool):
                return raw
            lowered = raw.strip().lower()
            if lowered == "true":
                return True
            if lowered == "false":
                return False
            raise InvalidParameterValue(self.name, raw, "expected true or false")

        text = _text_of(raw)
        if self.kind is ParameterKind.CHOICE:
            for choice in self.choices:
                if choice.lower() == text.lower():
                    return choice
            raise InvalidParameterValue(
                self.name, text, f"allowed values are {', '.join(self.choices)}"
            )
        if self.required and not text.strip():
            raise InvalidParameterValue(self.name, text, "a non-blank value is required")
        return text

    def fallback(self) -> Optional[Value]:
        """The value used when no override is given, or ``None`` when there is none."""
        if self.default is not None:
            return self.normalize(self.default)
        if self.required:
            return None
        if self.kind is ParameterKind.BOOL:
            return False
        return ""


class FileRule(BaseModel):
    """Conditional inclusion for files whose relative path matches ``path``."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Glob matched against the relative path (PurePath.match)")
    condition: str = Field(..., description="Expression that must be true for the file to be written")

    @field_validator("condition")
    @classmethod
    def _parses(cls, value: str) -> str:
        try:
            parse_condition(value)
        except InvalidTemplate as exc:
            raise ValueError(str(exc)) from exc
        return value

    def parsed(self) -> Condition:
        return parse_condition(self.condition)


class HookSpec(BaseModel):
    """A single command run in the destination after files are written."""

    model_config = ConfigDict(frozen=True)

    command: Union[str, list[str]] = Field(..., description="Shell string or argv list")
    description: str = Field(default="", description="Shown while the hook runs")
    timeout: Optional[int] = Field(default=None, ge=1, description="Overrides the configured timeout")

    @field_validator("command")
    @classmethod
    def _not_empty(cls, value: Union[str, list[str]]) -> Union[str, list[str]]:
        if not value or (isinstance(value, str) and not value.strip()):
            raise ValueError("hook command must not be empty")
        return value


# ---------------------------------------------------------------------------
# File entries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TemplateFileEntry:
    """One payload file of a template tree."""

    path: str
    content: bytes
    binary: bool
    mode: int
    condition: Optional[Condition] = None
    preprocess: bool = False

    def included(self, values: Mapping[str, Value]) -> bool:
        return self.condition is None or evaluate(self.condition, values)


# ---------------------------------------------------------------------------
# Template descriptor
# ---------------------------------------------------------------------------

class TemplateDescriptor(BaseModel):
    """A validated template manifest bound to the directory it was loaded from."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Short name used on the command line")
    title: str = Field(..., min_length=1, description="Human-readable title")
    description: str = Field(default="")
    tags: list[str] = Field(default_factory=list)
    root: Path = Field(..., description="Directory holding the manifest and payload")
    name_parameter: str = Field(
        default="ProjectName",
        description="Parameter that receives the value of the CLI --name option",
    )
    parameters: list[ParameterDeclaration] = Field(default_factory=list)
    files: list[FileRule] = Field(default_factory=list)
    preprocess: list[str] = Field(
        default_factory=list, description="Globs of files whose #if blocks are evaluated"
    )
    binary: list[str] = Field(
        default_factory=list, description="Globs of files always copied unmodified"
    )
    hook: Optional[HookSpec] = None

    @field_validator("name")
    @classmethod
    def _no_separators(cls, value: str) -> str:
        if any(ch.isspace() for ch in value) or "/" in value or "\\" in value:
            raise ValueError(f"template name '{value}' must not contain whitespace or slashes")
        return value

    @model_validator(mode="after")
    def _check_references(self) -> "TemplateDescriptor":
        names = [p.name for p in self.parameters]
        lowered = [n.lower() for n in names]
        duplicates = sorted({n for n in names if lowered.count(n.lower()) > 1})
        if duplicates:
            raise ValueError(f"duplicate parameter names: {', '.join(duplicates)}")

        declared = set(names)
        for rule in self.files:
            unknown = referenced_names(rule.parsed()) - declared
            if unknown:
                raise ValueError(
                    f"file rule '{rule.path}' references undeclared parameter(s) "
                    f"{', '.join(sorted(unknown))}"
                )
        return self

    # -- Lookups -----------------------------------------------------------

    def parameter(self, name: str) -> Optional[ParameterDeclaration]:
        """Return the declaration named *name* (case-insensitive), if any."""
        for declaration in self.parameters:
            if declaration.name.lower() == name.lower():
                return declaration
        return None

    # -- Tree walking ------------------------------------------------------

    def entries(self) -> Iterator[TemplateFileEntry]:
        """Yield every payload file in a stable, sorted walk order.

        The manifest and ignored names (``.git``, ``__pycache__`` ...) are
        skipped.  Each entry carries the conjunction of all file-rule
        conditions whose glob matches its path.
        """
        rules = [(rule.path, rule.parsed()) for rule in self.files]
        for source in _walk(self.root):
            rel = source.relative_to(self.root).as_posix()
            if rel in MANIFEST_NAMES:
                continue
            pure = PurePosixPath(rel)

            condition: Optional[Condition] = None
            for pattern, parsed in rules:
                if pure.match(pattern):
                    condition = parsed if condition is None else And(condition, parsed)

            content = source.read_bytes()
            yield TemplateFileEntry(
                path=rel,
                content=content,
                binary=any(pure.match(p) for p in self.binary) or _looks_binary(content),
                mode=stat.S_IMODE(source.stat().st_mode),
                condition=condition,
                preprocess=any(pure.match(p) for p in self.preprocess),
            )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _text_of(raw: Value) -> str:
    if isinstance(raw, bool):
        return "true" if raw else "false"
    return raw


def _walk(root: Path) -> Iterator[Path]:
    """Yield files under *root* depth-first in sorted order, skipping ignored names."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_NAMES)
        for filename in sorted(filenames):
            if filename not in IGNORED_NAMES:
                yield Path(dirpath) / filename


def _looks_binary(content: bytes) -> bool:
    if b"\0" in content[:_BINARY_SNIFF_BYTES]:
        return True
    try:
        content.decode("utf-8")
    except UnicodeDecodeError:
        return True
    return False
