"""Tests for the instantiation engine (fbascaffold.engine.instantiate).

Covers:
- Full render of the greeter template: paths, literals, #if blocks, .j2 files
- Conditional file inclusion
- Binary files copied byte for byte
- Dry runs, --force and idempotent re-instantiation
- Destination checks and path confinement
- State transitions on success and failure
- Post-generation hooks downgraded to warnings
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from fbascaffold.config import Config
from fbascaffold.engine import EngineState, InstantiationEngine, check_destination, confine
from fbascaffold.engine import instantiate as instantiate_module
from fbascaffold.errors import (
    DestinationUnwritable,
    HookFailed,
    InvalidTemplate,
    UnresolvedPlaceholder,
    WriteFailed,
)
from fbascaffold.registry import TemplateRegistry
from fbascaffold.registry.models import TemplateDescriptor
from fbascaffold.resolver import resolve

pytestmark = pytest.mark.unit


@pytest.fixture
def greeter(registry: TemplateRegistry):
    return registry.find("greeter")


@pytest.fixture
def engine() -> InstantiationEngine:
    return InstantiationEngine(Config(include_bundled=False), quiet=True)


def _tree(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRender:
    def test_greeter_output(self, engine, greeter, output_dir):
        binding = resolve(greeter, {"ProjectName": "Calculator"})
        result = engine.instantiate(greeter, binding, output_dir)

        assert engine.state is EngineState.DONE
        assert sorted(_tree(output_dir)) == [
            "Calculator.cs",
            "assets/logo.bin",
            "docs/README.md",
        ]
        program = (output_dir / "Calculator.cs").read_text()
        assert program == (
            "#:property TargetFramework=net10.0\n"
            "#:property PublishAot=False\n"
            'Console.WriteLine("Hello from Calculator!");\n'
        )
        assert (output_dir / "docs" / "README.md").read_text() == "# CALCULATOR\njit\n"
        assert result.skipped == ["aot.txt"]
        assert {f.path for f in result.files} == {
            "Calculator.cs",
            "assets/logo.bin",
            "docs/README.md",
        }
        assert result.written[0].is_absolute()

    def test_no_placeholders_left(self, engine, greeter, output_dir):
        binding = resolve(greeter, {"ProjectName": "Calculator", "EnableAot": "true"})
        engine.instantiate(greeter, binding, output_dir)
        for path, content in _tree(output_dir).items():
            if path.endswith(".bin"):
                continue
            assert "{{" not in content.decode()
            assert "NET_TFM" not in content.decode()

    def test_conditional_file_included(self, engine, greeter, output_dir):
        binding = resolve(greeter, {"ProjectName": "Calculator", "EnableAot": "true"})
        result = engine.instantiate(greeter, binding, output_dir)
        assert (output_dir / "aot.txt").read_text() == "AOT enabled for Calculator\n"
        assert "#:property PublishAot=True" in (output_dir / "Calculator.cs").read_text()
        assert (output_dir / "docs" / "README.md").read_text().endswith("aot\n")
        assert result.skipped == []

    def test_choice_literal_replacement(self, engine, greeter, output_dir):
        binding = resolve(greeter, {"ProjectName": "Calculator", "Framework": "net8.0"})
        engine.instantiate(greeter, binding, output_dir)
        assert "TargetFramework=net8.0" in (output_dir / "Calculator.cs").read_text()

    def test_binary_copied_unmodified(self, engine, greeter, greeter_dir, output_dir):
        binding = resolve(greeter, {"ProjectName": "Calculator"})
        engine.instantiate(greeter, binding, output_dir)
        original = (greeter_dir / "assets" / "logo.bin").read_bytes()
        assert (output_dir / "assets" / "logo.bin").read_bytes() == original

    def test_binary_glob(self, engine, make_template, content_root, output_dir):
        make_template(
            {"name": "globbed", "title": "G", "parameters": [{"name": "ProjectName"}],
             "binary": ["*.keep"]},
            {"raw.keep": "{{ProjectName}}\n"},
        )
        descriptor = TemplateRegistry([content_root]).find("globbed")
        engine.instantiate(descriptor, resolve(descriptor, {"ProjectName": "X"}), output_dir)
        assert (output_dir / "raw.keep").read_text() == "{{ProjectName}}\n"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX file modes")
    def test_executable_bit_kept(self, engine, make_template, content_root, output_dir):
        template_dir = make_template(
            {"name": "scripted", "title": "S"}, {"run.sh": "#!/bin/sh\necho hi\n"}
        )
        os.chmod(template_dir / "run.sh", 0o755)
        descriptor = TemplateRegistry([content_root]).find("scripted")
        engine.instantiate(descriptor, resolve(descriptor, {}), output_dir)
        assert os.stat(output_dir / "run.sh").st_mode & 0o111

    def test_unresolved_placeholder_writes_nothing(
        self, engine, make_template, content_root, output_dir
    ):
        make_template(
            {"name": "broken", "title": "B", "parameters": [{"name": "ProjectName"}]},
            {"a.txt": "{{ProjectName}}\n", "b.txt": "{{Author}}\n"},
        )
        descriptor = TemplateRegistry([content_root]).find("broken")
        with pytest.raises(UnresolvedPlaceholder) as exc_info:
            engine.instantiate(descriptor, resolve(descriptor, {"ProjectName": "X"}), output_dir)
        assert exc_info.value.file == "b.txt"
        assert engine.state is EngineState.FAILED
        assert not output_dir.exists()

    def test_jinja_runtime_error(self, engine, make_template, content_root, output_dir):
        make_template(
            {"name": "mathy", "title": "M", "parameters": [{"name": "ProjectName"}]},
            {"a.txt.j2": "{{ ProjectName / 2 }}\n"},
        )
        descriptor = TemplateRegistry([content_root]).find("mathy")
        with pytest.raises(InvalidTemplate, match="a.txt.j2"):
            engine.instantiate(descriptor, resolve(descriptor, {"ProjectName": "X"}), output_dir)
        assert engine.state is EngineState.FAILED
        assert not output_dir.exists()

    def test_unexpected_error_marks_failed(self, engine, greeter, output_dir, monkeypatch):
        def _explode(*args, **kwargs):
            raise RuntimeError("renderer crashed")

        monkeypatch.setattr(engine.renderer, "render_string", _explode)
        binding = resolve(greeter, {"ProjectName": "Calculator"})
        with pytest.raises(RuntimeError):
            engine.instantiate(greeter, binding, output_dir)
        assert engine.state is EngineState.FAILED

    def test_jinja_booleans_lowercase(self, engine, make_template, content_root, output_dir):
        make_template(
            {"name": "flags", "title": "F",
             "parameters": [{"name": "EnableAot", "kind": "bool", "default": True}]},
            {"flags.txt.j2": "aot={{ EnableAot }}\n"},
        )
        descriptor = TemplateRegistry([content_root]).find("flags")
        engine.instantiate(descriptor, resolve(descriptor, {}), output_dir)
        assert (output_dir / "flags.txt").read_text() == "aot=true\n"


# ---------------------------------------------------------------------------
# Dry run & overwrite
# ---------------------------------------------------------------------------


class TestDryRunAndForce:
    def test_dry_run_writes_nothing(self, engine, greeter, output_dir):
        binding = resolve(greeter, {"ProjectName": "Calculator"})
        result = engine.instantiate(greeter, binding, output_dir, dry_run=True)
        assert result.dry_run
        assert len(result.files) == 3
        assert not output_dir.exists()
        assert engine.state is EngineState.DONE

    def test_non_empty_destination_rejected(self, engine, greeter, output_dir):
        output_dir.mkdir(parents=True)
        (output_dir / "existing.txt").write_text("keep")
        binding = resolve(greeter, {"ProjectName": "Calculator"})
        with pytest.raises(DestinationUnwritable, match="--force"):
            engine.instantiate(greeter, binding, output_dir)
        assert engine.state is EngineState.FAILED
        assert sorted(p.name for p in output_dir.iterdir()) == ["existing.txt"]

    def test_force_overwrites_and_keeps_others(self, engine, greeter, output_dir):
        output_dir.mkdir(parents=True)
        (output_dir / "existing.txt").write_text("keep")
        (output_dir / "Calculator.cs").write_text("old")
        binding = resolve(greeter, {"ProjectName": "Calculator"})
        engine.instantiate(greeter, binding, output_dir, force=True)
        assert (output_dir / "existing.txt").read_text() == "keep"
        assert "Hello from Calculator" in (output_dir / "Calculator.cs").read_text()

    def test_reinstantiation_is_idempotent(self, engine, greeter, output_dir):
        binding = resolve(greeter, {"ProjectName": "Calculator"})
        engine.instantiate(greeter, binding, output_dir)
        first = _tree(output_dir)
        engine.instantiate(greeter, binding, output_dir, force=True)
        assert _tree(output_dir) == first


# ---------------------------------------------------------------------------
# Destination checks & confinement
# ---------------------------------------------------------------------------


class TestDestination:
    def test_missing_destination_is_fine(self, tmp_path: Path):
        check_destination(tmp_path / "a" / "b", force=False)

    def test_empty_directory_is_fine(self, tmp_path: Path):
        check_destination(tmp_path, force=False)

    def test_file_rejected(self, tmp_path: Path):
        target = tmp_path / "file.txt"
        target.write_text("x")
        with pytest.raises(DestinationUnwritable, match="not a directory"):
            check_destination(target, force=True)

    def test_under_a_file_rejected(self, tmp_path: Path):
        (tmp_path / "file.txt").write_text("x")
        with pytest.raises(DestinationUnwritable):
            check_destination(tmp_path / "file.txt" / "sub", force=False)

    @pytest.mark.skipif(
        sys.platform == "win32" or (hasattr(os, "geteuid") and os.geteuid() == 0),
        reason="permission bits are not enforced",
    )
    def test_read_only_parent_rejected(self, tmp_path: Path):
        locked = tmp_path / "locked"
        locked.mkdir()
        os.chmod(locked, 0o500)
        try:
            with pytest.raises(DestinationUnwritable, match="permission denied"):
                check_destination(locked / "new", force=False)
        finally:
            os.chmod(locked, 0o700)

    def test_confine_accepts_nested(self, tmp_path: Path):
        assert confine(tmp_path, "a/b.txt") == (tmp_path / "a" / "b.txt").resolve()

    @pytest.mark.parametrize("relative", ["../evil.cs", "a/../../evil.cs", "."])
    def test_confine_rejects_escape(self, tmp_path: Path, relative: str):
        with pytest.raises(WriteFailed, match="escapes"):
            confine(tmp_path / "dest", relative)

    def test_escaping_name_rejected_before_writing(self, engine, greeter, output_dir):
        binding = resolve(greeter, {"ProjectName": "../Escaped"})
        with pytest.raises(WriteFailed):
            engine.instantiate(greeter, binding, output_dir)
        assert not (output_dir.parent / "Escaped.cs").exists()
        assert not output_dir.exists()

    def test_duplicate_output_paths(self, engine, make_template, content_root, output_dir):
        make_template(
            {"name": "clash", "title": "C", "parameters": [{"name": "ProjectName"}]},
            {"{{ProjectName}}.txt": "a", "Demo.txt": "b"},
        )
        descriptor = TemplateRegistry([content_root]).find("clash")
        with pytest.raises(WriteFailed, match="produced by both"):
            engine.instantiate(descriptor, resolve(descriptor, {"ProjectName": "Demo"}), output_dir)
        assert not output_dir.exists()


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


def _hooked_template(make_template, content_root, command) -> TemplateDescriptor:
    make_template(
        {
            "name": "hooked",
            "title": "Hooked",
            "parameters": [{"name": "ProjectName"}],
            "hook": {"command": command, "timeout": 30},
        },
        {"{{ProjectName}}.txt": "hi\n"},
    )
    return TemplateRegistry([content_root]).find("hooked")


class TestHooks:
    def test_hook_runs_in_destination(self, engine, make_template, content_root, output_dir):
        descriptor = _hooked_template(
            make_template,
            content_root,
            [sys.executable, "-c", "import os; open('done.txt', 'w').write(os.listdir('.')[0])"],
        )
        result = engine.instantiate(descriptor, resolve(descriptor, {"ProjectName": "X"}), output_dir)
        assert result.hook is not None
        assert result.hook.returncode == 0
        assert (output_dir / "done.txt").exists()

    def test_hook_argv_substituted(self, engine, make_template, content_root, output_dir):
        descriptor = _hooked_template(
            make_template,
            content_root,
            [sys.executable, "-c", "import sys; open(sys.argv[1] + '.ok', 'w')", "{{ProjectName}}"],
        )
        engine.instantiate(descriptor, resolve(descriptor, {"ProjectName": "Demo"}), output_dir)
        assert (output_dir / "Demo.ok").exists()

    def test_hook_failure_is_a_warning(self, engine, make_template, content_root, output_dir):
        descriptor = _hooked_template(
            make_template, content_root, [sys.executable, "-c", "import sys; sys.exit(1)"]
        )
        result = engine.instantiate(descriptor, resolve(descriptor, {"ProjectName": "X"}), output_dir)
        assert engine.state is EngineState.DONE
        assert result.hook is None
        assert len(result.warnings) == 1
        assert (output_dir / "X.txt").read_text() == "hi\n"

    def test_missing_hook_executable_is_a_warning(
        self, engine, make_template, content_root, output_dir
    ):
        descriptor = _hooked_template(
            make_template, content_root, ["definitely-not-a-real-binary-xyz", "restore"]
        )
        result = engine.instantiate(descriptor, resolve(descriptor, {"ProjectName": "X"}), output_dir)
        assert engine.state is EngineState.DONE
        assert "definitely-not-a-real-binary-xyz" in result.warnings[0]

    def test_hooks_disabled_by_config(self, make_template, content_root, output_dir, monkeypatch):
        def _fail(*args, **kwargs):
            raise AssertionError("hook should not run")

        monkeypatch.setattr(instantiate_module, "run_hook", _fail)
        descriptor = _hooked_template(make_template, content_root, ["anything"])
        engine = InstantiationEngine(Config(run_hooks=False), quiet=True)
        result = engine.instantiate(descriptor, resolve(descriptor, {"ProjectName": "X"}), output_dir)
        assert result.hook is None
        assert result.warnings == []

    def test_dry_run_skips_hook(self, engine, make_template, content_root, output_dir, monkeypatch):
        def _fail(*args, **kwargs):
            raise HookFailed("anything", "should not run")

        monkeypatch.setattr(instantiate_module, "run_hook", _fail)
        descriptor = _hooked_template(make_template, content_root, ["anything"])
        result = engine.instantiate(
            descriptor, resolve(descriptor, {"ProjectName": "X"}), output_dir, dry_run=True
        )
        assert result.hook is None
        assert result.warnings == []
