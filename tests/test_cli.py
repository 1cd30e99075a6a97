"""Tests for the command-line interface."""

import logging
from pathlib import Path

import pytest
from click.testing import CliRunner
from lsprotocol import types as lsp

from elysium_lsp.cli import format_diagnostic, main
from elysium_lsp.config import CONFIG_FILE_NAME

from conftest import HOOKS_SOURCE


@pytest.fixture(autouse=True)
def reset_logging():
    """The CLI installs handlers bound to the runner's streams."""
    yield
    for name in ("elysium_lsp", "pygls"):
        logging.getLogger(name).handlers.clear()


@pytest.fixture
def configured_project(project_root: Path) -> Path:
    (project_root / CONFIG_FILE_NAME).write_text("clang:\n  std: c11\n")
    return project_root


class TestFormatDiagnostic:
    """Tests for compiler-style diagnostic lines."""

    def test_one_based_positions(self):
        """Lines and columns are printed 1-based."""
        diagnostic = lsp.Diagnostic(
            range=lsp.Range(
                start=lsp.Position(line=8, character=13),
                end=lsp.Position(line=8, character=20),
            ),
            message="Unknown hook 'missing'",
            severity=lsp.DiagnosticSeverity.Error,
            source="cronus-hooks",
        )
        line = format_diagnostic(Path("/p/src/hooks.c"), diagnostic)
        assert line == "/p/src/hooks.c:9:14: error: Unknown hook 'missing' [cronus-hooks]"

    def test_warning(self):
        """Warnings are labelled as such."""
        diagnostic = lsp.Diagnostic(
            range=lsp.Range(
                start=lsp.Position(line=0, character=0),
                end=lsp.Position(line=0, character=3),
            ),
            message="Duplicate dependency 'a' in x",
            severity=lsp.DiagnosticSeverity.Warning,
        )
        assert format_diagnostic(Path("a.c"), diagnostic) == (
            "a.c:1:1: warning: Duplicate dependency 'a' in x"
        )


class TestShowConfig:
    """Tests for show-config."""

    def test_defaults(self, tmp_path):
        """Prints the default configuration and compile arguments."""
        result = CliRunner().invoke(main, ["show-config", "--project-root", str(tmp_path)])

        assert result.exit_code == 0
        assert "std: gnu23" in result.output
        assert "- init-deps" in result.output
        assert "-std=gnu23" in result.output

    def test_project_file(self, configured_project):
        """Reads the project configuration file."""
        result = CliRunner().invoke(
            main, ["show-config", "--project-root", str(configured_project)]
        )
        assert "std: c11" in result.output

    def test_invalid_config(self, tmp_path):
        """Invalid configuration exits with an error."""
        (tmp_path / CONFIG_FILE_NAME).write_text("indexing:\n  source_extension: c\n")
        result = CliRunner().invoke(main, ["show-config", "--project-root", str(tmp_path)])

        assert result.exit_code == 1
        assert "source_extension" in result.output


class TestCheck:
    """Tests for the one-shot check command."""

    def test_reports_problems(self, libclang, configured_project):
        """Unknown names are printed and fail the run."""
        result = CliRunner().invoke(main, ["check", "--project-root", str(configured_project)])

        hooks_c = configured_project / "src" / "hooks.c"
        line = HOOKS_SOURCE.splitlines().index("    HOOK_RUN(missing);") + 1
        assert result.exit_code == 1
        assert f"{hooks_c}:{line}:14: error: Unknown hook 'missing' [cronus-hooks]" in result.output
        assert "Unknown init dependency 'fb' [cronus-init]" in result.output

    def test_plugin_selection(self, libclang, configured_project):
        """Only the selected plugins run."""
        result = CliRunner().invoke(
            main,
            ["check", "--project-root", str(configured_project), "--plugin", "init-deps"],
        )

        assert "cronus-init" in result.output
        assert "cronus-hooks" not in result.output

    def test_clean_project(self, libclang, configured_project):
        """A project without problems exits 0."""
        (configured_project / "src" / "hooks.c").write_text(
            HOOKS_SOURCE.replace("HOOK_RUN(missing)", "HOOK_RUN(boot)")
        )
        (configured_project / "src" / "init.c").unlink()

        result = CliRunner().invoke(main, ["check", "--project-root", str(configured_project)])

        assert result.exit_code == 0
        assert "0 errors" in result.output

    def test_unknown_plugin_rejected(self, tmp_path):
        """Plugin names are validated by the CLI."""
        result = CliRunner().invoke(
            main, ["check", "--project-root", str(tmp_path), "--plugin", "tracing"]
        )
        assert result.exit_code == 2
