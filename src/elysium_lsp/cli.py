"""CLI for elysium-lsp.

Commands:
- serve: Run the language server over stdio
- check: Index a project once and print its diagnostics
- show-config: Print the effective configuration
"""

import asyncio
import sys
from pathlib import Path

import click
import yaml
from lsprotocol import types as lsp

from .compile_commands import CompileCommands, canonical_path
from .config import Config, ConfigError, load_config
from .coordinator import FatalIndexingError, IndexCoordinator
from .indexer import PLUGINS, instantiate_plugins
from .indexer.clang_frontend import configure_library
from .logging import get_logger, setup_logging

logger = get_logger("cli")

SEVERITY_NAMES = {
    lsp.DiagnosticSeverity.Error: "error",
    lsp.DiagnosticSeverity.Warning: "warning",
    lsp.DiagnosticSeverity.Information: "info",
    lsp.DiagnosticSeverity.Hint: "hint",
}


project_root_option = click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Root of the C project to index",
)

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: <project-root>/.elysium-lsp.yaml)",
)


def project_options(func):
    """Options shared by the commands that index a project tree."""
    options = [
        project_root_option,
        config_option,
        click.option(
            "--plugin",
            "plugins",
            multiple=True,
            type=click.Choice(sorted(PLUGINS)),
            help="Enable only these plugins, in the given order",
        ),
        click.option(
            "--fatal-parse-errors",
            is_flag=True,
            help="Exit when a file cannot be parsed instead of reporting it",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--log-level", default="info", show_default=True, help="Logging level")
@click.option("--json-logs", is_flag=True, help="Emit JSON-formatted logs")
def main(log_level: str, json_logs: bool):
    """Elysium LSP - completions and diagnostics for C macro conventions."""
    setup_logging(log_level, json_format=json_logs)


def _effective_config(
    project_root: Path,
    config_path: Path | None,
    plugins: tuple[str, ...],
    fatal_parse_errors: bool,
) -> Config:
    """Load configuration and apply command-line overrides."""
    try:
        config = load_config(config_path, project_root=project_root)
        if plugins:
            config.indexing.plugins = list(plugins)
        if fatal_parse_errors:
            config.indexing.fatal_parse_errors = True
        config.validate()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    return config


def build_coordinator(project_root: Path, config: Config) -> IndexCoordinator:
    """Wire compile commands and plugins for ``project_root``."""
    root = canonical_path(project_root)
    configure_library(config.clang.library_file)

    compile_commands = CompileCommands.load(
        root,
        config.default_clang_args(root),
        file_name=config.clang.compile_commands,
    )
    plugins = instantiate_plugins(
        config.indexing.plugins,
        compile_commands,
        source_extension=config.indexing.source_extension,
    )
    return IndexCoordinator(
        root,
        plugins,
        fatal_parse_errors=config.indexing.fatal_parse_errors,
    )


def format_diagnostic(path: Path, diagnostic: lsp.Diagnostic) -> str:
    """``path:line:col: severity: message [source]`` with 1-based positions."""
    start = diagnostic.range.start
    severity = SEVERITY_NAMES.get(diagnostic.severity, "error")
    line = f"{path}:{start.line + 1}:{start.character + 1}: {severity}: {diagnostic.message}"
    if diagnostic.source:
        line += f" [{diagnostic.source}]"
    return line


@main.command()
@project_options
def serve(project_root: Path, config_path: Path | None, plugins, fatal_parse_errors):
    """Run the language server over stdio."""
    from .server import run

    config = _effective_config(project_root, config_path, plugins, fatal_parse_errors)
    coordinator = build_coordinator(project_root, config)
    run(coordinator)


@main.command()
@project_options
def check(project_root: Path, config_path: Path | None, plugins, fatal_parse_errors):
    """Index the project once and print every diagnostic."""
    config = _effective_config(project_root, config_path, plugins, fatal_parse_errors)
    coordinator = build_coordinator(project_root, config)

    async def _run():
        files = await coordinator.index_project()
        return files, await coordinator.diagnostics()

    try:
        files, diagnostics = asyncio.run(_run())
    except FatalIndexingError as e:
        logger.critical("Indexing failed: %s", e)
        sys.exit(1)

    errors = 0
    warnings = 0
    for path in sorted(diagnostics):
        ordered = sorted(
            diagnostics[path],
            key=lambda d: (d.range.start.line, d.range.start.character),
        )
        for diagnostic in ordered:
            click.echo(format_diagnostic(path, diagnostic))
            if diagnostic.severity == lsp.DiagnosticSeverity.Error:
                errors += 1
            elif diagnostic.severity == lsp.DiagnosticSeverity.Warning:
                warnings += 1

    summary = f"{files} files checked, {errors} errors, {warnings} warnings"
    if errors:
        click.echo(click.style(summary, fg="red"), err=True)
        sys.exit(1)
    click.echo(click.style(summary, fg="green"), err=True)


@main.command("show-config")
@project_root_option
@config_option
def show_config(project_root: Path, config_path: Path | None):
    """Print the effective configuration as YAML."""
    config = _effective_config(project_root, config_path, (), False)
    click.echo(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False), nl=False)

    root = canonical_path(project_root)
    click.echo(f"# default compile arguments: {' '.join(config.default_clang_args(root))}")


if __name__ == "__main__":
    main()
