"""Macro-convention indexers for elysium-lsp."""

from ..compile_commands import CompileCommands
from .base import ConventionPlugin, range_contains
from .clang_frontend import EncodingFailure, FrontEndError, ParseFailure
from .hooks import HookPlugin
from .init_targets import InitDependencyPlugin

PLUGINS: dict[str, type[ConventionPlugin]] = {
    InitDependencyPlugin.name: InitDependencyPlugin,
    HookPlugin.name: HookPlugin,
}


def instantiate_plugins(
    names: list[str],
    compile_commands: CompileCommands,
    source_extension: str,
) -> list[ConventionPlugin]:
    """Create one plugin per name, in the given order."""
    plugins: list[ConventionPlugin] = []
    for name in names:
        try:
            plugin_cls = PLUGINS[name]
        except KeyError:
            raise ValueError(
                f"Unknown plugin '{name}'. Must be one of: {sorted(PLUGINS)}"
            ) from None
        plugins.append(plugin_cls(compile_commands, source_extension=source_extension))
    return plugins


__all__ = [
    "PLUGINS",
    "ConventionPlugin",
    "EncodingFailure",
    "FrontEndError",
    "HookPlugin",
    "InitDependencyPlugin",
    "ParseFailure",
    "instantiate_plugins",
    "range_contains",
]
