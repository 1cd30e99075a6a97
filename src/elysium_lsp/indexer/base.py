"""Interface shared by the macro-convention plugins."""

from abc import ABC, abstractmethod
from pathlib import Path

from lsprotocol import types as lsp

from ..compile_commands import CompileCommands, canonical_path
from ..config import DEFAULT_SOURCE_EXTENSION


def range_contains(range_: lsp.Range, position: lsp.Position) -> bool:
    """Whether ``position`` lies inside ``range_``, both ends inclusive."""
    if position.line < range_.start.line or position.line > range_.end.line:
        return False
    if position.line == range_.start.line and position.character < range_.start.character:
        return False
    if position.line == range_.end.line and position.character > range_.end.character:
        return False
    return True


class ConventionPlugin(ABC):
    """
    One project macro convention indexed across the whole tree.

    A plugin owns the entities it extracted from each file. The coordinator
    only ever talks to it through ``update``, ``remove``, ``completions`` and
    ``diagnostics``.
    """

    name: str = ""
    diagnostic_source: str = ""

    def __init__(
        self,
        compile_commands: CompileCommands,
        source_extension: str = DEFAULT_SOURCE_EXTENSION,
    ):
        self.compile_commands = compile_commands
        self.source_extension = source_extension

    def is_source(self, path: Path) -> bool:
        return path.suffix == self.source_extension

    def canonical(self, path: Path) -> Path:
        return canonical_path(path)

    @abstractmethod
    def update(self, path: Path, content: str | None) -> None:
        """Re-index ``path``; ``content`` overrides the on-disk text.

        Raises FrontEndError when the file cannot be parsed, in which case the
        file's previous entities are kept.
        """

    @abstractmethod
    def remove(self, path: Path) -> None:
        """Forget everything indexed from ``path``."""

    @abstractmethod
    def completions(
        self, path: Path, position: lsp.Position
    ) -> list[lsp.CompletionItem] | None:
        """Completion items at ``position``, or None when it is not our context."""

    @abstractmethod
    def diagnostics(self) -> dict[Path, list[lsp.Diagnostic]]:
        """Diagnostics for every indexed file, keyed by canonical path."""
