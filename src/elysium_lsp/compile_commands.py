"""Per-file compiler arguments from a JSON compilation database.

The build system writes ``compile_commands.json`` at the project root. Each
record maps a source file to the compiler invocation used to build it; we keep
the flags (minus the compiler itself, the input file and the output flags) so
libclang sees the same include paths and defines as the real build.
"""

import json
import shlex
from pathlib import Path

from pydantic import ValidationError

from .logging import get_logger
from .models import CompileCommandEntry

logger = get_logger("compile_commands")

# Maximum database size (64MB)
MAX_DATABASE_SIZE = 64 * 1024 * 1024


def canonical_path(path: Path) -> Path:
    """Resolve symlinks and '..' where possible, lexically otherwise."""
    try:
        return path.resolve()
    except OSError:
        return Path(path).absolute()


def entry_arguments(entry: CompileCommandEntry) -> list[str]:
    """Extract the flags of a record, dropping the compiler executable."""
    if entry.arguments is not None:
        argv = list(entry.arguments)
    elif entry.command is not None:
        try:
            argv = shlex.split(entry.command)
        except ValueError as e:
            logger.warning("Unparseable command for %s: %s", entry.file, e)
            argv = []
    else:
        argv = []

    return argv[1:]


def strip_input_and_output(args: list[str], source: Path, directory: Path) -> list[str]:
    """Remove -c, -o <file> and the source file itself from an argument list."""
    stripped: list[str] = []
    skip_next = False
    for arg in args:
        if skip_next:
            skip_next = False
            continue
        if arg == "-c":
            continue
        if arg == "-o":
            skip_next = True
            continue
        if arg.startswith("-o") and len(arg) > 2:
            continue
        if not arg.startswith("-") and canonical_path(directory / arg) == source:
            continue
        stripped.append(arg)
    return stripped


class CompileCommands:
    """Lookup of compiler arguments by canonical source path."""

    def __init__(self, root: Path, default_args: list[str]):
        self.root = canonical_path(root)
        self.default_args = list(default_args)
        self.entries: dict[Path, list[str]] = {}

    @classmethod
    def load(
        cls,
        root: Path,
        default_args: list[str],
        file_name: str = "compile_commands.json",
    ) -> "CompileCommands":
        """
        Load the compilation database under ``root``.

        A missing or unreadable database is not an error: every lookup then
        returns ``default_args``.
        """
        db = cls(root, default_args)
        path = db.root / file_name

        if not path.exists():
            logger.debug("No compilation database at %s, using default arguments", path)
            return db

        if path.stat().st_size > MAX_DATABASE_SIZE:
            logger.warning(
                "Compilation database too large (%d bytes), ignoring %s",
                path.stat().st_size,
                path,
            )
            return db

        try:
            with open(path, encoding="utf-8") as f:
                raw_entries = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Failed to read compilation database %s: %s", path, e)
            return db

        if not isinstance(raw_entries, list):
            logger.warning("Compilation database %s is not a JSON array", path)
            return db

        for raw in raw_entries:
            try:
                entry = CompileCommandEntry.model_validate(raw)
            except ValidationError as e:
                logger.warning("Skipping malformed compile command: %s", e.errors()[0]["msg"])
                continue
            db.add_entry(entry)

        logger.info("Loaded %d compile commands from %s", len(db.entries), path)
        return db

    def add_entry(self, entry: CompileCommandEntry) -> None:
        directory = Path(entry.directory) if entry.directory else self.root
        if not directory.is_absolute():
            directory = self.root / directory

        source = Path(entry.file)
        if not source.is_absolute():
            source = directory / source
        source = canonical_path(source)

        args = strip_input_and_output(entry_arguments(entry), source, directory)
        self.entries[source] = args

    def args_for(self, file: Path) -> list[str]:
        """Arguments to parse ``file`` with; a fresh list on every call."""
        canonical = canonical_path(file)

        args = self.entries.get(canonical)
        if args is not None:
            return list(args)

        return list(self.default_args)

    def __len__(self) -> int:
        return len(self.entries)
