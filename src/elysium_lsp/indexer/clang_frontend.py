"""Boundary around libclang (``clang.cindex``).

Everything native stays inside this module: translation units are only
reachable within the ``parse`` context manager, and tokens leave as plain
``Token`` values carrying their spelling, kind and editor range. The rest of
the indexer works on those values, which keeps the extraction logic testable
without libclang.

Two structural helpers live here as well because both indexers need them:
top-level macro argument splitting and the argument-region lookup.
"""

from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from clang.cindex import (
    Config,
    Cursor,
    CursorKind,
    Index,
    SourceLocation,
    SourceRange,
    TranslationUnit,
    TranslationUnitLoadError,
)
from lsprotocol import types as lsp

from ..logging import get_logger

logger = get_logger("clang")

PARSE_OPTIONS = TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD


class FrontEndError(Exception):
    """Base exception for failures that prevent indexing a file at all."""

    pass


class ParseFailure(FrontEndError):
    """Raised when libclang cannot produce a translation unit."""

    pass


class EncodingFailure(FrontEndError):
    """Raised when a path, argument or buffer cannot be handed to libclang."""

    pass


@dataclass(frozen=True)
class Token:
    """A lexical token detached from its translation unit."""

    spelling: str
    kind: str  # PUNCTUATION, KEYWORD, IDENTIFIER, LITERAL, COMMENT
    range: lsp.Range | None

    @property
    def is_string_literal(self) -> bool:
        return self.kind == "LITERAL" and self.spelling.endswith('"')


def configure_library(library_file: str | None) -> None:
    """Point clang.cindex at a specific libclang shared library.

    Must run before the first parse; later calls are ignored by cindex, so we
    skip them instead of letting it raise.
    """
    if not library_file:
        return
    if Config.loaded:
        logger.debug("libclang already loaded, ignoring library_file=%s", library_file)
        return
    Config.set_library_file(library_file)
    logger.info("Using libclang from %s", library_file)


def _check_encodable(value: str, what: str) -> None:
    if "\x00" in value:
        raise EncodingFailure(f"{what} contains a NUL byte: {value!r}")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodingFailure(f"{what} is not valid UTF-8: {e}") from e


@contextmanager
def parse(
    path: Path,
    arguments: Sequence[str],
    content: str | None = None,
) -> Iterator[TranslationUnit]:
    """
    Parse ``path`` and yield its translation unit.

    Args:
        path: Source file to parse
        arguments: Compiler flags, passed verbatim
        content: In-memory buffer that replaces the file's on-disk content

    Raises:
        EncodingFailure: If the path, a flag or the buffer cannot be encoded
        ParseFailure: If libclang does not produce a translation unit
    """
    filename = str(path)
    _check_encodable(filename, "path")
    for arg in arguments:
        _check_encodable(arg, "argument")

    unsaved_files = None
    if content is not None:
        _check_encodable(content, "buffer")
        unsaved_files = [(filename, content)]

    index = Index.create()
    try:
        tu = index.parse(
            filename,
            args=list(arguments),
            unsaved_files=unsaved_files,
            options=PARSE_OPTIONS,
        )
    except TranslationUnitLoadError as e:
        del index
        raise ParseFailure(f"Unable to parse {path} with libclang: {e}") from e

    try:
        yield tu
    finally:
        # cindex disposes native handles once the wrappers are collected
        del tu
        del index


def macro_expansions(tu: TranslationUnit) -> Iterator[Cursor]:
    """Macro-expansion cursors of the main file, in preorder.

    Expansions inside included headers are skipped: their locations point
    into the header, not into the file being indexed.
    """
    main_file = tu.spelling
    for cursor in tu.cursor.walk_preorder():
        if cursor.kind != CursorKind.MACRO_INSTANTIATION:
            continue
        location_file = cursor.location.file
        if location_file is None or location_file.name != main_file:
            continue
        yield cursor


def tokenize(cursor: Cursor) -> list[Token] | None:
    """Tokens spanning the cursor's extent, or None when there are none."""
    tokens = [
        Token(
            spelling=token.spelling,
            kind=token.kind.name,
            range=source_range_to_range(token.extent),
        )
        for token in cursor.get_tokens()
    ]
    return tokens or None


def location_to_position(location: SourceLocation) -> lsp.Position | None:
    """Convert a one-based libclang location to a zero-based editor position.

    Locations without a file (built-in macros, command-line defines) cannot be
    mapped and yield None.
    """
    if location.file is None:
        return None
    return lsp.Position(
        line=max(location.line - 1, 0),
        character=max(location.column - 1, 0),
    )


def source_range_to_range(extent: SourceRange) -> lsp.Range | None:
    start = location_to_position(extent.start)
    end = location_to_position(extent.end)
    if start is None or end is None:
        return None
    return lsp.Range(start=start, end=end)


def node_range(cursor: Cursor) -> lsp.Range | None:
    """Whole extent of a cursor."""
    return source_range_to_range(cursor.extent)


def merged_range(tokens: Sequence[Token]) -> lsp.Range | None:
    """Range from the start of the first token to the end of the last one."""
    if not tokens:
        return None
    first = tokens[0].range
    last = tokens[-1].range
    if first is None or last is None:
        return None
    return lsp.Range(start=first.start, end=last.end)


def token_text(tokens: Iterable[Token]) -> str:
    """Concatenate token spellings without separators."""
    return "".join(token.spelling for token in tokens)


def split_top_level_arguments(tokens: Sequence[Token]) -> list[list[Token]]:
    """
    Split a macro invocation's tokens into its top-level arguments.

    Tokens before the first "(" are skipped (the macro name). Commas split
    arguments only at depth zero; nested parentheses are kept verbatim. The
    closing ")" of the argument list ends the scan, so anything after it is
    ignored. ``FOO(a, (b,c), d)`` yields ``a``, ``(b,c)`` and ``d``.
    """
    args: list[list[Token]] = []
    current: list[Token] = []
    depth = 0
    collecting = False

    for token in tokens:
        spelling = token.spelling
        if not collecting:
            if spelling == "(":
                collecting = True
            continue

        if spelling == "(":
            depth += 1
            current.append(token)
        elif spelling == ")":
            if depth == 0:
                args.append(current)
                break
            depth -= 1
            current.append(token)
        elif spelling == "," and depth == 0:
            args.append(current)
            current = []
        else:
            current.append(token)

    return args


def argument_region(tokens: Sequence[Token]) -> lsp.Range | None:
    """
    Span between the outermost parentheses of a macro invocation.

    Starts at the end of the opening "(" and ends at the start of its matching
    ")". Returns None for unbalanced input or tokens without locations.
    """
    depth = 0
    start: lsp.Position | None = None

    for token in tokens:
        if token.spelling == "(":
            if depth == 0:
                if token.range is None:
                    return None
                start = token.range.end
            depth += 1
        elif token.spelling == ")":
            if depth == 0:
                continue
            depth -= 1
            if depth == 0:
                if token.range is None or start is None:
                    return None
                return lsp.Range(start=start, end=token.range.start)

    return None
