"""Pytest configuration and fixtures for elysium-lsp tests."""

import re
from pathlib import Path

import pytest
from lsprotocol import types as lsp

from elysium_lsp.compile_commands import CompileCommands
from elysium_lsp.indexer.clang_frontend import Token

TEST_ARGS_STD = "-std=c11"

CONVENTIONS_HEADER = """\
#ifndef CONVENTIONS_H
#define CONVENTIONS_H

#define HOOK(name) void hook_##name(void)
#define HOOK_RUN(name) hook_##name()

#define INIT_STAGE_EARLY 1
#define INIT_STAGE_LATE 2
#define INIT_SCOPE_BSP 1
#define INIT_SCOPE_GLOBAL 2

#define INIT_DEPS(...) { __VA_ARGS__ }
#define INIT_TARGET(name, stage, scope, deps) \\
    static const char *init_##name##_deps[] = deps

#endif
"""

HOOKS_SOURCE = """\
#include "conventions.h"

HOOK(build);
HOOK(boot);

void run(void)
{
    HOOK_RUN(build);
    HOOK_RUN(missing);
}
"""

INIT_SOURCE = """\
#include "conventions.h"

INIT_TARGET(serial, INIT_STAGE_EARLY, INIT_SCOPE_BSP, INIT_DEPS(0));
INIT_TARGET(console, INIT_STAGE_LATE, INIT_SCOPE_GLOBAL, INIT_DEPS("serial", "fb"));
"""

_TOKEN_RE = re.compile(r'"[^"]*"|\w+|\S')


def position_of(text: str, needle: str, offset: int = 0) -> lsp.Position:
    """Editor position of ``needle`` (plus ``offset`` characters) in ``text``."""
    index = text.index(needle) + offset
    line = text.count("\n", 0, index)
    character = index - (text.rfind("\n", 0, index) + 1)
    return lsp.Position(line=line, character=character)


@pytest.fixture
def lex():
    """
    Build synthetic tokens from one line of C.

    Each token gets a range on line 0 matching its column, and a kind close
    to what libclang reports, so extraction logic runs without a parser.
    """

    def _lex(source: str, line: int = 0) -> list[Token]:
        tokens = []
        for match in _TOKEN_RE.finditer(source):
            spelling = match.group()
            if spelling.startswith('"') or spelling[0].isdigit():
                kind = "LITERAL"
            elif spelling[0].isalpha() or spelling[0] == "_":
                kind = "IDENTIFIER"
            else:
                kind = "PUNCTUATION"
            tokens.append(
                Token(
                    spelling=spelling,
                    kind=kind,
                    range=lsp.Range(
                        start=lsp.Position(line=line, character=match.start()),
                        end=lsp.Position(line=line, character=match.end()),
                    ),
                )
            )
        return tokens

    return _lex


@pytest.fixture
def libclang():
    """Skip unless libclang can actually be loaded."""
    cindex = pytest.importorskip("clang.cindex")
    try:
        cindex.Index.create()
    except cindex.LibclangError as e:
        pytest.skip(f"libclang not loadable: {e}")
    return cindex


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Create an isolated C project using the hook and init conventions."""
    root = tmp_path / "project"
    (root / "include").mkdir(parents=True)
    (root / "src").mkdir()
    (root / "include" / "conventions.h").write_text(CONVENTIONS_HEADER)
    (root / "src" / "hooks.c").write_text(HOOKS_SOURCE)
    (root / "src" / "init.c").write_text(INIT_SOURCE)
    (root / "README.md").write_text("HOOK_RUN(not_c_source);\n")
    return root.resolve()


@pytest.fixture
def compile_commands(project_root: Path) -> CompileCommands:
    """Compile-flags lookup using only default arguments."""
    return CompileCommands(project_root, [f"-I{project_root / 'include'}", TEST_ARGS_STD])
