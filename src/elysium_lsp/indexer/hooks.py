"""Hook convention: ``HOOK(name)`` declares a hook, ``HOOK_RUN(name)`` runs it.

Every ``HOOK_RUN`` must name a hook declared by some ``HOOK`` in the project.
Inside the parentheses of either macro we offer all known hook names.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from clang.cindex import Cursor
from lsprotocol import types as lsp

from ..logging import get_logger
from . import clang_frontend
from .base import ConventionPlugin, range_contains
from .clang_frontend import Token

logger = get_logger("hooks")

DEFINITION_MACRO = "HOOK"
RUN_MACRO = "HOOK_RUN"
DIAGNOSTIC_SOURCE = "cronus-hooks"


class HookInvocationKind(Enum):
    DEFINITION = "definition"
    RUN = "run"


@dataclass(frozen=True)
class HookDefinition:
    name: str


@dataclass(frozen=True)
class HookInvocation:
    """Any occurrence of either hook macro."""

    name: str
    name_range: lsp.Range
    argument_region: lsp.Range
    kind: HookInvocationKind


@dataclass
class HookFileData:
    definitions: list[HookDefinition] = field(default_factory=list)
    invocations: list[HookInvocation] = field(default_factory=list)


def extract_definition(tokens: list[Token]) -> HookDefinition | None:
    """Hook declared by a ``HOOK(...)`` occurrence, if well-formed."""
    args = clang_frontend.split_top_level_arguments(tokens)
    if len(args) != 1:
        return None
    name = clang_frontend.token_text(args[0]).strip()
    if not name:
        return None
    return HookDefinition(name=name)


def extract_invocation(
    tokens: list[Token],
    kind: HookInvocationKind,
    fallback_range: lsp.Range | None,
) -> HookInvocation | None:
    """
    Build the invocation record of a hook macro occurrence.

    ``fallback_range`` (the whole macro extent) stands in for the argument
    region when the parentheses cannot be located. An empty argument is kept
    with an empty name so its region still triggers completion.
    """
    args = clang_frontend.split_top_level_arguments(tokens)
    if len(args) != 1:
        return None

    region = clang_frontend.argument_region(tokens) or fallback_range
    if region is None:
        return None

    name_tokens = args[0]
    if not name_tokens:
        return HookInvocation(name="", name_range=region, argument_region=region, kind=kind)

    name = clang_frontend.token_text(name_tokens).strip()
    name_range = clang_frontend.merged_range(name_tokens) or region
    return HookInvocation(name=name, name_range=name_range, argument_region=region, kind=kind)


def _collect(data: HookFileData, cursor: Cursor) -> None:
    spelling = cursor.spelling
    if spelling not in (DEFINITION_MACRO, RUN_MACRO):
        return

    tokens = clang_frontend.tokenize(cursor)
    if tokens is None:
        return

    if spelling == DEFINITION_MACRO:
        definition = extract_definition(tokens)
        if definition is not None:
            data.definitions.append(definition)
        kind = HookInvocationKind.DEFINITION
    else:
        kind = HookInvocationKind.RUN

    invocation = extract_invocation(tokens, kind, clang_frontend.node_range(cursor))
    if invocation is not None:
        data.invocations.append(invocation)


def parse_hooks(path: Path, args: list[str], content: str | None) -> HookFileData:
    """Extract hook definitions and invocations from one source file."""
    data = HookFileData()
    with clang_frontend.parse(path, args, content) as tu:
        for cursor in clang_frontend.macro_expansions(tu):
            _collect(data, cursor)
    return data


class HookPlugin(ConventionPlugin):
    """Indexes ``HOOK``/``HOOK_RUN`` usage across the project."""

    name = "hooks"
    diagnostic_source = DIAGNOSTIC_SOURCE

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.files: dict[Path, HookFileData] = {}

    def iter_definitions(self):
        for data in self.files.values():
            yield from data.definitions

    def known_hooks(self) -> set[str]:
        return {definition.name for definition in self.iter_definitions()}

    def completion_items(self) -> list[lsp.CompletionItem]:
        return [
            lsp.CompletionItem(
                label=name,
                kind=lsp.CompletionItemKind.Function,
                detail="hook",
            )
            for name in sorted(self.known_hooks())
        ]

    def update(self, path: Path, content: str | None) -> None:
        if not self.is_source(path):
            return

        canonical = self.canonical(path)
        args = self.compile_commands.args_for(canonical)
        data = parse_hooks(canonical, args, content)
        self.files[canonical] = data
        logger.debug(
            "Indexed %s: %d hook definitions, %d invocations",
            canonical,
            len(data.definitions),
            len(data.invocations),
        )

    def remove(self, path: Path) -> None:
        self.files.pop(self.canonical(path), None)

    def completions(
        self, path: Path, position: lsp.Position
    ) -> list[lsp.CompletionItem] | None:
        data = self.files.get(self.canonical(path))
        if data is None:
            return None

        if not any(range_contains(inv.argument_region, position) for inv in data.invocations):
            return None

        return self.completion_items()

    def diagnostics(self) -> dict[Path, list[lsp.Diagnostic]]:
        known = self.known_hooks()
        diag_map: dict[Path, list[lsp.Diagnostic]] = {}

        for file, data in self.files.items():
            for invocation in data.invocations:
                if invocation.kind is not HookInvocationKind.RUN:
                    continue
                # Empty names only mark a completion region
                if not invocation.name or invocation.name in known:
                    continue
                diag_map.setdefault(file, []).append(
                    lsp.Diagnostic(
                        range=invocation.name_range,
                        severity=lsp.DiagnosticSeverity.Error,
                        message=f"Unknown hook '{invocation.name}'",
                        source=self.diagnostic_source,
                    )
                )

        return diag_map
