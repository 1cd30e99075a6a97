"""Init-target convention.

``INIT_TARGET(name, stage, scope, deps)`` declares an initialisation target;
``deps`` lists the names of the targets it depends on as string literals::

    INIT_TARGET(console, INIT_STAGE_EARLY, INIT_SCOPE_BSP, ("serial", "fb"));

Each dependency must name a declared target and may appear only once per
target. Inside the dependency list we offer every declared target name.
"""

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from clang.cindex import Cursor
from lsprotocol import types as lsp

from ..logging import get_logger
from . import clang_frontend
from .base import ConventionPlugin, range_contains
from .clang_frontend import Token

logger = get_logger("init_targets")

INIT_TARGET_MACRO = "INIT_TARGET"
INIT_TARGET_ARITY = 4
DIAGNOSTIC_SOURCE = "cronus-init"


@dataclass(frozen=True)
class DependencySlot:
    name: str
    range: lsp.Range


@dataclass(frozen=True)
class InitTarget:
    name: str
    stage_expr: str
    scope_expr: str
    file: Path
    dependency_region: lsp.Range
    dependency_slots: list[DependencySlot] = field(default_factory=list)


def extract_target(
    tokens: list[Token],
    file: Path,
    fallback_range: lsp.Range | None,
) -> InitTarget | None:
    """
    Build an init target from the tokens of one ``INIT_TARGET`` occurrence.

    Occurrences without exactly four arguments are ignored. The dependency
    region starts as the span of the dependency argument (or
    ``fallback_range`` when that argument has no tokens) and is stretched to
    the end of the last string literal.
    """
    args = clang_frontend.split_top_level_arguments(tokens)
    if len(args) != INIT_TARGET_ARITY:
        return None

    name_tokens, stage_tokens, scope_tokens, deps_tokens = args

    region = clang_frontend.merged_range(deps_tokens) or fallback_range
    if region is None:
        return None

    slots: list[DependencySlot] = []
    for token in deps_tokens:
        if not token.is_string_literal:
            continue
        if token.range is None:
            return None
        region = lsp.Range(start=region.start, end=token.range.end)
        slots.append(DependencySlot(name=token.spelling.strip('"'), range=token.range))

    return InitTarget(
        name=clang_frontend.token_text(name_tokens),
        stage_expr=clang_frontend.token_text(stage_tokens),
        scope_expr=clang_frontend.token_text(scope_tokens),
        file=file,
        dependency_region=region,
        dependency_slots=slots,
    )


def _collect(targets: list[InitTarget], file: Path, cursor: Cursor) -> None:
    if cursor.spelling != INIT_TARGET_MACRO:
        return

    tokens = clang_frontend.tokenize(cursor)
    if tokens is None:
        return

    target = extract_target(tokens, file, clang_frontend.node_range(cursor))
    if target is not None:
        targets.append(target)


def parse_targets(path: Path, args: list[str], content: str | None) -> list[InitTarget]:
    """Extract every init target declared in one source file."""
    targets: list[InitTarget] = []
    with clang_frontend.parse(path, args, content) as tu:
        for cursor in clang_frontend.macro_expansions(tu):
            _collect(targets, path, cursor)
    return targets


class InitDependencyPlugin(ConventionPlugin):
    """Indexes ``INIT_TARGET`` declarations and checks their dependency lists."""

    name = "init-deps"
    diagnostic_source = DIAGNOSTIC_SOURCE

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.targets_by_file: dict[Path, list[InitTarget]] = {}

    def iter_targets(self):
        for file in sorted(self.targets_by_file):
            yield from self.targets_by_file[file]

    def completion_items(self) -> list[lsp.CompletionItem]:
        items = [
            lsp.CompletionItem(
                label=target.name,
                kind=lsp.CompletionItemKind.Constant,
                detail=f"{target.stage_expr}/{target.scope_expr}",
            )
            for target in self.iter_targets()
        ]
        items.sort(key=lambda item: item.label.lower())
        return items

    def update(self, path: Path, content: str | None) -> None:
        if not self.is_source(path):
            return

        canonical = self.canonical(path)
        args = self.compile_commands.args_for(canonical)
        targets = parse_targets(canonical, args, content)
        self.targets_by_file[canonical] = targets
        logger.debug("Indexed %s: %d init targets", canonical, len(targets))

    def remove(self, path: Path) -> None:
        self.targets_by_file.pop(self.canonical(path), None)

    def completions(
        self, path: Path, position: lsp.Position
    ) -> list[lsp.CompletionItem] | None:
        targets = self.targets_by_file.get(self.canonical(path))
        if targets is None:
            return None

        if not any(range_contains(t.dependency_region, position) for t in targets):
            return None

        return self.completion_items()

    def diagnostics(self) -> dict[Path, list[lsp.Diagnostic]]:
        known = {target.name for target in self.iter_targets()}
        diag_map: dict[Path, list[lsp.Diagnostic]] = {}

        for target in self.iter_targets():
            counts = Counter(slot.name for slot in target.dependency_slots)

            for slot in target.dependency_slots:
                if slot.name not in known:
                    diag_map.setdefault(target.file, []).append(
                        lsp.Diagnostic(
                            range=slot.range,
                            severity=lsp.DiagnosticSeverity.Error,
                            message=f"Unknown init dependency '{slot.name}'",
                            source=self.diagnostic_source,
                        )
                    )
                if counts[slot.name] > 1:
                    diag_map.setdefault(target.file, []).append(
                        lsp.Diagnostic(
                            range=slot.range,
                            severity=lsp.DiagnosticSeverity.Warning,
                            message=f"Duplicate dependency '{slot.name}' in {target.name}",
                            source=self.diagnostic_source,
                        )
                    )

        return diag_map
