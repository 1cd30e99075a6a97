"""Routes editor events to the convention plugins and publishes their results.

All index state (plugins, open documents, failures, the set of files with
published diagnostics) sits behind one asyncio lock. Parsing happens inside
the lock; publishing to the editor happens outside it.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from lsprotocol import types as lsp

from .compile_commands import canonical_path
from .indexer import ConventionPlugin, FrontEndError
from .logging import get_logger

logger = get_logger("coordinator")

DIAGNOSTIC_SOURCE = "elysium-lsp"

DiagnosticSink = Callable[[Path, list[lsp.Diagnostic]], None]


class FatalIndexingError(Exception):
    """Raised when a file cannot be indexed and failures are configured fatal."""

    pass


@dataclass
class PublishRound:
    """Diagnostics to send for one publish round."""

    diagnostics: dict[Path, list[lsp.Diagnostic]]
    stale: set[Path]


def merge_diagnostics(
    reports: Iterable[dict[Path, list[lsp.Diagnostic]]],
) -> dict[Path, list[lsp.Diagnostic]]:
    """Concatenate per-file diagnostic lists from several reports."""
    merged: dict[Path, list[lsp.Diagnostic]] = {}
    for report in reports:
        for path, diagnostics in report.items():
            merged.setdefault(path, []).extend(diagnostics)
    return merged


def failure_diagnostic(path: Path, error: FrontEndError) -> lsp.Diagnostic:
    origin = lsp.Position(line=0, character=0)
    return lsp.Diagnostic(
        range=lsp.Range(start=origin, end=origin),
        severity=lsp.DiagnosticSeverity.Error,
        message=f"Unable to index {path}: {error}",
        source=DIAGNOSTIC_SOURCE,
    )


def iter_project_files(root: Path) -> list[Path]:
    """Every regular file under ``root``, sorted."""
    return sorted(p for p in root.rglob("*") if p.is_file())


class IndexCoordinator:
    """
    Owns the plugins and the per-file document cache.

    Each editor event becomes one call to every plugin's ``update`` or
    ``remove``. After a batch of events, ``publish_diagnostics`` recomputes the
    full diagnostic set and retracts files that no longer have any.
    """

    def __init__(
        self,
        project_root: Path,
        plugins: list[ConventionPlugin],
        fatal_parse_errors: bool = False,
    ):
        self.project_root = canonical_path(project_root)
        self.plugins = plugins
        self.fatal_parse_errors = fatal_parse_errors
        self.documents: dict[Path, str] = {}
        self.failures: dict[Path, FrontEndError] = {}
        self.published_paths: set[Path] = set()
        self._lock = asyncio.Lock()

    # -- state transitions (caller holds the lock) -------------------------

    def _file_updated(self, path: Path, content: str | None) -> None:
        canonical = canonical_path(path)
        if content is None and not canonical.is_file():
            # Nothing on disk to re-read, e.g. a buffer closed without saving
            logger.debug("Not on disk, dropping %s", canonical)
            self._file_removed(canonical)
            return
        try:
            for plugin in self.plugins:
                plugin.update(canonical, content)
        except FrontEndError as e:
            if self.fatal_parse_errors:
                raise FatalIndexingError(str(e)) from e
            logger.warning(
                "Failed to index %s: %s", canonical, e, extra={"path": str(canonical)}
            )
            self.failures[canonical] = e
            return
        self.failures.pop(canonical, None)

    def _file_removed(self, path: Path) -> None:
        canonical = canonical_path(path)
        for plugin in self.plugins:
            plugin.remove(canonical)
        self.failures.pop(canonical, None)

    def _collect_diagnostics(self) -> dict[Path, list[lsp.Diagnostic]]:
        merged = merge_diagnostics(plugin.diagnostics() for plugin in self.plugins)
        for path, error in self.failures.items():
            merged.setdefault(path, []).append(failure_diagnostic(path, error))
        return merged

    # -- editor events ------------------------------------------------------

    async def document_opened(self, path: Path, text: str) -> None:
        async with self._lock:
            self.documents[canonical_path(path)] = text
            self._file_updated(path, text)

    async def document_changed(self, path: Path, text: str) -> None:
        async with self._lock:
            self.documents[canonical_path(path)] = text
            self._file_updated(path, text)

    async def document_closed(self, path: Path) -> None:
        # The file may still exist on disk with different content, or not at all
        async with self._lock:
            self.documents.pop(canonical_path(path), None)
            self._file_updated(path, None)

    async def file_deleted(self, path: Path) -> None:
        async with self._lock:
            self._file_removed(path)

    async def file_changed(self, path: Path) -> None:
        async with self._lock:
            self._file_updated(path, None)

    async def index_project(self) -> int:
        """Index every file under the project root. Returns the file count."""
        files = iter_project_files(self.project_root)
        async with self._lock:
            for path in files:
                self._file_updated(path, None)
        logger.info(
            "Indexed %d files under %s (%d failed)",
            len(files),
            self.project_root,
            len(self.failures),
        )
        return len(files)

    # -- queries -----------------------------------------------------------

    async def completions(
        self, path: Path, position: lsp.Position
    ) -> list[lsp.CompletionItem] | None:
        """Ask plugins in order; the first one with an opinion answers."""
        canonical = canonical_path(path)
        async with self._lock:
            for plugin in self.plugins:
                items = plugin.completions(canonical, position)
                if items is not None:
                    return items
        return None

    async def diagnostics(self) -> dict[Path, list[lsp.Diagnostic]]:
        async with self._lock:
            return self._collect_diagnostics()

    async def begin_publish(self) -> PublishRound:
        """Compute this round's diagnostics and the files to retract."""
        async with self._lock:
            current = self._collect_diagnostics()
            stale = self.published_paths - current.keys()
        return PublishRound(diagnostics=current, stale=stale)

    async def finish_publish(self, publish_round: PublishRound) -> None:
        async with self._lock:
            self.published_paths = set(publish_round.diagnostics)

    async def publish_diagnostics(self, sink: DiagnosticSink) -> PublishRound:
        """
        Send every file's diagnostics to ``sink`` and retract stale ones.

        Files that had diagnostics last round but none now receive an empty
        list.
        """
        publish_round = await self.begin_publish()

        for path, diagnostics in publish_round.diagnostics.items():
            sink(path, diagnostics)
        for path in sorted(publish_round.stale):
            sink(path, [])

        await self.finish_publish(publish_round)
        logger.debug(
            "Published diagnostics for %d files, retracted %d",
            len(publish_round.diagnostics),
            len(publish_round.stale),
        )
        return publish_round
