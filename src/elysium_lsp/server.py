"""Language server for the project's C macro conventions.

Editor events are handed to the IndexCoordinator; after every event the full
diagnostic set is recomputed and pushed to the client.
"""

import sys
from pathlib import Path

from lsprotocol import types as lsp
from pygls.lsp.server import LanguageServer
from pygls.uris import to_fs_path

from . import __version__
from .coordinator import FatalIndexingError, IndexCoordinator
from .logging import get_logger

logger = get_logger("server")

SERVER_NAME = "elysium-lsp"


def uri_to_path(uri: str) -> Path | None:
    """Filesystem path of a ``file:`` URI; None for any other scheme."""
    if not uri.startswith("file:"):
        return None
    fs_path = to_fs_path(uri)
    if not fs_path:
        return None
    return Path(fs_path)


def path_to_uri(path: Path) -> str:
    return path.as_uri()


class ElysiumLanguageServer(LanguageServer):
    """pygls server bound to one coordinator."""

    def __init__(self, coordinator: IndexCoordinator, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.coordinator = coordinator

    def send_diagnostics(self, path: Path, diagnostics: list[lsp.Diagnostic]) -> None:
        self.text_document_publish_diagnostics(
            lsp.PublishDiagnosticsParams(
                uri=path_to_uri(path),
                diagnostics=diagnostics,
            )
        )

    async def publish(self) -> None:
        await self.coordinator.publish_diagnostics(self.send_diagnostics)


def _abort(error: FatalIndexingError) -> None:
    logger.critical("Indexing failed, shutting down: %s", error)
    sys.exit(1)


def build_server(coordinator: IndexCoordinator) -> ElysiumLanguageServer:
    """Create the language server and register its handlers."""
    server = ElysiumLanguageServer(
        coordinator,
        SERVER_NAME,
        f"v{__version__}",
        text_document_sync_kind=lsp.TextDocumentSyncKind.Full,
    )

    @server.feature(lsp.INITIALIZED)
    async def initialized(params: lsp.InitializedParams):
        try:
            await server.coordinator.index_project()
        except FatalIndexingError as e:
            _abort(e)
        await server.publish()

    @server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
    async def did_open(params: lsp.DidOpenTextDocumentParams):
        path = uri_to_path(params.text_document.uri)
        if path is None:
            return
        try:
            await server.coordinator.document_opened(path, params.text_document.text)
        except FatalIndexingError as e:
            _abort(e)
        await server.publish()

    @server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
    async def did_change(params: lsp.DidChangeTextDocumentParams):
        path = uri_to_path(params.text_document.uri)
        if path is None or not params.content_changes:
            return
        # Full sync: the last change carries the whole document
        text = params.content_changes[-1].text
        try:
            await server.coordinator.document_changed(path, text)
        except FatalIndexingError as e:
            _abort(e)
        await server.publish()

    @server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
    async def did_close(params: lsp.DidCloseTextDocumentParams):
        path = uri_to_path(params.text_document.uri)
        if path is None:
            return
        try:
            await server.coordinator.document_closed(path)
        except FatalIndexingError as e:
            _abort(e)
        await server.publish()

    @server.feature(lsp.WORKSPACE_DID_CHANGE_WATCHED_FILES)
    async def did_change_watched_files(params: lsp.DidChangeWatchedFilesParams):
        try:
            for change in params.changes:
                path = uri_to_path(change.uri)
                if path is None:
                    continue
                if change.type == lsp.FileChangeType.Deleted:
                    await server.coordinator.file_deleted(path)
                else:
                    await server.coordinator.file_changed(path)
        except FatalIndexingError as e:
            _abort(e)
        await server.publish()

    @server.feature(
        lsp.TEXT_DOCUMENT_COMPLETION,
        lsp.CompletionOptions(trigger_characters=["(", ",", '"']),
    )
    async def completion(params: lsp.CompletionParams):
        path = uri_to_path(params.text_document.uri)
        if path is None:
            return None
        return await server.coordinator.completions(path, params.position)

    return server


def run(coordinator: IndexCoordinator) -> None:
    """Serve over stdio until the client disconnects."""
    server = build_server(coordinator)
    logger.info("Starting %s for %s", SERVER_NAME, coordinator.project_root)
    server.start_io()
