"""
crateslsp Language Server.

Registers LSP capabilities and wires the manifest parser and the registry
cache into the handlers.  All per-session state lives on the
:class:`CratesLanguageServer` instance and is handed to the handlers
explicitly.
"""
from __future__ import annotations

import asyncio
import logging

from lsprotocol import types as lsp
from pygls.capabilities import ServerCapabilitiesBuilder
from pygls.lsp.server import LanguageServer
from pygls.workspace import PositionCodec

from crateslsp import __version__
from crateslsp.config import Settings, apply_log_level, load_settings
from crateslsp.crates import RegistryCache, RegistryError
from crateslsp.document import ParsedManifest, parse_document
from crateslsp.handlers import (
    get_code_actions,
    get_completions,
    get_diagnostics,
    get_hover,
    latest_version_edit,
)
from crateslsp.handlers.code_action import LATEST_VERSION_COMMAND
from crateslsp.handlers.diagnostics import syntax_diagnostics

logger = logging.getLogger(__name__)


class CratesLanguageServer(LanguageServer):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.settings = Settings()
        self.registry = RegistryCache(self.settings)
        # Per-URI parsed manifests (populated on open/change).
        self.manifests: dict[str, ParsedManifest] = {}
        # Debounce state: pending diagnostics task for each URI.
        self.pending: dict[str, asyncio.Task] = {}
        # Column units agreed with the client at initialize.
        self.position_codec = PositionCodec()

    def configure(self, settings: Settings) -> None:
        """Apply session settings; called from ``initialize`` before any lookup."""
        self.settings = settings
        self.registry = RegistryCache(settings)


server = CratesLanguageServer(
    'crateslsp', __version__,
    text_document_sync_kind=lsp.TextDocumentSyncKind.Full,
)


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

def _publish(ls: CratesLanguageServer, uri: str, diags: list[lsp.Diagnostic]) -> None:
    logger.debug('_publish: %s → %d diagnostics', uri, len(diags))
    ls.text_document_publish_diagnostics(
        lsp.PublishDiagnosticsParams(uri=uri, diagnostics=diags)
    )


async def _debounced_diagnostics(ls: CratesLanguageServer, uri: str, delay: float = 0.5) -> None:
    """Wait *delay* seconds, then resolve every dependency and publish.

    Runs as a task so a newer edit can cancel it while the user is typing.
    """
    await asyncio.sleep(delay)
    doc = ls.manifests.get(uri)
    if doc is None or doc.tree is None:
        return
    try:
        diags = await get_diagnostics(doc, ls.registry)
    except Exception:
        logger.error('_debounced_diagnostics: failed for %s', uri, exc_info=True)
        return
    if ls.manifests.get(uri) is not doc:
        return  # superseded by a newer parse
    _publish(ls, uri, diags)


def _schedule_diagnostics(ls: CratesLanguageServer, uri: str, delay: float = 0.5) -> None:
    """Cancel any pending diagnostics run for *uri* and schedule a new one."""
    existing = ls.pending.pop(uri, None)
    if existing is not None:
        existing.cancel()
    task = asyncio.ensure_future(_debounced_diagnostics(ls, uri, delay))
    ls.pending[uri] = task
    task.add_done_callback(lambda t: ls.pending.pop(uri, None) if ls.pending.get(uri) is t else None)


def _update(ls: CratesLanguageServer, uri: str, source: str, delay: float) -> None:
    doc = parse_document(uri, source, ls.position_codec)
    ls.manifests[uri] = doc
    if doc.tree is None:
        return
    # Syntax errors are known immediately; registry checks follow.
    _publish(ls, uri, syntax_diagnostics(doc))
    _schedule_diagnostics(ls, uri, delay)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@server.feature(lsp.INITIALIZE)
def on_initialize(ls: CratesLanguageServer, params: lsp.InitializeParams):
    workspace_root = None
    if params.root_uri:
        uri = params.root_uri
        workspace_root = uri[7:] if uri.startswith('file://') else uri

    # same choice pygls makes for the workspace
    ls.position_codec = PositionCodec(
        ServerCapabilitiesBuilder.choose_position_encoding(params.capabilities)
    )

    opts = getattr(params, 'initialization_options', None)
    settings = load_settings(workspace_root, opts)
    ls.configure(settings)
    apply_log_level(settings.log_level)
    logger.info(
        'crateslsp %s initialized (index %s, %s positions)',
        __version__, settings.index_url, ls.position_codec.encoding,
    )


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(ls: CratesLanguageServer, params: lsp.DidChangeConfigurationParams):
    """Handle live config changes (only the log level is applied)."""
    settings = getattr(params, 'settings', None) or {}
    if isinstance(settings, dict):
        crates = settings.get('crates', {})
        if isinstance(crates, dict):
            apply_log_level(crates.get('logLevel'))


@server.feature(lsp.SHUTDOWN)
async def on_shutdown(ls: CratesLanguageServer, params):
    for task in list(ls.pending.values()):
        task.cancel()
    ls.pending.clear()
    await ls.registry.close()


# ---------------------------------------------------------------------------
# Text document synchronisation
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: CratesLanguageServer, params: lsp.DidOpenTextDocumentParams):
    td = params.text_document
    _update(ls, td.uri, td.text, delay=0.0)


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: CratesLanguageServer, params: lsp.DidChangeTextDocumentParams):
    uri = params.text_document.uri
    _update(ls, uri, params.content_changes[-1].text, delay=0.5)


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
def did_close(ls: CratesLanguageServer, params: lsp.DidCloseTextDocumentParams):
    uri = params.text_document.uri
    existing = ls.pending.pop(uri, None)
    if existing is not None:
        existing.cancel()
    ls.manifests.pop(uri, None)


# ---------------------------------------------------------------------------
# Completion / hover / code actions
# ---------------------------------------------------------------------------

@server.feature(
    lsp.TEXT_DOCUMENT_COMPLETION,
    lsp.CompletionOptions(trigger_characters=['"'], resolve_provider=False),
)
async def completion(ls: CratesLanguageServer, params: lsp.CompletionParams) -> lsp.CompletionList | None:
    doc = ls.manifests.get(params.text_document.uri)
    if doc is None or doc.tree is None:
        return None
    items = await get_completions(doc, params.position, ls.registry)
    return lsp.CompletionList(is_incomplete=False, items=items)


@server.feature(lsp.TEXT_DOCUMENT_HOVER)
async def hover(ls: CratesLanguageServer, params: lsp.HoverParams) -> lsp.Hover | None:
    doc = ls.manifests.get(params.text_document.uri)
    if doc is None or doc.tree is None:
        return None
    return await get_hover(doc, params.position, ls.registry)


@server.feature(lsp.TEXT_DOCUMENT_CODE_ACTION)
async def code_action(ls: CratesLanguageServer, params: lsp.CodeActionParams):
    doc = ls.manifests.get(params.text_document.uri)
    if doc is None or doc.tree is None:
        return None
    return await get_code_actions(doc, params.range, ls.registry) or None


@server.command(LATEST_VERSION_COMMAND)
async def cmd_latest_version(ls: CratesLanguageServer, name: str, uri: str, *rest: str):
    """Rewrite the version of dependency *name* in *uri* to the latest release.

    Arguments are ``[name, uri]`` or ``[name, uri, section]``; without a
    section the first dependency called *name* is updated.  pygls requires a
    value for every named parameter, hence the optional tail.
    """
    section = rest[0] if rest else None
    doc = ls.manifests.get(uri)
    dependency = doc.dependency_named(name, section) if doc is not None else None
    if dependency is None:
        return None
    try:
        latest = await ls.registry.resolve(dependency.crate_name)
    except RegistryError as e:
        logger.warning('cmd_latest_version: %s', e)
        return None
    edit = latest_version_edit(doc, dependency, latest)
    if edit is not None:
        await ls.workspace_apply_edit_async(lsp.ApplyWorkspaceEditParams(edit=edit))
    return None


# ---------------------------------------------------------------------------
# Go-to-definition
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_DEFINITION)
async def definition(ls: CratesLanguageServer, params: lsp.DefinitionParams) -> lsp.Location | None:
    """Open the crate's documentation on docs.rs in the browser.

    Returning a ``Location`` with an http URL is the intended way to do this,
    but not every client follows it, so ask the client to show the page.
    """
    doc = ls.manifests.get(params.text_document.uri)
    if doc is None or doc.tree is None:
        return None
    dependency = doc.name_at(params.position)
    if dependency is None:
        return None
    name = dependency.crate_name
    if not await ls.registry.is_available(name):
        return None

    docs_url = f'{ls.settings.docs_url.rstrip("/")}/{name}'
    try:
        result = await ls.window_show_document_async(
            lsp.ShowDocumentParams(uri=docs_url, external=True)
        )
    except Exception:
        logger.debug('definition: showDocument failed for %s', docs_url, exc_info=True)
        return None
    if result is not None and result.success:
        ls.window_show_message(lsp.ShowMessageParams(
            type=lsp.MessageType.Info,
            message=f'opened docs for `{name}` in your browser',
        ))
    return None
