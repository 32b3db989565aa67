"""Quick-fix offering to bump a dependency to its latest version."""
from __future__ import annotations

import logging

from lsprotocol import types as lsp

from crateslsp.crates import Latest, RegistryCache, RegistryError
from crateslsp.document import ParsedManifest
from crateslsp.manifest import Dependency

logger = logging.getLogger(__name__)

LATEST_VERSION_COMMAND = 'crateslsp.latestVersion'


def _touches(dependency: Dependency, range_: lsp.Range) -> bool:
    version = dependency.version
    return version is not None and (
        version.contains_position(range_.start) or version.contains_position(range_.end)
    )


def is_outdated(dependency: Dependency, latest: Latest) -> bool:
    version = dependency.version
    if version is None:
        return False
    return version.value is None or not version.value.names(latest.version)


async def get_code_actions(
    doc: ParsedManifest,
    range_: lsp.Range,
    registry: RegistryCache,
) -> list[lsp.CodeAction]:
    """Offer "Latest version" when *range_* touches an outdated version."""
    dependency = next((d for d in doc.dependencies if _touches(d, range_)), None)
    if dependency is None:
        return []
    try:
        latest = await registry.resolve(dependency.crate_name)
    except RegistryError as e:
        logger.debug('no code actions for %s: %s', dependency.crate_name, e)
        return []
    if not is_outdated(dependency, latest):
        return []
    return [lsp.CodeAction(
        title='Latest version',
        kind=lsp.CodeActionKind.QuickFix,
        command=lsp.Command(
            title='Latest version',
            command=LATEST_VERSION_COMMAND,
            arguments=[dependency.name.value, doc.uri, dependency.section],
        ),
    )]


def latest_version_edit(doc: ParsedManifest, dependency: Dependency, latest: Latest) -> lsp.WorkspaceEdit | None:
    """Edit replacing the version literal of *dependency* with the latest version."""
    if dependency.version is None:
        return None
    edit = lsp.TextEdit(range=dependency.version.range, new_text=f'"{latest.version}"')
    return lsp.WorkspaceEdit(changes={doc.uri: [edit]})
