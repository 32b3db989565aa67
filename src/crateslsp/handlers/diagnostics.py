"""
Diagnostics for a parsed manifest.

* TOML syntax errors reported by tree-sitter.
* Per registry dependency, once the crate is resolved:
  an invalid version requirement, the latest version as a hint when a
  valid requirement does not already name it, and features the crate does not
  declare.  A crate that the registry does not know (HTTP 404) is flagged on
  its name; other registry failures produce nothing for that entry.
"""
from __future__ import annotations

import asyncio
import logging

from lsprotocol import types as lsp

from crateslsp.crates import RegistryCache, RegistryError, RequestError
from crateslsp.document import ParsedManifest
from crateslsp.handlers.code_action import is_outdated
from crateslsp.manifest import Dependency, Registry

logger = logging.getLogger(__name__)

SOURCE = 'crateslsp'


def _diagnostic(range_: lsp.Range, message: str, severity: lsp.DiagnosticSeverity) -> lsp.Diagnostic:
    return lsp.Diagnostic(range=range_, message=message, severity=severity, source=SOURCE)


def syntax_diagnostics(doc: ParsedManifest) -> list[lsp.Diagnostic]:
    """Return a ``Diagnostic`` for every TOML syntax error in *doc*."""
    return [
        _diagnostic(err.range, err.message, lsp.DiagnosticSeverity.Error)
        for err in doc.errors
    ]


async def dependency_diagnostics(dependency: Dependency, registry: RegistryCache) -> list[lsp.Diagnostic]:
    diags: list[lsp.Diagnostic] = []
    version = dependency.version
    if version is not None and version.value is None:
        diags.append(_diagnostic(
            version.range, 'invalid version requirement', lsp.DiagnosticSeverity.Error,
        ))

    try:
        latest = await registry.resolve(dependency.crate_name)
    except RequestError as e:
        if e.status == 404:
            diags.append(_diagnostic(
                dependency.name.range, 'No such crate in crates.io', lsp.DiagnosticSeverity.Error,
            ))
        else:
            logger.debug('no diagnostics for %s: %s', dependency.crate_name, e)
        return diags
    except RegistryError as e:
        logger.debug('no diagnostics for %s: %s', dependency.crate_name, e)
        return diags

    # An unparseable requirement already carries an error on the same range.
    if version is not None and version.value is not None and is_outdated(dependency, latest):
        diags.append(_diagnostic(
            version.range, str(latest.version), lsp.DiagnosticSeverity.Information,
        ))

    for feature in dependency.features or ():
        if feature.value not in latest.features:
            diags.append(_diagnostic(
                feature.range,
                f'No such feature available for crate `{dependency.crate_name}`',
                lsp.DiagnosticSeverity.Error,
            ))
    return diags


async def get_diagnostics(doc: ParsedManifest, registry: RegistryCache) -> list[lsp.Diagnostic]:
    """Return every diagnostic for *doc*, resolving crates concurrently."""
    diags = syntax_diagnostics(doc)
    registry_deps = [d for d in doc.dependencies if isinstance(d.kind, Registry)]
    results = await asyncio.gather(
        *(dependency_diagnostics(d, registry) for d in registry_deps)
    )
    for result in results:
        diags.extend(result)
    return diags
