"""
Hover handler.

On a dependency name, show the crate's latest version, its features and its
description.  On a listed feature, show what the feature enables.
"""
from __future__ import annotations

import logging

from lsprotocol import types as lsp

from crateslsp.crates import Latest, RegistryCache, RegistryError
from crateslsp.document import ParsedManifest
from crateslsp.handlers.completion import format_list

logger = logging.getLogger(__name__)


def format_name_hover(name: str, latest: Latest) -> str:
    parts = [f'{name}: {latest.version}']
    if latest.features:
        parts.append(format_list(sorted(latest.features)))
    if latest.description:
        parts.append(latest.description)
    return '\n\n'.join(parts)


def format_feature_hover(feature: str, enables: list[str]) -> str:
    return f'{feature}\n\n{format_list(enables)}'


def _hover(value: str, range_: lsp.Range) -> lsp.Hover:
    return lsp.Hover(
        contents=lsp.MarkupContent(kind=lsp.MarkupKind.PlainText, value=value),
        range=range_,
    )


async def get_hover(
    doc: ParsedManifest,
    position: lsp.Position,
    registry: RegistryCache,
) -> lsp.Hover | None:
    """Return LSP hover content for *position* in *doc*, or *None*."""
    dependency = doc.name_at(position)
    if dependency is not None:
        try:
            latest = await registry.resolve(dependency.crate_name)
        except RegistryError as e:
            logger.debug('no hover for %s: %s', dependency.crate_name, e)
            return None
        return _hover(format_name_hover(dependency.crate_name, latest), dependency.name.range)

    found = doc.feature_at(position)
    if found is None:
        return None
    dependency, feature = found
    try:
        latest = await registry.resolve(dependency.crate_name)
    except RegistryError as e:
        logger.debug('no hover for %s: %s', dependency.crate_name, e)
        return None
    enables = latest.features.get(feature.value)
    if enables is None:
        return None
    return _hover(format_feature_hover(feature.value, enables), feature.range)
