"""
Completion handler.

Provides two kinds of completion items, both from the crate's
:class:`~crateslsp.crates.Latest` record:

1. **Versions** — inside a version string: the latest version at patch,
   minor and major precision (plus the full version first when it carries
   pre-release or build metadata).
2. **Features** — inside a ``features`` array: every feature of the crate
   that is not listed yet, with what it enables as detail.

Items replace the contents of the string under the cursor when that string
sits on a single line.
"""
from __future__ import annotations

import logging

from lsprotocol import types as lsp

from crateslsp.crates import Latest, RegistryCache, RegistryError
from crateslsp.document import ParsedManifest
from crateslsp.manifest import Dependency
from crateslsp.span import Span

logger = logging.getLogger(__name__)


def format_list(items: list[str]) -> str:
    return f'[ {", ".join(items)} ]'


def _inner_range(span: Span) -> lsp.Range | None:
    """Range between the quotes of a single-line string literal."""
    start, end = span.range.start, span.range.end
    if start.line != end.line or end.character - start.character < 2:
        return None
    return lsp.Range(
        start=lsp.Position(line=start.line, character=start.character + 1),
        end=lsp.Position(line=end.line, character=end.character - 1),
    )


def _item(label: str, detail: str, kind: lsp.CompletionItemKind, replace: lsp.Range | None,
          sort_text: str | None = None) -> lsp.CompletionItem:
    return lsp.CompletionItem(
        label=label,
        detail=detail,
        kind=kind,
        sort_text=sort_text,
        text_edit=lsp.TextEdit(range=replace, new_text=label) if replace else None,
    )


def version_completions(latest: Latest, replace: lsp.Range | None = None) -> list[lsp.CompletionItem]:
    version = latest.version
    candidates = [
        (f'{version.major}.{version.minor}.{version.patch}', 'patch'),
        (f'{version.major}.{version.minor}', 'minor'),
        (f'{version.major}', 'major'),
    ]
    if version.prerelease or version.build:
        candidates.insert(0, (str(version), 'latest'))
    return [
        _item(label, detail, lsp.CompletionItemKind.Value, replace, sort_text=f'{i:02d}')
        for i, (label, detail) in enumerate(candidates)
    ]


def feature_completions(dependency: Dependency, latest: Latest,
                        replace: lsp.Range | None = None) -> list[lsp.CompletionItem]:
    used = {f.value for f in dependency.features or ()}
    return [
        _item(name, format_list(enables), lsp.CompletionItemKind.Property, replace)
        for name, enables in sorted(latest.features.items())
        if name not in used
    ]


async def get_completions(
    doc: ParsedManifest,
    position: lsp.Position,
    registry: RegistryCache,
) -> list[lsp.CompletionItem]:
    """Return completion items for *position* in *doc*."""
    dependency = doc.version_at(position)
    if dependency is not None:
        try:
            latest = await registry.resolve(dependency.crate_name)
        except RegistryError as e:
            logger.debug('no version completions for %s: %s', dependency.crate_name, e)
            return []
        return version_completions(latest, _inner_range(dependency.version))

    found = doc.feature_at(position)
    if found is not None:
        dependency, feature = found
        try:
            latest = await registry.resolve(dependency.crate_name)
        except RegistryError as e:
            logger.debug('no feature completions for %s: %s', dependency.crate_name, e)
            return []
        return feature_completions(dependency, latest, _inner_range(feature))

    return []
