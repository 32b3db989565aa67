"""
Per-document parse cache.

Each open manifest is stored as a ``ParsedManifest``.  Parsing is performed
synchronously (manifests are small) whenever the content changes; the
dependency list is rebuilt from scratch every time and never patched.
Syntax errors reported by tree-sitter are kept alongside the dependencies
so they can be published as LSP diagnostics without re-parsing.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath

from lsprotocol import types as lsp
from pygls.workspace import PositionCodec
from tree_sitter import Node, Tree

from crateslsp.manifest import Dependency, SourceText, parse_dependencies
from crateslsp.span import UTF16, Span
from crateslsp.toml_tree import parse_toml

MANIFEST_NAME = 'Cargo.toml'


@dataclass
class TomlError:
    range: lsp.Range
    message: str


@dataclass
class ParsedManifest:
    uri: str
    source: str
    tree: Tree | None                  # None for documents that are not manifests
    dependencies: list[Dependency] = field(default_factory=list)
    errors: list[TomlError] = field(default_factory=list)

    def dependency_named(self, name: str, section: str | None = None) -> Dependency | None:
        return next(
            (d for d in self.dependencies
             if d.name.value == name and (section is None or d.section == section)),
            None,
        )

    # Cursor lookups.  The first matching dependency wins.

    def name_at(self, position: lsp.Position) -> Dependency | None:
        return next((d for d in self.dependencies if d.name.contains_position(position)), None)

    def version_at(self, position: lsp.Position) -> Dependency | None:
        return next(
            (d for d in self.dependencies
             if d.version is not None and d.version.contains_position(position)),
            None,
        )

    def feature_at(self, position: lsp.Position) -> tuple[Dependency, Span[str]] | None:
        for dependency in self.dependencies:
            for feature in dependency.features or ():
                if feature.contains_position(position):
                    return dependency, feature
        return None


def is_manifest(uri: str) -> bool:
    return PurePosixPath(uri).name == MANIFEST_NAME


def _collect_errors(src: SourceText, node: Node, errors: list[TomlError]) -> None:
    if node.type == 'ERROR' or node.is_missing:
        message = f'missing `{node.type}`' if node.is_missing else 'invalid TOML syntax'
        errors.append(TomlError(range=src.span(node, None).range, message=message))
        return
    if not node.has_error:
        return
    for child in node.children:
        _collect_errors(src, child, errors)


def parse_document(uri: str, source: str, codec: PositionCodec = UTF16) -> ParsedManifest:
    """Parse *source* and return a :class:`ParsedManifest`.

    Documents whose file name is not ``Cargo.toml`` are stored with
    ``tree=None`` and no dependencies.  Ranges use *codec* for columns.
    """
    if not is_manifest(uri):
        return ParsedManifest(uri=uri, source=source, tree=None)

    tree = parse_toml(source)
    errors: list[TomlError] = []
    src = SourceText(source, codec)
    _collect_errors(src, tree.root_node, errors)
    return ParsedManifest(
        uri=uri,
        source=source,
        tree=tree,
        dependencies=parse_dependencies(source, tree, codec),
        errors=errors,
    )
