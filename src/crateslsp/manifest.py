"""
Dependency extraction from ``Cargo.toml``.

:func:`parse_dependencies` walks the dependency tables of a manifest and
returns one :class:`Dependency` per entry, each carrying the source spans an
editor needs to point at the name, the version requirement, every listed
feature and the git/path source fields.

Extraction is best effort on purpose: an entry that cannot be read (no key
span, an unusable crate name) is dropped and the rest of the document is
still returned.  An unparseable version requirement does *not* drop the
entry; the span is kept with a ``None`` value so diagnostics can point at it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Union

from pygls.workspace import PositionCodec
from tree_sitter import Node, Tree

from crateslsp.span import UTF16, Span, range_to_positions
from crateslsp.toml_tree import (
    TomlTable,
    array_items,
    build_table,
    node_text,
    parse_toml,
    string_value,
)
from crateslsp.version_req import VersionReq, parse_version_req

logger = logging.getLogger(__name__)

DEPENDENCIES_KEYS = ('dependencies', 'dev-dependencies', 'build-dependencies')
# Spellings Cargo still accepts for the same sections.
LEGACY_DEPENDENCIES_KEYS = ('dev_dependencies', 'build_dependencies')

_CRATE_NAME_RE = re.compile(r'^[A-Za-z0-9_-]+$')

VERSION_KEY = 'version'
FEATURES_KEY = 'features'
PACKAGE_KEY = 'package'
PATH_KEY = 'path'
GIT_KEY = 'git'
REV_KEY = 'rev'
BRANCH_KEY = 'branch'
TAG_KEY = 'tag'


# ---------------------------------------------------------------------------
# Source kinds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Registry:
    """Pulled from crates.io (the default)."""


@dataclass(frozen=True)
class Branch:
    name: Span[str]


@dataclass(frozen=True)
class Tag:
    name: Span[str]


@dataclass(frozen=True)
class Rev:
    name: Span[str]


GitSpecifier = Union[Branch, Tag, Rev]


@dataclass(frozen=True)
class Git:
    url: Span[str]
    specifier: GitSpecifier | None = None


@dataclass(frozen=True)
class Local:
    path: Span[PurePath]


Kind = Union[Registry, Git, Local]


@dataclass(frozen=True)
class Dependency:
    name: Span[str]
    kind: Kind
    version: Span[VersionReq | None] | None = None
    features: list[Span[str]] | None = None
    package: Span[str] | None = None
    section: str = 'dependencies'

    @property
    def crate_name(self) -> str:
        """Name of the crate on the registry (honours ``package`` renames)."""
        return self.package.value if self.package is not None else self.name.value


# ---------------------------------------------------------------------------
# Span helpers
# ---------------------------------------------------------------------------

class SourceText:
    """The manifest text plus a byte → character offset mapping."""

    def __init__(self, text: str, codec: PositionCodec = UTF16):
        self.text = text
        self.codec = codec
        self._ascii = text.isascii()
        self._encoded = text.encode('utf-8')

    def char_offset(self, byte_offset: int) -> int:
        if self._ascii:
            return byte_offset
        return len(self._encoded[:byte_offset].decode('utf-8', errors='ignore'))

    def span(self, node: Node, value):
        start = self.char_offset(node.start_byte)
        end = self.char_offset(node.end_byte)
        return Span(value, range_to_positions(self.text, start, end, self.codec))

    def string_span(self, node: Node | TomlTable | None, convert=str):
        value = string_value(node)
        if value is None:
            return None
        return self.span(node, convert(value))


# ---------------------------------------------------------------------------
# Per-field parsing
# ---------------------------------------------------------------------------

def _parse_name(src: SourceText, name: str, key: Node) -> Span[str] | None:
    if not _CRATE_NAME_RE.match(name):
        logger.debug('skipping dependency with invalid name %r', name)
        return None
    return src.span(key, name)


def _parse_version(src: SourceText, value) -> Span[VersionReq | None] | None:
    node = value.get(VERSION_KEY) if isinstance(value, TomlTable) else value
    text = string_value(node)
    if text is None:
        return None
    return src.span(node, parse_version_req(text))


def _parse_features(src: SourceText, value) -> list[Span[str]] | None:
    if not isinstance(value, TomlTable):
        return None
    items = array_items(value.get(FEATURES_KEY))
    if items is None:
        return None
    features = (src.string_span(item) for item in items)
    return [f for f in features if f is not None]


def _parse_git(src: SourceText, table: TomlTable) -> Git | None:
    url = src.string_span(table.get(GIT_KEY))
    if url is None:
        return None
    specifier = None
    # First match wins; manifests are expected to set at most one of these.
    for key, variant in ((REV_KEY, Rev), (BRANCH_KEY, Branch), (TAG_KEY, Tag)):
        span = src.string_span(table.get(key))
        if span is not None:
            specifier = variant(span)
            break
    return Git(url=url, specifier=specifier)


def _parse_local(src: SourceText, table: TomlTable) -> Local | None:
    path = src.string_span(table.get(PATH_KEY), PurePath)
    if path is None:
        return None
    return Local(path=path)


def _parse_kind(src: SourceText, value) -> Kind:
    if not isinstance(value, TomlTable):
        return Registry()
    return _parse_local(src, value) or _parse_git(src, value) or Registry()


def parse_dependency(src: SourceText, name: str, key: Node, value, section: str) -> Dependency | None:
    """Build one :class:`Dependency`, or ``None`` if the entry is unusable."""
    name_span = _parse_name(src, name, key)
    if name_span is None:
        return None
    package = None
    if isinstance(value, TomlTable):
        package = src.string_span(value.get(PACKAGE_KEY))
        if package is not None and not _CRATE_NAME_RE.match(package.value):
            package = None
    return Dependency(
        name=name_span,
        kind=_parse_kind(src, value),
        version=_parse_version(src, value),
        features=_parse_features(src, value),
        package=package,
        section=section,
    )


# ---------------------------------------------------------------------------
# Table discovery
# ---------------------------------------------------------------------------

def _target_key(key: Node, name: str) -> str:
    """Render a ``target`` sub-key the way it is written in the manifest."""
    return node_text(key) if key.type == 'quoted_key' else name


def dependency_tables(root: TomlTable) -> list[tuple[str, TomlTable]]:
    """Return ``(section, table)`` for every dependency table in *root*.

    Standard sections first, then ``target.<cfg>.*`` tables in document
    order, then ``workspace.dependencies``.
    """
    tables: list[tuple[str, TomlTable]] = []

    for key in DEPENDENCIES_KEYS + LEGACY_DEPENDENCIES_KEYS:
        table = root.get(key)
        if isinstance(table, TomlTable):
            tables.append((key, table))

    targets = root.get('target')
    if isinstance(targets, TomlTable):
        for cfg, entry in targets.items():
            if not isinstance(entry.value, TomlTable):
                continue
            for key in DEPENDENCIES_KEYS + LEGACY_DEPENDENCIES_KEYS:
                table = entry.value.get(key)
                if isinstance(table, TomlTable):
                    tables.append((f'target.{_target_key(entry.key, cfg)}.{key}', table))

    workspace = root.get('workspace')
    if isinstance(workspace, TomlTable):
        table = workspace.get('dependencies')
        if isinstance(table, TomlTable):
            tables.append(('workspace.dependencies', table))

    return tables


def parse_dependencies(source: str, tree: Tree, codec: PositionCodec = UTF16) -> list[Dependency]:
    """Extract every dependency declared in *source* (parsed as *tree*)."""
    src = SourceText(source, codec)
    dependencies: list[Dependency] = []
    for section, table in dependency_tables(build_table(tree)):
        candidates = (
            parse_dependency(src, name, entry.key, entry.value, section)
            for name, entry in table.items()
        )
        dependencies.extend(d for d in candidates if d is not None)
    return dependencies


def parse_manifest(source: str, codec: PositionCodec = UTF16) -> list[Dependency]:
    """Parse *source* with tree-sitter and extract its dependencies."""
    return parse_dependencies(source, parse_toml(source), codec)
