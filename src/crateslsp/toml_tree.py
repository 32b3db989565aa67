"""
Table view over a tree-sitter TOML syntax tree.

tree-sitter gives a concrete syntax tree in which one logical TOML table can
be spread over several places: ``[dependencies]`` followed later by
``[dependencies.serde]``, dotted keys such as ``serde.version = "1"``, inline
tables.  :func:`build_table` folds those into nested :class:`TomlTable`
objects while keeping the syntax nodes, so callers can still ask where every
key and value sits in the source.

Only the shape needed to read dependency tables is modelled.  Arrays of
tables (``[[bin]]``) are skipped, and conflicting definitions keep the first
one seen.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache

import tree_sitter_toml
from tree_sitter import Language, Node, Parser, Tree

TOML_LANGUAGE = Language(tree_sitter_toml.language())

_KEY_TYPES = frozenset({'bare_key', 'quoted_key', 'dotted_key'})

_ESCAPE_RE = re.compile(r'\\(?:u([0-9A-Fa-f]{4})|U([0-9A-Fa-f]{8})|(.))', re.DOTALL)
_SIMPLE_ESCAPES = {
    'b': '\b', 't': '\t', 'n': '\n', 'f': '\f', 'r': '\r', 'e': '\x1b',
    '"': '"', '\\': '\\',
}
# A backslash at the end of a line in a multi-line basic string swallows the
# newline and any leading whitespace of the next line.
_LINE_CONTINUATION_RE = re.compile(r'\\[ \t]*\r?\n\s*')


@lru_cache(maxsize=1)
def _parser() -> Parser:
    return Parser(TOML_LANGUAGE)


def parse_toml(source: str) -> Tree:
    """Parse *source* into a tree-sitter tree (never raises)."""
    return _parser().parse(source.encode('utf-8'))


@dataclass
class TomlEntry:
    key: Node                       # key segment naming this entry (first definition)
    value: Node | TomlTable


@dataclass
class TomlTable:
    node: Node | None = None        # inline_table / table header, None if implicit
    entries: dict[str, TomlEntry] = field(default_factory=dict)

    def get(self, key: str) -> Node | TomlTable | None:
        entry = self.entries.get(key)
        return entry.value if entry is not None else None

    def items(self):
        return self.entries.items()


def _unescape(body: str) -> str:
    def replace(m: re.Match) -> str:
        if m.group(1) or m.group(2):
            return chr(int(m.group(1) or m.group(2), 16))
        return _SIMPLE_ESCAPES.get(m.group(3), m.group(0))
    return _ESCAPE_RE.sub(replace, body)


def _strip_first_newline(body: str) -> str:
    if body.startswith('\r\n'):
        return body[2:]
    if body.startswith('\n'):
        return body[1:]
    return body


def unquote(text: str) -> str | None:
    """Return the value of a TOML string literal, or ``None`` if malformed."""
    if text.startswith('"""'):
        if len(text) < 6 or not text.endswith('"""'):
            return None
        body = _strip_first_newline(text[3:-3])
        return _unescape(_LINE_CONTINUATION_RE.sub('', body))
    if text.startswith("'''"):
        if len(text) < 6 or not text.endswith("'''"):
            return None
        return _strip_first_newline(text[3:-3])
    if text.startswith('"'):
        if len(text) < 2 or not text.endswith('"'):
            return None
        return _unescape(text[1:-1])
    if text.startswith("'"):
        if len(text) < 2 or not text.endswith("'"):
            return None
        return text[1:-1]
    return None


def node_text(node: Node) -> str:
    return node.text.decode('utf-8', errors='replace')


def string_value(node: Node | TomlTable | None) -> str | None:
    """The decoded value of a string node, ``None`` for anything else."""
    if not isinstance(node, Node) or node.type != 'string' or node.has_error:
        return None
    return unquote(node_text(node))


def key_segments(key: Node) -> list[Node]:
    """Flatten a (possibly dotted) key node into its simple key nodes."""
    if key.type == 'dotted_key':
        segments: list[Node] = []
        for child in key.named_children:
            if child.type in _KEY_TYPES:
                segments.extend(key_segments(child))
        return segments
    return [key]


def key_text(segment: Node) -> str | None:
    if segment.type == 'bare_key':
        return node_text(segment)
    if segment.type == 'quoted_key':
        return unquote(node_text(segment))
    return None


def array_items(node: Node | TomlTable | None) -> list[Node] | None:
    """Value nodes of an array literal, ``None`` if *node* is not an array."""
    if not isinstance(node, Node) or node.type != 'array':
        return None
    return [child for child in node.named_children if child.type != 'comment']


def _pair_parts(pair: Node) -> tuple[Node, Node] | None:
    children = [c for c in pair.named_children if c.type != 'comment']
    if len(children) < 2 or children[0].type not in _KEY_TYPES:
        return None
    return children[0], children[-1]


def _descend(table: TomlTable, segment: Node, implicit_node: Node | None) -> TomlTable | None:
    """Return the sub-table named by *segment*, creating it if needed."""
    name = key_text(segment)
    if name is None:
        return None
    entry = table.entries.get(name)
    if entry is None:
        child = TomlTable(node=implicit_node)
        table.entries[name] = TomlEntry(key=segment, value=child)
        return child
    if isinstance(entry.value, TomlTable):
        return entry.value
    return None


def _insert(table: TomlTable, key: Node, value: Node) -> None:
    segments = key_segments(key)
    if not segments:
        return
    for segment in segments[:-1]:
        table = _descend(table, segment, None)
        if table is None:
            return
    name = key_text(segments[-1])
    if name is None or name in table.entries:
        return
    converted: Node | TomlTable = _inline_table(value) if value.type == 'inline_table' else value
    table.entries[name] = TomlEntry(key=segments[-1], value=converted)


def _inline_table(node: Node) -> TomlTable:
    table = TomlTable(node=node)
    children = [c for c in node.named_children if c.type != 'comment']
    i = 0
    while i < len(children):
        child = children[i]
        if child.type == 'pair':
            parts = _pair_parts(child)
            if parts is not None:
                _insert(table, *parts)
            i += 1
        elif child.type in _KEY_TYPES and i + 1 < len(children):
            # grammars that do not wrap inline pairs in a `pair` node
            _insert(table, child, children[i + 1])
            i += 2
        else:
            i += 1
    return table


def _fill(table: TomlTable, container: Node) -> None:
    for child in container.named_children:
        if child.type == 'pair':
            parts = _pair_parts(child)
            if parts is not None:
                _insert(table, *parts)


def build_table(tree: Tree) -> TomlTable:
    """Fold the top level of *tree* into a :class:`TomlTable`."""
    root = TomlTable(node=tree.root_node)
    _fill(root, tree.root_node)

    for child in tree.root_node.named_children:
        if child.type != 'table':
            continue
        header = next((c for c in child.named_children if c.type in _KEY_TYPES), None)
        if header is None:
            continue
        segments = key_segments(header)
        table: TomlTable | None = root
        for segment in segments:
            table = _descend(table, segment, header)
            if table is None:
                break
        if table is not None:
            if table.node is None:
                table.node = header
            _fill(table, child)
    return root
