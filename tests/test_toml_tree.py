"""Tests for crateslsp.toml_tree — folding tree-sitter output into tables."""
from __future__ import annotations

from crateslsp.toml_tree import (
    TomlTable,
    array_items,
    build_table,
    key_text,
    parse_toml,
    string_value,
    unquote,
)


def _table(source):
    return build_table(parse_toml(source))


class TestUnquote:
    def test_basic_string_escapes(self):
        assert unquote(r'"a\tb\"c\u00e9"') == 'a\tb"c\u00e9'

    def test_literal_string_is_raw(self):
        assert unquote(r"'C:\path'") == r'C:\path'

    def test_multiline_strings(self):
        assert unquote('"""\nfirst\nsecond"""') == 'first\nsecond'
        assert unquote('"""one \\\n    two"""') == 'one two'
        assert unquote("'''\nraw\\n'''") == 'raw\\n'

    def test_malformed(self):
        assert unquote('"open') is None
        assert unquote('bare') is None


class TestBuildTable:
    def test_header_tables_and_pairs(self):
        root = _table('[dependencies]\nserde = "1"\nrand = "0.8"\n')
        deps = root.get('dependencies')
        assert isinstance(deps, TomlTable)
        assert list(deps.entries) == ['serde', 'rand']
        assert string_value(deps.get('serde')) == '1'

    def test_inline_table(self):
        root = _table('[dependencies]\ntokio = { version = "1", features = ["rt"] }\n')
        tokio = root.get('dependencies').get('tokio')
        assert isinstance(tokio, TomlTable)
        assert string_value(tokio.get('version')) == '1'
        items = array_items(tokio.get('features'))
        assert [string_value(i) for i in items] == ['rt']

    def test_sub_table_header_merges(self):
        source = (
            '[dependencies]\n'
            'serde = "1"\n'
            '\n'
            '[dependencies.rand]\n'
            'version = "0.8"\n'
        )
        deps = _table(source).get('dependencies')
        assert list(deps.entries) == ['serde', 'rand']
        rand = deps.entries['rand']
        assert key_text(rand.key) == 'rand'
        assert string_value(rand.value.get('version')) == '0.8'

    def test_dotted_keys(self):
        source = '[dependencies]\nserde.version = "1"\nserde.features = ["derive"]\n'
        serde = _table(source).get('dependencies').get('serde')
        assert isinstance(serde, TomlTable)
        assert set(serde.entries) == {'version', 'features'}

    def test_top_level_dotted_table_name(self):
        source = 'dependencies.serde = "1"\n'
        deps = _table(source).get('dependencies')
        assert string_value(deps.get('serde')) == '1'

    def test_quoted_keys(self):
        source = "[target.'cfg(unix)'.dependencies]\nlibc = \"0.2\"\n"
        targets = _table(source).get('target')
        assert list(targets.entries) == ['cfg(unix)']
        assert string_value(targets.get('cfg(unix)').get('dependencies').get('libc')) == '0.2'

    def test_first_definition_wins(self):
        deps = _table('[dependencies]\nserde = "1"\nserde = "2"\n').get('dependencies')
        assert string_value(deps.get('serde')) == '1'

    def test_non_string_values(self):
        deps = _table('[dependencies]\nx = 1\ny = [1, "a"]\n').get('dependencies')
        assert string_value(deps.get('x')) is None
        assert array_items(deps.get('x')) is None
        assert [string_value(i) for i in array_items(deps.get('y'))] == [None, 'a']
