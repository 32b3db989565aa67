"""Tests for crateslsp.handlers.hover."""
from __future__ import annotations

import pytest
from lsprotocol import types as lsp

from conftest import FakeRegistry, make_latest
from crateslsp.document import parse_document
from crateslsp.handlers.hover import format_feature_hover, format_name_hover, get_hover

URI = 'file:///work/demo/Cargo.toml'

SOURCE = '''\
[dependencies]
serde = { version = "1", features = ["derive", "unknown"] }
gone = "1"
'''

LINES = SOURCE.split('\n')


def _at(line: int, needle: str, shift: int = 1) -> lsp.Position:
    return lsp.Position(line=line, character=LINES[line].index(needle) + shift)


@pytest.fixture
def registry():
    return FakeRegistry({
        'serde': make_latest(
            '1.0.203',
            {'std': [], 'derive': ['serde_derive']},
            'A generic serialization/deserialization framework',
        ),
    })


@pytest.fixture
def doc():
    return parse_document(URI, SOURCE)


class TestNameHover:
    @pytest.mark.asyncio
    async def test_name(self, doc, registry):
        hover = await get_hover(doc, _at(1, 'serde'), registry)
        assert hover is not None
        assert hover.contents.kind == lsp.MarkupKind.PlainText
        assert hover.contents.value == (
            'serde: 1.0.203\n'
            '\n'
            '[ derive, std ]\n'
            '\n'
            'A generic serialization/deserialization framework'
        )
        assert hover.range == doc.dependency_named('serde').name.range

    def test_without_features_or_description(self):
        assert format_name_hover('tiny', make_latest('0.1.0')) == 'tiny: 0.1.0'

    def test_empty_description_omitted(self):
        latest = make_latest('0.1.0', {'std': []}, '')
        assert format_name_hover('tiny', latest) == 'tiny: 0.1.0\n\n[ std ]'

    @pytest.mark.asyncio
    async def test_registry_error(self, doc, registry):
        assert await get_hover(doc, _at(2, 'gone'), registry) is None


class TestFeatureHover:
    @pytest.mark.asyncio
    async def test_feature(self, doc, registry):
        hover = await get_hover(doc, _at(1, '"derive"'), registry)
        assert hover is not None
        assert hover.contents.value == 'derive\n\n[ serde_derive ]'

    @pytest.mark.asyncio
    async def test_unknown_feature(self, doc, registry):
        assert await get_hover(doc, _at(1, '"unknown"'), registry) is None

    def test_format(self):
        assert format_feature_hover('std', []) == 'std\n\n[  ]'


class TestNoHover:
    @pytest.mark.asyncio
    async def test_blank_position(self, doc, registry):
        assert await get_hover(doc, lsp.Position(line=3, character=0), registry) is None
        assert registry.calls == []
