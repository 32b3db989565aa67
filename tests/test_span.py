"""Tests for crateslsp.span — offset/position conversion and containment."""
from __future__ import annotations

from lsprotocol import types as lsp
from pygls.workspace import PositionCodec

from crateslsp.span import (
    Span,
    offset_to_position,
    position_to_offset,
    range_to_positions,
)

TEXT = "12345678\n480\n3\n"


def _pos(line, character):
    return lsp.Position(line=line, character=character)


class TestRangeToPositions:
    def test_basic(self):
        r = range_to_positions(TEXT, 0, 2)
        assert r == lsp.Range(start=_pos(0, 0), end=_pos(0, 2))

    def test_multiline(self):
        r = range_to_positions(TEXT, 6, 10)
        assert r == lsp.Range(start=_pos(0, 6), end=_pos(1, 1))

    def test_to_line_end(self):
        r = range_to_positions(TEXT, 13, 14)
        assert r == lsp.Range(start=_pos(2, 0), end=_pos(2, 1))

    def test_offset_on_newline_belongs_to_its_line(self):
        assert offset_to_position(TEXT, 8) == _pos(0, 8)
        assert offset_to_position(TEXT, 9) == _pos(1, 0)

    def test_carriage_return_counts_as_a_column(self):
        # only \n ends a line
        assert offset_to_position("ab\r\ncd", 5) == _pos(1, 1)
        assert offset_to_position("ab\r\ncd", 2) == _pos(0, 2)

    def test_round_trip_over_every_range(self):
        text = "[dependencies]\nserde = \"1\"\n\ntokio = { version = \"1\" }\n"
        for start in range(len(text) + 1):
            for end in range(start, len(text) + 1):
                r = range_to_positions(text, start, end)
                assert (r.start.line, r.start.character) <= (r.end.line, r.end.character)
                assert position_to_offset(text, r.start) == start
                assert position_to_offset(text, r.end) == end



class TestPositionEncodings:
    # U+1F980 needs two UTF-16 code units and four UTF-8 bytes
    TEXT = 'x = "\U0001F980", y = 1\n'

    def test_utf16_by_default(self):
        offset = self.TEXT.index('y')
        assert offset_to_position(self.TEXT, offset) == _pos(0, offset + 1)

    def test_other_encodings(self):
        offset = self.TEXT.index('y')
        utf8 = PositionCodec(lsp.PositionEncodingKind.Utf8)
        utf32 = PositionCodec(lsp.PositionEncodingKind.Utf32)
        assert offset_to_position(self.TEXT, offset, utf8) == _pos(0, offset + 3)
        assert offset_to_position(self.TEXT, offset, utf32) == _pos(0, offset)

    def test_round_trip(self):
        for codec in (None, PositionCodec(lsp.PositionEncodingKind.Utf8)):
            kwargs = {} if codec is None else {'codec': codec}
            for offset in range(len(self.TEXT) + 1):
                pos = offset_to_position(self.TEXT, offset, **kwargs)
                assert position_to_offset(self.TEXT, pos, **kwargs) == offset

    def test_column_past_line_end_clamps(self):
        assert position_to_offset("ab\ncd", _pos(0, 10)) == 2


class TestContainsPosition:
    SPAN = Span('serde', lsp.Range(start=_pos(3, 4), end=_pos(3, 9)))

    def test_endpoints_are_contained(self):
        assert self.SPAN.contains_position(_pos(3, 4))
        assert self.SPAN.contains_position(_pos(3, 9))

    def test_interior(self):
        assert self.SPAN.contains_position(_pos(3, 6))

    def test_just_outside(self):
        assert not self.SPAN.contains_position(_pos(3, 3))
        assert not self.SPAN.contains_position(_pos(3, 10))

    def test_other_lines(self):
        assert not self.SPAN.contains_position(_pos(2, 6))
        assert not self.SPAN.contains_position(_pos(4, 6))

    def test_multiline_span(self):
        span = Span('x', lsp.Range(start=_pos(1, 5), end=_pos(3, 2)))
        assert span.contains_position(_pos(2, 0))
        assert span.contains_position(_pos(2, 80))
        assert span.contains_position(_pos(1, 5))
        assert not span.contains_position(_pos(1, 4))
        assert not span.contains_position(_pos(3, 3))
