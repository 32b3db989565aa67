"""
Source-location helpers.

Offsets are character (code point) indices into the manifest text.
Positions and ranges are ``lsprotocol`` types: zero-based line, end
exclusive, with the column counted in the code units of the position
encoding agreed with the client.  That is UTF-16 unless the client offers
UTF-8 or UTF-32 at ``initialize``, so every conversion takes a pygls
:class:`~pygls.workspace.PositionCodec` and defaults to UTF-16.

Only ``\\n`` terminates a line.  A document using ``\\r\\n`` therefore gets
columns that include the trailing ``\\r`` of the previous line in the line
length, which is harmless for cursor matching but worth knowing.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from lsprotocol import types as lsp
from pygls.workspace import PositionCodec

T = TypeVar('T')

UTF16 = PositionCodec(lsp.PositionEncodingKind.Utf16)


def offset_to_position(text: str, offset: int, codec: PositionCodec = UTF16) -> lsp.Position:
    """Return the line/column of character *offset* in *text*."""
    line = text.count('\n', 0, offset)
    line_start = text.rfind('\n', 0, offset) + 1
    return lsp.Position(line=line, character=codec.client_num_units(text[line_start:offset]))


def range_to_positions(text: str, start: int, end: int, codec: PositionCodec = UTF16) -> lsp.Range:
    """Convert the half-open offset range ``[start, end)`` to an LSP range."""
    return lsp.Range(
        start=offset_to_position(text, start, codec),
        end=offset_to_position(text, end, codec),
    )


def position_to_offset(text: str, position: lsp.Position, codec: PositionCodec = UTF16) -> int:
    """Inverse of :func:`offset_to_position`; columns past the line end clamp to it."""
    offset = 0
    for _ in range(position.line):
        newline = text.find('\n', offset)
        if newline == -1:
            return len(text)
        offset = newline + 1
    units = 0
    while offset < len(text) and text[offset] != '\n' and units < position.character:
        units += codec.client_num_units(text[offset])
        offset += 1
    return offset


@dataclass(frozen=True)
class Span(Generic[T]):
    """A value together with the range of source text it was read from."""

    value: T
    range: lsp.Range

    def contains_position(self, pos: lsp.Position) -> bool:
        """True when *pos* lies in the span; both ends count as inside.

        The end is inclusive so that a cursor sitting right after a token
        (the usual place while typing) still matches it.
        """
        start, end = self.range.start, self.range.end
        if not start.line <= pos.line <= end.line:
            return False
        if pos.line == start.line and pos.character < start.character:
            return False
        if pos.line == end.line and pos.character > end.character:
            return False
        return True
