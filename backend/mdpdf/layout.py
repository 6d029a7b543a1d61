from __future__ import annotations

import re
from dataclasses import dataclass, field

from .canvas import (
    AddPage,
    BLACK,
    Color,
    FillRect,
    Font,
    FpdfCanvas,
    Instruction,
    SetFont,
    StrokeLine,
    WriteText,
    encodable,
)
from .logging_utils import get_logger
from .tokens import CodeBlock, Heading, InlineRun, ListItem, Paragraph, Rule, Segment, Token

log = get_logger(__name__)

MARGIN_TOP = 20.0
MARGIN_BOTTOM = 20.0
MARGIN_LEFT = 15.0
MARGIN_RIGHT = 15.0

BODY_FONT = Font("Helvetica", 11.0)
LINE_FACTOR = 1.45

HEADING_BASE = 24.0
HEADING_STEP = 2.0
HEADING_FLOOR = 12.0
HEADING_LEAD_IN = 4.0
HEADING_LEAD_OUT = 2.0

PARAGRAPH_SPACING = 2.0
QUOTE_INDENT = 6.0
QUOTE_COLOR: Color = (110, 110, 110)
LINK_COLOR: Color = (0, 91, 187)

LIST_INDENT = 6.0
LIST_SPACING = 1.0
LIST_MARKER_GAP = 2.0
BULLET = "\u2022"

CODE_FONT_SIZE = 9.5
CODE_PADDING = 2.5
CODE_BACKGROUND: Color = (244, 244, 244)

RULE_SPACING = 3.0
RULE_COLOR: Color = (200, 200, 200)
RULE_WIDTH = 0.3

_WS_RE = re.compile(r"(\s+)")


def heading_size(level: int) -> float:
    return max(HEADING_BASE - HEADING_STEP * level, HEADING_FLOOR)


def line_height(font: Font) -> float:
    return font.size_mm * LINE_FACTOR


def segment_font(base: Font, seg: Segment) -> Font:
    family = "Courier" if seg.code else base.family
    return Font(family, base.size, bold=base.bold or seg.bold, italic=base.italic or seg.italic)


@dataclass
class Cursor:
    x: float = MARGIN_LEFT
    y: float = MARGIN_TOP
    page: int = 0
    font: Font = BODY_FONT


@dataclass
class _Piece:
    text: str
    font: Font
    color: Color
    href: str | None = None
    x: float = 0.0


@dataclass
class _Line:
    pieces: list[_Piece] = field(default_factory=list)
    width: float = 0.0
    pending_space: bool = False


class DirectDrawLayout:
    """Walks tokens and draws them onto a canvas with a manually tracked cursor.

    Every line, rectangle and rule is checked against the usable page height
    before it is emitted; when it would not fit a page is added and the cursor
    returns to the top margin, so nothing is split across pages.
    """

    def __init__(self, canvas: FpdfCanvas) -> None:
        self.canvas = canvas
        self.top = MARGIN_TOP
        self.bottom = canvas.page_height - MARGIN_BOTTOM
        self.left = MARGIN_LEFT
        self.right = canvas.page_width - MARGIN_RIGHT
        self.cursor = Cursor()
        self.indent = 0.0

    def emit(self, ins: Instruction) -> None:
        self.canvas.apply(ins)

    def set_font(self, font: Font) -> None:
        if font != self.cursor.font:
            self.emit(SetFont(font))
            self.cursor.font = font

    def new_page(self) -> None:
        self.emit(AddPage())
        self.cursor.page += 1
        self.cursor.y = self.top
        self.cursor.x = self.left + self.indent
        self.emit(SetFont(self.cursor.font))

    def ensure_space(self, height: float) -> None:
        if self.cursor.page == 0:
            self.new_page()
            return
        if self.cursor.y + height > self.bottom and self.cursor.y > self.top:
            log.debug("Page break at y=%.1f for %.1fmm on page %d", self.cursor.y, height, self.cursor.page)
            self.new_page()

    def advance(self, dy: float) -> None:
        if self.cursor.y > self.top:
            self.cursor.y += dy

    def render(self, tokens: list[Token]) -> Cursor:
        self.new_page()
        for tok in tokens:
            if isinstance(tok, Heading):
                self._heading(tok)
            elif isinstance(tok, Paragraph):
                self._paragraph(tok)
            elif isinstance(tok, ListItem):
                self._list_item(tok)
            elif isinstance(tok, CodeBlock):
                self._code_block(tok)
            elif isinstance(tok, Rule):
                self._rule()
        return self.cursor

    # ---- blocks ----

    def _heading(self, tok: Heading) -> None:
        font = Font(BODY_FONT.family, heading_size(tok.level), bold=True)
        self.advance(HEADING_LEAD_IN)
        self.flow(tok.content, font, line_height(font) * 0.9)
        self.advance(HEADING_LEAD_OUT)
        self.set_font(BODY_FONT)

    def _paragraph(self, tok: Paragraph) -> None:
        self.advance(PARAGRAPH_SPACING)
        if tok.quoted:
            font = Font(BODY_FONT.family, BODY_FONT.size, italic=True)
            self.flow(tok.content, font, line_height(font), indent=QUOTE_INDENT, color=QUOTE_COLOR)
        else:
            self.flow(tok.content, BODY_FONT, line_height(BODY_FONT))
        self.advance(PARAGRAPH_SPACING)
        self.set_font(BODY_FONT)

    def _list_item(self, tok: ListItem) -> None:
        prefix = None
        if tok.marker:
            prefix = f"{tok.ordinal}." if tok.ordinal is not None else BULLET
        self.indent += LIST_INDENT * (tok.depth + 1)
        try:
            self.flow(tok.content, BODY_FONT, line_height(BODY_FONT), prefix=prefix)
        finally:
            self.indent -= LIST_INDENT * (tok.depth + 1)
        self.advance(LIST_SPACING)
        self.set_font(BODY_FONT)

    def _code_block(self, tok: CodeBlock) -> None:
        font = Font("Courier", CODE_FONT_SIZE)
        lh = line_height(font) * 0.95
        x = self.left + self.indent
        width = self.right - x
        char_w = self.canvas.measure("M", font) or 1.0
        max_chars = max(1, int((width - 2 * CODE_PADDING) // char_w))
        lines: list[str] = []
        for raw in encodable(tok.text).split("\n"):
            if not raw:
                lines.append("")
                continue
            lines.extend(raw[i : i + max_chars] for i in range(0, len(raw), max_chars))

        self.advance(PARAGRAPH_SPACING)
        while lines:
            fit = int((self.bottom - self.cursor.y - 2 * CODE_PADDING) // lh)
            if fit < 1:
                self.new_page()
                continue
            chunk, lines = lines[:fit], lines[fit:]
            height = len(chunk) * lh + 2 * CODE_PADDING
            self.emit(FillRect(x, self.cursor.y, width, height, CODE_BACKGROUND))
            self.set_font(font)
            y = self.cursor.y + CODE_PADDING
            for text in chunk:
                if text:
                    self.emit(WriteText(x + CODE_PADDING, y, text, lh))
                y += lh
            self.cursor.y += height
            if lines:
                self.new_page()
        self.set_font(BODY_FONT)
        self.advance(PARAGRAPH_SPACING)

    def _rule(self) -> None:
        self.advance(RULE_SPACING)
        self.ensure_space(RULE_WIDTH)
        y = self.cursor.y
        self.emit(StrokeLine(self.left + self.indent, y, self.right, y, RULE_COLOR, RULE_WIDTH))
        self.cursor.y += RULE_WIDTH
        self.advance(RULE_SPACING)

    # ---- inline flow ----

    def _words(self, run: InlineRun, base: Font, color: Color) -> list[list[_Piece] | str]:
        """Group segments into words; whitespace becomes ``" "`` or one ``"\\n"`` marker per line break."""
        out: list[list[_Piece] | str] = []
        word: list[_Piece] = []
        for seg in run.segments():
            font = segment_font(base, seg)
            seg_color = LINK_COLOR if seg.href else color
            for part in _WS_RE.split(encodable(seg.text)):
                if not part:
                    continue
                if part.isspace():
                    if word:
                        out.append(word)
                        word = []
                    if "\n" in part:
                        out.extend("\n" for _ in range(part.count("\n")))
                    else:
                        out.append(" ")
                    continue
                word.append(_Piece(part, font, seg_color, seg.href))
        if word:
            out.append(word)
        return out

    def flow(
        self,
        run: InlineRun,
        base: Font,
        lh: float,
        *,
        indent: float = 0.0,
        prefix: str | None = None,
        color: Color = BLACK,
    ) -> None:
        x_start = self.left + self.indent + indent
        marker: _Piece | None = None
        if prefix:
            marker = _Piece(encodable(prefix), base, color, x=x_start)
            x_start += self.canvas.measure(marker.text, base) + LIST_MARKER_GAP
        max_width = self.right - x_start
        line = _Line()

        def flush() -> None:
            nonlocal line, marker
            if not line.pieces and marker is None:
                line = _Line()
                return
            self.ensure_space(lh)
            pieces = ([marker] if marker else []) + line.pieces
            for idx, piece in enumerate(pieces):
                self.set_font(piece.font)
                self.emit(
                    WriteText(
                        piece.x,
                        self.cursor.y,
                        piece.text,
                        lh,
                        continued=idx < len(pieces) - 1,
                        href=piece.href,
                        color=piece.color,
                    )
                )
                self.cursor.x = piece.x + self.canvas.measure(piece.text, piece.font)
            self.cursor.y += lh
            self.cursor.x = self.left + self.indent
            marker = None
            line = _Line()

        def add(piece: _Piece, width: float) -> None:
            piece.x = x_start + line.width
            last = line.pieces[-1] if line.pieces else None
            if last and last.font == piece.font and last.color == piece.color and last.href == piece.href:
                last.text += piece.text
            else:
                line.pieces.append(piece)
            line.width += width

        for word in self._words(run, base, color):
            if word == "\n":
                if line.pieces or marker is not None:
                    flush()
                else:
                    # Consecutive breaks leave an empty line.
                    self.ensure_space(lh)
                    self.cursor.y += lh
                continue
            if isinstance(word, str):
                line.pending_space = bool(line.pieces)
                continue
            widths = [self.canvas.measure(p.text, p.font) for p in word]
            total = sum(widths)
            space_font = word[0].font
            space_w = self.canvas.measure(" ", space_font) if line.pending_space else 0.0
            if line.pieces and line.width + space_w + total > max_width:
                flush()
                space_w = 0.0
            if line.pieces and line.pending_space:
                first = word[0]
                add(_Piece(" ", first.font, first.color, first.href), space_w)
            line.pending_space = False
            if total <= max_width - line.width:
                for piece, width in zip(word, widths):
                    add(piece, width)
                continue
            # Longer than a whole line: break by characters.
            for piece in word:
                for ch in piece.text:
                    ch_w = self.canvas.measure(ch, piece.font)
                    if line.pieces and line.width + ch_w > max_width:
                        flush()
                    add(_Piece(ch, piece.font, piece.color, piece.href), ch_w)
        flush()
