from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from fpdf import FPDF
from fpdf.errors import FPDFException

from .errors import EncodingFailure, LayoutError
from .logging_utils import get_logger

log = get_logger(__name__)

PT_TO_MM = 25.4 / 72.0

Color = tuple[int, int, int]

BLACK: Color = (0, 0, 0)

_ASCII_REPLACEMENTS = {
    "\u00a0": " ",
    "\u2007": " ",
    "\u2009": " ",
    "\u200b": "",
    "\u2010": "-",
    "\u2011": "-",
    "\u2012": "-",
    "\u2013": "-",
    "\u2014": "--",
    "\u2015": "--",
    "\u2212": "-",
    "\u2026": "...",
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": "\"",
    "\u201d": "\"",
    "\u2022": "\u00b7",
    "\u2190": "<-",
    "\u2192": "->",
    "\u2194": "<->",
    "\u21d0": "<=",
    "\u21d2": "=>",
    "\u21d4": "<=>",
    "\t": "    ",
}


def encodable(text: str) -> str:
    """Map text onto what the PDF core fonts can encode (latin-1)."""
    out = str(text or "")
    for key, val in _ASCII_REPLACEMENTS.items():
        out = out.replace(key, val)
    return out.encode("latin-1", "replace").decode("latin-1")


@dataclass(frozen=True)
class Font:
    family: str = "Helvetica"
    size: float = 11.0
    bold: bool = False
    italic: bool = False

    @property
    def style(self) -> str:
        return ("B" if self.bold else "") + ("I" if self.italic else "")

    @property
    def size_mm(self) -> float:
        return self.size * PT_TO_MM


@dataclass(frozen=True)
class AddPage:
    pass


@dataclass(frozen=True)
class SetFont:
    font: Font


@dataclass(frozen=True)
class WriteText:
    x: float
    y: float
    content: str
    height: float
    continued: bool = False
    href: str | None = None
    color: Color = BLACK


@dataclass(frozen=True)
class FillRect:
    x: float
    y: float
    w: float
    h: float
    color: Color


@dataclass(frozen=True)
class StrokeLine:
    x1: float
    y1: float
    x2: float
    y2: float
    color: Color
    width: float = 0.3


Instruction = Union[AddPage, SetFont, WriteText, FillRect, StrokeLine]


class FpdfCanvas:
    """Applies drawing instructions to an fpdf2 document and serializes it.

    ``WriteText.y`` is the top of the line box; the baseline is derived from
    the box height and the current font size. Automatic page breaks are off,
    the caller decides where pages end.
    """

    def __init__(self, *, page_format: str = "A4", title: str | None = None, record: bool = False) -> None:
        self.pdf = FPDF(orientation="P", unit="mm", format=page_format)
        self.pdf.set_auto_page_break(False)
        self.pdf.set_margins(0, 0, 0)
        self.pdf.set_creator("mdpdf")
        if title:
            self.pdf.set_title(encodable(title))
        self.record = record
        self.instructions: list[Instruction] = []
        self.emitted: list[str] = []
        self._font: Font | None = None
        self._metrics = FPDF(unit="mm")
        self._metrics_font: Font | None = None

    @property
    def page_width(self) -> float:
        return float(self.pdf.w)

    @property
    def page_height(self) -> float:
        return float(self.pdf.h)

    @property
    def page_count(self) -> int:
        return int(self.pdf.page_no())

    @property
    def text(self) -> str:
        return "".join(self.emitted)

    def _use(self, font: Font) -> None:
        if font != self._font:
            self.pdf.set_font(font.family, font.style, font.size)
            self._font = font

    def measure(self, text: str, font: Font) -> float:
        # Separate page-less document so measuring never changes the drawing font.
        try:
            if font != self._metrics_font:
                self._metrics.set_font(font.family, font.style, font.size)
                self._metrics_font = font
            return float(self._metrics.get_string_width(text))
        except FPDFException as e:
            raise LayoutError(f"Failed to measure text: {e}") from e

    def apply(self, ins: Instruction) -> None:
        try:
            if isinstance(ins, AddPage):
                self.pdf.add_page()
                self._font = None
            elif isinstance(ins, SetFont):
                self._use(ins.font)
            elif isinstance(ins, WriteText):
                self._write(ins)
            elif isinstance(ins, FillRect):
                self.pdf.set_fill_color(*ins.color)
                self.pdf.rect(ins.x, ins.y, ins.w, ins.h, style="F")
            elif isinstance(ins, StrokeLine):
                self.pdf.set_draw_color(*ins.color)
                self.pdf.set_line_width(ins.width)
                self.pdf.line(ins.x1, ins.y1, ins.x2, ins.y2)
            else:
                raise LayoutError(f"Unknown drawing instruction: {ins!r}")
        except FPDFException as e:
            raise LayoutError(f"Canvas rejected {type(ins).__name__}: {e}") from e
        if self.record:
            self.instructions.append(ins)

    def _write(self, ins: WriteText) -> None:
        if self._font is None:
            self._use(Font())
        size_mm = self._font.size_mm if self._font else Font().size_mm
        baseline = ins.y + (ins.height + size_mm * 0.7) / 2.0
        self.pdf.set_text_color(*ins.color)
        self.pdf.text(ins.x, baseline, ins.content)
        if ins.href:
            width = self.pdf.get_string_width(ins.content)
            self.pdf.link(ins.x, ins.y, width, ins.height, ins.href)
        self.pdf.set_text_color(*BLACK)
        self.emitted.append(ins.content)

    def output(self) -> bytes:
        try:
            out = self.pdf.output()
        except Exception as e:
            raise EncodingFailure(f"PDF serialization failed: {e}") from e
        data = bytes(out) if isinstance(out, (bytes, bytearray)) else str(out).encode("latin-1", "replace")
        log.debug("Serialized %d page(s), %d bytes", self.page_count, len(data))
        return data
