from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Literal, Union

StyleKind = Literal["bold", "italic", "code"]

STYLE_KINDS: tuple[StyleKind, ...] = ("bold", "italic", "code")


@dataclass(frozen=True)
class StyleSpan:
    start: int
    end: int
    kind: StyleKind


@dataclass(frozen=True)
class Link:
    href: str
    label: str
    start: int
    end: int


@dataclass(frozen=True)
class Segment:
    text: str
    styles: frozenset[str] = frozenset()
    href: str | None = None

    @property
    def bold(self) -> bool:
        return "bold" in self.styles

    @property
    def italic(self) -> bool:
        return "italic" in self.styles

    @property
    def code(self) -> bool:
        return "code" in self.styles


def normalize_spans(spans: list[StyleSpan], length: int) -> tuple[StyleSpan, ...]:
    """Clamp spans to the text, drop empty ones and merge overlapping spans of one kind."""
    out: list[StyleSpan] = []
    for kind in STYLE_KINDS:
        ranges = sorted(
            (max(0, s.start), min(length, s.end)) for s in spans if s.kind == kind and min(length, s.end) > max(0, s.start)
        )
        merged: list[list[int]] = []
        for start, end in ranges:
            if merged and start <= merged[-1][1]:
                merged[-1][1] = max(merged[-1][1], end)
            else:
                merged.append([start, end])
        out.extend(StyleSpan(start, end, kind) for start, end in merged)
    return tuple(sorted(out, key=lambda s: (s.start, s.end, STYLE_KINDS.index(s.kind))))


@dataclass(frozen=True)
class InlineRun:
    text: str
    spans: tuple[StyleSpan, ...] = ()
    links: tuple[Link, ...] = ()

    @classmethod
    def build(cls, text: str, spans: list[StyleSpan], links: list[Link] | None = None) -> "InlineRun":
        return cls(text=text, spans=normalize_spans(spans, len(text)), links=tuple(links or ()))

    def segments(self) -> Iterator[Segment]:
        """Yield maximal pieces of text sharing one style set and link target."""
        cuts = {0, len(self.text)}
        for span in self.spans:
            cuts.update((span.start, span.end))
        for link in self.links:
            cuts.update((link.start, link.end))
        bounds = sorted(c for c in cuts if 0 <= c <= len(self.text))
        for start, end in zip(bounds, bounds[1:]):
            if start == end:
                continue
            styles = frozenset(s.kind for s in self.spans if s.start <= start and end <= s.end)
            href = next((lk.href for lk in self.links if lk.start <= start and end <= lk.end), None)
            yield Segment(self.text[start:end], styles, href)


@dataclass(frozen=True)
class Heading:
    level: int
    content: InlineRun


@dataclass(frozen=True)
class Paragraph:
    content: InlineRun
    quoted: bool = False


@dataclass(frozen=True)
class CodeBlock:
    text: str
    language: str | None = None


@dataclass(frozen=True)
class ListItem:
    content: InlineRun
    depth: int = 0
    ordinal: int | None = None
    marker: bool = True


@dataclass(frozen=True)
class Rule:
    pass


Token = Union[Heading, Paragraph, CodeBlock, ListItem, Rule]


def visible_text(tokens: list[Token]) -> str:
    parts: list[str] = []
    for tok in tokens:
        if isinstance(tok, (Heading, Paragraph, ListItem)):
            parts.append(tok.content.text)
        elif isinstance(tok, CodeBlock):
            parts.append(tok.text)
    return "".join(parts)
