from __future__ import annotations

from markdown_it import MarkdownIt
from markdown_it.token import Token as MdToken

from .tokens import CodeBlock, Heading, InlineRun, Link, ListItem, Paragraph, Rule, StyleSpan, Token

_CELL_SEPARATOR = " | "

_BLOCK_PARSER: MarkdownIt | None = None
_HTML_PARSER: MarkdownIt | None = None


def _get_block_parser() -> MarkdownIt:
    global _BLOCK_PARSER
    if _BLOCK_PARSER is None:
        _BLOCK_PARSER = MarkdownIt("js-default", {"html": False, "linkify": True, "typographer": False})
    return _BLOCK_PARSER


def _get_html_parser() -> MarkdownIt:
    global _HTML_PARSER
    if _HTML_PARSER is None:
        _HTML_PARSER = MarkdownIt("js-default", {"html": True, "linkify": True, "typographer": True})
    return _HTML_PARSER


def render_html(markdown: str) -> str:
    return _get_html_parser().render(str(markdown or ""))


def inline_run(token: MdToken | None) -> InlineRun:
    if token is None:
        return InlineRun("")
    if token.type != "inline" or not token.children:
        return InlineRun(token.content or "")

    parts: list[str] = []
    pos = 0
    spans: list[StyleSpan] = []
    links: list[Link] = []
    opened: dict[str, list[int]] = {"bold": [], "italic": []}
    link_start: int | None = None
    link_href = ""

    def append(text: str) -> None:
        nonlocal pos
        if text:
            parts.append(text)
            pos += len(text)

    for child in token.children:
        t = child.type
        if t == "text":
            append(child.content)
        elif t == "code_inline":
            start = pos
            append(child.content)
            spans.append(StyleSpan(start, pos, "code"))
        elif t == "softbreak":
            append(" ")
        elif t == "hardbreak":
            append("\n")
        elif t in {"strong_open", "em_open"}:
            opened["bold" if t == "strong_open" else "italic"].append(pos)
        elif t in {"strong_close", "em_close"}:
            stack = opened["bold" if t == "strong_close" else "italic"]
            if stack:
                spans.append(StyleSpan(stack.pop(), pos, "bold" if t == "strong_close" else "italic"))
        elif t == "link_open":
            link_start = pos
            link_href = str(child.attrGet("href") or "")
        elif t == "link_close":
            if link_start is not None and link_href and pos > link_start:
                links.append(Link(link_href, "".join(parts)[link_start:pos], link_start, pos))
            link_start = None
            link_href = ""
        elif t == "image":
            append(child.content or "")
        elif t in {"html_inline", "html_block"}:
            append(child.content or "")

    # Unclosed markers run to the end of the text.
    for kind, stack in opened.items():
        for start in stack:
            spans.append(StyleSpan(start, pos, kind))  # type: ignore[arg-type]
    return InlineRun.build("".join(parts), spans, links)


def join_runs(runs: list[InlineRun], separator: str) -> InlineRun:
    text_parts: list[str] = []
    spans: list[StyleSpan] = []
    links: list[Link] = []
    offset = 0
    for idx, run in enumerate(runs):
        if idx:
            text_parts.append(separator)
            offset += len(separator)
        text_parts.append(run.text)
        spans.extend(StyleSpan(s.start + offset, s.end + offset, s.kind) for s in run.spans)
        links.extend(Link(lk.href, lk.label, lk.start + offset, lk.end + offset) for lk in run.links)
        offset += len(run.text)
    return InlineRun.build("".join(text_parts), spans, links)


def _parse_table(raw: list[MdToken], start_idx: int) -> tuple[list[InlineRun], int]:
    rows: list[InlineRun] = []
    cells: list[InlineRun] | None = None
    i = start_idx + 1
    while i < len(raw):
        tok = raw[i]
        if tok.type == "table_close":
            break
        if tok.type == "tr_open":
            cells = []
        elif tok.type == "inline" and cells is not None:
            cells.append(inline_run(tok))
        elif tok.type == "tr_close" and cells is not None:
            row = join_runs(cells, _CELL_SEPARATOR)
            if row.text.strip(" |"):
                rows.append(row)
            cells = None
        i += 1
    return rows, i + 1


def tokenize(markdown: str) -> list[Token]:
    raw = _get_block_parser().parse(str(markdown or ""))
    out: list[Token] = []
    list_stack: list[dict[str, int | bool]] = []
    item_stack: list[dict[str, int | bool | None]] = []
    quote_depth = 0

    i = 0
    while i < len(raw):
        tok = raw[i]
        t = tok.type

        if t == "heading_open":
            level = int(tok.tag[1]) if tok.tag and tok.tag.startswith("h") else 1
            run = inline_run(raw[i + 1] if i + 1 < len(raw) else None)
            if run.text.strip():
                out.append(Heading(level=max(1, min(6, level)), content=run))
            i += 3
            continue

        if t in {"bullet_list_open", "ordered_list_open"}:
            start = tok.attrGet("start")
            try:
                index = int(start) if start is not None else 1
            except (TypeError, ValueError):
                index = 1
            list_stack.append({"ordered": t.startswith("ordered"), "index": index})
            i += 1
            continue
        if t in {"bullet_list_close", "ordered_list_close"}:
            if list_stack:
                list_stack.pop()
            i += 1
            continue
        if t == "list_item_open":
            ordinal = None
            if list_stack and list_stack[-1]["ordered"]:
                ordinal = int(list_stack[-1]["index"])
                list_stack[-1]["index"] = ordinal + 1
            item_stack.append({"first": True, "ordinal": ordinal})
            i += 1
            continue
        if t == "list_item_close":
            if item_stack:
                item_stack.pop()
            i += 1
            continue

        if t == "blockquote_open":
            quote_depth += 1
            i += 1
            continue
        if t == "blockquote_close":
            quote_depth = max(0, quote_depth - 1)
            i += 1
            continue

        if t == "paragraph_open":
            run = inline_run(raw[i + 1] if i + 1 < len(raw) else None)
            if run.text.strip():
                if item_stack:
                    item = item_stack[-1]
                    depth = max(0, len(list_stack) - 1)
                    if item["first"]:
                        item["first"] = False
                        ordinal = item["ordinal"]
                        out.append(ListItem(content=run, depth=depth, ordinal=ordinal if isinstance(ordinal, int) else None))
                    else:
                        out.append(ListItem(content=run, depth=depth, ordinal=None, marker=False))
                else:
                    out.append(Paragraph(content=run, quoted=quote_depth > 0))
            i += 3
            continue

        if t in {"fence", "code_block"}:
            language = (tok.info or "").strip().split(" ")[0] or None
            out.append(CodeBlock(text=(tok.content or "").rstrip("\n"), language=language))
            i += 1
            continue

        if t == "hr":
            out.append(Rule())
            i += 1
            continue

        if t == "table_open":
            rows, i = _parse_table(raw, i)
            out.extend(Paragraph(content=row, quoted=quote_depth > 0) for row in rows)
            continue

        i += 1
    return out
