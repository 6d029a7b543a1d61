"""
Unit tests for Markdown tokenization and inline style spans.
"""

import pytest

from backend.mdpdf.tokenizer import render_html, tokenize
from backend.mdpdf.tokens import (
    CodeBlock,
    Heading,
    InlineRun,
    ListItem,
    Paragraph,
    Rule,
    StyleSpan,
    normalize_spans,
    visible_text,
)


def styles_of(run: InlineRun) -> list[tuple[str, frozenset]]:
    return [(seg.text, seg.styles) for seg in run.segments()]


class TestBlocks:
    """Block level tokens."""

    def test_heading_and_paragraph(self):
        tokens = tokenize("# Title\n\nHello **world**.")
        assert len(tokens) == 2
        heading, para = tokens
        assert isinstance(heading, Heading)
        assert heading.level == 1
        assert heading.content.text == "Title"
        assert isinstance(para, Paragraph)
        assert para.content.text == "Hello world."
        assert para.content.spans == (StyleSpan(6, 11, "bold"),)

    def test_heading_levels(self):
        tokens = tokenize("# a\n## b\n### c\n#### d\n##### e\n###### f\n")
        assert [t.level for t in tokens] == [1, 2, 3, 4, 5, 6]

    def test_bullet_list_with_nesting(self):
        tokens = tokenize("- one\n- two\n  - nested\n- three\n")
        assert [(t.content.text, t.depth, t.ordinal) for t in tokens] == [
            ("one", 0, None),
            ("two", 0, None),
            ("nested", 1, None),
            ("three", 0, None),
        ]
        assert all(isinstance(t, ListItem) and t.marker for t in tokens)

    def test_ordered_list_keeps_start_number(self):
        tokens = tokenize("3. first\n4. second\n")
        assert [t.ordinal for t in tokens] == [3, 4]

    def test_loose_list_item_continuation_has_no_marker(self):
        tokens = tokenize("- first para\n\n  second para\n")
        assert [(t.content.text, t.marker) for t in tokens] == [("first para", True), ("second para", False)]

    def test_fenced_code_block(self):
        tokens = tokenize("```python\nprint(1)\n\nprint(2)\n```\n")
        assert tokens == [CodeBlock(text="print(1)\n\nprint(2)", language="python")]

    def test_indented_code_block(self):
        tokens = tokenize("para\n\n    indented\n")
        assert tokens[-1] == CodeBlock(text="indented", language=None)

    def test_horizontal_rule(self):
        tokens = tokenize("above\n\n---\n\nbelow\n")
        assert isinstance(tokens[1], Rule)
        assert len(tokens) == 3

    def test_blockquote_degrades_to_quoted_paragraph(self):
        tokens = tokenize("> quoted text\n\nplain\n")
        assert tokens[0] == Paragraph(content=InlineRun("quoted text"), quoted=True)
        assert tokens[1].quoted is False

    def test_table_rows_degrade_to_paragraphs(self):
        tokens = tokenize("| a | b |\n|---|---|\n| 1 | 2 |\n")
        assert [t.content.text for t in tokens] == ["a | b", "1 | 2"]

    def test_empty_input(self):
        assert tokenize("") == []
        assert tokenize("   \n\n") == []


class TestInline:
    """Inline style spans and links."""

    def test_code_span(self):
        (para,) = tokenize("use `x = 1` here")
        assert para.content.text == "use x = 1 here"
        assert para.content.spans == (StyleSpan(4, 9, "code"),)

    def test_nested_emphasis_combines_styles(self):
        (para,) = tokenize("a ***both*** b")
        assert ("both", frozenset({"bold", "italic"})) in styles_of(para.content)

    def test_link_label_and_href(self):
        (para,) = tokenize("go to [the site](https://example.com) now")
        run = para.content
        assert run.text == "go to the site now"
        assert len(run.links) == 1
        assert run.links[0].href == "https://example.com"
        assert run.links[0].label == "the site"
        hrefs = [seg.href for seg in run.segments() if seg.text == "the site"]
        assert hrefs == ["https://example.com"]

    def test_bare_url_is_linkified(self):
        (para,) = tokenize("see https://example.com today")
        assert [lk.href for lk in para.content.links] == ["https://example.com"]

    def test_soft_break_becomes_space(self):
        (para,) = tokenize("line one\nline two")
        assert para.content.text == "line one line two"

    def test_image_uses_alt_text(self):
        (para,) = tokenize("![a diagram](img.png)")
        assert para.content.text == "a diagram"

    @pytest.mark.parametrize(
        "source",
        [
            "**unclosed bold",
            "_half *mixed_ markers*",
            "[broken link(",
            "```\nnever closed",
            "<div>raw html</div>",
        ],
    )
    def test_malformed_input_never_raises(self, source):
        tokens = tokenize(source)
        assert isinstance(tokens, list)

    def test_deterministic(self):
        doc = "# T\n\n- a **b**\n- `c`\n\n```\nd\n```\n"
        assert tokenize(doc) == tokenize(doc)


class TestSpans:
    """Span normalization and visible text."""

    def test_overlapping_same_kind_spans_merge(self):
        spans = normalize_spans([StyleSpan(0, 4, "bold"), StyleSpan(2, 8, "bold")], 10)
        assert spans == (StyleSpan(0, 8, "bold"),)

    def test_spans_are_clamped_and_empty_spans_dropped(self):
        spans = normalize_spans([StyleSpan(-3, 2, "italic"), StyleSpan(5, 5, "bold"), StyleSpan(8, 40, "code")], 10)
        assert spans == (StyleSpan(0, 2, "italic"), StyleSpan(8, 10, "code"))

    def test_segments_cover_text_once(self):
        run = InlineRun.build("abcdef", [StyleSpan(1, 4, "bold"), StyleSpan(3, 5, "italic")])
        assert "".join(seg.text for seg in run.segments()) == "abcdef"
        assert styles_of(run) == [
            ("a", frozenset()),
            ("bc", frozenset({"bold"})),
            ("d", frozenset({"bold", "italic"})),
            ("e", frozenset({"italic"})),
            ("f", frozenset()),
        ]

    def test_visible_text_drops_markers(self):
        assert visible_text(tokenize("# A\n\nb *c* `d`")) == "Ab c d"


class TestRenderHtml:
    """Companion HTML mode used by the reflow renderer."""

    def test_renders_html_blocks(self):
        out = render_html("# Title\n\nHello **world**.")
        assert "<h1>Title</h1>" in out
        assert "<strong>world</strong>" in out

    def test_raw_html_passes_through(self):
        assert "<mark>hi</mark>" in render_html("<mark>hi</mark>")
