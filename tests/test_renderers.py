"""
Unit tests for the renderer strategies and HTML document assembly.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from backend.mdpdf.config import Settings
from backend.mdpdf.errors import RenderError
from backend.mdpdf.renderers import (
    STYLESHEET,
    DirectDrawRenderer,
    ReflowRenderer,
    build_document,
    build_renderer,
    sanitize_html,
)

from fakes import FAKE_PDF, make_playwright


class TestSanitizeHtml:
    """Script and handler stripping for the reflow path."""

    def test_removes_scripts_and_frames(self):
        out = sanitize_html("<p>ok</p><script>alert(1)</script><iframe src='x'></iframe>")
        assert "<p>ok</p>" in out
        assert "script" not in out
        assert "iframe" not in out

    def test_removes_event_handlers(self):
        out = sanitize_html('<img src="a.png" onerror="alert(1)"><p onclick="x()">hi</p>')
        assert "onerror" not in out
        assert "onclick" not in out
        assert 'src="a.png"' in out

    def test_removes_javascript_urls(self):
        out = sanitize_html('<a href="javascript:alert(1)">x</a><a href="https://example.com">y</a>')
        assert "javascript:" not in out
        assert 'href="https://example.com"' in out


class TestBuildDocument:
    """Full HTML page handed to Chromium."""

    def test_wraps_markdown_in_stylesheet(self):
        doc = build_document("# Hello\n\nSome `code`.")
        assert doc.startswith("<!DOCTYPE html>")
        assert STYLESHEET in doc
        assert "<h1>Hello</h1>" in doc
        assert "<code>code</code>" in doc

    def test_title_is_escaped(self):
        doc = build_document("x", title="Q&A <draft>")
        assert "<title>Q&amp;A &lt;draft&gt;</title>" in doc

    def test_default_title(self):
        assert "<title>Document</title>" in build_document("x")

    def test_inline_script_in_markdown_is_dropped(self):
        doc = build_document("text\n\n<script>alert(1)</script>\n")
        assert "alert(1)" not in doc


class TestDirectDrawRenderer:
    """In-process renderer."""

    def test_render_returns_pdf(self):
        pdf_bytes = asyncio.run(DirectDrawRenderer().render("# Title\n\nHello **world**."))
        assert pdf_bytes.startswith(b"%PDF")

    def test_empty_document_still_has_a_page(self):
        pdf_bytes, canvas = DirectDrawRenderer().render_document("")
        assert canvas.page_count == 1
        assert pdf_bytes.startswith(b"%PDF")


class TestReflowRenderer:
    """Chromium-backed renderer with a fake Playwright."""

    def test_render_passes_styled_document(self):
        fake = make_playwright()
        renderer = ReflowRenderer(Settings(), playwright_factory=fake.factory)

        pdf_bytes = asyncio.run(renderer.render("# Hi", title="Greeting"))

        assert pdf_bytes == FAKE_PDF
        html = fake.page.set_content.await_args.args[0]
        assert "<h1>Hi</h1>" in html
        assert "<title>Greeting</title>" in html
        margin = fake.page.pdf.await_args.kwargs["margin"]
        assert margin == {"top": "20mm", "right": "15mm", "bottom": "20mm", "left": "15mm"}
        fake.browser.close.assert_awaited_once()

    def test_one_session_per_render(self):
        fake = make_playwright()
        renderer = ReflowRenderer(Settings(), playwright_factory=fake.factory)

        async def go():
            return await asyncio.gather(*(renderer.render(f"doc {n}") for n in range(3)))

        assert asyncio.run(go()) == [FAKE_PDF] * 3
        assert fake.factory.call_count == 3
        assert fake.browser.close.await_count == 3

    def test_concurrent_sessions_are_bounded(self):
        fake = make_playwright()
        active = 0
        peak = 0

        async def pdf(**kwargs):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return FAKE_PDF

        fake.page.pdf = pdf
        renderer = ReflowRenderer(Settings(max_concurrent_sessions=2), playwright_factory=fake.factory)

        async def go():
            return await asyncio.gather(*(renderer.render(f"doc {n}") for n in range(6)))

        assert len(asyncio.run(go())) == 6
        assert peak == 2

    def test_failure_propagates_after_release(self):
        fake = make_playwright()
        fake.page.pdf = AsyncMock(side_effect=RuntimeError("target closed"))
        renderer = ReflowRenderer(Settings(), playwright_factory=fake.factory)

        with pytest.raises(RenderError, match="target closed"):
            asyncio.run(renderer.render("# Hi"))

        fake.browser.close.assert_awaited_once()


class TestBuildRenderer:
    """Strategy selection from settings."""

    def test_direct(self):
        assert isinstance(build_renderer(Settings(renderer="direct")), DirectDrawRenderer)

    def test_reflow(self):
        renderer = build_renderer(Settings(renderer="reflow"))
        assert isinstance(renderer, ReflowRenderer)
        assert renderer.name == "reflow"
