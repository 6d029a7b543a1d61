from __future__ import annotations

import asyncio
import html
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from bs4 import BeautifulSoup
from playwright.async_api import async_playwright

from .browser import BrowserSession, PageOptions
from .canvas import FpdfCanvas
from .config import Settings
from .layout import DirectDrawLayout
from .logging_utils import get_logger
from .tokenizer import render_html, tokenize

log = get_logger(__name__)

Logger = logging.Logger | logging.LoggerAdapter

REFLOW_PAGE = PageOptions(format="A4", print_background=True)

STYLESHEET = """
body {
  font-family: Arial, sans-serif;
  padding: 40px;
  max-width: 800px;
  margin: auto;
  line-height: 1.6;
  color: #111;
}
h1, h2, h3, h4, h5, h6 {
  margin-top: 24px;
  margin-bottom: 12px;
  line-height: 1.25;
}
p {
  margin-bottom: 12px;
}
pre {
  background: #f4f4f4;
  padding: 12px;
  border-radius: 4px;
  overflow-x: auto;
  white-space: pre-wrap;
  word-wrap: break-word;
}
code {
  background: #f4f4f4;
  padding: 2px 6px;
  border-radius: 3px;
  font-family: "DejaVu Sans Mono", Menlo, Consolas, monospace;
}
pre code {
  padding: 0;
  background: none;
}
blockquote {
  margin: 12px 0;
  padding: 4px 16px;
  color: #555;
  border-left: 4px solid #ddd;
}
table {
  border-collapse: collapse;
  margin: 12px 0;
  width: 100%;
}
th, td {
  border: 1px solid #ccc;
  padding: 6px 10px;
  text-align: left;
}
th {
  background: #f0f0f0;
}
hr {
  border: none;
  border-top: 1px solid #ccc;
  margin: 24px 0;
}
img {
  max-width: 100%;
}
a {
  color: #005bbb;
}
"""

_HTML_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>{title}</title>
    <style>{css}</style>
  </head>
  <body>
{body}
  </body>
</html>
"""

_UNSAFE_TAGS = ["script", "iframe", "object", "embed", "frame", "frameset", "base", "meta"]
_URL_ATTRS = {"href", "src", "action", "formaction", "xlink:href"}


def sanitize_html(fragment: str) -> str:
    soup = BeautifulSoup(fragment, "html.parser")
    for tag in soup.find_all(_UNSAFE_TAGS):
        tag.decompose()
    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            key = attr.lower()
            if key.startswith("on"):
                del tag.attrs[attr]
            elif key in _URL_ATTRS and str(tag.attrs[attr]).strip().lower().startswith("javascript:"):
                del tag.attrs[attr]
    return str(soup)


def build_document(markdown: str, title: str | None = None) -> str:
    body = sanitize_html(render_html(markdown))
    return _HTML_TEMPLATE.format(title=html.escape(title or "Document"), css=STYLESHEET, body=body)


class Renderer(ABC):
    name: str = ""

    @abstractmethod
    async def render(self, markdown: str, *, title: str | None = None, logger: Logger | None = None) -> bytes:
        """Turn frontmatter-free Markdown into PDF bytes."""


class DirectDrawRenderer(Renderer):
    name = "direct"

    def render_document(self, markdown: str, *, title: str | None = None, record: bool = False) -> tuple[bytes, FpdfCanvas]:
        tokens = tokenize(markdown)
        canvas = FpdfCanvas(title=title, record=record)
        DirectDrawLayout(canvas).render(tokens)
        return canvas.output(), canvas

    async def render(self, markdown: str, *, title: str | None = None, logger: Logger | None = None) -> bytes:
        logger = logger or log
        pdf_bytes, canvas = await asyncio.to_thread(self.render_document, markdown, title=title)
        logger.info("Direct-draw render finished: %d page(s), %d bytes", canvas.page_count, len(pdf_bytes))
        return pdf_bytes


class ReflowRenderer(Renderer):
    name = "reflow"

    def __init__(self, settings: Settings, *, playwright_factory: Callable[[], Any] = async_playwright) -> None:
        self.settings = settings
        self._factory = playwright_factory
        self._sessions = asyncio.Semaphore(settings.max_concurrent_sessions)

    async def render(self, markdown: str, *, title: str | None = None, logger: Logger | None = None) -> bytes:
        logger = logger or log
        document = build_document(markdown, title)
        async with self._sessions:
            async with BrowserSession(self.settings, playwright_factory=self._factory, logger=logger) as session:
                pdf_bytes = await session.render_pdf(document, REFLOW_PAGE)
        logger.info("Reflow render finished: %d bytes", len(pdf_bytes))
        return pdf_bytes


def build_renderer(settings: Settings, *, playwright_factory: Callable[[], Any] = async_playwright) -> Renderer:
    if settings.renderer == "direct":
        return DirectDrawRenderer()
    return ReflowRenderer(settings, playwright_factory=playwright_factory)
