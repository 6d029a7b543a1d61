from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path

from backend.mdpdf.config import RENDERERS, ConfigError, Settings
from backend.mdpdf.errors import RenderError
from backend.mdpdf.frontmatter import parse_front_matter, split_front_matter
from backend.mdpdf.renderers import build_renderer


def log(msg: str) -> None:
    print(msg, file=sys.stderr)


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8-sig", errors="replace")


def default_output(src: Path, renderer: str) -> Path:
    return src.with_name(f"{src.stem}.{renderer}.pdf")


def render_file(src: Path, out: Path, settings: Settings, title: str | None = None) -> int:
    """Render one Markdown file through the service pipeline. Returns the byte count written."""
    block, body = split_front_matter(read_text(src))
    title = title or parse_front_matter(block).get("title") or src.stem
    renderer = build_renderer(settings)
    pdf_bytes = asyncio.run(renderer.render(body, title=title))
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(pdf_bytes)
    return len(pdf_bytes)


def main() -> int:
    ap = argparse.ArgumentParser(description="Render a Markdown file to PDF with the reflow or direct-draw renderer.")
    ap.add_argument("input", type=Path, help="Markdown file to render")
    ap.add_argument("-o", "--output", type=Path, default=None, help="Output PDF path (defaults to <input>.<renderer>.pdf)")
    ap.add_argument("--renderer", choices=RENDERERS, default="direct", help="Rendering strategy")
    ap.add_argument("--title", type=str, default="", help="Document title (defaults to frontmatter title or file name)")
    ap.add_argument("--chromium-path", type=str, default="", help="Chromium executable for the reflow renderer")
    ap.add_argument("--timeout-ms", type=int, default=30000, help="Content load and capture timeout for the reflow renderer")
    args = ap.parse_args()

    src: Path = args.input
    if not src.is_file():
        log(f"Input file not found: {src}")
        return 2

    try:
        settings = Settings(
            renderer=args.renderer,
            chromium_path=args.chromium_path or None,
            content_timeout_ms=args.timeout_ms,
            capture_timeout_ms=args.timeout_ms,
            probe_on_startup=False,
        )
    except ConfigError as e:
        log(str(e))
        return 2

    out: Path = args.output or default_output(src, args.renderer)
    started = time.monotonic()
    try:
        size = render_file(src, out, settings, title=args.title or None)
    except RenderError as e:
        log(f"Failed to generate PDF: {e}")
        return 1
    log(f"Wrote {out} ({size} bytes, {args.renderer}, {time.monotonic() - started:.2f}s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
