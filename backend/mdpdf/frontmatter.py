from __future__ import annotations

import re

_FENCE = "---"
_KEY_RE = re.compile(r"^([A-Za-z0-9_-]+):\s*(.*)$")


def _strip_quotes(value: str) -> str:
    text = str(value or "").strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        text = text[1:-1]
    return text.strip()


def split_front_matter(markdown: str) -> tuple[str | None, str]:
    """Split a leading ``---`` fenced block from the document.

    Returns ``(block, body)``. ``block`` is ``None`` and ``body`` is the
    untouched input when the document does not open with a fence line or the
    fence is never closed.
    """
    src = str(markdown or "")
    if src.startswith("\ufeff"):
        src = src[1:]
    lines = src.splitlines(keepends=True)
    if not lines or lines[0].strip() != _FENCE:
        return None, markdown
    end_idx = None
    for idx in range(1, len(lines)):
        if lines[idx].strip() == _FENCE:
            end_idx = idx
            break
    if end_idx is None:
        return None, markdown
    block = "".join(lines[1:end_idx])
    rest = lines[end_idx + 1 :]
    while rest and not rest[0].strip():
        rest = rest[1:]
    return block, "".join(rest)


def strip_front_matter(markdown: str) -> str:
    _, body = split_front_matter(markdown)
    return body


def parse_front_matter(block: str | None) -> dict[str, str]:
    meta: dict[str, str] = {}
    for raw in str(block or "").splitlines():
        m = _KEY_RE.match(raw)
        if not m:
            continue
        value = _strip_quotes(m.group(2))
        if value:
            meta[m.group(1).strip()] = value
    return meta
