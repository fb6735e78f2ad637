"""Split long documents into block-aligned chunks."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

from .types import EngineSettings

# Closing tags after which a document may be cut.
SPLIT_AFTER = {
    "p",
    "li",
    "ul",
    "ol",
    "blockquote",
    "div",
    "section",
    "article",
    "table",
    "figure",
    "pre",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
}

VOID_TAGS = {
    "area",
    "base",
    "br",
    "col",
    "embed",
    "hr",
    "img",
    "input",
    "link",
    "meta",
    "param",
    "source",
    "track",
    "wbr",
}

RAW_TEXT_TAGS = {"script", "style", "textarea"}

TAG_RE = re.compile(r"<!--.*?-->|<(/?)([a-zA-Z][a-zA-Z0-9]*)\b[^>]*?(/?)>", re.DOTALL)


@dataclass(frozen=True)
class Chunk:
    index: int
    content: str


def split_document(content: str, settings: EngineSettings) -> List[Chunk]:
    """Split ``content`` at block boundaries when it exceeds the threshold.

    Pieces are packed so that every chunk but the last holds at least half
    the threshold. ``"".join(chunk.content for chunk in chunks) == content``.
    """

    threshold = settings.chunk_threshold
    if not settings.chunk_long_documents or threshold <= 0 or len(content) <= threshold:
        return [Chunk(index=0, content=content)]

    minimum = max(threshold // 2, 1)
    chunks: List[Chunk] = []
    start = 0
    for cut in block_boundaries(content):
        if cut - start >= minimum:
            chunks.append(Chunk(index=len(chunks), content=content[start:cut]))
            start = cut
    if start < len(content) or not chunks:
        chunks.append(Chunk(index=len(chunks), content=content[start:]))
    return chunks


def block_boundaries(content: str) -> List[int]:
    """Offsets right after a block closing tag that leaves no element open.

    Cutting only at depth zero keeps every chunk well formed, so links,
    headings and preformatted blocks are never split.
    """

    cuts: List[int] = []
    depth = 0
    raw_text = None

    for match in TAG_RE.finditer(content):
        if match.group(2) is None:
            continue
        closing, name, self_closing = match.group(1), match.group(2).lower(), match.group(3)

        if raw_text is not None:
            if closing and name == raw_text:
                raw_text = None
                depth = max(depth - 1, 0)
            continue

        if name in VOID_TAGS or self_closing:
            continue
        if not closing:
            depth += 1
            if name in RAW_TEXT_TAGS:
                raw_text = name
            continue

        depth = max(depth - 1, 0)
        if depth == 0 and name in SPLIT_AFTER:
            cuts.append(match.end())

    return cuts
