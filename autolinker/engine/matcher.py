"""Keyword matching over the text nodes of an HTML chunk."""

from __future__ import annotations

import html as html_lib
import re
from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag  # type: ignore
from bs4.element import PreformattedString  # type: ignore

from .rules import PreparedRule
from .text import is_word_char, normalize
from .types import HEADING_LEVELS, EngineSettings

# Containers whose text is never linked, regardless of settings.
PROTECTED_TAGS = {"code", "pre", "script", "style", "textarea", "kbd", "samp"}

# Elements that delimit a "block" for per-block limits.
BLOCK_TAGS = {
    "p",
    "li",
    "dd",
    "dt",
    "blockquote",
    "td",
    "th",
    "figcaption",
    "caption",
    *HEADING_LEVELS,
}

# Tags that do not break a word when they sit between two text nodes.
INLINE_TAGS = {
    "a",
    "abbr",
    "b",
    "bdi",
    "bdo",
    "cite",
    "code",
    "data",
    "del",
    "dfn",
    "em",
    "font",
    "i",
    "ins",
    "kbd",
    "mark",
    "q",
    "s",
    "samp",
    "small",
    "span",
    "strong",
    "sub",
    "sup",
    "time",
    "u",
    "var",
}

# Elements whose content html.parser passes through without decoding.
CDATA_TAGS = {"script", "style"}

MARKUP_RE = re.compile(
    r"<!--.*?(?:-->|\Z)"
    r"|<![^>]*>"
    r"|<\?[^>]*>"
    r"|<(/?)([a-zA-Z][^\s/>]*)(?:[^>\"']|\"[^\"]*\"|'[^']*')*>",
    re.DOTALL,
)
ENTITY_RE = re.compile(r"&(?:#[0-9]+;?|#[xX][0-9a-fA-F]+;?|[a-zA-Z][a-zA-Z0-9]*;?)")

Span = Tuple[int, int]


@dataclass(frozen=True)
class TextSegment:
    """A text node plus the context the matcher needs to judge it.

    ``source`` holds, for every character of ``text``, the ``[start, end)``
    range it was decoded from in the document; an entity covers all of its
    characters. It is ``None`` when the node could not be located in the
    markup. ``before``/``after`` are the visible characters adjoining the
    node across inline tags, or ``""`` at a block or document edge.
    """

    node: NavigableString = field(compare=False, repr=False)
    text: str
    offset: int
    heading: Optional[str]
    in_link: bool
    protected: bool
    block: Tuple[int, int]
    source: Optional[Tuple[Span, ...]] = field(default=None, compare=False, repr=False)
    before: str = ""
    after: str = ""

    def source_span(self, start: int, end: int) -> Optional[Span]:
        if self.source is None or start >= end:
            return None
        return self.source[start][0], self.source[end - 1][1]


@dataclass(frozen=True)
class ParsedChunk:
    soup: BeautifulSoup = field(compare=False, repr=False)
    segments: Tuple[TextSegment, ...]
    length: int


@dataclass(frozen=True)
class Candidate:
    """A keyword occurrence that may become a link.

    ``start``/``end`` are offsets into the document markup; ``local_start``
    and ``local_end`` index into the segment's text node.
    """

    rule: PreparedRule = field(compare=False, repr=False)
    keyword: str
    text: str
    start: int
    end: int
    local_start: int
    local_end: int
    block: Tuple[int, int]
    segment: TextSegment = field(compare=False, repr=False)

    @property
    def rule_id(self) -> str:
        return self.rule.id

    @property
    def category_id(self) -> Optional[str]:
        return self.rule.category_id


def parse_chunk(html: str, *, base_offset: int = 0, chunk_index: int = 0) -> ParsedChunk:
    """Parse ``html`` and collect its text segments.

    ``base_offset`` is the position of ``html`` in the whole document, so
    segment offsets point into the document markup.
    """

    soup = BeautifulSoup(html, "html.parser")
    decoded, spans = source_map(html)
    segments: List[TextSegment] = []
    block_ids: Dict[int, int] = {}
    cursor = 0

    for node in soup.descendants:
        if not isinstance(node, NavigableString) or isinstance(node, PreformattedString):
            continue
        text = str(node)
        heading, in_link, protected, block = _node_context(node)
        if block is None:
            block_key = (chunk_index, 0)
        else:
            block_key = (chunk_index, block_ids.setdefault(id(block), len(block_ids) + 1))

        source = None
        position = cursor if decoded.startswith(text, cursor) else decoded.find(text, cursor)
        if position != -1:
            window = spans[position : position + len(text)]
            source = tuple((start + base_offset, end + base_offset) for start, end in window)
            cursor = position + len(text)
        if source:
            offset = source[0][0]
        else:
            offset = base_offset + (spans[cursor][0] if cursor < len(spans) else len(html))

        segments.append(
            TextSegment(
                node=node,
                text=text,
                offset=offset,
                heading=heading,
                in_link=in_link,
                protected=protected,
                block=block_key,
                source=source,
            )
        )

    return ParsedChunk(soup=soup, segments=_with_neighbours(segments, html, base_offset), length=len(html))


def source_map(html: str) -> Tuple[str, List[Span]]:
    """Return the text content of ``html`` and each character's source range.

    Markup, comments and declarations contribute nothing; character
    references are decoded and every resulting character maps to the whole
    reference. The content of ``script`` and ``style`` is taken verbatim.
    """

    chars: List[str] = []
    spans: List[Span] = []
    position = 0
    length = len(html)

    while position < length:
        char = html[position]
        if char == "<":
            match = MARKUP_RE.match(html, position)
            if match:
                position = match.end()
                name = (match.group(2) or "").lower()
                if name in CDATA_TAGS and not match.group(1):
                    closing = re.compile(rf"</{name}\s*>", re.IGNORECASE).search(html, position)
                    stop = closing.start() if closing else length
                    chars.append(html[position:stop])
                    spans.extend((index, index + 1) for index in range(position, stop))
                    position = stop
                continue
        elif char == "&":
            match = ENTITY_RE.match(html, position)
            if match:
                decoded = html_lib.unescape(match.group())
                chars.append(decoded)
                spans.extend((match.start(), match.end()) for _ in decoded)
                position = match.end()
                continue
        chars.append(char)
        spans.append((position, position + 1))
        position += 1

    return "".join(chars), spans


def find_candidates(
    segments: Sequence[TextSegment],
    rules: Sequence[PreparedRule],
    settings: EngineSettings,
) -> List[Candidate]:
    """Return every eligible keyword occurrence in document order.

    Ties at the same start offset go to the rule listed first in the
    snapshot, then to the longer match. Raises
    :class:`~autolinker.engine.errors.NormalizationError` for text that
    cannot be normalized; the caller decides what to do with the chunk.
    """

    candidates: List[Candidate] = []
    if not rules:
        return candidates

    for segment in segments:
        if segment.protected or segment.source is None or not segment.text.strip():
            continue
        if segment.in_link and settings.avoid_existing_links:
            continue

        normalized = normalize(segment.text, settings.normalize_accents)
        for rule in rules:
            if segment.heading and not _heading_allowed(rule, segment.heading, settings):
                continue

            seen_spans = set()
            for keyword, needle in rule.keywords:
                for start in _find_all(normalized.text, needle):
                    end = start + len(needle)
                    if settings.prefer_word_boundaries and not _on_word_boundaries(segment, normalized.text, start, end):
                        continue
                    span = normalized.original_span(start, end)
                    if span is None or span in seen_spans:
                        continue
                    seen_spans.add(span)
                    local_start, local_end = span
                    document_start, document_end = segment.source_span(local_start, local_end)
                    candidates.append(
                        Candidate(
                            rule=rule,
                            keyword=keyword,
                            text=segment.text[local_start:local_end],
                            start=document_start,
                            end=document_end,
                            local_start=local_start,
                            local_end=local_end,
                            block=segment.block,
                            segment=segment,
                        )
                    )

    candidates.sort(key=lambda item: (item.start, item.rule.index, -(item.end - item.start)))
    return candidates


def _node_context(node: NavigableString) -> Tuple[Optional[str], bool, bool, Optional[Tag]]:
    heading = None
    in_link = False
    protected = False
    block = None
    for parent in node.parents:
        name = (parent.name or "").lower()
        if name in HEADING_LEVELS and heading is None:
            heading = name
        if name == "a":
            in_link = True
        if name in PROTECTED_TAGS:
            protected = True
        if name in BLOCK_TAGS and block is None:
            block = parent
    return heading, in_link, protected, block


def _with_neighbours(segments: List[TextSegment], html: str, base_offset: int) -> Tuple[TextSegment, ...]:
    """Fill in the characters adjoining each segment across inline markup."""

    result = list(segments)
    previous: Optional[int] = None
    for index, segment in enumerate(segments):
        if not segment.text:
            continue
        if segment.source is None:
            previous = None
            continue
        if previous is not None:
            neighbour = result[previous]
            gap = html[neighbour.source[-1][1] - base_offset : segment.source[0][0] - base_offset]  # type: ignore[index]
            if _inline_gap(gap):
                result[previous] = replace(neighbour, after=segment.text[0])
                result[index] = replace(segment, before=neighbour.text[-1])
        previous = index
    return tuple(result)


def _inline_gap(markup: str) -> bool:
    for match in MARKUP_RE.finditer(markup):
        name = match.group(2)
        if name is not None and name.lower() not in INLINE_TAGS:
            return False
    return True


def _heading_allowed(rule: PreparedRule, level: str, settings: EngineSettings) -> bool:
    behavior, levels = rule.heading_policy(settings.heading_behavior, settings.heading_levels)
    if behavior == "all":
        return True
    if behavior == "selected":
        return level in levels
    return False


def _find_all(haystack: str, needle: str) -> Iterator[int]:
    position = haystack.find(needle)
    while position != -1:
        yield position
        position = haystack.find(needle, position + 1)


def _on_word_boundaries(segment: TextSegment, text: str, start: int, end: int) -> bool:
    before = text[start - 1] if start > 0 else segment.before
    after = text[end] if end < len(text) else segment.after
    if before and is_word_char(before):
        return False
    if after and is_word_char(after):
        return False
    return True
