"""Rewrite parsed chunks with the accepted links."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag  # type: ignore

from .matcher import Candidate, ParsedChunk
from .types import LinkAttributes, PlacementRecord


@dataclass(frozen=True)
class Placement:
    """An accepted candidate with its final destination URL."""

    candidate: Candidate
    url: str

    def record(self) -> PlacementRecord:
        candidate = self.candidate
        return PlacementRecord(
            rule_id=candidate.rule_id,
            category_id=candidate.category_id,
            keyword=candidate.keyword,
            text=candidate.text,
            start=candidate.start,
            end=candidate.end,
            url=self.url,
        )


def build_anchor(soup: BeautifulSoup, text: str, url: str, attributes: LinkAttributes) -> Tag:
    """Create the ``<a>`` element for one placement."""

    anchor = soup.new_tag("a", attrs={"href": url})
    if attributes.title:
        anchor["title"] = attributes.title
    rel = []
    if attributes.nofollow:
        rel.append("nofollow")
    if attributes.new_tab:
        anchor["target"] = "_blank"
        rel.append("noopener")
    if rel:
        anchor["rel"] = " ".join(rel)
    anchor.string = text
    return anchor


def render(chunk: ParsedChunk, placements: Sequence[Placement]) -> Tuple[str, List[PlacementRecord]]:
    """Insert ``placements`` into ``chunk`` and return the markup and report.

    Placements are spliced back to front so that the offsets of earlier
    placements in the same text node stay valid. The report is returned in
    document order.
    """

    pending: Dict[int, Tuple[NavigableString, str]] = {}
    ordered = sorted(placements, key=lambda item: item.candidate.start, reverse=True)

    for placement in ordered:
        candidate = placement.candidate
        node = candidate.segment.node
        _, remaining = pending.get(id(node), (node, str(node)))

        after = remaining[candidate.local_end:]
        if after:
            node.insert_after(NavigableString(after))
        node.insert_after(build_anchor(chunk.soup, candidate.text, placement.url, candidate.rule.rule.attributes))
        pending[id(node)] = (node, remaining[: candidate.local_start])

    for node, prefix in pending.values():
        if prefix:
            node.replace_with(NavigableString(prefix))
        else:
            node.extract()

    records = [placement.record() for placement in reversed(ordered)]
    return str(chunk.soup), records
