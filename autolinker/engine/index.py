"""Coordinator for the link-insertion pipeline."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Sequence, Tuple

from .cache import RenderCache
from .errors import DocumentError, NormalizationError, RenderTimeout, UtmError
from .matcher import Candidate, find_candidates, parse_chunk
from .renderer import Placement, render
from .rules import ContentResolver, PreparedRule, prepare_rules
from .segmenter import split_document
from .selector import CapState, select
from .types import Document, PlacementRecord, RenderResult, RenderWarning, Rule, RuleSetSnapshot
from .utm import apply_utm, build_tokens

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplacementSummary:
    """Placements grouped by rule, keyword and destination."""

    rule_id: str
    rule: str
    keyword: str
    url: str
    count: int


@dataclass(frozen=True)
class PreviewResult:
    content: str
    replacements: Tuple[ReplacementSummary, ...] = ()
    warnings: Tuple[RenderWarning, ...] = ()


def render_document(
    document: Document,
    snapshot: RuleSetSnapshot,
    *,
    resolver: ContentResolver | None = None,
    cache: RenderCache | None = None,
    timeout: float | None = None,
) -> RenderResult:
    """Return ``document`` rewritten with the snapshot's links.

    Configuration, matching, UTM and cache problems are reported as warnings
    on the result. Only a document without content raises
    (:class:`DocumentError`), and a render that runs past ``timeout``
    seconds raises :class:`RenderTimeout` without caching anything.
    """

    _validate(document)

    def compute() -> RenderResult:
        prepared, warnings = prepare_rules(snapshot, document, resolver)
        return _render(document, snapshot, prepared, warnings, timeout)

    if cache is None or not snapshot.settings.cache_rendered_content:
        return compute()

    key = cache.build_key(document.id, document.fingerprint, snapshot.version)
    result, cache_warnings = cache.get_or_compute(key, compute)
    if cache_warnings:
        result = replace(result, warnings=result.warnings + tuple(cache_warnings))
    return result


def preview(
    rule: Rule,
    document: Document,
    snapshot: RuleSetSnapshot,
    *,
    resolver: ContentResolver | None = None,
) -> PreviewResult:
    """Render ``document`` with ``rule`` alone, whatever its status.

    The rule does not need to be part of the snapshot; the snapshot only
    provides settings, categories and templates. The cache is bypassed.
    """

    _validate(document)
    if not document.content.strip():
        return PreviewResult(content=document.content)

    prepared, warnings = prepare_rules(snapshot, document, resolver, rules=[rule], include_inactive=True)
    result = _render(document, snapshot, prepared, warnings, None)
    return PreviewResult(
        content=result.content,
        replacements=tuple(summarize_placements(result.placements, [rule])),
        warnings=result.warnings,
    )


def summarize_placements(
    records: Iterable[PlacementRecord],
    rules: Sequence[Rule] = (),
) -> List[ReplacementSummary]:
    """Group placements by (rule, keyword, url) and count them.

    Keywords are grouped case-insensitively; the first spelling seen wins.
    Groups keep the order of their first placement.
    """

    titles = {rule.id: rule.title for rule in rules}
    groups: Dict[Tuple[str, str, str], Dict[str, object]] = {}
    for record in records:
        key = (record.rule_id, record.keyword.casefold(), record.url)
        entry = groups.setdefault(
            key,
            {
                "rule_id": record.rule_id,
                "rule": titles.get(record.rule_id, ""),
                "keyword": record.keyword,
                "url": record.url,
                "count": 0,
            },
        )
        entry["count"] = int(entry["count"]) + 1  # type: ignore[call-overload]
    return [ReplacementSummary(**entry) for entry in groups.values()]  # type: ignore[arg-type]


def _validate(document: Document) -> None:
    if document is None or not isinstance(document.content, str):
        raise DocumentError("document has no content")


def _render(
    document: Document,
    snapshot: RuleSetSnapshot,
    prepared: Sequence[PreparedRule],
    warnings: List[RenderWarning],
    timeout: float | None,
) -> RenderResult:
    settings = snapshot.settings
    deadline = time.monotonic() + timeout if timeout is not None else None

    pieces: List[str] = []
    records: List[PlacementRecord] = []
    state = CapState()
    offset = 0

    for chunk in split_document(document.content, settings):
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning("Render of document %s timed out at chunk %d", document.id, chunk.index)
            raise RenderTimeout(f"render of document {document.id!r} exceeded {timeout}s")

        parsed = parse_chunk(chunk.content, base_offset=offset, chunk_index=chunk.index)
        offset += parsed.length

        try:
            candidates = find_candidates(parsed.segments, prepared, settings)
        except NormalizationError as exc:
            logger.warning("Leaving chunk %d of document %s unlinked: %s", chunk.index, document.id, exc)
            warnings.append(RenderWarning(kind="matching", message=str(exc), chunk=chunk.index))
            pieces.append(chunk.content)
            continue

        selection = select(candidates, settings, state)
        state = selection.state
        if not selection.accepted:
            pieces.append(chunk.content)
            continue

        placements = [
            Placement(candidate=candidate, url=_final_url(candidate, document, snapshot, warnings, chunk.index))
            for candidate in selection.accepted
        ]
        html, chunk_records = render(parsed, placements)
        pieces.append(html)
        records.extend(chunk_records)

    return RenderResult(
        content="".join(pieces),
        placements=tuple(records),
        warnings=tuple(warnings),
        ruleset_version=snapshot.version,
    )


def _final_url(
    candidate: Candidate,
    document: Document,
    snapshot: RuleSetSnapshot,
    warnings: List[RenderWarning],
    chunk_index: int,
) -> str:
    rule = candidate.rule
    category = rule.category
    tokens = build_tokens(
        keyword=candidate.keyword,
        rule_id=rule.id,
        category=(category.name or category.id) if category else "",
        document_id=document.id,
        content_type=document.content_type,
        site_name=snapshot.site_name,
    )
    try:
        return apply_utm(
            rule.url,
            rule.template,
            is_internal=rule.is_internal,
            rule_apply_to=rule.rule.utm_apply_to,
            tokens=tokens,
        )
    except UtmError as exc:
        logger.warning("Linking rule %s without UTM parameters: %s", rule.id, exc)
        warnings.append(RenderWarning(kind="utm", message=str(exc), rule_id=rule.id, chunk=chunk_index))
        return rule.url
