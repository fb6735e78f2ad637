"""Turn snapshot rules into runtime rules for one document."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlsplit

from .errors import NormalizationError
from .text import normalize_keyword
from .types import Category, Document, Rule, RuleSetSnapshot, RenderWarning, UTMTemplate
from .utm import classify_destination, resolve_template

logger = logging.getLogger(__name__)


class ContentResolver(Protocol):
    """Resolves internal content references to concrete URLs."""

    def resolve(self, reference: str) -> Optional[str]:
        ...


class MappingResolver:
    """Resolver backed by a plain ``reference -> url`` mapping."""

    def __init__(self, mapping: Dict[str, str] | None = None) -> None:
        self._mapping = {str(key): str(value) for key, value in (mapping or {}).items()}

    def resolve(self, reference: str) -> Optional[str]:
        return self._mapping.get(str(reference))


@dataclass(frozen=True)
class PreparedRule:
    """A validated rule ready for matching.

    ``keywords`` holds ``(configured, normalized)`` pairs, longest first.
    """

    rule: Rule
    index: int
    keywords: Tuple[Tuple[str, str], ...]
    url: str
    is_internal: bool
    category: Optional[Category]
    template: Optional[UTMTemplate]

    @property
    def id(self) -> str:
        return self.rule.id

    @property
    def category_id(self) -> Optional[str]:
        return self.category.id if self.category else None

    @property
    def cap(self) -> int:
        """Effective per-page cap; a configured 0 still allows one link."""

        return max(self.rule.max_per_page, 1)

    def heading_policy(self, behavior: str, levels: FrozenSet[str]) -> Tuple[str, FrozenSet[str]]:
        """Return the heading policy for this rule given the global one."""

        rule_behavior = self.rule.heading_behavior or behavior
        if rule_behavior == "selected" and self.rule.heading_levels:
            return rule_behavior, self.rule.heading_levels
        return rule_behavior, levels


def prepare_rules(
    snapshot: RuleSetSnapshot,
    document: Document,
    resolver: ContentResolver | None = None,
    *,
    rules: Sequence[Rule] | None = None,
    include_inactive: bool = False,
) -> Tuple[List[PreparedRule], List[RenderWarning]]:
    """Validate the snapshot's rules against ``document``.

    Invalid active rules are skipped with a ``configuration`` warning instead
    of aborting the render; inactive rules and rules scoped away from the
    document are skipped silently.
    """

    settings = snapshot.settings
    prepared: List[PreparedRule] = []
    warnings: List[RenderWarning] = []
    source = snapshot.rules if rules is None else rules

    for index, rule in enumerate(source):
        if not rule.is_active and not include_inactive:
            continue

        keywords = _prepare_keywords(rule.keywords, settings.normalize_accents)
        if not keywords:
            warnings.append(_config_warning(rule, "rule has no usable keywords"))
            continue

        url = _resolve_destination(rule, resolver)
        if not url:
            warnings.append(_config_warning(rule, "destination could not be resolved"))
            continue

        if not matches_scope(rule, document):
            continue

        category = None
        if rule.category_id:
            category = snapshot.categories.get(rule.category_id)
            if category is None:
                warnings.append(_config_warning(rule, f"unknown category '{rule.category_id}'"))

        if rule.utm_template != "inherit" and rule.utm_template not in snapshot.templates:
            warnings.append(_config_warning(rule, f"unknown UTM template '{rule.utm_template}'"))
        template = resolve_template(rule, category, snapshot.templates, settings.default_utm_template)

        prepared.append(
            PreparedRule(
                rule=rule,
                index=index,
                keywords=keywords,
                url=url,
                is_internal=classify_destination(rule.destination, url, snapshot.site_host),
                category=category,
                template=template,
            )
        )

    return prepared, warnings


def matches_scope(rule: Rule, document: Document) -> bool:
    """Return True when ``rule`` is allowed to link inside ``document``."""

    scope = rule.scope
    if scope.content_types and document.content_type not in scope.content_types:
        return False

    normalized = normalize_url_for_match(document.url)
    whitelist = [pattern for pattern in scope.whitelist if pattern.strip()]
    if whitelist and not any(url_matches_pattern(normalized, pattern) for pattern in whitelist):
        return False
    return not any(url_matches_pattern(normalized, pattern) for pattern in scope.blacklist if pattern.strip())


def normalize_url_for_match(url: str) -> str:
    """Reduce a URL to its lower-cased path and query."""

    if not url:
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url.lower()
    if parts.scheme and parts.scheme.lower() not in {"http", "https"}:
        return url
    path = parts.path or "/"
    query = f"?{parts.query}" if parts.query else ""
    return f"{path}{query}".lower()


def url_matches_pattern(url: str, pattern: str) -> bool:
    """Wildcard match where ``*`` stays inside a segment and ``**`` spans them."""

    pattern = pattern.strip()
    if not pattern:
        return False
    if pattern.startswith("http"):
        pattern = normalize_url_for_match(pattern)
    pieces = []
    for chunk in re.split(r"(\*\*|\*)", pattern.lower()):
        if chunk == "**":
            pieces.append(".*")
        elif chunk == "*":
            pieces.append("[^/]*")
        else:
            pieces.append(re.escape(chunk))
    return re.fullmatch("".join(pieces), url) is not None


def _prepare_keywords(keywords: Sequence[str], fold_accents: bool) -> Tuple[Tuple[str, str], ...]:
    seen: Dict[str, str] = {}
    for keyword in keywords:
        cleaned = " ".join(str(keyword).split())
        if not cleaned:
            continue
        try:
            key = normalize_keyword(cleaned, fold_accents)
        except NormalizationError:
            continue
        if key and key not in seen:
            seen[key] = cleaned
    ordered = sorted(seen.items(), key=lambda item: -len(item[0]))
    return tuple((configured, key) for key, configured in ordered)


def _resolve_destination(rule: Rule, resolver: ContentResolver | None) -> str:
    destination = rule.destination
    if destination.kind == "content":
        if not destination.reference or resolver is None:
            return ""
        return (resolver.resolve(destination.reference) or "").strip()
    return destination.url.strip()


def _config_warning(rule: Rule, message: str) -> RenderWarning:
    logger.warning("Rule %s: %s", rule.id, message)
    return RenderWarning(kind="configuration", message=message, rule_id=rule.id)
