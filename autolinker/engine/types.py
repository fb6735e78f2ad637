"""Typed data structures used by the link-insertion pipeline."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

HEADING_LEVELS = ("h1", "h2", "h3", "h4", "h5", "h6")
HEADING_BEHAVIORS = ("none", "selected", "all")
APPLY_TO_VALUES = ("internal", "external", "both")
APPEND_MODES = ("append_if_missing", "always_overwrite", "never")
UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")


@dataclass(frozen=True)
class Destination:
    """Where a rule links to: an internal content reference or a URL."""

    kind: str = "url"
    url: str = ""
    reference: Optional[str] = None


@dataclass(frozen=True)
class LinkAttributes:
    nofollow: bool = False
    new_tab: bool = False
    title: str = ""


@dataclass(frozen=True)
class RuleScope:
    """Documents a rule is allowed to touch.

    Empty ``content_types`` or ``whitelist`` means "any". URL patterns are
    matched against the lower-cased path (plus query) of the document URL;
    ``*`` matches within one path segment and ``**`` matches anything.
    """

    content_types: Tuple[str, ...] = ()
    whitelist: Tuple[str, ...] = ()
    blacklist: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Rule:
    """A keyword-to-destination linking directive."""

    id: str
    title: str
    keywords: Tuple[str, ...]
    destination: Destination
    category_id: Optional[str] = None
    utm_template: str = "inherit"
    utm_apply_to: str = "both"
    attributes: LinkAttributes = field(default_factory=LinkAttributes)
    max_per_page: int = 1
    max_per_block: Optional[int] = None
    heading_behavior: Optional[str] = None
    heading_levels: Optional[FrozenSet[str]] = None
    scope: RuleScope = field(default_factory=RuleScope)
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    color: str = ""
    default_utm: Optional[str] = None
    category_cap: int = 0


@dataclass(frozen=True)
class UTMTemplate:
    """Reusable campaign-tracking parameters and their merge policy."""

    id: str
    name: str
    utm_source: str = ""
    utm_medium: str = ""
    utm_campaign: str = ""
    utm_term: str = ""
    utm_content: str = ""
    apply_to: str = "both"
    append_mode: str = "append_if_missing"

    def parameters(self) -> Dict[str, str]:
        """Return the template's non-empty ``utm_*`` values in canonical order."""

        values = {name: getattr(self, name) for name in UTM_FIELDS}
        return {name: value for name, value in values.items() if value}


@dataclass(frozen=True)
class EngineSettings:
    """Global engine behaviour shared by every rule in a snapshot."""

    default_max_links_per_page: int = 0
    heading_behavior: str = "none"
    heading_levels: FrozenSet[str] = frozenset({"h2", "h3"})
    avoid_existing_links: bool = True
    prefer_word_boundaries: bool = True
    normalize_accents: bool = False
    cache_rendered_content: bool = True
    chunk_long_documents: bool = True
    default_utm_template: Optional[str] = None
    chunk_threshold: int = 120000


@dataclass(frozen=True)
class RuleSetSnapshot:
    """Immutable, versioned bundle of configuration for one render call."""

    version: str
    rules: Tuple[Rule, ...] = ()
    categories: Dict[str, Category] = field(default_factory=dict)
    templates: Dict[str, UTMTemplate] = field(default_factory=dict)
    settings: EngineSettings = field(default_factory=EngineSettings)
    site_host: str = ""
    site_name: str = ""


@dataclass(frozen=True)
class Document:
    """A piece of content to be linked."""

    id: str
    content: str
    content_hash: str = ""
    url: str = ""
    content_type: str = ""

    @property
    def fingerprint(self) -> str:
        """Return the supplied content hash or a sha256 of the content."""

        if self.content_hash:
            return self.content_hash
        return hashlib.sha256(self.content.encode("utf-8", "surrogatepass")).hexdigest()


@dataclass(frozen=True)
class PlacementRecord:
    """One inserted link.

    ``start``/``end`` index into the original document markup, so
    ``content[start:end]`` is the linked text as written.
    """

    rule_id: str
    category_id: Optional[str]
    keyword: str
    text: str
    start: int
    end: int
    url: str


@dataclass(frozen=True)
class RenderWarning:
    kind: str
    message: str
    rule_id: Optional[str] = None
    chunk: Optional[int] = None


@dataclass(frozen=True)
class RenderResult:
    content: str
    placements: Tuple[PlacementRecord, ...] = ()
    warnings: Tuple[RenderWarning, ...] = ()
    ruleset_version: str = ""
