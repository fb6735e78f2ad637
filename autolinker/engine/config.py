"""Loading rule-set snapshots from YAML."""

from __future__ import annotations

import copy
import hashlib
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from .errors import SnapshotError
from .types import (
    APPEND_MODES,
    APPLY_TO_VALUES,
    HEADING_BEHAVIORS,
    HEADING_LEVELS,
    Category,
    Destination,
    EngineSettings,
    LinkAttributes,
    Rule,
    RuleScope,
    RuleSetSnapshot,
    UTMTemplate,
)

DEFAULTS: Dict[str, Any] = {
    "version": "",
    "site_host": "",
    "site_name": "",
    "settings": {
        "default_max_links_per_page": 0,
        "heading_behavior": "none",
        "heading_levels": ["h2", "h3"],
        "avoid_existing_links": True,
        "prefer_word_boundaries": True,
        "normalize_accents": False,
        "cache_rendered_content": True,
        "chunk_long_documents": True,
        "default_utm_template": None,
        "chunk_threshold": 120000,
    },
    "categories": [],
    "templates": [],
    "rules": [],
    "content": {},
}


def load_snapshot_data(path: str | Path) -> Tuple[Dict[str, Any], str]:
    """Read a snapshot file and return its data merged with defaults.

    The second item is the file's sha256, used as the version when the file
    does not declare one.
    """

    source = Path(path)
    try:
        raw = source.read_bytes()
    except OSError as exc:
        raise SnapshotError(f"cannot read snapshot {source}: {exc}") from exc
    try:
        user = yaml.safe_load(raw) or {}
    except yaml.YAMLError as exc:
        raise SnapshotError(f"invalid YAML in {source}: {exc}") from exc
    if not isinstance(user, dict):
        raise SnapshotError(f"snapshot {source} must be a mapping")

    data = copy.deepcopy(DEFAULTS)
    merge_into(data, user)
    return data, hashlib.sha256(raw).hexdigest()


def load_snapshot(path: str | Path) -> RuleSetSnapshot:
    """Load a :class:`RuleSetSnapshot` from YAML."""

    data, digest = load_snapshot_data(path)
    return snapshot_from_dict(data, default_version=digest)


def merge_into(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Recursively merge override into base dict."""

    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merge_into(base[key], value)
        else:
            base[key] = value


def snapshot_from_dict(data: Dict[str, Any], default_version: str = "") -> RuleSetSnapshot:
    """Build a snapshot from plain data (as found in a snapshot file)."""

    settings_data = data.get("settings") or {}
    if not isinstance(settings_data, dict):
        raise SnapshotError("'settings' must be a mapping")

    rules_data = _as_list(data.get("rules"), "rules")
    indexed = list(enumerate(rules_data))
    # Higher priority first; snapshot order breaks ties.
    indexed.sort(key=lambda item: (-_as_int(_mapping(item[1], "rule").get("priority"), 0), item[0]))

    categories = {}
    for item in _as_list(data.get("categories"), "categories"):
        category = category_from_dict(item)
        categories[category.id] = category

    templates = {}
    for item in _as_list(data.get("templates"), "templates"):
        template = template_from_dict(item)
        templates[template.id] = template

    return RuleSetSnapshot(
        version=str(data.get("version") or default_version),
        rules=tuple(rule_from_dict(item) for _, item in indexed),
        categories=categories,
        templates=templates,
        settings=settings_from_dict(settings_data),
        site_host=str(data.get("site_host") or "").lower(),
        site_name=str(data.get("site_name") or ""),
    )


def settings_from_dict(data: Dict[str, Any]) -> EngineSettings:
    defaults = DEFAULTS["settings"]
    merged = dict(defaults)
    merged.update(data)
    levels = _heading_levels(merged.get("heading_levels"))
    return EngineSettings(
        default_max_links_per_page=max(_as_int(merged["default_max_links_per_page"], 0), 0),
        heading_behavior=_choice(merged["heading_behavior"], HEADING_BEHAVIORS, "none"),
        heading_levels=frozenset(levels if levels is not None else defaults["heading_levels"]),
        avoid_existing_links=bool(merged["avoid_existing_links"]),
        prefer_word_boundaries=bool(merged["prefer_word_boundaries"]),
        normalize_accents=bool(merged["normalize_accents"]),
        cache_rendered_content=bool(merged["cache_rendered_content"]),
        chunk_long_documents=bool(merged["chunk_long_documents"]),
        default_utm_template=merged.get("default_utm_template") or None,
        chunk_threshold=max(_as_int(merged["chunk_threshold"], 120000), 1),
    )


def rule_from_dict(data: Any) -> Rule:
    """Convert one stored rule into a :class:`Rule`.

    The layout mirrors the configuration store: ``destination.type``,
    ``limits.max_page``/``limits.max_block``, ``placement.headings`` and so on.
    """

    item = _mapping(data, "rule")
    rule_id = str(item.get("id") or "").strip()
    if not rule_id:
        raise SnapshotError("every rule needs an 'id'")

    destination = _mapping(item.get("destination") or {}, "destination")
    kind = "content" if destination.get("type") in {"content", "post"} else "url"
    reference = destination.get("reference", destination.get("post"))

    attributes = _mapping(item.get("attributes") or {}, "attributes")
    limits = _mapping(item.get("limits") or {}, "limits")
    placement = _mapping(item.get("placement") or {}, "placement")
    scope = _mapping(item.get("scope") or {}, "scope")

    max_block = limits.get("max_block")
    headings = placement.get("headings")

    return Rule(
        id=rule_id,
        title=str(item.get("title") or ""),
        keywords=tuple(str(keyword) for keyword in _as_list(item.get("keywords"), "keywords")),
        destination=Destination(
            kind=kind,
            url=str(destination.get("url") or ""),
            reference=str(reference) if reference not in (None, "", 0) else None,
        ),
        category_id=str(item["category"]) if item.get("category") else None,
        utm_template=str(item.get("utm_template") or "inherit"),
        utm_apply_to=_choice(item.get("utm_apply_to"), APPLY_TO_VALUES, "both"),
        attributes=LinkAttributes(
            nofollow=bool(attributes.get("nofollow")),
            new_tab=bool(attributes.get("new_tab")),
            title=str(attributes.get("title") or ""),
        ),
        max_per_page=max(_as_int(limits.get("max_page"), 1), 0),
        max_per_block=None if max_block in (None, "") else max(_as_int(max_block, 0), 0),
        heading_behavior=_choice(headings, HEADING_BEHAVIORS, None) if headings else None,
        heading_levels=_frozen_levels(placement.get("heading_levels")),
        scope=RuleScope(
            content_types=tuple(str(value) for value in _as_list(scope.get("content_types"), "content_types")),
            whitelist=tuple(str(value) for value in _as_list(scope.get("whitelist"), "whitelist")),
            blacklist=tuple(str(value) for value in _as_list(scope.get("blacklist"), "blacklist")),
        ),
        status="active" if item.get("status", "active") == "active" else "inactive",
    )


def category_from_dict(data: Any) -> Category:
    item = _mapping(data, "category")
    category_id = str(item.get("id") or "").strip()
    if not category_id:
        raise SnapshotError("every category needs an 'id'")
    return Category(
        id=category_id,
        name=str(item.get("name") or ""),
        color=str(item.get("color") or ""),
        default_utm=str(item["default_utm"]) if item.get("default_utm") else None,
        category_cap=max(_as_int(item.get("category_cap"), 0), 0),
    )


def template_from_dict(data: Any) -> UTMTemplate:
    item = _mapping(data, "template")
    template_id = str(item.get("id") or "").strip()
    if not template_id:
        raise SnapshotError("every UTM template needs an 'id'")
    return UTMTemplate(
        id=template_id,
        name=str(item.get("name") or ""),
        utm_source=str(item.get("utm_source") or ""),
        utm_medium=str(item.get("utm_medium") or ""),
        utm_campaign=str(item.get("utm_campaign") or ""),
        utm_term=str(item.get("utm_term") or ""),
        utm_content=str(item.get("utm_content") or ""),
        apply_to=_choice(item.get("apply_to"), APPLY_TO_VALUES, "both"),
        append_mode=_choice(item.get("append_mode"), APPEND_MODES, "append_if_missing"),
    )


def _mapping(value: Any, name: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise SnapshotError(f"{name} entries must be mappings, got {type(value).__name__}")
    return value


def _as_list(value: Any, name: str) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    raise SnapshotError(f"'{name}' must be a list")


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _choice(value: Any, allowed: Sequence[str], default: Optional[str]) -> Optional[str]:
    candidate = str(value).strip().lower() if value is not None else ""
    return candidate if candidate in allowed else default


def _heading_levels(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, Iterable):
        return None
    return [str(level).lower() for level in value if str(level).lower() in HEADING_LEVELS]


def _frozen_levels(value: Any):
    levels = _heading_levels(value)
    return frozenset(levels) if levels else None
