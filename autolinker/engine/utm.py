"""UTM template resolution and query-string merging."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional
from urllib.parse import unquote_plus, urlencode, urlsplit, urlunsplit

from .errors import UtmError
from .types import Category, Destination, Rule, UTMTemplate

TOKENS = ("keyword", "rule_id", "category", "document_id", "content_type", "site_name")


def resolve_template(
    rule: Rule,
    category: Optional[Category],
    templates: Mapping[str, UTMTemplate],
    default_template_id: Optional[str] = None,
) -> Optional[UTMTemplate]:
    """Pick the template for a rule: rule, then category, then global default."""

    if rule.utm_template and rule.utm_template != "inherit":
        return templates.get(rule.utm_template)
    if category is not None and category.default_utm:
        return templates.get(category.default_utm)
    if default_template_id:
        return templates.get(default_template_id)
    return None


def classify_destination(destination: Destination, url: str, site_host: str) -> bool:
    """Return True when the destination is internal to the site."""

    if destination.kind == "content":
        return True
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return False
    if not host:
        return True
    if not site_host:
        return False
    return _bare_host(host) == _bare_host(site_host)


def matches_apply_to(target: str, is_internal: bool) -> bool:
    if target == "internal":
        return is_internal
    if target == "external":
        return not is_internal
    return True


def build_tokens(**values: Optional[str]) -> Dict[str, str]:
    """Return ``{token}`` replacements for template values."""

    return {f"{{{name}}}": str(values.get(name) or "") for name in TOKENS}


def apply_utm(
    url: str,
    template: Optional[UTMTemplate],
    *,
    is_internal: bool,
    rule_apply_to: str = "both",
    tokens: Mapping[str, str] | None = None,
) -> str:
    """Merge the template's UTM parameters into ``url``.

    Only ``utm_*`` parameters are ever touched; other parameters keep their
    original encoding and order, and the fragment is preserved. Raises
    :class:`UtmError` when the URL cannot be parsed.
    """

    if template is None or template.append_mode == "never":
        return url
    if not (matches_apply_to(template.apply_to, is_internal) and matches_apply_to(rule_apply_to, is_internal)):
        return url

    params = {}
    for name, value in template.parameters().items():
        for token, replacement in (tokens or {}).items():
            value = value.replace(token, replacement)
        if value:
            params[name] = value
    if not params:
        return url

    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise UtmError(f"cannot parse destination {url!r}: {exc}") from exc

    segments: List[str] = [segment for segment in parts.query.split("&") if segment]
    existing = {_param_name(segment) for segment in segments}
    overwrite = template.append_mode == "always_overwrite"

    merged: List[str] = []
    written = set()
    for segment in segments:
        name = _param_name(segment)
        if overwrite and name in params:
            if name not in written:
                merged.append(urlencode({name: params[name]}))
                written.add(name)
            continue
        merged.append(segment)

    for name, value in params.items():
        if name in existing:
            continue
        merged.append(urlencode({name: value}))

    return urlunsplit((parts.scheme, parts.netloc, parts.path, "&".join(merged), parts.fragment))


def _param_name(segment: str) -> str:
    return unquote_plus(segment.split("=", 1)[0])


def _bare_host(host: str) -> str:
    host = host.lower().strip()
    return host[4:] if host.startswith("www.") else host
