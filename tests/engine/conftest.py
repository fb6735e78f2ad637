"""Shared builders for engine tests."""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from autolinker.engine.types import (
    Category,
    Destination,
    Document,
    EngineSettings,
    LinkAttributes,
    Rule,
    RuleScope,
    RuleSetSnapshot,
    UTMTemplate,
)


def make_rule(
    rule_id: str,
    keywords: Iterable[str],
    url: str = "/target",
    *,
    title: str = "",
    category: Optional[str] = None,
    max_per_page: int = 1,
    max_per_block: Optional[int] = None,
    utm_template: str = "inherit",
    utm_apply_to: str = "both",
    nofollow: bool = False,
    new_tab: bool = False,
    link_title: str = "",
    heading_behavior: Optional[str] = None,
    heading_levels: Optional[Iterable[str]] = None,
    content_types: Iterable[str] = (),
    whitelist: Iterable[str] = (),
    blacklist: Iterable[str] = (),
    status: str = "active",
    reference: Optional[str] = None,
) -> Rule:
    destination = Destination(kind="content", reference=reference) if reference else Destination(url=url)
    return Rule(
        id=rule_id,
        title=title or rule_id.title(),
        keywords=tuple(keywords),
        destination=destination,
        category_id=category,
        utm_template=utm_template,
        utm_apply_to=utm_apply_to,
        attributes=LinkAttributes(nofollow=nofollow, new_tab=new_tab, title=link_title),
        max_per_page=max_per_page,
        max_per_block=max_per_block,
        heading_behavior=heading_behavior,
        heading_levels=frozenset(heading_levels) if heading_levels else None,
        scope=RuleScope(
            content_types=tuple(content_types),
            whitelist=tuple(whitelist),
            blacklist=tuple(blacklist),
        ),
        status=status,
    )


def make_snapshot(
    rules: Iterable[Rule],
    *,
    settings: Optional[EngineSettings] = None,
    categories: Iterable[Category] = (),
    templates: Iterable[UTMTemplate] = (),
    version: str = "v1",
    site_host: str = "example.com",
    site_name: str = "Example",
    **setting_overrides,
) -> RuleSetSnapshot:
    if settings is None:
        values: Dict[str, object] = {
            "default_max_links_per_page": 0,
            "chunk_long_documents": False,
            "cache_rendered_content": False,
        }
        values.update(setting_overrides)
        settings = EngineSettings(**values)
    return RuleSetSnapshot(
        version=version,
        rules=tuple(rules),
        categories={category.id: category for category in categories},
        templates={template.id: template for template in templates},
        settings=settings,
        site_host=site_host,
        site_name=site_name,
    )


def make_document(
    content: str,
    *,
    document_id: str = "doc-1",
    url: str = "https://example.com/blog/post",
    content_type: str = "post",
    content_hash: str = "",
) -> Document:
    return Document(
        id=document_id,
        content=content,
        content_hash=content_hash,
        url=url,
        content_type=content_type,
    )
