"""UTM template resolution and merging tests."""

from __future__ import annotations

import pytest

from autolinker.engine.errors import UtmError
from autolinker.engine.types import Category, Destination, UTMTemplate
from autolinker.engine.utm import apply_utm, build_tokens, classify_destination, resolve_template

from .conftest import make_rule


def template(append_mode="append_if_missing", apply_to="both", **values):
    return UTMTemplate(id="t", name="T", append_mode=append_mode, apply_to=apply_to, **values)


@pytest.mark.parametrize(
    "mode, expected",
    [
        ("append_if_missing", "https://x.com/a?utm_source=old"),
        ("always_overwrite", "https://x.com/a?utm_source=new"),
        ("never", "https://x.com/a?utm_source=old"),
    ],
)
def test_append_modes(mode, expected):
    url = "https://x.com/a?utm_source=old"

    assert apply_utm(url, template(mode, utm_source="new"), is_internal=False) == expected


def test_missing_parameters_are_appended_after_existing_ones():
    url = "https://x.com/a?b=1&utm_medium=m#section"
    result = apply_utm(url, template(utm_source="site", utm_medium="email"), is_internal=True)

    assert result == "https://x.com/a?b=1&utm_medium=m&utm_source=site#section"


def test_overwrite_replaces_in_place_and_drops_duplicates():
    url = "/a?utm_source=one&x=1&utm_source=two"
    result = apply_utm(url, template("always_overwrite", utm_source="new"), is_internal=True)

    assert result == "/a?utm_source=new&x=1"


def test_empty_template_fields_are_never_written():
    result = apply_utm("/a", template(utm_source="site", utm_medium="", utm_campaign=""), is_internal=True)

    assert result == "/a?utm_source=site"


def test_tokens_are_expanded_and_encoded():
    tokens = build_tokens(keyword="blue widgets", category="Guides", rule_id="r1")
    result = apply_utm(
        "/shop",
        template(utm_source="{rule_id}", utm_campaign="{category}-{keyword}", utm_term="{document_id}"),
        is_internal=True,
        tokens=tokens,
    )

    assert result == "/shop?utm_source=r1&utm_campaign=Guides-blue+widgets"


def test_apply_to_filters_by_destination_class():
    internal_only = template(apply_to="internal", utm_source="site")

    assert apply_utm("https://other.com/", internal_only, is_internal=False) == "https://other.com/"
    assert apply_utm("/local", internal_only, is_internal=True) == "/local?utm_source=site"
    assert apply_utm("/local", template(utm_source="site"), is_internal=True, rule_apply_to="external") == "/local"


def test_no_template_leaves_url_untouched():
    assert apply_utm("/a?b=1", None, is_internal=True) == "/a?b=1"


def test_malformed_url_raises():
    with pytest.raises(UtmError):
        apply_utm("http://[::1/broken", template(utm_source="site"), is_internal=False)


@pytest.mark.parametrize(
    "destination, url, site_host, expected",
    [
        (Destination(kind="content", reference="42"), "https://elsewhere.org/x", "example.com", True),
        (Destination(url="/pricing"), "/pricing", "example.com", True),
        (Destination(url="https://www.Example.com/x"), "https://www.Example.com/x", "example.com", True),
        (Destination(url="https://other.com/x"), "https://other.com/x", "example.com", False),
        (Destination(url="https://other.com/x"), "https://other.com/x", "", False),
    ],
)
def test_classify_destination(destination, url, site_host, expected):
    assert classify_destination(destination, url, site_host) is expected


def test_template_resolution_order():
    templates = {"rule": template(), "category": template(), "global": template()}
    category = Category(id="c", name="C", default_utm="category")

    assert resolve_template(make_rule("r", ["x"], utm_template="rule"), category, templates, "global") is templates["rule"]
    assert resolve_template(make_rule("r", ["x"]), category, templates, "global") is templates["category"]
    assert resolve_template(make_rule("r", ["x"]), None, templates, "global") is templates["global"]
    assert resolve_template(make_rule("r", ["x"]), None, templates, None) is None
