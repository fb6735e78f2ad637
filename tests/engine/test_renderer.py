"""Anchor insertion tests."""

from __future__ import annotations

from autolinker.engine.matcher import find_candidates, parse_chunk
from autolinker.engine.renderer import Placement, render
from autolinker.engine.rules import prepare_rules
from autolinker.engine.selector import select

from .conftest import make_document, make_rule, make_snapshot


def render_html(html, rules, **settings):
    snapshot = make_snapshot(rules, **settings)
    prepared, _ = prepare_rules(snapshot, make_document(html))
    chunk = parse_chunk(html)
    selection = select(find_candidates(chunk.segments, prepared, snapshot.settings), snapshot.settings)
    placements = [Placement(candidate=item, url=item.rule.url) for item in selection.accepted]
    return render(chunk, placements)


def test_single_link_is_inserted():
    html, records = render_html("<p>Visit our services page today.</p>", [make_rule("s", ["services"], "/services")])

    assert html == '<p>Visit our <a href="/services">services</a> page today.</p>'
    assert [(record.rule_id, record.start, record.end, record.url) for record in records] == [
        ("s", 13, 21, "/services")
    ]


def test_link_attributes():
    rule = make_rule("p", ["pricing"], "/pricing", nofollow=True, new_tab=True, link_title="See pricing")

    html, _ = render_html("<p>pricing</p>", [rule])

    assert html == (
        '<p><a href="/pricing" rel="nofollow noopener" target="_blank" title="See pricing">pricing</a></p>'
    )


def test_several_links_in_one_text_node():
    rules = [make_rule("a", ["alpha"], "/a"), make_rule("b", ["beta"], "/b")]

    html, records = render_html("<li>alpha, then beta.</li>", rules)

    assert html == '<li><a href="/a">alpha</a>, then <a href="/b">beta</a>.</li>'
    assert [record.start for record in records] == [4, 16]


def test_surrounding_markup_and_entities_are_kept():
    html, _ = render_html(
        '<div class="x"><p>Fish &amp; <em>chips</em> widget</p></div>',
        [make_rule("w", ["widget"], "/w?a=1&b=2")],
    )

    assert html == '<div class="x"><p>Fish &amp; <em>chips</em> <a href="/w?a=1&amp;b=2">widget</a></p></div>'


def test_matched_text_keeps_its_case():
    html, records = render_html("<p>SERVICES</p>", [make_rule("s", ["services"], "/services")])

    assert html == '<p><a href="/services">SERVICES</a></p>'
    assert records[0].keyword == "services"
    assert records[0].text == "SERVICES"
