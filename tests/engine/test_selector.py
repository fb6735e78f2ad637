"""Placement selection and cap accounting tests."""

from __future__ import annotations

from autolinker.engine.matcher import find_candidates, parse_chunk
from autolinker.engine.rules import prepare_rules
from autolinker.engine.selector import CapState, select
from autolinker.engine.types import Category

from .conftest import make_document, make_rule, make_snapshot


def run_select(html, rules, *, categories=(), state=None, **settings):
    snapshot = make_snapshot(rules, categories=categories, **settings)
    prepared, _ = prepare_rules(snapshot, make_document(html))
    candidates = find_candidates(parse_chunk(html).segments, prepared, snapshot.settings)
    return select(candidates, snapshot.settings, state)


def accepted(selection):
    return [(item.rule_id, item.start) for item in selection.accepted]


def reasons(selection):
    return [(item.candidate.rule_id, item.reason) for item in selection.rejected]


def test_rule_cap_limits_placements():
    selection = run_select("<p>widget, widget and widget</p>", [make_rule("w", ["widget"], max_per_page=1)])

    assert accepted(selection) == [("w", 3)]
    assert reasons(selection) == [("w", "rule_cap"), ("w", "rule_cap")]


def test_zero_rule_cap_still_allows_one_link():
    selection = run_select("<p>widget and widget</p>", [make_rule("w", ["widget"], max_per_page=0)])

    assert accepted(selection) == [("w", 3)]


def test_each_keyword_links_once_per_document():
    rule = make_rule("w", ["alpha", "beta"], max_per_page=5)

    selection = run_select("<p>alpha beta alpha</p>", [rule])

    assert accepted(selection) == [("w", 3), ("w", 9)]
    assert reasons(selection) == [("w", "keyword_used")]


def test_global_cap_applies_across_rules():
    rules = [make_rule("a", ["alpha"]), make_rule("b", ["beta"]), make_rule("c", ["gamma"])]

    selection = run_select("<p>alpha beta gamma</p>", rules, default_max_links_per_page=2)

    assert accepted(selection) == [("a", 3), ("b", 9)]
    assert reasons(selection) == [("c", "global_cap")]


def test_category_cap_rejects_second_rule_in_category():
    category = Category(id="help", name="Help", category_cap=1)
    rules = [
        make_rule("first", ["support"], "/support", category="help"),
        make_rule("second", ["support"], "/contact", category="help", max_per_page=3),
    ]

    selection = run_select("<p>Call support or email support.</p>", rules, categories=[category])

    assert accepted(selection) == [("first", 8)]
    assert reasons(selection) == [
        ("second", "category_cap"),
        ("first", "category_cap"),
        ("second", "category_cap"),
    ]
    assert selection.state.per_category == {"help": 1}


def test_block_cap_counts_per_block_element():
    rule = make_rule("w", ["alpha", "beta", "gamma"], max_per_page=3, max_per_block=1)

    selection = run_select("<p>alpha beta</p><p>gamma</p>", [rule])

    assert accepted(selection) == [("w", 3), ("w", 20)]
    assert reasons(selection) == [("w", "block_cap")]


def test_overlapping_candidates_are_rejected():
    rules = [make_rule("long", ["blue widgets"]), make_rule("short", ["widgets"])]

    selection = run_select("<p>blue widgets</p>", rules)

    assert accepted(selection) == [("long", 3)]
    assert reasons(selection) == [("short", "overlap")]


def test_state_threads_caps_across_calls():
    rules = [make_rule("w", ["widget"])]

    first = run_select("<p>widget</p>", rules, default_max_links_per_page=5)
    assert first.state.total == 1
    assert first.state.per_rule == {"w": 1}

    second = run_select("<p>widget</p>", rules, state=first.state, default_max_links_per_page=5)
    assert second.accepted == ()
    assert reasons(second) == [("w", "rule_cap")]


def test_cap_state_is_not_mutated():
    state = CapState()
    run_select("<p>widget</p>", [make_rule("w", ["widget"])], state=state)

    assert state.total == 0
    assert dict(state.per_rule) == {}
