"""Tests for the composition engine (pure rendering, no database)."""

import itertools
import logging
import sys

import pytest

from thingsystem.core.constants import CHILDREN_SLOT
from thingsystem.exceptions import CycleDetectedError
from thingsystem.models import Thing
from thingsystem.services.composition import render, render_document, render_page


def make_thing(thing_id, html="", css="", client_js="", children=None, order=None, name=None):
    return Thing(
        id=thing_id,
        name=name or thing_id,
        type="generic",
        version=0,
        history=[],
        components={"html": html, "css": css, "clientJs": client_js, "serverJs": ""},
        children=list(children or []),
        parent_id=None,
        order=order,
    )


def scope_ids(start=0):
    """Deterministic scope-id generator: s0, s1, s2, ..."""
    counter = itertools.count(start)
    return lambda: f"s{next(counter)}"


def lookup_for(*things):
    by_id = {thing.id: thing for thing in things}
    return by_id.get


class TestRenderSingleThing:

    def test_emits_scoped_style_markup_and_script(self):
        thing = make_thing("a", html="<p>A</p>", css="p { color: red; }", client_js="root.dataset.ok = 1;")

        output = render(thing, lookup_for(thing), scope_ids())

        assert '@scope ([data-thing-scope="s0"])' in output
        assert "p { color: red; }" in output
        assert '<div data-thing-id="a" data-thing-scope="s0"><p>A</p></div>' in output
        assert "root.dataset.ok = 1;" in output
        assert "try {" in output and "catch (error)" in output
        assert 'document.querySelector(\'[data-thing-scope="s0"]\')' in output

    def test_markup_comes_before_script(self):
        thing = make_thing("a", html="<p>A</p>", client_js="boom();")

        output = render(thing, lookup_for(thing), scope_ids())

        assert output.index("<p>A</p>") < output.index("boom();")

    def test_empty_style_and_script_are_omitted(self):
        thing = make_thing("a", html="<p>A</p>")

        output = render(thing, lookup_for(thing), scope_ids())

        assert "<style>" not in output
        assert "<script>" not in output

    def test_script_cannot_close_its_own_tag(self):
        thing = make_thing("a", client_js="var s = '</script><b>x</b>';")

        output = render(thing, lookup_for(thing), scope_ids())

        assert output.count("</script>") == 1

    def test_each_render_gets_a_fresh_scope(self):
        thing = make_thing("a", css="p {}")

        first = render(thing, lookup_for(thing))
        second = render(thing, lookup_for(thing))

        assert first != second

    def test_render_does_not_mutate_things(self):
        child = make_thing("b", html="<i>B</i>")
        root = make_thing("a", html=f"<div>{CHILDREN_SLOT}</div>", children=["b"])
        before = dict(root.components)

        render(root, lookup_for(root, child), scope_ids())

        assert root.components == before
        assert root.children == ["b"]


class TestRenderChildren:

    def test_three_level_chain_nests_in_order(self):
        b = make_thing("b", html="<em>B</em>")
        a = make_thing("a", html=f"<section>A {CHILDREN_SLOT}</section>", children=["b"])
        root = make_thing("root", html=f"<main>{CHILDREN_SLOT}</main>", children=["a"])
        lookup = lookup_for(root, a, b)

        output = render(root, lookup, scope_ids())

        a_render = render(a, lookup, scope_ids(1))
        b_render = render(b, lookup, scope_ids(2))
        assert b_render in a_render
        assert a_render in output
        assert output.index('data-thing-id="root"') < output.index('data-thing-id="a"') < output.index('data-thing-id="b"')
        assert CHILDREN_SLOT not in output

    def test_children_not_rendered_without_slot(self):
        b = make_thing("b", html="<em>B</em>")
        a = make_thing("a", html="<section>A</section>", children=["b"])
        root = make_thing("root", html=f"<main>{CHILDREN_SLOT}</main>", children=["a"])

        output = render(root, lookup_for(root, a, b), scope_ids())

        assert "<section>A</section>" in output
        assert "<em>B</em>" not in output
        assert 'data-thing-id="b"' not in output

    def test_children_sorted_by_order(self):
        first = make_thing("first", html="<b>1</b>", order=0)
        second = make_thing("second", html="<b>2</b>", order=1)
        third = make_thing("third", html="<b>3</b>", order=2)
        root = make_thing("root", html=CHILDREN_SLOT, children=["third", "first", "second"])

        output = render(root, lookup_for(root, first, second, third), scope_ids())

        assert output.index("<b>1</b>") < output.index("<b>2</b>") < output.index("<b>3</b>")

    def test_unordered_children_follow_ordered_ones_in_list_order(self):
        x = make_thing("x", html="<b>x</b>")
        y = make_thing("y", html="<b>y</b>")
        z = make_thing("z", html="<b>z</b>", order=5)
        root = make_thing("root", html=CHILDREN_SLOT, children=["x", "y", "z"])

        output = render(root, lookup_for(root, x, y, z), scope_ids())

        assert output.index("<b>z</b>") < output.index("<b>x</b>") < output.index("<b>y</b>")

    def test_missing_child_is_skipped(self, caplog):
        present = make_thing("present", html="<b>here</b>")
        root = make_thing("root", html=CHILDREN_SLOT, children=["gone", "present"])

        output = render(root, lookup_for(root, present), scope_ids())

        assert "<b>here</b>" in output
        assert "Skipping missing child gone" in caplog.text

    def test_only_first_slot_is_replaced(self):
        child = make_thing("c", html="<b>c</b>")
        root = make_thing("root", html=CHILDREN_SLOT + CHILDREN_SLOT, children=["c"])

        output = render(root, lookup_for(root, child), scope_ids())

        assert output.count("<b>c</b>") == 1
        assert output.count(CHILDREN_SLOT) == 1

    def test_slot_is_matched_literally(self):
        child = make_thing("c", html="<b>c</b>")
        root = make_thing("root", html="<div class='children'></div>", children=["c"])

        output = render(root, lookup_for(root, child), scope_ids())

        assert "<b>c</b>" not in output

    def test_shared_child_renders_under_each_parent(self):
        leaf = make_thing("leaf", html="<b>leaf</b>")
        left = make_thing("left", html=CHILDREN_SLOT, children=["leaf"])
        right = make_thing("right", html=CHILDREN_SLOT, children=["leaf"])
        root = make_thing("root", html=CHILDREN_SLOT, children=["left", "right"])

        output = render(root, lookup_for(root, left, right, leaf), scope_ids())

        assert output.count("<b>leaf</b>") == 2


class TestCycles:

    def test_two_node_cycle_fails(self):
        a = make_thing("a", html=CHILDREN_SLOT, children=["root"])
        root = make_thing("root", html=CHILDREN_SLOT, children=["a"])

        with pytest.raises(CycleDetectedError) as exc_info:
            render(root, lookup_for(root, a), scope_ids())

        assert exc_info.value.details["path"] == ["root", "a", "root"]

    def test_self_reference_fails(self):
        root = make_thing("root", html=CHILDREN_SLOT, children=["root"])

        with pytest.raises(CycleDetectedError):
            render(root, lookup_for(root), scope_ids())

    def test_cycle_behind_missing_slot_is_never_visited(self):
        a = make_thing("a", html="no slot", children=["root"])
        root = make_thing("root", html=CHILDREN_SLOT, children=["a"])

        output = render(root, lookup_for(root, a), scope_ids())

        assert "no slot" in output


class TestDocuments:

    def test_render_document_uses_root_markup_as_shell(self):
        child = make_thing("child", html="<b>child</b>", css="b { color: blue; }")
        shell = (
            "<!DOCTYPE html><html><head><style></style></head>"
            f"<body>{CHILDREN_SLOT}</body></html>"
        )
        root = make_thing("system", html=shell, css="body { margin: 0; }", client_js="editor();", children=["child"])

        output = render_document(root, lookup_for(root, child), scope_ids())

        assert output.startswith("<!DOCTYPE html>")
        assert "<style>body { margin: 0; }</style>" in output
        assert '<div data-thing-id="child"' in output
        assert 'data-thing-id="system"' not in output
        assert "editor();" not in output

    def test_render_document_detects_cycles(self):
        child = make_thing("child", html=CHILDREN_SLOT, children=["system"])
        root = make_thing("system", html=CHILDREN_SLOT, children=["child"])

        with pytest.raises(CycleDetectedError):
            render_document(root, lookup_for(root, child), scope_ids())

    def test_render_page_wraps_fragment(self):
        thing = make_thing("a", html="<p>A</p>", name="Preview <me>")

        output = render_page(thing, lookup_for(thing), scope_ids())

        assert output.startswith("<!DOCTYPE html>")
        assert "<title>Preview &lt;me&gt;</title>" in output
        assert '<div data-thing-id="a" data-thing-scope="s0"><p>A</p></div>' in output

    def test_render_document_without_placeholder_puts_style_before_head_end(self):
        root = make_thing(
            "system",
            html="<html><head><title>T</title></head><body></body></html>",
            css="body { margin: 0; }",
        )

        output = render_document(root, lookup_for(root), scope_ids())

        assert "<title>T</title><style>body { margin: 0; }</style></head>" in output

    def test_render_document_without_head_warns_about_dropped_style(self, caplog):
        root = make_thing("system", html="<main></main>", css="main { color: red; }")

        with caplog.at_level(logging.WARNING, logger="thingsystem.services.composition"):
            output = render_document(root, lookup_for(root), scope_ids())

        assert output == "<main></main>"
        assert "Style of system dropped" in caplog.text


def _chain(depth):
    """t0 -> t1 -> ... -> t{depth-1}, every level rendering its children."""
    return [
        make_thing(
            f"t{i}",
            html=f"<i>{i}</i>{CHILDREN_SLOT}",
            children=[f"t{i + 1}"] if i + 1 < depth else [],
        )
        for i in range(depth)
    ]


class TestDeepTrees:

    def test_chain_deeper_than_recursion_limit_renders(self):
        depth = sys.getrecursionlimit() + 500
        things = _chain(depth)

        output = render(things[0], lookup_for(*things), scope_ids())

        assert output.count("data-thing-id=") == depth
        assert output.index("<i>0</i>") < output.index(f"<i>{depth - 1}</i>")
        assert CHILDREN_SLOT not in output

    def test_deep_chain_under_document_root(self):
        things = _chain(1500)
        root = make_thing("system", html=f"<body>{CHILDREN_SLOT}</body>", children=["t0"])

        output = render_document(root, lookup_for(root, *things), scope_ids())

        assert output.count("data-thing-id=") == 1500

    def test_cycle_at_the_bottom_of_a_deep_chain_is_detected(self):
        things = _chain(1200)
        things[-1].children = ["t0"]

        with pytest.raises(CycleDetectedError) as exc_info:
            render(things[0], lookup_for(*things), scope_ids())

        path = exc_info.value.details["path"]
        assert len(path) == 1201
        assert path[0] == path[-1] == "t0"
