# tests/test_focus.py
import pytest

from synapse.focus import FocusController, ViewTransform, compute_view_transform, ease_cubic_out
from synapse.graph_store import Graph, GraphNode


def make_graph(**positions):
    g = Graph()
    for nid, pos in positions.items():
        g.nodes[nid] = GraphNode(id=nid, label=nid, importance=5, position=pos)
    return g


def test_unfocused_transform_uses_global_zoom():
    fc = FocusController(width=1000, height=800)
    g = make_graph(a=(10.0, 20.0))
    assert fc.view_transform(g) == ViewTransform(500, 400, 1.0)
    fc.set_zoom(2.0)
    assert fc.view_transform(g) == ViewTransform(500, 400, 2.0)


def test_focused_transform_centers_node():
    fc = FocusController(width=1000, height=800)
    g = make_graph(a=(100.0, -50.0))
    assert fc.enter_focus("a", g)
    t = fc.view_transform(g)
    assert t.k == pytest.approx(1.2)
    assert t.project(100.0, -50.0) == pytest.approx((500, 400))


def test_focus_without_position_falls_back_to_global_transform():
    fc = FocusController(width=1000, height=800)
    g = make_graph(a=None)
    assert fc.enter_focus("a", g)
    assert fc.view_transform(g) == ViewTransform(500, 400, 1.0)


def test_enter_focus_requires_existing_node():
    fc = FocusController()
    assert not fc.enter_focus("ghost", Graph())
    assert fc.focused_id is None


def test_validate_clears_missing_focus():
    fc = FocusController()
    g = make_graph(a=(0.0, 0.0))
    fc.enter_focus("a", g)
    assert not fc.validate(g)
    assert fc.validate(Graph())
    assert fc.focused_id is None


def test_background_interaction_exits_focus():
    fc = FocusController()
    g = make_graph(a=(0.0, 0.0))
    fc.enter_interaction("a", g)
    assert fc.is_focused
    assert fc.background_interaction()
    assert not fc.is_focused
    assert not fc.background_interaction()


def test_zoom_is_clamped():
    fc = FocusController()
    assert fc.set_zoom(10) == 3.0
    assert fc.set_zoom(0.01) == 0.2
    fc.set_zoom(1.0)
    assert fc.zoom_in() == pytest.approx(1.1)
    assert fc.zoom_out() == pytest.approx(1.0)


def test_transform_animation_eases_out_over_750ms():
    fc = FocusController(width=1000, height=800)
    start = fc.displayed_transform(now=0.0)
    target = ViewTransform(100, 100, 2.0)
    fc.animate_to(target, now=0.0)

    mid = fc.displayed_transform(now=0.375)
    expected_t = ease_cubic_out(0.5)
    assert mid.k == pytest.approx(start.k + (2.0 - start.k) * expected_t)
    assert fc.animating

    assert fc.displayed_transform(now=0.75) == target
    assert not fc.animating


def test_new_animation_supersedes_in_flight_one():
    fc = FocusController(width=1000, height=800)
    fc.animate_to(ViewTransform(0, 0, 3.0), now=0.0)
    halfway = fc.displayed_transform(now=0.2)
    fc.animate_to(ViewTransform(500, 400, 1.0), now=0.2)
    # restarts from what is on screen, not from the old start or target
    assert fc.displayed_transform(now=0.2) == halfway
    assert fc.displayed_transform(now=1.0) == ViewTransform(500, 400, 1.0)


def test_compute_view_transform_matches_formula():
    t = compute_view_transform((10.0, 20.0), zoom=0.5, width=800, height=600)
    assert t.tx == pytest.approx(400 - 12)
    assert t.ty == pytest.approx(300 - 24)
    assert t.invert(*t.project(3.0, 4.0)) == pytest.approx((3.0, 4.0))
