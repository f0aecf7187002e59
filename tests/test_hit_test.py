# tests/test_hit_test.py
from synapse.focus import FocusController
from synapse.graph_store import Graph, GraphNode
from synapse.hit_test import HitTester, resolve

W, H = 1000, 800


def make_graph(**positions):
    g = Graph()
    for nid, pos in positions.items():
        g.nodes[nid] = GraphNode(id=nid, label=nid, importance=5, position=pos)
    return g


def to_cursor(point):
    return (point[0] / W, point[1] / H)


def test_cursor_at_projected_position_hits_node():
    g = make_graph(a=(40.0, -30.0), b=(-200.0, 150.0))
    fc = FocusController(W, H)
    fc.set_zoom(1.7)
    t = fc.view_transform(g)
    assert resolve(to_cursor(t.project(40.0, -30.0)), g, t, W, H) == "a"
    assert resolve(to_cursor(t.project(-200.0, 150.0)), g, t, W, H) == "b"


def test_hit_uses_focused_transform():
    g = make_graph(a=(300.0, 200.0), b=(0.0, 0.0))
    fc = FocusController(W, H)
    fc.enter_focus("a", g)
    t = fc.view_transform(g)
    # focused node sits in the middle of the screen
    assert resolve((0.5, 0.5), g, t, W, H) == "a"


def test_far_cursor_hits_nothing():
    g = make_graph(a=(0.0, 0.0))
    t = FocusController(W, H).view_transform(g)
    # node projects to (500, 400); 71px away is outside the radius
    assert resolve(to_cursor((571.0, 400.0)), g, t, W, H) is None
    assert resolve(to_cursor((569.0, 400.0)), g, t, W, H) == "a"


def test_nearest_node_wins_and_unplaced_nodes_are_ignored():
    g = make_graph(a=(0.0, 0.0), b=(30.0, 0.0), c=None)
    t = FocusController(W, H).view_transform(g)
    assert resolve(to_cursor((525.0, 400.0)), g, t, W, H) == "b"
    assert resolve(None, g, t, W, H) is None


def test_tester_reports_changes_only():
    g = make_graph(a=(0.0, 0.0))
    t = FocusController(W, H).view_transform(g)
    tester = HitTester()
    assert tester.update((0.5, 0.5), g, t, W, H) == ("a", True)
    assert tester.update((0.5, 0.5), g, t, W, H) == ("a", False)
    assert tester.update((0.0, 0.0), g, t, W, H) == (None, True)
    tester.update((0.5, 0.5), g, t, W, H)
    assert tester.clear()
    assert not tester.clear()
