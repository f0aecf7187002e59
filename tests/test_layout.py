# tests/test_layout.py
import math

import pytest

from synapse.graph_store import Graph, apply_update, parse_update
from synapse.layout import (
    LayoutEngine, VisMode, build_profile, importance_tier_y, link_path,
)


def graph_of(concepts, relationships=(), base=None):
    raw = {
        "concepts": [{"id": c, "label": c, "importance": imp} for c, imp in concepts],
        "relationships": [{"source_id": s, "target_id": t, "strength": v} for s, t, v in relationships],
    }
    return apply_update(base or Graph(), parse_update(raw))


def chain(n, importance=5):
    ids = [f"n{i}" for i in range(n)]
    return graph_of([(i, importance) for i in ids], [(a, b, 2) for a, b in zip(ids, ids[1:])])


def test_positions_appear_after_first_tick():
    engine = LayoutEngine()
    engine.set_graph(chain(3))
    assert engine.positions() == {}
    assert engine.tick()
    assert set(engine.positions()) == {"n0", "n1", "n2"}
    assert engine.graph.nodes["n1"].position == engine.positions()["n1"]


def test_simulation_cools_and_stops():
    engine = LayoutEngine()
    engine.set_graph(chain(4))
    ticks = engine.run(max_ticks=1000)
    assert 295 <= ticks <= 302
    assert not engine.is_active
    assert not engine.tick()


def test_mode_change_reheats_and_keeps_positions():
    engine = LayoutEngine()
    engine.set_graph(chain(4))
    engine.run(max_ticks=1000)
    before = engine.positions()

    engine.set_mode(VisMode.STREAM)
    assert engine.is_active
    assert engine.alpha == 1.0
    assert engine.positions() == before


def test_same_mode_does_not_reheat():
    engine = LayoutEngine()
    engine.set_graph(chain(2))
    engine.run(max_ticks=1000)
    engine.set_mode("network")
    assert not engine.is_active


def test_unknown_mode_rejected():
    engine = LayoutEngine()
    with pytest.raises(ValueError):
        engine.set_mode("spiral")


def test_graph_change_reheats_and_seeds_from_last_positions():
    g = chain(3)
    engine = LayoutEngine()
    engine.set_graph(g)
    engine.run(max_ticks=1000)
    settled = engine.positions()

    g2 = graph_of([("extra", 3)], [("n0", "extra", 1)], base=g)
    engine.set_graph(g2)
    assert engine.is_active
    for nid, pos in settled.items():
        assert engine.graph.nodes[nid].position == pos
    assert engine.graph.nodes["extra"].position is None

    engine.tick()
    assert "extra" in engine.positions()


def test_focus_change_reheats_with_focused_parameters():
    engine = LayoutEngine()
    engine.set_graph(chain(3))
    engine.run(max_ticks=1000)
    engine.set_focus("n1")
    assert engine.is_active
    assert engine._profile.link_distance == 200
    assert engine._profile.charge == -800
    engine.set_focus(None)
    assert engine._profile.link_distance == 150


def test_network_keeps_nodes_apart():
    engine = LayoutEngine()
    engine.set_graph(chain(6))
    engine.run(max_ticks=1000)
    pts = list(engine.positions().values())
    closest = min(math.dist(a, b) for i, a in enumerate(pts) for b in pts[i + 1:])
    assert closest > 40


def test_stream_orders_nodes_by_arrival():
    engine = LayoutEngine(mode=VisMode.STREAM, width=1280, height=720)
    engine.set_graph(chain(5))
    engine.run(max_ticks=1000)
    xs = [engine.positions()[f"n{i}"][0] for i in range(5)]
    assert xs == sorted(xs)
    assert xs[0] < -300
    assert xs[-1] > 300


def test_stream_single_node_sits_at_center():
    engine = LayoutEngine(mode=VisMode.STREAM)
    engine.set_graph(graph_of([("solo", 5)]))
    engine.run(max_ticks=1000)
    x, y = engine.positions()["solo"]
    assert abs(x) < 1
    assert abs(y) < 1


def test_layers_band_by_importance():
    height = 720
    assert importance_tier_y(9, height) == -height / 3 + 50
    assert importance_tier_y(5, height) == 0
    assert importance_tier_y(2, height) == height / 3 - 50
    assert importance_tier_y(18, height) == -height / 3 + 50  # clamped to 10

    engine = LayoutEngine(mode=VisMode.LAYERS, width=1280, height=height)
    engine.set_graph(graph_of([("core", 9), ("detail", 2)]))
    engine.run(max_ticks=1000)
    pos = engine.positions()
    assert pos["core"][1] < -100
    assert pos["detail"][1] > 100


def test_profile_table():
    cluster = build_profile(VisMode.CLUSTER, False, 1280, 720)
    g = graph_of([("a", 5)])
    node = g.nodes["a"]
    assert cluster.collision_radius(node) == 35
    assert cluster.collide_strength == 0.9
    assert cluster.position_bias(node, 0, [node]).x_strength == 0.2

    network = build_profile(VisMode.NETWORK, False, 1280, 720)
    assert network.collision_radius(node) == 30
    node.importance = 12
    assert network.collision_radius(node) == 48

    stream = build_profile(VisMode.STREAM, False, 1000, 720)
    nodes = [node, node, node]
    assert stream.position_bias(node, 0, nodes).x == -400
    assert stream.position_bias(node, 2, nodes).x == pytest.approx(400)
    assert stream.position_bias(node, 0, [node]).x == 0


def test_drag_pins_node_until_released():
    engine = LayoutEngine()
    engine.set_graph(chain(3))
    engine.run(max_ticks=1000)

    engine.drag_start("n0")
    assert engine.is_active
    assert engine.alpha_target == pytest.approx(0.3)
    engine.drag("n0", 100.0, 50.0)
    for _ in range(5):
        engine.tick()
    assert engine.positions()["n0"] == (100.0, 50.0)

    engine.drag_end("n0")
    assert engine.graph.nodes["n0"].pinned_position is None
    assert engine.alpha_target == 0.0
    for _ in range(20):
        engine.tick()
    assert engine.positions()["n0"] != (100.0, 50.0)


def test_drag_unknown_node():
    engine = LayoutEngine()
    with pytest.raises(KeyError):
        engine.drag_start("ghost")


def test_link_paths_by_mode():
    assert link_path(VisMode.NETWORK, (0, 0), (10, 5)) == "M0.00,0.00 L10.00,5.00"
    assert link_path(VisMode.STREAM, (0, 0), (10, 5)) == "M0.00,0.00 C5.00,0.00 5.00,5.00 10.00,5.00"

    engine = LayoutEngine()
    engine.set_graph(chain(2))
    assert engine.link_paths() == {}
    engine.tick()
    assert list(engine.link_paths()) == [("n0", "n1")]
