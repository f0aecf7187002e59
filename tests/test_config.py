# tests/test_config.py
import os

from synapse.config import Config


def test_defaults():
    assert Config.hit_test.RADIUS == 70.0
    assert Config.gesture.PINCH_FRAMES == 5
    assert Config.gesture.SPREAD_FRAMES == 8
    assert Config.focus.FOCUS_ZOOM == 1.2
    assert round(Config.layout.ALPHA_DECAY, 4) == 0.0228


def test_from_dict_coerces_types():
    Config.from_dict({"hit_test.RADIUS": "50", "gesture.PINCH_FRAMES": "3", "core.DEBUG": "true"})
    assert Config.hit_test.RADIUS == 50.0
    assert Config.gesture.PINCH_FRAMES == 3
    assert Config.core.DEBUG is True


def test_from_dict_ignores_unknown_keys():
    before = Config.to_dict()
    Config.from_dict({"nope.X": 1, "graph.NOT_A_FIELD": 2, "flat": 3})
    assert Config.to_dict() == before


def test_env_override_wins(monkeypatch):
    monkeypatch.setenv("SYNAPSE_PORT", "9999")
    Config.from_dict({"server.PORT": 1234})
    assert Config.server.PORT != 1234
    Config.from_dict({"server.PORT": 1234}, apply_env_overrides=False)
    assert Config.server.PORT == 1234


def test_diff_and_reset():
    Config.reset()
    snapshot = Config.to_dict()
    Config.graph.IMPORTANCE_CAP = 30.0
    assert Config.diff(snapshot) == {"graph.IMPORTANCE_CAP": (30.0, 20.0)}
    Config.reset()
    assert Config.diff(snapshot) == {}


def test_history_path_follows_backend(tmp_path):
    Config.storage.MEMORY_DIR = str(tmp_path)
    Config.storage.USE_SQLITE = True
    assert Config.history_path() == os.path.join(str(tmp_path), "history.db")
    Config.storage.USE_SQLITE = False
    assert Config.history_path().endswith("history.json")


def test_reset_rereads_environment(monkeypatch):
    monkeypatch.setenv("SYNAPSE_WIDTH", "1920")
    monkeypatch.setenv("SYNAPSE_DEBUG", "1")
    Config.reset()
    assert Config.viewport.WIDTH == 1920.0
    assert Config.core.DEBUG is True

    monkeypatch.delenv("SYNAPSE_WIDTH")
    monkeypatch.delenv("SYNAPSE_DEBUG")
    Config.reset()
    assert Config.viewport.WIDTH == 1280.0
    assert Config.core.DEBUG is False
