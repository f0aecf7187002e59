"""
Pytest configuration and shared fixtures for test isolation.
"""
import pytest


@pytest.fixture(autouse=True)
def reset_global_state(tmp_path):
    """Reset config, live sessions and history before each test."""
    from synapse.config import Config
    from synapse import server

    Config.reset()
    Config.storage.MEMORY_DIR = str(tmp_path / "memory")
    server.session_instances.clear()
    server.reset_history()

    yield

    server.session_instances.clear()
    server.reset_history()
    Config.reset()


@pytest.fixture
def temp_memory_dir(tmp_path):
    """Provide a temporary history directory for tests."""
    from synapse.config import Config

    memory_dir = tmp_path / "test_memory"
    memory_dir.mkdir(exist_ok=True)
    Config.storage.MEMORY_DIR = str(memory_dir)
    return memory_dir


@pytest.fixture
def test_client():
    """Provide a TestClient for API testing with clean state."""
    from fastapi.testclient import TestClient
    from synapse.server import app

    return TestClient(app)


def make_landmarks(pinch_distance: float, index=(0.5, 0.5)):
    """21-point hand with the thumb tip `pinch_distance` to the left of the index tip."""
    ix, iy = index
    points = [[ix, iy, 0.0] for _ in range(21)]
    points[4] = [ix - pinch_distance, iy, 0.0]
    points[8] = [ix, iy, 0.0]
    return points


@pytest.fixture
def hand():
    return make_landmarks
