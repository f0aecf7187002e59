import os
from dataclasses import dataclass, field, fields
from typing import Dict, Any


@dataclass
class CoreConfig:
    SEED: int = field(default_factory=lambda: int(os.getenv("SYNAPSE_SEED", "13")))
    DEBUG: bool = field(default_factory=lambda: os.getenv("SYNAPSE_DEBUG", "0") == "1")


@dataclass
class ViewportConfig:
    # Screen size in pixels used for view transforms and hit testing
    WIDTH: float = field(default_factory=lambda: float(os.getenv("SYNAPSE_WIDTH", "1280")))
    HEIGHT: float = field(default_factory=lambda: float(os.getenv("SYNAPSE_HEIGHT", "720")))


@dataclass
class GraphConfig:
    IMPORTANCE_CAP: float = 20.0
    STRENGTH_CAP: float = 10.0
    GROWTH_FACTOR: float = 0.5
    CONTEXT_LINK_STRENGTH: float = 3.0
    TRANSCRIPT_LIMIT: int = 250


@dataclass
class LayoutConfig:
    # d3-force defaults
    ALPHA_MIN: float = 0.001
    ALPHA_DECAY: float = 1 - 0.001 ** (1 / 300)
    VELOCITY_DECAY: float = 0.4
    DRAG_ALPHA_TARGET: float = 0.3
    INITIAL_RADIUS: float = 10.0


@dataclass
class FocusConfig:
    FOCUS_ZOOM: float = 1.2
    MIN_ZOOM: float = 0.2
    MAX_ZOOM: float = 3.0
    ZOOM_STEP: float = 0.1
    TRANSITION_MS: float = 750.0


@dataclass
class HitTestConfig:
    RADIUS: float = 70.0


@dataclass
class GestureConfig:
    PINCH_THRESHOLD: float = 0.05
    OPEN_THRESHOLD: float = 0.20
    PINCH_FRAMES: int = 5
    SPREAD_FRAMES: int = 8
    THUMB_TIP: int = 4
    INDEX_TIP: int = 8


@dataclass
class ClockConfig:
    REDRAW_HZ: float = field(default_factory=lambda: float(os.getenv("SYNAPSE_REDRAW_HZ", "60")))
    LANDMARK_HZ: float = field(default_factory=lambda: float(os.getenv("SYNAPSE_LANDMARK_HZ", "30")))


@dataclass
class StorageConfig:
    # Directory for saved session history
    MEMORY_DIR: str = field(default_factory=lambda: os.getenv("SYNAPSE_MEMORY_DIR", os.path.expanduser("~/.synapse")))
    USE_SQLITE: bool = field(default_factory=lambda: os.getenv("SYNAPSE_USE_SQLITE", "1") == "1")
    SQLITE_DB_NAME: str = "history.db"
    JSON_NAME: str = "history.json"


@dataclass
class ServerConfig:
    HOST: str = field(default_factory=lambda: os.getenv("SYNAPSE_HOST", "127.0.0.1"))
    PORT: int = field(default_factory=lambda: int(os.getenv("SYNAPSE_PORT", "8000")))
    RELOAD: bool = field(default_factory=lambda: os.getenv("SYNAPSE_RELOAD", "0") == "1")


_SECTIONS = {
    "core": CoreConfig,
    "viewport": ViewportConfig,
    "graph": GraphConfig,
    "layout": LayoutConfig,
    "focus": FocusConfig,
    "hit_test": HitTestConfig,
    "gesture": GestureConfig,
    "clock": ClockConfig,
    "storage": StorageConfig,
    "server": ServerConfig,
}


class Config:
    """Centralized configuration."""
    core = CoreConfig()
    viewport = ViewportConfig()
    graph = GraphConfig()
    layout = LayoutConfig()
    focus = FocusConfig()
    hit_test = HitTestConfig()
    gesture = GestureConfig()
    clock = ClockConfig()
    storage = StorageConfig()
    server = ServerConfig()

    @classmethod
    def reset(cls):
        """Restore every section to its defaults, re-reading SYNAPSE_* variables."""
        for section_name, section_cls in _SECTIONS.items():
            setattr(cls, section_name, section_cls())

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Serialize all config sections to a flat dictionary."""
        result = {}
        for section_name in _SECTIONS:
            section = getattr(cls, section_name)
            for f in fields(section):
                result[f"{section_name}.{f.name}"] = getattr(section, f.name)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any], apply_env_overrides: bool = True):
        """
        Update config from a flat dictionary.
        If apply_env_overrides is True, environment variables take precedence.
        """
        for key, value in data.items():
            if "." not in key:
                continue
            section_name, field_name = key.split(".", 1)
            if section_name not in _SECTIONS:
                continue
            section = getattr(cls, section_name)
            if not hasattr(section, field_name):
                continue

            env_key = f"SYNAPSE_{field_name}"
            if apply_env_overrides and env_key in os.environ:
                continue

            current_value = getattr(section, field_name)
            if isinstance(current_value, bool):
                value = str(value).lower() in ("1", "true", "yes")
            elif isinstance(current_value, int):
                value = int(value)
            elif isinstance(current_value, float):
                value = float(value)

            setattr(section, field_name, value)

    @classmethod
    def diff(cls, other_dict: Dict[str, Any]) -> Dict[str, tuple]:
        """
        Compare current config with another dict.
        Returns dict of {key: (current_value, other_value)} for differences.
        """
        current = cls.to_dict()
        differences = {}
        for key in set(current) | set(other_dict):
            curr_val = current.get(key)
            other_val = other_dict.get(key)
            if curr_val != other_val:
                differences[key] = (curr_val, other_val)
        return differences

    @classmethod
    def history_path(cls) -> str:
        """Path to the session history file for the configured backend."""
        name = cls.storage.SQLITE_DB_NAME if cls.storage.USE_SQLITE else cls.storage.JSON_NAME
        return os.path.join(cls.storage.MEMORY_DIR, name)
