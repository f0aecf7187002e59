"""Public package interface for the live concept graph."""

from .graph_store import Graph, GraphStore, apply_update, parse_update
from .layout import LayoutEngine, VisMode
from .focus import FocusController, ViewTransform
from .hit_test import HitTester
from .gesture import GestureEvent, GestureState
from .session import Session, SessionRunner
from .history import SessionHistory, SessionRecord

__all__ = [
    "Graph",
    "GraphStore",
    "apply_update",
    "parse_update",
    "LayoutEngine",
    "VisMode",
    "FocusController",
    "ViewTransform",
    "HitTester",
    "GestureEvent",
    "GestureState",
    "Session",
    "SessionRunner",
    "SessionHistory",
    "SessionRecord",
]

__version__ = "0.1.0"
