# synapse/session.py
"""
A live mind-map session: graph merging, layout, focus, hover and gestures
wired together behind the callbacks an embedding application listens to.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

from .config import Config
from .focus import FocusController
from .gesture import GestureChannel, GestureEvent, GestureEventType, GestureState, step, to_landmarks
from .graph_store import Graph, GraphDiff, GraphStore, Point
from .hit_test import HitTester
from .history import SessionHistory, SessionRecord
from .layout import LayoutEngine, VisMode

logger = logging.getLogger(__name__)


class Session:
    def __init__(
        self,
        session_id: str = None,
        history: Optional[SessionHistory] = None,
        width: float = None,
        height: float = None,
        on_node_hover: Callable[[Optional[str]], None] = None,
        on_node_select: Callable[[str], None] = None,
        on_node_deselect: Callable[[], None] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.width = width if width is not None else Config.viewport.WIDTH
        self.height = height if height is not None else Config.viewport.HEIGHT
        self.history = history

        self.store = GraphStore()
        self.layout = LayoutEngine(width=self.width, height=self.height)
        self.focus = FocusController(self.width, self.height)
        self.hit_tester = HitTester()
        self.gesture_state = GestureState()
        self.gesture_channel: Optional[GestureChannel] = None
        self.cursor: Optional[Point] = None
        self.transcript = ""

        self.on_node_hover = on_node_hover
        self.on_node_select = on_node_select
        self.on_node_deselect = on_node_deselect

    @property
    def graph(self) -> Graph:
        return self.store.graph

    @property
    def mode(self) -> VisMode:
        return self.layout.mode

    @property
    def hover_id(self) -> Optional[str]:
        return self.hit_tester.hover_id

    @property
    def focused_id(self) -> Optional[str]:
        return self.focus.focused_id

    # --- Graph updates ---
    def submit_update(self, update: Any):
        """Queue an extractor event; applied on the next tick in arrival order."""
        self.store.submit(update)

    def process_updates(self, now: float = None) -> GraphDiff:
        if not self.store.pending:
            return GraphDiff()
        diff = self.store.drain(self.focus.focused_id)
        self.layout.set_graph(self.graph)
        if self.focus.validate(self.graph):
            self._focus_changed(now)
        elif self.focus.is_focused and not diff.empty:
            self.focus.animate_to(self.focus.view_transform(self.graph), now)
        return diff

    # --- Clock entry points ---
    def tick(self, now: float = None) -> bool:
        """One redraw period: apply pending updates, advance the layout, refresh hover."""
        self.process_updates(now)
        moved = self.layout.tick()
        self._refresh_hover()
        return moved

    def handle_landmarks(self, sample: Any, now: float = None) -> Optional[GestureEvent]:
        """One landmark period. `sample` is None when no hand is visible."""
        landmarks = to_landmarks(sample) if sample else None
        self.gesture_state, event = step(
            self.gesture_state, landmarks, self.hit_tester.hover_id, self.focus.focused_id
        )
        self.cursor = self.gesture_state.cursor
        self._refresh_hover()
        if event is not None:
            self._dispatch(event, now)
        return event

    def poll_gesture(self, frame: Any = None, now: float = None) -> Optional[GestureEvent]:
        if self.gesture_channel is None:
            return None
        ok, landmarks = self.gesture_channel.read(frame, int(time.time() * 1000))
        if not ok:
            return None
        return self.handle_landmarks(landmarks, now)

    def enable_gestures(self, channel: GestureChannel):
        self.disable_gestures()
        self.gesture_channel = channel

    def disable_gestures(self):
        if self.gesture_channel is not None:
            self.gesture_channel.close()
            self.gesture_channel = None
        self.gesture_state = GestureState()
        self.set_cursor(None)

    # --- Hover ---
    def set_cursor(self, cursor: Optional[Point]):
        self.cursor = cursor
        self._refresh_hover()

    def _refresh_hover(self):
        if self.cursor is None:
            hover, changed = None, self.hit_tester.clear()
        else:
            hover, changed = self.hit_tester.update(
                self.cursor, self.graph, self.focus.view_transform(self.graph), self.width, self.height
            )
        if changed and self.on_node_hover:
            self.on_node_hover(hover)

    # --- Focus ---
    def _dispatch(self, event: GestureEvent, now: float = None):
        if event.type == GestureEventType.SELECT:
            self.enter_node(event.node_id, now)
        else:
            self.exit_node(now)

    def enter_node(self, node_id: str, now: float = None) -> bool:
        if node_id == self.focus.focused_id:
            return True
        if not self.focus.enter_focus(node_id, self.graph):
            return False
        self._focus_changed(now)
        if self.on_node_select:
            self.on_node_select(node_id)
        return True

    def exit_node(self, now: float = None) -> bool:
        if not self.focus.exit_focus():
            return False
        self._focus_changed(now)
        if self.on_node_deselect:
            self.on_node_deselect()
        return True

    def background_click(self, now: float = None) -> bool:
        return self.exit_node(now)

    def _focus_changed(self, now: float = None):
        self.layout.set_focus(self.focus.focused_id)
        self.focus.animate_to(self.focus.view_transform(self.graph), now)
        self._refresh_hover()

    # --- View controls ---
    def set_mode(self, mode: VisMode):
        self.layout.set_mode(mode)

    def set_zoom(self, level: float, now: float = None) -> float:
        zoom = self.focus.set_zoom(level)
        self.focus.animate_to(self.focus.view_transform(self.graph), now)
        self._refresh_hover()
        return zoom

    def zoom_in(self, now: float = None) -> float:
        return self.set_zoom(self.focus.zoom + Config.focus.ZOOM_STEP, now)

    def zoom_out(self, now: float = None) -> float:
        return self.set_zoom(self.focus.zoom - Config.focus.ZOOM_STEP, now)

    def set_viewport(self, width: float, height: float, now: float = None):
        self.width, self.height = width, height
        self.layout.set_viewport(width, height)
        self.focus.set_viewport(width, height)
        self.focus.animate_to(self.focus.view_transform(self.graph), now)
        self._refresh_hover()

    def drag_start(self, node_id: str):
        self.layout.drag_start(node_id)

    def drag(self, node_id: str, x: float, y: float):
        self.layout.drag(node_id, x, y)

    def drag_end(self, node_id: str):
        self.layout.drag_end(node_id)

    # --- Transcript ---
    def append_transcript(self, text: str) -> str:
        combined = f"{self.transcript} {text}"
        self.transcript = combined[-Config.graph.TRANSCRIPT_LIMIT:]
        return self.transcript

    # --- Snapshots and history ---
    def snapshot(self) -> Dict[str, Any]:
        return self.store.snapshot()

    def view_state(self, now: float = None) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "mode": self.mode.value,
            "focused_id": self.focus.focused_id,
            "hover_id": self.hit_tester.hover_id,
            "zoom": self.focus.zoom,
            "cursor": self.cursor,
            "transform": self.focus.view_transform(self.graph).to_dict(),
            "displayed_transform": self.focus.displayed_transform(now).to_dict(),
            "svg_transform": self.focus.displayed_transform(now).to_svg(),
            "active": self.layout.is_active,
            "positions": {nid: list(p) for nid, p in self.layout.positions().items()},
            "links": [
                {"source": k[0], "target": k[1], "path": path}
                for k, path in self.layout.link_paths().items()
            ],
        }

    def save(self) -> Optional[SessionRecord]:
        """Record the current session; nothing is saved for an empty one."""
        if not self.graph.nodes and not self.transcript:
            return None
        record = SessionRecord.capture(self.graph, self.transcript)
        if self.history is not None:
            self.history.add(record)
        logger.info(f"Saved session {record.id} ({len(self.graph.nodes)} concepts)")
        return record

    def clear(self, now: float = None) -> Optional[SessionRecord]:
        """Save, then start a fresh graph."""
        record = self.save()
        self.store.reset()
        self.transcript = ""
        self._reset_view(now)
        return record

    def load(self, record: SessionRecord, now: float = None):
        self.store.replace(record.to_graph())
        self.transcript = record.transcript or ""
        self._reset_view(now, keep_mode=True)

    def _reset_view(self, now: float = None, keep_mode: bool = False):
        self.focus.reset()
        if not keep_mode:
            self.layout.set_mode(VisMode.NETWORK)
        self.layout.set_focus(None)
        self.layout.set_graph(self.graph)
        self.focus.animate_to(self.focus.view_transform(self.graph), now)
        self._refresh_hover()

    def detach(self):
        """Stop interaction: release the detector and drop in-flight animations."""
        self.disable_gestures()
        self.focus.abandon_animation()


class SessionRunner:
    """Drives a session from two cooperative clocks: redraw and landmark sampling."""

    def __init__(self, session: Session, frame_source: Callable[[], Any] = None):
        self.session = session
        self.frame_source = frame_source
        self._tasks = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self):
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._redraw_loop()),
            loop.create_task(self._landmark_loop()),
        ]

    async def _redraw_loop(self):
        period = 1.0 / Config.clock.REDRAW_HZ
        while True:
            self.session.tick()
            await asyncio.sleep(period)

    async def _landmark_loop(self):
        period = 1.0 / Config.clock.LANDMARK_HZ
        while True:
            if self.session.gesture_channel is not None:
                frame = self.frame_source() if self.frame_source else None
                self.session.poll_gesture(frame)
            await asyncio.sleep(period)

    async def stop(self):
        for t in self._tasks:
            t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self.session.detach()
