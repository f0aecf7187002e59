# synapse/gesture.py
"""
Hand-gesture interaction.

A pure step function turns one landmark frame into the next GestureState
and at most one event. Pinching selects the hovered node, spreading the
fingers wide leaves focus. A gesture must be held for a few frames to
fire, and fires only once until the hand passes back through neutral.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, NamedTuple, Optional, Protocol, Sequence, Tuple

from .config import Config
from .graph_store import Point

logger = logging.getLogger(__name__)


class Landmark(NamedTuple):
    x: float
    y: float
    z: float = 0.0


class HandPose(str, Enum):
    PINCHING = "pinching"
    NEUTRAL = "neutral"
    OPEN = "open"


class GestureEventType(str, Enum):
    SELECT = "select"
    DESELECT = "deselect"


@dataclass(frozen=True)
class GestureEvent:
    type: GestureEventType
    node_id: Optional[str] = None

    @classmethod
    def select(cls, node_id: str) -> "GestureEvent":
        return cls(GestureEventType.SELECT, node_id)

    @classmethod
    def deselect(cls) -> "GestureEvent":
        return cls(GestureEventType.DESELECT)


@dataclass(frozen=True)
class GestureState:
    pinch_frames: int = 0
    spread_frames: int = 0
    armed: bool = False
    cursor: Optional[Point] = None
    is_pinching: bool = False


def to_landmarks(sample: Sequence[Any]) -> Tuple[Landmark, ...]:
    """Coerce a raw sample of points (tuples, lists, x/y/z mappings or objects) to Landmarks."""
    points = []
    for p in sample:
        if isinstance(p, Landmark):
            points.append(p)
        elif isinstance(p, dict):
            points.append(Landmark(float(p["x"]), float(p["y"]), float(p.get("z", 0.0))))
        elif hasattr(p, "x") and hasattr(p, "y"):
            # recognizer result objects expose coordinates as attributes
            points.append(Landmark(float(p.x), float(p.y), float(getattr(p, "z", 0.0) or 0.0)))
        else:
            points.append(Landmark(*(float(v) for v in p)))
    needed = max(Config.gesture.THUMB_TIP, Config.gesture.INDEX_TIP) + 1
    if len(points) < needed:
        raise ValueError(f"Landmark sample has {len(points)} points, need at least {needed}")
    return tuple(points)


def classify(pinch_distance: float) -> HandPose:
    cfg = Config.gesture
    if pinch_distance < cfg.PINCH_THRESHOLD:
        return HandPose.PINCHING
    if pinch_distance > cfg.OPEN_THRESHOLD:
        return HandPose.OPEN
    return HandPose.NEUTRAL


def step(state: GestureState, landmarks: Optional[Sequence[Landmark]],
         hover_id: Optional[str], focus_id: Optional[str]) -> Tuple[GestureState, Optional[GestureEvent]]:
    """Advance the interaction by one landmark frame."""
    if not landmarks:
        return replace(state, pinch_frames=0, spread_frames=0, cursor=None, is_pinching=False), None

    cfg = Config.gesture
    thumb = landmarks[cfg.THUMB_TIP]
    index = landmarks[cfg.INDEX_TIP]
    cursor = (1 - index.x, index.y)  # mirrored
    pose = classify(math.hypot(thumb.x - index.x, thumb.y - index.y))

    event = None
    if pose == HandPose.PINCHING:
        pinch, spread, armed = state.pinch_frames + 1, 0, state.armed
        if pinch > cfg.PINCH_FRAMES and not armed:
            if hover_id and hover_id != focus_id:
                event = GestureEvent.select(hover_id)
            armed = True
    elif pose == HandPose.OPEN:
        pinch, spread, armed = 0, state.spread_frames + 1, state.armed
        if spread > cfg.SPREAD_FRAMES and not armed:
            if focus_id:
                event = GestureEvent.deselect()
            armed = True
    else:
        pinch, spread, armed = 0, 0, False

    next_state = GestureState(
        pinch_frames=pinch,
        spread_frames=spread,
        armed=armed,
        cursor=cursor,
        is_pinching=pose == HandPose.PINCHING,
    )
    return next_state, event


class LandmarkDetector(Protocol):
    """Per-frame hand landmark producer (camera + recognizer)."""

    def detect(self, frame: Any, timestamp_ms: int) -> Optional[Sequence[Any]]:
        ...

    def close(self) -> None:
        ...


class GestureChannel:
    """Feeds detector output into the gesture step, tolerating transient detector failures."""

    def __init__(self, detector: LandmarkDetector):
        self.detector = detector
        self.enabled = True
        self.failures = 0

    def read(self, frame: Any, timestamp_ms: int) -> Tuple[bool, Optional[Tuple[Landmark, ...]]]:
        """
        Returns (ok, landmarks). ok is False when the frame should be skipped
        entirely; landmarks is None when no hand was seen.
        """
        if not self.enabled:
            return False, None
        try:
            sample = self.detector.detect(frame, timestamp_ms)
            if not sample:
                return True, None
            return True, to_landmarks(sample)
        except Exception as e:
            self.failures += 1
            logger.debug(f"Landmark detection failed, retrying next frame: {e}")
            return False, None

    def close(self):
        if not self.enabled:
            return
        self.enabled = False
        try:
            self.detector.close()
        except Exception as e:
            logger.warning(f"Failed to release landmark detector: {e}")
