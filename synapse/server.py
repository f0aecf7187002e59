"""
Synapse FastAPI Server
Exposes live mind-map sessions and saved history over REST.
"""

import json
import logging
import os
from typing import Optional, List, Dict, Any

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from .config import Config
from .history import SessionHistory, export_filename, export_json, export_markdown
from .layout import VisMode
from .session import Session

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Synapse Server",
    description="Live concept graph with force layout and gesture focus",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Live sessions by id
session_instances: Dict[str, Session] = {}
_history: Optional[SessionHistory] = None


def load_config_file(path: str) -> Dict[str, tuple]:
    """Apply a JSON config file (env vars still override); returns what changed."""
    before = Config.to_dict()
    with open(path, encoding="utf-8") as f:
        Config.from_dict(json.load(f), apply_env_overrides=True)
    changed = Config.diff(before)
    logger.info(f"[Server] Config loaded from {path}")
    for key, (value, previous) in sorted(changed.items()):
        logger.info(f"[Server]   {key} = {value!r} (was {previous!r})")
    return changed


_config_path = os.getenv("SYNAPSE_CONFIG")
if _config_path and os.path.exists(_config_path):
    load_config_file(_config_path)


# ============================================================================
# Request Models
# ============================================================================

class UpdateRequest(BaseModel):
    # Entries stay loose so malformed ones are skipped, not rejected
    concepts: Optional[List[Any]] = None
    relationships: Optional[List[Any]] = None


class ModeRequest(BaseModel):
    mode: str


class FocusRequest(BaseModel):
    node_id: str


class ZoomRequest(BaseModel):
    level: Optional[float] = None
    direction: Optional[str] = None  # "in" | "out"


class CursorRequest(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None


class LandmarkRequest(BaseModel):
    # 21 points of [x, y, z]; None or empty when no hand is visible
    landmarks: Optional[List[List[float]]] = None


class TickRequest(BaseModel):
    steps: int = 1


class TranscriptRequest(BaseModel):
    text: str


class DragRequest(BaseModel):
    node_id: str
    phase: str  # "start" | "move" | "end"
    x: Optional[float] = None
    y: Optional[float] = None


# ============================================================================
# Helper Functions
# ============================================================================

def get_history() -> SessionHistory:
    global _history
    if _history is None:
        _history = SessionHistory()
    return _history


def reset_history():
    global _history
    if _history is not None:
        _history.close()
    _history = None


def get_or_create_session(session_id: str) -> Session:
    if session_id not in session_instances:
        logger.info(f"[Server] Creating new session '{session_id}'")
        session_instances[session_id] = Session(session_id=session_id, history=get_history())
    return session_instances[session_id]


def get_session(session_id: str) -> Session:
    if session_id not in session_instances:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session_instances[session_id]


# ============================================================================
# Session Endpoints
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "running",
        "service": "Synapse Server",
        "version": "1.0.0",
        "active_sessions": list(session_instances.keys())
    }


@app.post("/sessions/{session_id}/update")
async def submit_update(session_id: str, req: UpdateRequest):
    """Queue an extracted concept/relationship event and apply it immediately."""
    session = get_or_create_session(session_id)
    session.submit_update(req.model_dump())
    diff = session.process_updates()
    return {
        "status": "applied",
        "entered_nodes": sorted(diff.entered_nodes),
        "entered_links": [list(k) for k in sorted(diff.entered_links)],
        "node_count": len(session.graph.nodes),
        "link_count": len(session.graph.links),
    }


@app.get("/sessions/{session_id}/snapshot")
async def get_snapshot(session_id: str):
    return get_session(session_id).snapshot()


@app.get("/sessions/{session_id}/view")
async def get_view(session_id: str):
    return get_session(session_id).view_state()


@app.post("/sessions/{session_id}/tick")
async def tick(session_id: str, req: TickRequest):
    session = get_session(session_id)
    steps = max(0, min(req.steps, 1000))
    for _ in range(steps):
        session.tick()
    return {"alpha": session.layout.alpha, "active": session.layout.is_active}


@app.post("/sessions/{session_id}/mode")
async def set_mode(session_id: str, req: ModeRequest):
    session = get_session(session_id)
    try:
        session.set_mode(VisMode(req.mode))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown mode '{req.mode}'")
    return {"mode": session.mode.value}


@app.post("/sessions/{session_id}/focus")
async def enter_focus(session_id: str, req: FocusRequest):
    session = get_session(session_id)
    if not session.enter_node(req.node_id):
        raise HTTPException(status_code=404, detail=f"Node '{req.node_id}' not found")
    return {"focused_id": session.focused_id}


@app.delete("/sessions/{session_id}/focus")
async def exit_focus(session_id: str):
    session = get_session(session_id)
    session.background_click()
    return {"focused_id": session.focused_id}


@app.post("/sessions/{session_id}/zoom")
async def set_zoom(session_id: str, req: ZoomRequest):
    session = get_session(session_id)
    if req.direction == "in":
        zoom = session.zoom_in()
    elif req.direction == "out":
        zoom = session.zoom_out()
    elif req.level is not None:
        zoom = session.set_zoom(req.level)
    else:
        raise HTTPException(status_code=400, detail="Provide a level or a direction")
    return {"zoom": zoom}


@app.post("/sessions/{session_id}/cursor")
async def set_cursor(session_id: str, req: CursorRequest):
    session = get_session(session_id)
    cursor = (req.x, req.y) if req.x is not None and req.y is not None else None
    session.set_cursor(cursor)
    return {"hover_id": session.hover_id}


@app.post("/sessions/{session_id}/landmarks")
async def push_landmarks(session_id: str, req: LandmarkRequest):
    session = get_session(session_id)
    try:
        event = session.handle_landmarks(req.landmarks)
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    state = session.gesture_state
    return {
        "event": None if event is None else {"type": event.type.value, "node_id": event.node_id},
        "cursor": state.cursor,
        "is_pinching": state.is_pinching,
        "hover_id": session.hover_id,
        "focused_id": session.focused_id,
    }


@app.post("/sessions/{session_id}/drag")
async def drag(session_id: str, req: DragRequest):
    session = get_session(session_id)
    try:
        if req.phase == "start":
            session.drag_start(req.node_id)
        elif req.phase == "move":
            if req.x is None or req.y is None:
                raise HTTPException(status_code=400, detail="Drag move needs x and y")
            session.drag(req.node_id, req.x, req.y)
        elif req.phase == "end":
            session.drag_end(req.node_id)
        else:
            raise HTTPException(status_code=400, detail=f"Unknown drag phase '{req.phase}'")
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Node '{req.node_id}' not found")
    return {"node_id": req.node_id, "phase": req.phase}


@app.post("/sessions/{session_id}/transcript")
async def append_transcript(session_id: str, req: TranscriptRequest):
    session = get_or_create_session(session_id)
    return {"transcript": session.append_transcript(req.text)}


@app.post("/sessions/{session_id}/save")
async def save_session(session_id: str):
    record = get_session(session_id).save()
    return {"status": "saved" if record else "empty", "record_id": record.id if record else None}


@app.post("/sessions/{session_id}/clear")
async def clear_session(session_id: str):
    record = get_session(session_id).clear()
    return {"status": "cleared", "record_id": record.id if record else None}


@app.post("/sessions/{session_id}/load/{record_id}")
async def load_session(session_id: str, record_id: str):
    record = get_history().get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Record '{record_id}' not found")
    session = get_or_create_session(session_id)
    session.load(record)
    return {"status": "loaded", "session_id": session_id, "record_id": record_id}


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    """Detach and drop a live session (history is kept)."""
    if session_id not in session_instances:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    session_instances.pop(session_id).detach()
    return {"status": "deleted", "session_id": session_id}


# ============================================================================
# History Endpoints
# ============================================================================

@app.get("/history")
async def list_history():
    return {"records": [r.to_dict() for r in get_history().list()]}


@app.get("/history/{record_id}/export")
async def export_record(record_id: str, format: str = "json"):
    record = get_history().get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Record '{record_id}' not found")
    if format == "json":
        body, media_type, ext = export_json(record), "application/json", "json"
    elif format in ("md", "markdown"):
        body, media_type, ext = export_markdown(record), "text/markdown", "md"
    else:
        raise HTTPException(status_code=400, detail=f"Unknown export format '{format}'")
    return PlainTextResponse(
        body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{export_filename(record, ext)}"'},
    )


@app.delete("/history/{record_id}")
async def delete_record(record_id: str):
    if not get_history().delete(record_id):
        raise HTTPException(status_code=404, detail=f"Record '{record_id}' not found")
    return {"status": "deleted", "record_id": record_id}


# ============================================================================
# Server Startup
# ============================================================================

def start_server(host: str = None, port: int = None, reload: bool = None):
    """Start the Synapse server."""
    host = host or Config.server.HOST
    port = port or Config.server.PORT
    if reload is None:
        reload = Config.server.RELOAD
    logger.info(f"[Server] Starting on {host}:{port} (history: {Config.history_path()})")

    uvicorn.run(
        "synapse.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="debug" if Config.core.DEBUG else "info"
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    start_server()
