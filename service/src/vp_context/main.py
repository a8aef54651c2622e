"""Main FastAPI application with the page bridge WebSocket."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import List, Set

from fastapi import (
    FastAPI,
    File,
    HTTPException,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
)

from .artifact_store import ArtifactStore
from .bus import MessageBus
from .clients import (
    AnswerClient,
    BaseUrlResolver,
    DocumentClient,
    OCRClient,
    TranscriptionClient,
)
from .config import settings
from .context_buffer import ContextBuffer
from .coordinator import CaptureCoordinator
from .endpoints import BackgroundCoordinator, PageAffordance, PanelEndpoint
from .exceptions import BusError, CaptureBusyError, SessionNotFoundError
from .logging_config import setup_logging
from .models.capture import UploadedFile
from .models.session import ChatSession
from .platform.desktop import DESKTOP_TAB_ID, DesktopPlatform
from .recording import RecordingSessionManager
from .session_store import SessionStore
from .state_store import StateStore
from .websocket import PageBridgeManager

# Setup logging
setup_logging(level=settings.LOG_LEVEL, debug=settings.DEBUG, traffic=settings.LOG_TRAFFIC)
logger = logging.getLogger(__name__)

# WebSocket receive timeout
WS_RECEIVE_TIMEOUT = settings.WS_RECEIVE_TIMEOUT

# Global components (initialized in lifespan)
bus: MessageBus
bridge: PageBridgeManager
session_store: SessionStore
buffer: ContextBuffer
panel: PanelEndpoint
desktop_page: PageAffordance

# Region captures waiting on a selection
capture_tasks: Set["asyncio.Task[bool]"] = set()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info(f"Starting {settings.PROJECT_NAME}...")

    global bus, bridge, session_store, buffer, panel, desktop_page

    # Data directory from environment (set by CLI) or settings default
    data_dir = os.environ.get("VP_CONTEXT_DATA_DIR", settings.DATA_DIR)
    logger.info(f"Data directory: {data_dir}")

    state = StateStore(data_dir=data_dir)
    await state.initialize()
    session_store = SessionStore(state)
    buffer = ContextBuffer(session_store)

    artifact_store = ArtifactStore(data_dir=data_dir)
    removed = await artifact_store.cleanup_old(settings.MAX_ARTIFACT_AGE_HOURS)
    if removed:
        logger.info(f"Removed {removed} old recording(s)")

    resolver = BaseUrlResolver(state)
    ocr = OCRClient(resolver)
    transcription = TranscriptionClient(resolver)
    documents = DocumentClient(resolver)
    answer = AnswerClient(resolver)
    clients = (ocr, transcription, documents, answer)

    platform = DesktopPlatform()
    recorder = RecordingSessionManager(
        platform.capture_strategies(),
        ocr,
        transcription,
        buffer,
        microphone=platform.microphone(),
        artifact_store=artifact_store,
    )
    coordinator = CaptureCoordinator(
        platform, recorder, ocr, transcription, documents, buffer, session_store
    )

    bus = MessageBus()
    bridge = PageBridgeManager(bus, max_connections=settings.MAX_CONNECTIONS)
    background = BackgroundCoordinator(bus, platform, state)
    background.attach()

    # The local screen is a page of its own
    desktop_page = PageAffordance(bus, DESKTOP_TAB_ID)
    desktop_page.attach()
    platform.register_overlay_injector(DESKTOP_TAB_ID, desktop_page.show_region_selector)

    panel = PanelEndpoint(bus, session_store, buffer, coordinator, answer, tab_id=DESKTOP_TAB_ID)
    await panel.open()

    logger.info(f"{settings.PROJECT_NAME} started successfully")

    yield

    logger.info("Shutting down gracefully...")
    for task in list(capture_tasks):
        task.cancel()
    if capture_tasks:
        await asyncio.gather(*capture_tasks, return_exceptions=True)
    await panel.close()
    await desktop_page.detach()
    await background.detach()
    for client in clients:
        await client.shutdown()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
        "connected_pages": bridge.get_connection_count(),
        "capture_status": panel.coordinator.status.value,
    }


def _session_summary(chat: ChatSession) -> dict:
    return {
        "id": chat.id,
        "title": chat.title,
        "updated_at": chat.updated_at,
        "message_count": len(chat.messages),
        "context_chars": len(chat.context),
    }


def _capture_state() -> dict:
    coordinator = panel.coordinator
    session = coordinator.session
    return {
        "status": coordinator.status.value,
        "mode": session.mode.value if session else None,
        "error": session.error if session else None,
        "notice": coordinator.notice,
    }


def _required(request_body: dict, field: str) -> str:
    value = request_body.get(field)
    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f"Missing required field: {field}")
    return value


def _capture_done(task: "asyncio.Task[bool]") -> None:
    capture_tasks.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Region capture failed: {task.exception()}")


@app.get("/sessions")
async def list_sessions():
    """List chat sessions, most recently updated first."""
    return {
        "active_id": session_store.active_id,
        "sessions": [_session_summary(chat) for chat in session_store.list()],
    }


@app.post("/sessions", status_code=201)
async def create_session():
    """Start a new chat and make it active."""
    chat = await session_store.create()
    return _session_summary(chat)


@app.patch("/sessions/{session_id}")
async def rename_session(session_id: str, request_body: dict):
    """
    Rename a chat session.

    Request body: {"title": "Lecture 3"}
    """
    title = _required(request_body, "title")
    try:
        chat = await session_store.rename(session_id, title)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return _session_summary(chat)


@app.post("/sessions/{session_id}/activate")
async def activate_session(session_id: str):
    try:
        chat = await session_store.activate(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return _session_summary(chat)


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    try:
        await session_store.delete(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return {"deleted": session_id, "active_id": session_store.active_id}


@app.get("/sessions/{session_id}/context")
async def get_session_context(session_id: str):
    """Return the accumulated context of one session."""
    try:
        chat = session_store.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return {"session_id": chat.id, "context": chat.context}


@app.put("/api/v1/context")
async def replace_context(request_body: dict):
    """
    Overwrite the active session's context (manual edit).

    Request body: {"text": "..."}
    """
    await session_store.ensure_active()
    await buffer.set(_required(request_body, "text"))
    return {"session_id": session_store.active_id, "context": buffer.text}


@app.get("/api/v1/capture")
async def get_capture_state():
    return _capture_state()


@app.post("/api/v1/capture/region", status_code=202)
async def start_region_capture():
    """
    Show the region selector on the active page.

    Returns at once; the capture finishes when the page reports a
    selection, the selection is dropped, or the selection times out.
    """
    coordinator = panel.coordinator
    try:
        coordinator.ensure_idle()
    except CaptureBusyError as e:
        raise HTTPException(status_code=409, detail=e.message)

    task = asyncio.create_task(coordinator.start_region_capture())
    capture_tasks.add(task)
    task.add_done_callback(_capture_done)
    # Let the capture claim the coordinator before the next request
    await asyncio.sleep(0)
    return _capture_state()


@app.post("/api/v1/capture/recording/start")
async def start_recording():
    try:
        started = await panel.coordinator.start_recording()
    except CaptureBusyError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return {"started": started, **_capture_state()}


@app.post("/api/v1/capture/recording/stop")
async def stop_recording():
    """Stop the recording and wait for its transcript."""
    await panel.coordinator.stop_recording()
    return _capture_state()


@app.post("/api/v1/capture/upload")
async def upload_files(files: List[UploadFile] = File(..., description="Files to add as context")):
    """Turn uploaded files into context entries, one after another."""
    coordinator = panel.coordinator
    try:
        coordinator.ensure_idle()
        for file in files:
            data = await file.read()
            await coordinator.handle_upload(
                UploadedFile(
                    filename=file.filename or "upload",
                    content_type=file.content_type or "",
                    data=data,
                )
            )
    except CaptureBusyError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return {"processed": [file.filename for file in files], "context": buffer.text}


@app.post("/api/v1/pages/{tab_id}/overlay")
async def drive_overlay(tab_id: int, request_body: dict):
    """
    Forward a pointer event to the region selector of the local screen.

    Remote pages run their own overlay and report through the page bridge.

    Request body: {"event": "down" | "move" | "up" | "cancel", "x": 10, "y": 20}
    """
    if tab_id != DESKTOP_TAB_ID:
        raise HTTPException(status_code=404, detail=f"Page {tab_id} is not hosted here")

    overlay = desktop_page.overlay
    if overlay is None:
        raise HTTPException(status_code=409, detail="No region selector is showing")

    event = request_body.get("event")
    if event == "cancel":
        overlay.cancel()
        return _capture_state()

    handlers = {
        "down": overlay.pointer_down,
        "move": overlay.pointer_move,
        "up": overlay.pointer_up,
    }
    if event not in handlers:
        raise HTTPException(status_code=400, detail=f"Unknown pointer event: {event}")
    try:
        x, y = float(request_body["x"]), float(request_body["y"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Pointer events need numeric x and y")

    handlers[event](x, y)
    return _capture_state()


@app.post("/api/v1/ask")
async def ask(request_body: dict):
    """
    Ask a question about the active session's context.

    Request body: {"question": "..."}
    """
    question = _required(request_body, "question").strip()
    if not question:
        raise HTTPException(status_code=400, detail="Question is empty")
    reply = await panel.ask(question)
    return {"session_id": session_store.active_id, "role": reply.role, "content": reply.content}


@app.websocket("/ws/page/{tab_id}")
async def page_bridge_endpoint(websocket: WebSocket, tab_id: int):
    """Bridge a browser page's affordance onto the message bus."""
    try:
        await bridge.connect(tab_id, websocket)
    except BusError as e:
        logger.info(f"Page bridge refused for tab {tab_id}: {e.message}")
        return

    try:
        await bridge.serve(tab_id, websocket, WS_RECEIVE_TIMEOUT)
    except WebSocketDisconnect:
        logger.info(f"Page bridge closed by tab {tab_id}")
    except Exception as e:
        logger.error(f"Page bridge error for tab {tab_id}: {e}", exc_info=True)
    finally:
        bridge.disconnect(tab_id)
