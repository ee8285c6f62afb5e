"""
SpeakEasy — FastAPI Server

================================================================================
Architecture:
  • One streaming Session per WebSocket connection, owned by the
    SessionLifecycleManager
  • Video frames → EmotionSampler (rate-gated face emotion detection)
  • Audio PCM   → TranscriptAggregator (batched speech-to-text)
                 → AdviceScheduler (cooldown-gated coaching suggestions)
  • stream-stop → detached finalization: summary + markdown document stored
    per user, readable later through the conversation API
  • Collaborators are vendor adapters when keys are configured, simulated
    fallbacks otherwise
================================================================================

Endpoints:
  WS  /ws/stream                — real-time coaching session
  GET /health                   — server health
  GET /sessions                 — active sessions with telemetry
  GET /conversations            — stored conversations of the bearer
  GET /conversations/{id}       — one stored conversation
  PATCH /conversations/{id}     — edit summary / feedback

Client → Server (text frames, JSON):
  { type: "stream-start", userId?: "...", token?: "..." }
  { type: "stream-stop" }
  { type: "ping" }

Client → Server (binary frames):
  0x01 + JPEG bytes                          → video-chunk
  0x02 + 16-bit mono PCM                     → audio-chunk

Server → Client:
  { type: "stream-ready", data: {message} }
  { type: "emotion-detected", data: {timestamp, faces} }
  { type: "emotion-error", data: {message} }
  { type: "transcript-update", data: {text, timestamp} }
  { type: "advice-update", data: {options, emotion, emotionChanged, timestamp} }
  { type: "recording-saved", data: {conversationId} }
  { type: "recording-error", data: {message} }
  { type: "pong", data: {} }
  { type: "error", data: {message} }
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Set

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .core.config import server_cfg
from .core.errors import AuthenticationError
from .providers.factory import Providers, build_providers
from .services.conversations import ConversationLibrary
from .services.finalizer import SessionFinalizer
from .services.lifecycle import SessionLifecycleManager

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("speakeasy")
logging.basicConfig(
    level=getattr(logging, server_cfg.log_level.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

VERSION = "1.0.0"

VIDEO_TAG = 0x01
AUDIO_TAG = 0x02


class ConversationPatch(BaseModel):
    summary: Optional[str] = None
    feedback: Optional[str] = None


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(providers: Optional[Providers] = None) -> FastAPI:
    providers = providers or build_providers()
    manager = SessionLifecycleManager(
        providers.detector,
        providers.transcriber,
        providers.advisor,
        SessionFinalizer(providers.summarizer, providers.store),
    )
    library = ConversationLibrary(providers.store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 SpeakEasy Backend starting...")
        logger.info(f"   Collaborators: {providers.modes}")
        yield
        logger.info("🛑 Shutting down — closing all sessions...")
        await manager.shutdown()
        await providers.close()
        logger.info("🛑 SpeakEasy Backend stopped")

    app = FastAPI(
        title="SpeakEasy — Live Conversation Coach",
        version=VERSION,
        description=(
            "Streams webcam frames and microphone audio from a live "
            "conversation, tracks the other person's emotions and pushes "
            "short coaching suggestions back in real time."
        ),
        lifespan=lifespan,
    )
    app.state.providers = providers
    app.state.manager = manager
    app.state.library = library

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(server_cfg.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_routes(app)
    return app


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def _owner_from_header(authorization: Optional[str], providers: Providers) -> str:
    if not authorization:
        raise AuthenticationError("Missing bearer token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Malformed authorization header")
    owner_id = providers.identity.verify(token.strip())
    if owner_id is None:
        raise AuthenticationError("Invalid or expired token")
    return owner_id


def require_owner(request: Request) -> str:
    try:
        return _owner_from_header(
            request.headers.get("authorization"), request.app.state.providers
        )
    except AuthenticationError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def _register_routes(app: FastAPI) -> None:

    # ── REST ──

    @app.get("/health")
    async def health(request: Request):
        manager: SessionLifecycleManager = request.app.state.manager
        return {
            "status": "ok",
            "version": VERSION,
            "active_sessions": manager.registry.active_count,
            "pending_finalizations": manager.pending_finalizations,
            "collaborators": request.app.state.providers.modes,
        }

    @app.get("/sessions")
    async def list_sessions(request: Request):
        return request.app.state.manager.describe()

    @app.get("/conversations")
    async def list_conversations(request: Request, owner_id: str = Depends(require_owner)):
        library: ConversationLibrary = request.app.state.library
        conversations = await library.list_conversations(owner_id)
        return {"conversations": [c.to_dict() for c in conversations]}

    @app.get("/conversations/{conversation_id}")
    async def get_conversation(
        conversation_id: str,
        request: Request,
        owner_id: str = Depends(require_owner),
    ):
        library: ConversationLibrary = request.app.state.library
        if not await library.can_access(owner_id, conversation_id):
            raise HTTPException(status_code=403, detail="Access denied")
        try:
            detail = await library.get_conversation(owner_id, conversation_id)
        except ValueError as e:
            logger.warning(f"Conversation {owner_id}/{conversation_id} unreadable: {e}")
            detail = None
        if detail is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return detail.to_dict()

    @app.patch("/conversations/{conversation_id}")
    async def patch_conversation(
        conversation_id: str,
        body: ConversationPatch,
        request: Request,
        owner_id: str = Depends(require_owner),
    ):
        library: ConversationLibrary = request.app.state.library
        if not await library.can_access(owner_id, conversation_id):
            raise HTTPException(status_code=403, detail="Access denied")
        try:
            updated = await library.update_conversation(
                owner_id, conversation_id, summary=body.summary, feedback=body.feedback
            )
        except ValueError as e:
            logger.warning(f"Conversation {owner_id}/{conversation_id} unreadable: {e}")
            updated = False
        if not updated:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return (await library.get_conversation(owner_id, conversation_id)).to_dict()

    # ── WebSocket: one coaching session per connection ──

    @app.websocket("/ws/stream")
    async def websocket_stream(ws: WebSocket):
        await ws.accept()

        manager: SessionLifecycleManager = ws.app.state.manager
        providers: Providers = ws.app.state.providers
        connection_id = uuid.uuid4().hex
        tasks: Set[asyncio.Task] = set()

        async def send(cid: str, event: str, data: Dict[str, Any]) -> None:
            await ws.send_text(json.dumps({"type": event, "data": data}))

        def spawn(coro: Any, name: str) -> None:
            task = asyncio.create_task(coro, name=f"{name}-{connection_id[:8]}")
            tasks.add(task)
            task.add_done_callback(tasks.discard)

        manager.connect(connection_id, send)
        logger.info(f"[{connection_id}] WebSocket connected")

        try:
            while True:
                message = await ws.receive()
                if message.get("type") == "websocket.disconnect":
                    break

                payload = message.get("bytes")
                if payload is not None:
                    if len(payload) < 2:
                        logger.debug(f"[{connection_id}] Empty media frame — ignored")
                        continue
                    tag, body = payload[0], payload[1:]
                    # ── Media: one task per message, handlers gate before awaiting ──
                    if tag == VIDEO_TAG:
                        spawn(manager.handle_video_chunk(connection_id, body), "video")
                    elif tag == AUDIO_TAG:
                        spawn(manager.handle_audio_chunk(connection_id, body), "audio")
                    else:
                        logger.debug(f"[{connection_id}] Unknown media tag {tag:#04x}")
                    continue

                raw = message.get("text")
                if raw is None:
                    continue
                try:
                    control = json.loads(raw)
                except json.JSONDecodeError:
                    logger.debug(f"[{connection_id}] Invalid JSON — ignored")
                    continue
                if not isinstance(control, dict):
                    continue

                msg_type = control.get("type", "")

                # ── Start streaming ──
                if msg_type == "stream-start":
                    user_id = control.get("userId")
                    token = control.get("token")
                    if token:
                        verified = providers.identity.verify(str(token))
                        if verified is None:
                            await send(connection_id, "error", {"message": "Invalid token"})
                            continue
                        user_id = verified
                    await manager.start_stream(
                        connection_id, str(user_id) if user_id is not None else None
                    )

                # ── Stop streaming ──
                elif msg_type == "stream-stop":
                    await manager.stop_stream(connection_id)

                # ── Keepalive ──
                elif msg_type == "ping":
                    await send(connection_id, "pong", {})

                else:
                    logger.debug(f"[{connection_id}] Unknown message type {msg_type!r}")

        except WebSocketDisconnect:
            logger.info(f"[{connection_id}] WebSocket disconnected")
        except Exception as e:
            logger.error(f"[{connection_id}] WebSocket error: {e}", exc_info=True)
        finally:
            # In-flight media tasks keep running; their results are dropped
            await manager.disconnect(connection_id)
            if tasks:
                logger.debug(f"[{connection_id}] {len(tasks)} media task(s) still in flight")


app = create_app()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "speakeasy.server:app",
        host=server_cfg.host,
        port=server_cfg.port,
        log_level=server_cfg.log_level.lower(),
    )
