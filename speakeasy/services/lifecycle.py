"""
SpeakEasy — Session Lifecycle Manager

================================================================================
ONE STREAMING SESSION PER CONNECTION, END TO END
================================================================================

  stream-start  → Session allocated + registered, "stream-ready" sent
  video-chunk   → EmotionSampler
  audio-chunk   → TranscriptAggregator (→ AdviceScheduler on new text)
  stream-stop   → record captured by value, finalization detached, session
                  removed from the registry
  disconnect    → session removed; not persisted unless
                  finalize_on_disconnect is configured

Chunks for a connection with no session are ignored. Repeated stop /
disconnect signals are no-ops once the session is gone. Teardown never
awaits or cancels in-flight collaborator calls: their late results find no
registered session and are dropped.
================================================================================
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Set

from ..core.config import CadenceConfig, SessionConfig, cadence_cfg, session_cfg
from ..core.interfaces import (
    AdviceGenerator,
    Emitter,
    EmotionDetector,
    SessionObserver,
    Transcriber,
)
from ..core.latency import SessionTracer, log_observer
from ..core.session import Session
from ..core.state_machine import SessionState
from ..processing.advice import AdviceScheduler
from ..processing.emotion import EmotionSampler
from ..processing.transcript import TranscriptAggregator
from .finalizer import SessionFinalizer
from .registry import SessionRegistry

logger = logging.getLogger("speakeasy.lifecycle")

READY_MESSAGE = "Server ready to analyze emotions and transcribe audio"


class SessionLifecycleManager:
    """
    Usage:
        manager = SessionLifecycleManager(detector, transcriber, advisor, finalizer)
        manager.connect(cid, send)            # on WebSocket accept
        await manager.start_stream(cid, user_id)
        await manager.handle_video_chunk(cid, frame)
        await manager.handle_audio_chunk(cid, pcm)
        await manager.stop_stream(cid)
        await manager.disconnect(cid)         # on WebSocket close
    """

    def __init__(
        self,
        detector: EmotionDetector,
        transcriber: Transcriber,
        advisor: AdviceGenerator,
        finalizer: SessionFinalizer,
        registry: Optional[SessionRegistry] = None,
        observer: SessionObserver = log_observer,
        config: SessionConfig = session_cfg,
        cadence: CadenceConfig = cadence_cfg,
    ) -> None:
        self.registry = registry or SessionRegistry()
        self._finalizer = finalizer
        self._observer = observer
        self._config = config

        self._emitters: Dict[str, Emitter] = {}
        self._pending: Set[asyncio.Task] = set()

        self.advice = AdviceScheduler(
            advisor,
            self.registry,
            self._emit,
            cooldown=cadence.advice_cooldown,
            context_window=cadence.context_window,
            timeout=cadence.advice_timeout,
            options=cadence.advice_options,
        )
        self.sampler = EmotionSampler(
            detector,
            self.registry,
            self._emit,
            interval=cadence.frame_interval,
            window=cadence.ledger_window,
            timeout=cadence.detect_timeout,
            emit_empty=config.emit_empty_detections,
        )
        self.aggregator = TranscriptAggregator(
            transcriber,
            self.registry,
            self._emit,
            advice=self.advice,
            interval=cadence.audio_interval,
            min_chunks=cadence.min_audio_chunks,
            window=cadence.ledger_window,
            chunk_bytes=cadence.transcribe_chunk_bytes,
            sample_rate=cadence.sample_rate,
            encoding=cadence.encoding,
            timeout=cadence.transcribe_timeout,
        )

    # ── Connection plumbing ─────────────────────────────────────────────

    def connect(self, connection_id: str, send: Emitter) -> None:
        """
        Attach the outbound channel of a connection.
        `send` is called as send(connection_id, event, data).
        """
        self._emitters[connection_id] = send

    async def _emit(self, connection_id: str, event: str, data: Dict[str, Any]) -> None:
        send = self._emitters.get(connection_id)
        if send is None:
            return
        try:
            await send(connection_id, event, data)
        except Exception as e:
            logger.debug(f"[{connection_id}] Emit {event} failed: {e}")

    def _observe(self, event: str, fields: Dict[str, Any]) -> None:
        try:
            self._observer(event, fields)
        except Exception as e:
            logger.debug(f"Observer error: {e}")

    @staticmethod
    def _transition(session: Session, target: SessionState, reason: str) -> None:
        session.state.transition(target, reason=reason)
        session.telemetry.session_state = target.value

    # ── Stream start ────────────────────────────────────────────────────

    async def start_stream(
        self,
        connection_id: str,
        user_id: Optional[str] = None,
        now: Optional[float] = None,
    ) -> Session:
        now = time.time() if now is None else now

        existing = self.registry.get(connection_id)
        if existing is not None:
            logger.info(f"[{connection_id}] stream-start while streaming — keeping session")
            await self._emit(connection_id, "stream-ready", {"message": READY_MESSAGE})
            return existing

        session = Session(
            connection_id=connection_id,
            user_id=(user_id or "").strip() or self._config.fallback_user_id,
            start_time=now,
            tracer=SessionTracer(connection_id, observer=self._observer),
        )
        self.registry.insert(session)
        self._transition(session, SessionState.STREAMING, "stream-start")
        session.tracer.mark("stream_started", now)

        logger.info(f"[{connection_id}] Stream started for user {session.user_id}")
        self._observe("session.started", {
            "connection_id": connection_id,
            "user_id": session.user_id,
        })
        await self._emit(connection_id, "stream-ready", {"message": READY_MESSAGE})
        return session

    # ── Media routing ───────────────────────────────────────────────────

    async def handle_video_chunk(
        self,
        connection_id: str,
        frame: bytes,
        now: Optional[float] = None,
    ) -> bool:
        session = self.registry.get(connection_id)
        if session is None:
            logger.debug(f"[{connection_id}] video-chunk without session — ignored")
            return False
        return await self.sampler.on_frame(session, frame, now)

    async def handle_audio_chunk(
        self,
        connection_id: str,
        chunk: bytes,
        now: Optional[float] = None,
    ) -> bool:
        session = self.registry.get(connection_id)
        if session is None:
            logger.debug(f"[{connection_id}] audio-chunk without session — ignored")
            return False
        return await self.aggregator.on_audio_chunk(session, chunk, now)

    # ── Stop / disconnect ───────────────────────────────────────────────

    async def stop_stream(
        self,
        connection_id: str,
        now: Optional[float] = None,
    ) -> Optional[asyncio.Task]:
        """
        Finalize and close. Returns the detached finalization task, or None
        when there was no session (repeated stop).
        """
        now = time.time() if now is None else now
        session = self.registry.remove(connection_id)
        if session is None:
            return None

        self._transition(session, SessionState.FINALIZING, "stream-stop")
        record = session.snapshot(end_time=now)

        logger.info(
            f"[{connection_id}] Session summary: {record.duration:.1f}s, "
            f"{record.frame_count} frames analysed, "
            f"{session.telemetry.frames_received} received"
        )
        self._observe("session.stopped", {
            "connection_id": connection_id,
            "duration_s": round(record.duration, 1),
            "frames": record.frame_count,
            "words": len(record.transcript.split()),
            "advice": session.telemetry.advice_generated,
        })

        async def notify(event: str, data: Dict[str, Any]) -> None:
            await self._emit(connection_id, event, data)

        task = asyncio.create_task(
            self._finalizer.finalize(record, notify=notify),
            name=f"finalize-{connection_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._finalize_done)

        self._transition(session, SessionState.CLOSED, "finalization scheduled")
        return task

    async def disconnect(
        self,
        connection_id: str,
        now: Optional[float] = None,
    ) -> Optional[asyncio.Task]:
        """Transport closed. Returns a finalization task only with finalize_on_disconnect."""
        task: Optional[asyncio.Task] = None
        if self._config.finalize_on_disconnect:
            task = await self.stop_stream(connection_id, now)
        else:
            session = self.registry.remove(connection_id)
            if session is not None:
                self._transition(session, SessionState.CLOSED, "disconnect")
                logger.info(
                    f"[{connection_id}] Disconnected mid-stream — "
                    f"{session.frame_count} frames, "
                    f"{len(session.full_transcript.split())} words not persisted"
                )
                self._observe("session.discarded", {"connection_id": connection_id})

        self._emitters.pop(connection_id, None)
        return task

    def _finalize_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Finalization task {task.get_name()} failed: {exc}", exc_info=exc)

    # ── Shutdown / diagnostics ──────────────────────────────────────────

    @property
    def pending_finalizations(self) -> int:
        return len(self._pending)

    async def shutdown(self) -> None:
        """Give pending finalizations a bounded chance to complete."""
        for connection_id in list(self.registry.all_sessions):
            await self.disconnect(connection_id)
        if self._pending:
            logger.info(f"Waiting for {len(self._pending)} finalization(s)...")
            await asyncio.wait(set(self._pending), timeout=self._config.shutdown_grace)

    def describe(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for cid, session in self.registry.all_sessions.items():
            result[cid] = {
                "user_id": session.user_id,
                "state": session.state.state.value,
                "current_emotion": session.current_emotion,
                "frame_count": session.frame_count,
                "transcript_words": len(session.full_transcript.split()),
                "telemetry": session.telemetry.to_dict(),
                "latency": session.tracer.summary(),
            }
        return result
