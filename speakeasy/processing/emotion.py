"""
SpeakEasy — Emotion Sampler

Rate-limited frame consumer. Video arrives far faster than the face-analysis
service may be called, so frames inside the sampling interval are dropped
on purpose (lossy sampling, not backpressure). Eligible frames go to the
EmotionDetector; results are folded into the session and transitions between
dominant emotions are flagged for the Advice Scheduler.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..core.config import cadence_cfg, session_cfg
from ..core.errors import DetectorCredentialsError
from ..core.interfaces import EmotionDetector, Emitter
from ..core.models import FaceEmotion, MoodEntry
from ..core.session import NO_FACE_DETECTED, Session
from ..services.registry import SessionRegistry

logger = logging.getLogger("speakeasy.emotion")

CREDENTIALS_MESSAGE = (
    "Emotion detection credentials not configured. "
    "Set EMOTION_SERVICE_URL and EMOTION_SERVICE_KEY."
)


def dominant_emotion(face: FaceEmotion) -> Tuple[str, float]:
    """Highest-confidence label of a face."""
    if face.emotions:
        best = max(face.emotions, key=lambda e: float(e.get("confidence") or 0.0))
        label = str(best.get("type") or face.dominant_label or "UNKNOWN")
        return label.upper(), float(best.get("confidence") or 0.0)
    return (face.dominant_label or "UNKNOWN").upper(), float(face.confidence or 0.0)


class EmotionSampler:
    """
    Lifecycle:
        sampler = EmotionSampler(detector, registry, emit)
        await sampler.on_frame(session, frame_bytes, now)   # per video chunk
    """

    def __init__(
        self,
        detector: EmotionDetector,
        registry: SessionRegistry,
        emit: Emitter,
        interval: float = cadence_cfg.frame_interval,
        window: float = cadence_cfg.ledger_window,
        timeout: float = cadence_cfg.detect_timeout,
        emit_empty: bool = session_cfg.emit_empty_detections,
    ) -> None:
        self._detector = detector
        self._registry = registry
        self._emit = emit
        self._interval = interval
        self._window = window
        self._timeout = timeout
        self._emit_empty = emit_empty

    def should_sample(self, session: Session, now: float) -> bool:
        return now - session.last_processed_time >= self._interval

    async def on_frame(
        self,
        session: Session,
        frame: bytes,
        now: Optional[float] = None,
    ) -> bool:
        """
        Returns True when the frame was sent for detection.
        Gate check and gate update happen before the first await.
        """
        now = time.time() if now is None else now
        session.telemetry.frames_received += 1

        if not self.should_sample(session, now):
            session.telemetry.frames_dropped += 1
            return False

        session.last_processed_time = now
        session.frame_count += 1
        frame_no = session.frame_count

        logger.debug(
            f"[{session.connection_id}] Frame {frame_no}: analysing "
            f"{len(frame) / 1024:.1f} KB"
        )

        t0 = time.perf_counter()
        try:
            faces = await asyncio.wait_for(
                self._detector.detect(frame), timeout=self._timeout
            )
        except DetectorCredentialsError as e:
            session.telemetry.detection_failures += 1
            logger.error(f"[{session.connection_id}] Emotion detection credentials error: {e}")
            await self._report_credentials(session)
            return True
        except asyncio.TimeoutError:
            session.telemetry.detection_failures += 1
            logger.warning(f"[{session.connection_id}] Frame {frame_no}: detection timed out")
            return True
        except Exception as e:
            session.telemetry.detection_failures += 1
            logger.warning(f"[{session.connection_id}] Frame {frame_no}: detection failed: {e}")
            return True

        session.telemetry.last_detect_latency_ms = round((time.perf_counter() - t0) * 1000, 1)

        if not self._registry.is_live(session):
            logger.debug(f"[{session.connection_id}] Discarding detection for closed session")
            return True

        if session.last_processed_time != now:
            # A newer frame was sampled while this one was in flight
            session.telemetry.stale_detections += 1
            logger.debug(f"[{session.connection_id}] Frame {frame_no}: superseded, result discarded")
            return True

        session.telemetry.detections += 1
        session.credentials_error_reported = False
        self.apply_detection(session, faces, now)

        if faces or self._emit_empty:
            await self._emit(session.connection_id, "emotion-detected", {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "faces": [f.to_dict() for f in faces],
            })
        return True

    def apply_detection(self, session: Session, faces: List[FaceEmotion], now: float) -> None:
        """Fold one detection result into the session."""
        if not faces:
            session.current_emotion = NO_FACE_DETECTED
            logger.debug(f"[{session.connection_id}] No faces detected in this frame")
            return

        label, confidence = dominant_emotion(faces[0])
        previous = session.current_label

        if previous is not None and previous != label:
            session.emotion_just_changed = True
            session.previous_emotion = previous
            logger.info(f"[{session.connection_id}] Mood changed: {previous} → {label}")
        else:
            session.emotion_just_changed = False

        session.current_emotion = f"{label} ({confidence:.1f}%)"

        entry = MoodEntry(timestamp=now, emotion=label, confidence=round(confidence, 1))
        session.mood_history.append_and_prune(entry, self._window, now)
        session.mood_log.append(entry)
        session.tracer.mark("first_emotion", now)

        logger.info(f"[{session.connection_id}] Mood: {session.current_emotion}")

    async def _report_credentials(self, session: Session) -> None:
        # Once per session until a detection succeeds again
        if session.credentials_error_reported:
            return
        if not self._registry.is_live(session):
            return
        session.credentials_error_reported = True
        await self._emit(session.connection_id, "emotion-error", {
            "message": CREDENTIALS_MESSAGE,
        })
