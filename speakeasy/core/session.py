"""
SpeakEasy — Session State

Server-side state for one active streaming connection. Mutated only by the
handlers of that connection's events; see the processing components for the
rules each field follows.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional

from .guidance import DEFAULT_ADVICE, bare_label
from .latency import SessionTracer
from .ledger import TimeWindowedLedger
from .models import MoodEntry, SessionRecord, SessionTelemetry, TranscriptSegment
from .state_machine import SessionStateMachine

NO_FACE_DETECTED = "No face detected"


@dataclass(eq=False)
class Session:
    connection_id: str
    user_id: str
    start_time: float = field(default_factory=time.time)

    frame_count: int = 0
    last_processed_time: float = 0.0
    last_audio_processed_time: float = 0.0
    last_advice_generated_time: float = 0.0

    current_emotion: Optional[str] = None
    previous_emotion: Optional[str] = None
    emotion_just_changed: bool = False

    full_transcript: str = ""
    audio_chunks: List[bytes] = field(default_factory=list)

    mood_history: TimeWindowedLedger[MoodEntry] = field(default_factory=TimeWindowedLedger)
    transcript_segments: TimeWindowedLedger[TranscriptSegment] = field(
        default_factory=TimeWindowedLedger
    )
    # Every mood entry of the session; the ledger above only keeps the last minute
    mood_log: List[MoodEntry] = field(default_factory=list)

    last_advice: List[str] = field(default_factory=lambda: list(DEFAULT_ADVICE))
    credentials_error_reported: bool = False

    telemetry: SessionTelemetry = field(default_factory=SessionTelemetry)
    tracer: Optional[SessionTracer] = None
    state: Optional[SessionStateMachine] = None
    audio_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def __post_init__(self) -> None:
        # The first frame is analysed immediately; audio and advice gates
        # count from stream start.
        self.last_audio_processed_time = self.last_audio_processed_time or self.start_time
        self.last_advice_generated_time = self.last_advice_generated_time or self.start_time
        self.telemetry.connection_id = self.connection_id
        if self.tracer is None:
            self.tracer = SessionTracer(self.connection_id)
        if self.state is None:
            self.state = SessionStateMachine(label=self.connection_id)

    @property
    def current_label(self) -> Optional[str]:
        """Bare label of the current emotion; None when unset or no face."""
        if self.current_emotion in (None, NO_FACE_DETECTED):
            return None
        return bare_label(self.current_emotion)

    def append_transcript(self, text: str) -> None:
        if self.full_transcript:
            self.full_transcript += " " + text
        else:
            self.full_transcript = text

    def take_audio(self) -> List[bytes]:
        """Swap the audio buffer for an empty one and return the old contents."""
        chunks, self.audio_chunks = self.audio_chunks, []
        return chunks

    def snapshot(self, end_time: float) -> SessionRecord:
        return SessionRecord(
            connection_id=self.connection_id,
            user_id=self.user_id,
            start_time=self.start_time,
            end_time=end_time,
            frame_count=self.frame_count,
            transcript=self.full_transcript,
            mood_history=tuple(self.mood_log),
            last_advice=tuple(self.last_advice),
        )
