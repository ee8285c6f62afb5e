"""
SpeakEasy — Data Models

Dataclasses for every piece of data flowing through the system.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Collaborator results
# ---------------------------------------------------------------------------

@dataclass
class FaceEmotion:
    """
    One detected face.

    `emotions` keeps the full per-label breakdown as returned by the
    detector ({"type": "HAPPY", "confidence": 93.1}, ...).
    """
    dominant_label: str = "UNKNOWN"
    confidence: float = 0.0
    emotions: List[Dict[str, Any]] = field(default_factory=list)
    age_range: Optional[Dict[str, int]] = None
    gender: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dominantEmotion": self.dominant_label,
            "confidence": self.confidence,
            "emotions": self.emotions,
            "ageRange": self.age_range,
            "gender": self.gender,
        }


@dataclass
class TranscriptEvent:
    """A result from the streaming transcriber."""
    text: str = ""
    is_final: bool = True


# ---------------------------------------------------------------------------
# Ledger records
# ---------------------------------------------------------------------------

@dataclass
class MoodEntry:
    timestamp: float
    emotion: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TranscriptSegment:
    timestamp: float
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Advice
# ---------------------------------------------------------------------------

@dataclass
class AdviceContext:
    """Everything the advice generator gets to see for one request."""
    emotion: str
    emotion_changed: bool
    previous_emotion: Optional[str]
    strategy: str
    mood_trail: List[MoodEntry] = field(default_factory=list)
    transcript: str = ""
    options: int = 4


@dataclass
class AdviceUpdate:
    options: List[str]
    emotion: str
    emotion_changed: bool
    timestamp: float = field(default_factory=time.time)
    source: str = "llm"         # "llm" | "fallback"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "options": list(self.options),
            "emotion": self.emotion,
            "emotionChanged": self.emotion_changed,
            "timestamp": self.timestamp,
        }


# ---------------------------------------------------------------------------
# Finalized session
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionRecord:
    """
    Snapshot of a stopped session, captured by value at teardown.
    The finalizer only ever sees this, never the live Session.
    """
    connection_id: str
    user_id: str
    start_time: float
    end_time: float
    frame_count: int
    transcript: str
    mood_history: tuple
    last_advice: tuple

    @property
    def duration(self) -> float:
        return max(0.0, self.end_time - self.start_time)


# ---------------------------------------------------------------------------
# Stored conversations (read side)
# ---------------------------------------------------------------------------

@dataclass
class ConversationSummary:
    id: str
    title: str
    date: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ConversationDetail:
    id: str
    title: str
    date: str
    dialogue: str = ""
    feedback: str = ""
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Session telemetry
# ---------------------------------------------------------------------------

@dataclass
class SessionTelemetry:
    """Per-session counters — never crashes the session."""
    connection_id: str = ""
    frames_received: int = 0
    frames_dropped: int = 0
    detections: int = 0
    detection_failures: int = 0
    stale_detections: int = 0
    audio_chunks_received: int = 0
    transcription_batches: int = 0
    transcription_failures: int = 0
    transcript_segments: int = 0
    advice_generated: int = 0
    advice_fallbacks: int = 0
    last_detect_latency_ms: float = 0.0
    last_transcribe_latency_ms: float = 0.0
    last_advice_latency_ms: float = 0.0
    session_state: str = "idle"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
