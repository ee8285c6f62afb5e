"""
SpeakEasy — Collaborator Interfaces

Protocol definitions for every external service the session core talks to:
  1. Analysis  — emotion detection, transcription, advice, summary
  2. Storage   — conversation documents by owner + name
  3. Identity  — bearer-token verification

The core only ever sees these protocols — never a vendor SDK.
"""

from __future__ import annotations

from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from .models import AdviceContext, FaceEmotion, MoodEntry, TranscriptEvent

# Pushes one outbound event to a connection: (connection_id, event, data)
Emitter = Callable[[str, str, Dict[str, Any]], Awaitable[None]]

# Receives structured observability events
SessionObserver = Callable[[str, Dict[str, Any]], None]


# ═══════════════════════════════════════════════════════════════════════════
# Analysis services
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class EmotionDetector(Protocol):
    async def detect(self, image: bytes) -> List[FaceEmotion]:
        """
        Analyse one frame. Returns one entry per detected face (empty list
        when there is none). Raises DetectorCredentialsError on auth problems.
        """
        ...


@runtime_checkable
class Transcriber(Protocol):
    def transcribe(
        self,
        audio: AsyncIterator[bytes],
        sample_rate: int,
        encoding: str,
    ) -> AsyncIterator[TranscriptEvent]:
        """Consume a PCM stream, yield partial and final transcript events."""
        ...


@runtime_checkable
class AdviceGenerator(Protocol):
    async def generate(self, context: AdviceContext) -> List[str]:
        """Return exactly `context.options` short suggestion strings."""
        ...


@runtime_checkable
class SummaryGenerator(Protocol):
    async def summarize(
        self,
        mood_history: Sequence[MoodEntry],
        transcript: str,
        duration: float,
    ) -> str:
        """Return the formatted post-session summary text."""
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Storage
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class ObjectStore(Protocol):
    async def put(self, owner_id: str, name: str, content: str) -> None:
        ...

    async def get(self, owner_id: str, name: str) -> Optional[str]:
        """Content of the object, or None when it does not exist."""
        ...

    async def list(self, owner_id: str) -> List[str]:
        """Names of every object stored for the owner."""
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Identity
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class IdentityVerifier(Protocol):
    def verify(self, token: str) -> Optional[str]:
        """Owner id for a valid token; None on any failure (fails closed)."""
        ...
