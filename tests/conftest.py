"""
Shared fixtures for SpeakEasy tests.

Every collaborator is an in-memory fake — no network, no API keys needed.
Time is passed explicitly (`now=`) so cadence gates are deterministic.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import pytest
import pytest_asyncio

from speakeasy.core.models import AdviceContext, FaceEmotion, MoodEntry, TranscriptEvent
from speakeasy.core.session import Session
from speakeasy.providers.storage import MemoryObjectStore
from speakeasy.services.finalizer import SessionFinalizer
from speakeasy.services.lifecycle import SessionLifecycleManager
from speakeasy.services.registry import SessionRegistry

T0 = 1000.0


# ── Fake collaborators ─────────────────────────────────────


def face(label: str, confidence: float) -> FaceEmotion:
    return FaceEmotion(
        dominant_label=label,
        confidence=confidence,
        emotions=[
            {"type": label, "confidence": confidence},
            {"type": "CALM", "confidence": round(100.0 - confidence, 1) / 2},
        ],
    )


class FakeDetector:
    """Returns queued results in order; the last one repeats."""

    def __init__(self, *results: Any) -> None:
        self.results: List[Any] = list(results) or [[]]
        self.calls = 0

    async def detect(self, image: bytes) -> List[FaceEmotion]:
        result = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        if isinstance(result, BaseException):
            raise result
        return result


class FakeTranscriber:
    """Yields a partial then a final event with `text`, or raises `error`."""

    def __init__(self, text: str = "", error: Optional[BaseException] = None) -> None:
        self.text = text
        self.error = error
        self.calls = 0
        self.received: List[bytes] = []

    async def transcribe(
        self,
        audio: AsyncIterator[bytes],
        sample_rate: int,
        encoding: str,
    ) -> AsyncIterator[TranscriptEvent]:
        self.calls += 1
        async for piece in audio:
            self.received.append(piece)
        if self.error is not None:
            raise self.error
        if self.text:
            yield TranscriptEvent(text=self.text[: len(self.text) // 2], is_final=False)
            yield TranscriptEvent(text=self.text, is_final=True)


class FakeAdvisor:
    def __init__(self, options: Optional[List[str]] = None, error: Optional[BaseException] = None) -> None:
        self.options = options if options is not None else ["one", "two", "three", "four"]
        self.error = error
        self.contexts: List[AdviceContext] = []

    async def generate(self, context: AdviceContext) -> List[str]:
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        return list(self.options)


class FakeSummarizer:
    def __init__(self, text: str = "A friendly chat.", error: Optional[BaseException] = None) -> None:
        self.text = text
        self.error = error
        self.calls: List[Tuple[Sequence[MoodEntry], str, float]] = []

    async def summarize(self, mood_history: Sequence[MoodEntry], transcript: str, duration: float) -> str:
        self.calls.append((mood_history, transcript, duration))
        if self.error is not None:
            raise self.error
        return self.text


class EventRecorder:
    """Emitter that records (connection_id, event, data) tuples."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def __call__(self, connection_id: str, event: str, data: Dict[str, Any]) -> None:
        self.events.append((connection_id, event, data))

    def of(self, event: str) -> List[Dict[str, Any]]:
        return [data for _, name, data in self.events if name == event]


# ── Fixtures ───────────────────────────────────────────────


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def session(registry):
    s = Session(connection_id="conn-1", user_id="user-1", start_time=T0)
    registry.insert(s)
    return s


@pytest.fixture
def store():
    return MemoryObjectStore()


@pytest_asyncio.fixture
async def make_manager(store, recorder):
    """Factory for a lifecycle manager wired to fakes; drains finalizations on teardown."""
    managers: List[SessionLifecycleManager] = []

    def _make(
        detector: Optional[FakeDetector] = None,
        transcriber: Optional[FakeTranscriber] = None,
        advisor: Optional[FakeAdvisor] = None,
        summarizer: Optional[FakeSummarizer] = None,
        config: Any = None,
    ) -> SessionLifecycleManager:
        kwargs: Dict[str, Any] = {}
        if config is not None:
            kwargs["config"] = config
        manager = SessionLifecycleManager(
            detector or FakeDetector([face("HAPPY", 90.0)]),
            transcriber or FakeTranscriber("hello there"),
            advisor or FakeAdvisor(),
            SessionFinalizer(summarizer or FakeSummarizer(), store, delay=0.0),
            **kwargs,
        )
        manager.connect("conn-1", recorder)
        managers.append(manager)
        return manager

    yield _make

    for manager in managers:
        if manager.pending_finalizations:
            await asyncio.sleep(0)
            await manager.shutdown()
