"""
SpeakEasy — Simulated Collaborators

Fallback providers for when API keys are missing.
The coach keeps streaming with plausible emotions, rule-based advice and a
template summary, so the frontend always works.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import AsyncIterator, Dict, List, Sequence

import numpy as np

from ..core.guidance import EmotionLabel, FALLBACK_ADVICE, bare_label
from ..core.models import AdviceContext, FaceEmotion, MoodEntry, TranscriptEvent
from ..processing.transcript import pcm_stats

logger = logging.getLogger("speakeasy.simulated")

_LABELS = [label.value for label in EmotionLabel]

# Silence threshold for the simulated transcriber (RMS, 0..1)
_SPEECH_RMS = 0.01


class SimulatedEmotionDetector:
    """Slowly drifting emotion mix, seeded by the frame content."""

    async def detect(self, image: bytes) -> List[FaceEmotion]:
        if not image:
            return []
        t = time.time()
        seed = int(np.frombuffer(image[:64].ljust(64, b"\0"), dtype=np.uint8).sum())
        phases = np.arange(len(_LABELS), dtype=float)
        raw = 1.0 + np.sin(t * 0.05 + phases * 0.9) + (seed % 7) * 0.02
        weights = raw / raw.sum() * 100.0
        order = np.argsort(weights)[::-1]
        emotions = [
            {"type": _LABELS[i], "confidence": round(float(weights[i]), 1)} for i in order
        ]
        return [FaceEmotion(
            dominant_label=emotions[0]["type"],
            confidence=emotions[0]["confidence"],
            emotions=emotions,
        )]


class SimulatedTranscriber:
    """Reports speech activity instead of words."""

    async def transcribe(
        self,
        audio: AsyncIterator[bytes],
        sample_rate: int,
        encoding: str,
    ) -> AsyncIterator[TranscriptEvent]:
        pcm = bytearray()
        async for piece in audio:
            pcm.extend(piece)
        seconds, rms = pcm_stats(bytes(pcm), sample_rate)
        if rms < _SPEECH_RMS:
            logger.debug(f"Silence ({seconds:.1f}s, rms={rms:.4f}) — nothing to transcribe")
            return
        yield TranscriptEvent(text=f"[speech, {seconds:.1f}s]", is_final=True)


_RULE_ADVICE: Dict[str, List[str]] = {
    "HAPPY": [
        "Build on their enthusiasm with a follow-up question",
        "Share what excites you about the topic too",
        "Suggest a concrete next step while the mood is good",
        "Ask what made this go well for them",
    ],
    "SAD": [
        "Acknowledge how they feel before moving on",
        "Ask gently what is weighing on them",
        "Slow your pace and give them room to talk",
        "Offer support without trying to fix everything",
    ],
    "ANGRY": [
        "Stay calm and lower your voice slightly",
        "Validate their concern in your own words",
        "Ask what outcome would feel fair to them",
        "Avoid defending yourself right now",
    ],
    "CONFUSED": [
        "Rephrase your last point more simply",
        "Give a concrete example",
        "Ask which part is unclear",
        "Check understanding before moving on",
    ],
    "SURPRISED": [
        "Pause and let them react",
        "Ask what surprised them",
        "Add context to what you just said",
        "Confirm they are comfortable continuing",
    ],
    "FEAR": [
        "Reassure them that there is no pressure",
        "Break the topic into smaller steps",
        "Ask what worries them most",
        "Offer options instead of a single path",
    ],
}


class RuleAdviceGenerator:
    """Fixed suggestions per dominant emotion."""

    async def generate(self, context: AdviceContext) -> List[str]:
        label = (bare_label(context.emotion) or "").upper()
        options = _RULE_ADVICE.get(label, FALLBACK_ADVICE)
        return list(options[:context.options])


class TemplateSummaryGenerator:
    async def summarize(
        self,
        mood_history: Sequence[MoodEntry],
        transcript: str,
        duration: float,
    ) -> str:
        minutes, seconds = divmod(int(duration), 60)
        lines = [f"Conversation lasted {minutes}m {seconds:02d}s."]
        if mood_history:
            counts = Counter(m.emotion for m in mood_history)
            dominant, _ = counts.most_common(1)[0]
            mix = ", ".join(f"{label} x{n}" for label, n in counts.most_common())
            lines.append(f"The other person mostly appeared {dominant} ({mix}).")
        else:
            lines.append("No faces were detected.")
        words = len(transcript.split())
        lines.append(f"{words} words were transcribed.")
        return " ".join(lines)
