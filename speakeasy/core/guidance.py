"""
SpeakEasy — Emotion Guidance

Coaching strategy per dominant emotion, fed into the advice prompt.
Labels follow the face-analysis vocabulary (HAPPY, SAD, ...).
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional


class EmotionLabel(str, Enum):
    HAPPY = "HAPPY"
    SAD = "SAD"
    ANGRY = "ANGRY"
    CONFUSED = "CONFUSED"
    DISGUSTED = "DISGUSTED"
    SURPRISED = "SURPRISED"
    CALM = "CALM"
    FEAR = "FEAR"


EMOTION_GUIDANCE: Dict[EmotionLabel, str] = {
    EmotionLabel.HAPPY: (
        "The other person is in a good mood. Build on the positive energy, "
        "deepen rapport and move the conversation toward its goal."
    ),
    EmotionLabel.SAD: (
        "The other person seems down. Slow down, acknowledge their feelings "
        "and ask gentle open questions before pushing any agenda."
    ),
    EmotionLabel.ANGRY: (
        "The other person appears frustrated. De-escalate: stay calm, "
        "validate the concern and avoid defensive or dismissive replies."
    ),
    EmotionLabel.CONFUSED: (
        "The other person looks confused. Simplify, check understanding and "
        "offer a concrete example."
    ),
    EmotionLabel.DISGUSTED: (
        "The other person reacts negatively. Find out what put them off and "
        "reframe the topic respectfully."
    ),
    EmotionLabel.SURPRISED: (
        "The other person is surprised. Give them a moment, then clarify or "
        "expand on what caught their attention."
    ),
    EmotionLabel.CALM: (
        "The other person is calm and receptive. A good moment for substantive "
        "points or a thoughtful question."
    ),
    EmotionLabel.FEAR: (
        "The other person seems anxious. Reassure them, lower the stakes and "
        "offer support or options."
    ),
}

DEFAULT_GUIDANCE = (
    "Keep the conversation natural: listen actively, ask open questions and "
    "respond to what was just said."
)

# Used whenever the advice generator fails or answers with garbage
FALLBACK_ADVICE: List[str] = [
    "Ask an open-ended question to learn more",
    "Summarize what you heard to show you're listening",
    "Share a brief personal perspective on the topic",
    "Acknowledge their point before adding your own",
]

DEFAULT_ADVICE: List[str] = [
    "Start with a friendly greeting",
    "Ask how their day is going",
    "Mention something you have in common",
    "Listen more than you speak",
]


def bare_label(emotion: Optional[str]) -> Optional[str]:
    """'HAPPY (93.1%)' → 'HAPPY'."""
    if not emotion:
        return None
    return emotion.split(" (", 1)[0].strip() or None


def strategy_for(emotion: Optional[str]) -> str:
    label = bare_label(emotion)
    if not label:
        return DEFAULT_GUIDANCE
    try:
        return EMOTION_GUIDANCE[EmotionLabel(label.upper())]
    except ValueError:
        return DEFAULT_GUIDANCE
