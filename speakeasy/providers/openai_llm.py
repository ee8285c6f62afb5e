"""
OpenAI LLM Providers — coaching suggestions and post-session summaries.

Supports OpenAI-compatible APIs via OPENAI_BASE_URL.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from openai import AsyncOpenAI

from ..core.config import ProviderConfig, provider_cfg
from ..core.models import AdviceContext, MoodEntry
from ..processing.advice import parse_advice_options

logger = logging.getLogger("speakeasy.providers.llm")

ADVICE_SYSTEM_PROMPT = (
    "You are a real-time conversation coach. The user is in a live "
    "conversation and glances at your suggestions while talking. "
    "Reply with ONLY a JSON array of exactly {n} short strings (max 12 words "
    "each): concrete things the user could say or do next."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a communication coach reviewing a finished conversation. "
    "Write a short markdown summary: one paragraph on what was discussed, "
    "a bullet list of how the other person's mood evolved, and three "
    "concrete tips for next time."
)


def make_client(cfg: ProviderConfig = provider_cfg) -> AsyncOpenAI:
    kwargs = {"api_key": cfg.openai_api_key}
    if cfg.openai_base_url:
        kwargs["base_url"] = cfg.openai_base_url
        logger.info(f"Using custom base_url: {cfg.openai_base_url}")
    return AsyncOpenAI(**kwargs)


def format_mood_trail(moods: Sequence[MoodEntry], start: Optional[float] = None) -> str:
    if not moods:
        return "(no faces detected)"
    origin = moods[0].timestamp if start is None else start
    return ", ".join(
        f"+{m.timestamp - origin:.0f}s {m.emotion} {m.confidence:.0f}%" for m in moods
    )


def build_advice_prompt(context: AdviceContext) -> str:
    lines = [
        f"Other person's current emotion: {context.emotion}",
    ]
    if context.emotion_changed and context.previous_emotion:
        lines.append(f"Their emotion just changed from {context.previous_emotion}.")
    lines += [
        f"Recent mood trail: {format_mood_trail(context.mood_trail)}",
        f"Coaching strategy: {context.strategy}",
        "",
        "Recent conversation:",
        context.transcript or "(nothing yet)",
    ]
    return "\n".join(lines)


class OpenAIAdviceGenerator:
    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = provider_cfg.advice_model,
        temperature: float = 0.7,
    ) -> None:
        self._client = client or make_client()
        self._model = model
        self._temperature = temperature
        logger.info(f"OpenAI advice generator ready (model={model})")

    async def generate(self, context: AdviceContext) -> List[str]:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": ADVICE_SYSTEM_PROMPT.format(n=context.options)},
                {"role": "user", "content": build_advice_prompt(context)},
            ],
            max_tokens=200,
            temperature=self._temperature,
        )
        text = response.choices[0].message.content or ""
        return parse_advice_options(text, context.options)


class OpenAISummaryGenerator:
    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = provider_cfg.summary_model,
    ) -> None:
        self._client = client or make_client()
        self._model = model

    async def summarize(
        self,
        mood_history: Sequence[MoodEntry],
        transcript: str,
        duration: float,
    ) -> str:
        prompt = "\n".join([
            f"Duration: {duration:.0f} seconds",
            f"Mood timeline: {format_mood_trail(mood_history)}",
            "",
            "Transcript:",
            transcript or "(no speech transcribed)",
        ])
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=600,
            temperature=0.4,
        )
        return (response.choices[0].message.content or "").strip()
