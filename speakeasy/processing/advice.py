"""
SpeakEasy — Advice Scheduler

Separated from the media hot path.
Runs only when the Transcript Aggregator reports new text, and at most once
per cooldown per session.

Two layers:
  1. AdviceGenerator — short suggestions from the text-generation service,
     with async timeout.
  2. Fixed generic suggestions — always available, used on timeout, failure
     or malformed output. A fallback still counts for the cooldown so a
     failing service is not hammered.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any, List, Optional

from ..core.config import cadence_cfg
from ..core.errors import MalformedAdviceError
from ..core.guidance import FALLBACK_ADVICE, bare_label, strategy_for
from ..core.interfaces import AdviceGenerator, Emitter
from ..core.models import AdviceContext, AdviceUpdate
from ..core.session import Session
from ..services.registry import SessionRegistry

logger = logging.getLogger("speakeasy.advice")

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_ARRAY = re.compile(r"\[.*\]", re.DOTALL)


def validate_options(value: Any, count: int = cadence_cfg.advice_options) -> List[str]:
    """Exactly `count` non-empty strings, or MalformedAdviceError."""
    if not isinstance(value, list) or len(value) != count:
        raise MalformedAdviceError(f"expected a list of {count} strings, got {value!r:.120}")
    options: List[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise MalformedAdviceError(f"invalid suggestion: {item!r:.80}")
        options.append(item.strip())
    return options


def parse_advice_options(text: str, count: int = cadence_cfg.advice_options) -> List[str]:
    """
    Pull a JSON array of suggestions out of free-form model output.
    Tolerates code fences and chatter around the array.
    """
    if not text or not text.strip():
        raise MalformedAdviceError("empty response")

    body = text.strip()
    fenced = _FENCE.search(body)
    if fenced:
        body = fenced.group(1).strip()

    match = _ARRAY.search(body)
    if not match:
        raise MalformedAdviceError(f"no JSON array in response: {body[:120]!r}")

    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise MalformedAdviceError(f"invalid JSON: {e}") from e

    return validate_options(value, count)


class AdviceScheduler:
    """
    Gate:
        current emotion known AND transcript non-empty AND cooldown elapsed.

    Usage:
        scheduler = AdviceScheduler(generator, registry, emit)
        await scheduler.maybe_generate_advice(session, now)
    """

    def __init__(
        self,
        generator: AdviceGenerator,
        registry: SessionRegistry,
        emit: Emitter,
        cooldown: float = cadence_cfg.advice_cooldown,
        context_window: float = cadence_cfg.context_window,
        timeout: float = cadence_cfg.advice_timeout,
        options: int = cadence_cfg.advice_options,
    ) -> None:
        self._generator = generator
        self._registry = registry
        self._emit = emit
        self._cooldown = cooldown
        self._context_window = context_window
        self._timeout = timeout
        self._options = options

    def should_generate(self, session: Session, now: float) -> bool:
        return (
            bool(session.current_emotion)
            and bool(session.full_transcript)
            and now - session.last_advice_generated_time >= self._cooldown
        )

    def build_context(self, session: Session, now: float) -> AdviceContext:
        current = bare_label(session.current_emotion)
        changed = session.emotion_just_changed or (
            session.previous_emotion is not None
            and session.previous_emotion != current
        )

        segments = session.transcript_segments.recent(self._context_window, now)
        transcript = " ".join(s.text for s in segments) or session.full_transcript

        return AdviceContext(
            emotion=session.current_emotion or "",
            emotion_changed=changed,
            previous_emotion=session.previous_emotion,
            strategy=strategy_for(session.current_emotion),
            mood_trail=session.mood_history.recent(self._context_window, now),
            transcript=transcript,
            options=self._options,
        )

    async def maybe_generate_advice(
        self,
        session: Session,
        now: Optional[float] = None,
    ) -> Optional[AdviceUpdate]:
        """Returns the emitted update, or None when the gate is closed."""
        now = time.time() if now is None else now
        if not self.should_generate(session, now):
            return None

        # Claim the cadence slot before suspending; bursts see a closed gate
        session.last_advice_generated_time = now
        context = self.build_context(session, now)

        source = "llm"
        t0 = time.perf_counter()
        try:
            options = await asyncio.wait_for(
                self._generator.generate(context), timeout=self._timeout
            )
            options = validate_options(options, self._options)
        except asyncio.TimeoutError:
            logger.warning(f"[{session.connection_id}] Advice generation timed out — using fallback")
            options, source = list(FALLBACK_ADVICE), "fallback"
        except Exception as e:
            logger.warning(f"[{session.connection_id}] Advice generation failed: {e} — using fallback")
            options, source = list(FALLBACK_ADVICE), "fallback"

        session.telemetry.last_advice_latency_ms = round((time.perf_counter() - t0) * 1000, 1)

        if not self._registry.is_live(session):
            logger.debug(f"[{session.connection_id}] Discarding advice for closed session")
            return None

        session.last_advice = options
        session.emotion_just_changed = False
        session.telemetry.advice_generated += 1
        if source == "fallback":
            session.telemetry.advice_fallbacks += 1
        session.tracer.mark("first_advice", now)

        update = AdviceUpdate(
            options=options,
            emotion=context.emotion,
            emotion_changed=context.emotion_changed,
            timestamp=now,
            source=source,
        )
        logger.info(
            f"[{session.connection_id}] Advice ({source}) for {context.emotion}"
            + (" [emotion changed]" if context.emotion_changed else "")
        )
        await self._emit(session.connection_id, "advice-update", update.to_dict())
        return update
