"""
SpeakEasy — Session Milestone Tracer

Records wall-clock timestamps for the first occurrence of each milestone:
  stream_started → first_emotion → first_transcript → first_advice

Computes and logs latency deltas, and forwards every milestone to the
session observer as a structured event.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .interfaces import SessionObserver

logger = logging.getLogger("speakeasy.latency")

_MILESTONES = ("stream_started", "first_emotion", "first_transcript", "first_advice")


@dataclass
class LatencyTrace:
    """Record of session milestones (wall-clock seconds, 0 = not reached)."""

    connection_id: str = ""

    stream_started: float = 0.0
    first_emotion: float = 0.0
    first_transcript: float = 0.0
    first_advice: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"connection_id": self.connection_id}
        for name in _MILESTONES:
            ts = getattr(self, name)
            if ts > 0:
                d[name] = ts
        d["deltas"] = self.deltas()
        return d

    def deltas(self) -> Dict[str, Optional[float]]:
        """Milliseconds from stream start to each later milestone."""
        def _delta(a: float, b: float) -> Optional[float]:
            if a > 0 and b > 0:
                return round((b - a) * 1000, 1)
            return None

        return {
            "start_to_first_emotion_ms": _delta(self.stream_started, self.first_emotion),
            "start_to_first_transcript_ms": _delta(self.stream_started, self.first_transcript),
            "start_to_first_advice_ms": _delta(self.stream_started, self.first_advice),
        }


class SessionTracer:
    """
    Usage:
        tracer = SessionTracer("abc123", observer=log_observer)
        tracer.mark("stream_started")
        tracer.mark("first_emotion")
    """

    def __init__(
        self,
        connection_id: str,
        observer: Optional[SessionObserver] = None,
    ) -> None:
        self._trace = LatencyTrace(connection_id=connection_id)
        self._observer = observer

    @property
    def trace(self) -> LatencyTrace:
        return self._trace

    def mark(self, milestone: str, now: Optional[float] = None) -> None:
        if milestone not in _MILESTONES:
            raise ValueError(f"Unknown milestone: {milestone}")
        if getattr(self._trace, milestone) > 0:
            return  # Already marked
        setattr(self._trace, milestone, now if now is not None else time.time())

        deltas = self._trace.deltas()
        delta = deltas.get(f"start_to_{milestone}_ms")
        logger.info(
            f"[{self._trace.connection_id}] MILESTONE {milestone}"
            + (f" (+{delta}ms)" if delta is not None else "")
        )
        if self._observer:
            try:
                self._observer(f"milestone.{milestone}", {
                    "connection_id": self._trace.connection_id,
                    "elapsed_ms": delta,
                })
            except Exception as e:
                logger.debug(f"Observer error: {e}")

    def summary(self) -> Dict[str, Any]:
        return self._trace.to_dict()


def log_observer(event: str, fields: Dict[str, Any]) -> None:
    """Default observer: structured events as log lines."""
    logging.getLogger("speakeasy.events").info(
        event + " " + " ".join(f"{k}={v}" for k, v in sorted(fields.items()))
    )
