"""
SpeakEasy — Transcript Aggregator

================================================================================
BATCHED SPEECH-TO-TEXT OVER A CONTINUOUS PCM STREAM
================================================================================

  1. Every inbound audio chunk is buffered on the session, no gating.
  2. Once enough time has passed AND enough chunks are buffered, the whole
     buffer is swapped out in one step (no await between gate and swap).
  3. The batch is replayed to the Transcriber as fixed-size sub-chunks.
  4. Final results are appended to the full transcript and the rolling
     transcript ledger.
  5. New text wakes the Advice Scheduler.

A failed batch yields no text; buffering continues for the next one.
Batches of one session run one at a time, in dispatch order (audio_lock).
================================================================================
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, List, Optional, Tuple

import numpy as np

from ..core.config import cadence_cfg
from ..core.interfaces import Emitter, Transcriber
from ..core.models import TranscriptSegment
from ..core.session import Session
from ..services.registry import SessionRegistry
from .advice import AdviceScheduler

logger = logging.getLogger("speakeasy.transcript")


def pcm_stats(payload: bytes, sample_rate: int) -> Tuple[float, float]:
    """(duration seconds, RMS level 0..1) of 16-bit mono PCM."""
    usable = len(payload) - (len(payload) % 2)
    if usable <= 0:
        return 0.0, 0.0
    samples = np.frombuffer(payload[:usable], dtype=np.int16).astype(np.float32) / 32768.0
    rms = float(np.sqrt(np.mean(samples ** 2)))
    return samples.size / float(sample_rate), rms


async def iter_subchunks(payload: bytes, size: int) -> AsyncIterator[bytes]:
    """Replay one buffer as a stream of fixed-size pieces."""
    for i in range(0, len(payload), size):
        yield payload[i:i + size]


class TranscriptAggregator:
    """
    Lifecycle:
        aggregator = TranscriptAggregator(transcriber, registry, emit, advice)
        await aggregator.on_audio_chunk(session, chunk, now)   # per audio chunk
    """

    def __init__(
        self,
        transcriber: Transcriber,
        registry: SessionRegistry,
        emit: Emitter,
        advice: Optional[AdviceScheduler] = None,
        interval: float = cadence_cfg.audio_interval,
        min_chunks: int = cadence_cfg.min_audio_chunks,
        window: float = cadence_cfg.ledger_window,
        chunk_bytes: int = cadence_cfg.transcribe_chunk_bytes,
        sample_rate: int = cadence_cfg.sample_rate,
        encoding: str = cadence_cfg.encoding,
        timeout: float = cadence_cfg.transcribe_timeout,
    ) -> None:
        self._transcriber = transcriber
        self._registry = registry
        self._emit = emit
        self._advice = advice
        self._interval = interval
        self._min_chunks = min_chunks
        self._window = window
        self._chunk_bytes = chunk_bytes
        self._sample_rate = sample_rate
        self._encoding = encoding
        self._timeout = timeout

    def should_transcribe(self, session: Session, now: float) -> bool:
        return (
            now - session.last_audio_processed_time >= self._interval
            and len(session.audio_chunks) >= self._min_chunks
        )

    async def on_audio_chunk(
        self,
        session: Session,
        chunk: bytes,
        now: Optional[float] = None,
    ) -> bool:
        """
        Buffer one chunk; dispatch a batch when the gate opens.
        Returns True when a batch was dispatched.
        """
        explicit_now = now is not None
        now = now if explicit_now else time.time()

        session.audio_chunks.append(chunk)
        session.telemetry.audio_chunks_received += 1

        if not self.should_transcribe(session, now):
            return False

        # Gate update + swap: one synchronous step
        session.last_audio_processed_time = now
        payload = b"".join(session.take_audio())
        session.telemetry.transcription_batches += 1

        async with session.audio_lock:
            new_text = await self._transcribe_batch(
                session, payload, now if explicit_now else None
            )

        if new_text and self._advice is not None and self._registry.is_live(session):
            await self._advice.maybe_generate_advice(
                session, now if explicit_now else time.time()
            )
        return True

    async def _transcribe_batch(
        self, session: Session, payload: bytes, now: Optional[float]
    ) -> bool:
        seconds, level = pcm_stats(payload, self._sample_rate)
        logger.info(
            f"[{session.connection_id}] Transcribing {len(payload) / 1024:.1f} KB "
            f"({seconds:.1f}s, rms={level:.3f})"
        )

        segments: List[str] = []
        t0 = time.perf_counter()
        try:
            await asyncio.wait_for(
                self._consume(session, payload, now, segments),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            session.telemetry.transcription_failures += 1
            logger.warning(f"[{session.connection_id}] Transcription timed out")
        except Exception as e:
            session.telemetry.transcription_failures += 1
            logger.warning(f"[{session.connection_id}] Transcription error: {e}")

        session.telemetry.last_transcribe_latency_ms = round((time.perf_counter() - t0) * 1000, 1)

        if segments:
            logger.info(
                f"[{session.connection_id}] Transcript +{len(segments)} segment(s), "
                f"total {len(session.full_transcript.split())} words"
            )
        return bool(segments)

    async def _consume(
        self,
        session: Session,
        payload: bytes,
        now: Optional[float],
        segments: List[str],
    ) -> None:
        """Segments are stamped when their final result arrives, unless `now` pins the clock."""
        stream = iter_subchunks(payload, self._chunk_bytes)
        async for event in self._transcriber.transcribe(
            stream, self._sample_rate, self._encoding
        ):
            if not event.is_final:
                continue
            text = (event.text or "").strip()
            if not text:
                continue
            if not self._registry.is_live(session):
                logger.debug(f"[{session.connection_id}] Discarding transcript for closed session")
                return

            at = time.time() if now is None else now
            session.append_transcript(text)
            session.transcript_segments.append_and_prune(
                TranscriptSegment(timestamp=at, text=text), self._window, at
            )
            session.telemetry.transcript_segments += 1
            session.tracer.mark("first_transcript", at)
            segments.append(text)

            await self._emit(session.connection_id, "transcript-update", {
                "text": text,
                "timestamp": at,
            })
