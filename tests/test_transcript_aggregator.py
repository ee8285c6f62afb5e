"""
Tests for the TranscriptAggregator: batching gate, buffer drain, sub-chunking,
failing transcription and the hand-off to the AdviceScheduler.
"""

from __future__ import annotations

import asyncio
import time

import numpy as np
import pytest

from conftest import T0, FakeAdvisor, FakeTranscriber
from speakeasy.core.errors import CollaboratorError
from speakeasy.processing.advice import AdviceScheduler
from speakeasy.processing.transcript import TranscriptAggregator, iter_subchunks, pcm_stats

CHUNK = b"\x01\x00" * 512


def _aggregator(transcriber, registry, recorder, advice=None, **kwargs):
    params = dict(
        interval=6.0, min_chunks=15, window=60.0, chunk_bytes=8192,
        sample_rate=48000, encoding="pcm", timeout=5.0,
    )
    params.update(kwargs)
    return TranscriptAggregator(transcriber, registry, recorder, advice=advice, **params)


class TestPcmHelpers:
    def test_pcm_stats_of_sine(self):
        t = np.linspace(0, 1.0, 16000, endpoint=False)
        pcm = (np.sin(2 * np.pi * 440 * t) * 16384).astype(np.int16).tobytes()

        seconds, rms = pcm_stats(pcm, 16000)

        assert seconds == pytest.approx(1.0)
        assert rms == pytest.approx(0.5 / np.sqrt(2), rel=0.01)

    def test_pcm_stats_of_empty_buffer(self):
        assert pcm_stats(b"", 48000) == (0.0, 0.0)

    @pytest.mark.asyncio
    async def test_iter_subchunks_covers_payload(self):
        payload = bytes(range(256)) * 100
        pieces = [p async for p in iter_subchunks(payload, 8192)]

        assert [len(p) for p in pieces] == [8192, 8192, 8192, 1024]
        assert b"".join(pieces) == payload


class TestGate:
    @pytest.mark.asyncio
    async def test_no_dispatch_before_interval(self, session, registry, recorder):
        transcriber = FakeTranscriber("hello")
        aggregator = _aggregator(transcriber, registry, recorder)

        # 30 chunks within the first 5.9 s: enough chunks, not enough time
        for i in range(30):
            assert await aggregator.on_audio_chunk(session, CHUNK, now=T0 + i * 0.2) is False

        assert transcriber.calls == 0
        assert len(session.audio_chunks) == 30

    @pytest.mark.asyncio
    async def test_no_dispatch_before_min_chunks(self, session, registry, recorder):
        transcriber = FakeTranscriber("hello")
        aggregator = _aggregator(transcriber, registry, recorder)

        for i in range(14):
            await aggregator.on_audio_chunk(session, CHUNK, now=T0 + 10.0 + i)

        assert transcriber.calls == 0
        assert await aggregator.on_audio_chunk(session, CHUNK, now=T0 + 30.0) is True
        assert transcriber.calls == 1

    @pytest.mark.asyncio
    async def test_dispatch_drains_buffer(self, session, registry, recorder):
        transcriber = FakeTranscriber("hello there")
        aggregator = _aggregator(transcriber, registry, recorder, chunk_bytes=4096)

        # 6 s is first reached by the 19th chunk
        for i in range(19):
            await aggregator.on_audio_chunk(session, CHUNK, now=T0 + i * 0.35)

        assert transcriber.calls == 1
        assert session.audio_chunks == []
        assert session.last_audio_processed_time == pytest.approx(T0 + 18 * 0.35)
        # The batch is replayed as fixed-size pieces
        assert b"".join(transcriber.received) == CHUNK * 19
        assert all(len(p) == 4096 for p in transcriber.received[:-1])

    @pytest.mark.asyncio
    async def test_only_final_text_is_appended(self, session, registry, recorder):
        aggregator = _aggregator(FakeTranscriber("hello there"), registry, recorder)

        for i in range(15):
            await aggregator.on_audio_chunk(session, CHUNK, now=T0 + 6.0)

        assert session.full_transcript == "hello there"
        assert [s.text for s in session.transcript_segments] == ["hello there"]
        assert recorder.of("transcript-update") == [{"text": "hello there", "timestamp": T0 + 6.0}]

    @pytest.mark.asyncio
    async def test_transcript_accumulates_space_separated(self, session, registry, recorder):
        transcriber = FakeTranscriber("one")
        aggregator = _aggregator(transcriber, registry, recorder)

        for i in range(15):
            await aggregator.on_audio_chunk(session, CHUNK, now=T0 + 6.0)
        transcriber.text = "two"
        for i in range(15):
            await aggregator.on_audio_chunk(session, CHUNK, now=T0 + 12.0)

        assert session.full_transcript == "one two"


class TestFailures:
    @pytest.mark.asyncio
    async def test_failing_transcription_for_a_minute(self, session, registry, recorder):
        advisor = FakeAdvisor()
        advice = AdviceScheduler(advisor, registry, recorder, cooldown=15.0, context_window=30.0, timeout=5.0)
        transcriber = FakeTranscriber(error=CollaboratorError("stt down"))
        aggregator = _aggregator(transcriber, registry, recorder, advice=advice)
        session.current_emotion = "HAPPY (90.0%)"

        # 50 chunks per second for 60 s
        for i in range(3000):
            await aggregator.on_audio_chunk(session, CHUNK, now=T0 + i * 0.02)

        assert transcriber.calls == 9
        assert session.full_transcript == ""
        assert session.telemetry.transcription_failures == 9
        assert advisor.contexts == []
        assert recorder.of("advice-update") == []
        assert registry.is_live(session)

        # Still accepting audio afterwards
        assert await aggregator.on_audio_chunk(session, CHUNK, now=T0 + 61.0) is True
        assert transcriber.calls == 10
        assert session.audio_chunks == []

    @pytest.mark.asyncio
    async def test_results_dropped_after_session_closed(self, session, registry, recorder):
        class ClosingTranscriber(FakeTranscriber):
            async def transcribe(self, audio, sample_rate, encoding):
                registry.remove(session.connection_id)
                async for event in super().transcribe(audio, sample_rate, encoding):
                    yield event

        aggregator = _aggregator(ClosingTranscriber("too late"), registry, recorder)
        for i in range(15):
            await aggregator.on_audio_chunk(session, CHUNK, now=T0 + 6.0)

        assert session.full_transcript == ""
        assert recorder.of("transcript-update") == []


class TestAdviceHandOff:
    @pytest.mark.asyncio
    async def test_new_text_wakes_advice(self, session, registry, recorder):
        advisor = FakeAdvisor()
        advice = AdviceScheduler(advisor, registry, recorder, cooldown=15.0, context_window=30.0, timeout=5.0)
        aggregator = _aggregator(FakeTranscriber("hi"), registry, recorder, advice=advice)
        session.current_emotion = "CALM (70.0%)"

        for i in range(15):
            await aggregator.on_audio_chunk(session, CHUNK, now=T0 + 16.0)

        assert len(advisor.contexts) == 1
        assert recorder.of("advice-update")[0]["options"] == ["one", "two", "three", "four"]


class TestTimestamps:
    @pytest.mark.asyncio
    async def test_segment_stamped_when_result_arrives(self, session, registry, recorder):
        aggregator = _aggregator(FakeTranscriber("hello"), registry, recorder)
        session.audio_chunks.extend([CHUNK] * 14)

        # Another batch holds the lock while this one is dispatched
        await session.audio_lock.acquire()
        task = asyncio.create_task(aggregator.on_audio_chunk(session, CHUNK))
        await asyncio.sleep(0)
        dispatched = session.last_audio_processed_time
        await asyncio.sleep(0.05)
        released = time.time()
        session.audio_lock.release()

        assert await task is True
        stamp = session.transcript_segments.snapshot()[0].timestamp
        assert stamp >= released > dispatched
        assert recorder.of("transcript-update")[0]["timestamp"] == stamp
