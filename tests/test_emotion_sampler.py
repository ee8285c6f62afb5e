"""
Tests for the EmotionSampler: rate gate, change detection, zero-face frames,
credential errors and late results for closed sessions.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import T0, FakeDetector, face
from speakeasy.core.errors import CollaboratorError, DetectorCredentialsError
from speakeasy.core.session import NO_FACE_DETECTED
from speakeasy.processing.emotion import EmotionSampler, dominant_emotion


def _sampler(detector, registry, recorder, **kwargs):
    return EmotionSampler(detector, registry, recorder, interval=2.0, window=60.0, timeout=5.0, **kwargs)


class TestDominantEmotion:
    def test_picks_highest_confidence(self):
        f = face("SAD", 20.0)
        f.emotions = [
            {"type": "sad", "confidence": 20.0},
            {"type": "happy", "confidence": 75.5},
        ]
        assert dominant_emotion(f) == ("HAPPY", 75.5)

    def test_falls_back_to_dominant_label(self):
        f = face("CALM", 60.0)
        f.emotions = []
        assert dominant_emotion(f) == ("CALM", 60.0)


class TestRateGate:
    @pytest.mark.asyncio
    async def test_only_first_frame_per_window_is_analysed(self, session, registry, recorder):
        detector = FakeDetector([face("HAPPY", 90.0)])
        sampler = _sampler(detector, registry, recorder)

        # 10 frames, 500 ms apart → windows start at T0, T0+2, T0+4
        results = [
            await sampler.on_frame(session, b"jpeg", now=T0 + i * 0.5) for i in range(10)
        ]

        assert results == [True, False, False, False, True, False, False, False, True, False]
        assert detector.calls == 3
        assert session.frame_count == 3
        assert session.telemetry.frames_received == 10
        assert session.telemetry.frames_dropped == 7

    @pytest.mark.asyncio
    async def test_detection_result_is_emitted(self, session, registry, recorder):
        sampler = _sampler(FakeDetector([face("HAPPY", 90.0)]), registry, recorder)

        await sampler.on_frame(session, b"jpeg", now=T0)

        assert session.current_emotion == "HAPPY (90.0%)"
        events = recorder.of("emotion-detected")
        assert len(events) == 1
        assert events[0]["faces"][0]["dominantEmotion"] == "HAPPY"
        assert "timestamp" in events[0]

    @pytest.mark.asyncio
    async def test_gate_is_claimed_before_detection_completes(self, session, registry, recorder):
        gate = asyncio.Event()

        class SlowDetector:
            calls = 0

            async def detect(self, image):
                SlowDetector.calls += 1
                await gate.wait()
                return [face("HAPPY", 80.0)]

        sampler = _sampler(SlowDetector(), registry, recorder)
        first = asyncio.create_task(sampler.on_frame(session, b"a", now=T0))
        await asyncio.sleep(0)
        second = await sampler.on_frame(session, b"b", now=T0 + 1.0)
        gate.set()

        assert await first is True
        assert second is False
        assert SlowDetector.calls == 1


class TestChangeDetection:
    @pytest.mark.asyncio
    async def test_change_flag_follows_label_transitions(self, session, registry, recorder):
        labels = ["HAPPY", "HAPPY", "SAD", "SAD", "HAPPY"]
        detector = FakeDetector(*[[face(label, 80.0)] for label in labels])
        sampler = _sampler(detector, registry, recorder)

        flags = []
        for i in range(len(labels)):
            await sampler.on_frame(session, b"jpeg", now=T0 + i * 2.0)
            flags.append(session.emotion_just_changed)

        assert flags == [False, False, True, False, True]
        assert session.previous_emotion == "SAD"
        assert [m.emotion for m in session.mood_history] == labels

    @pytest.mark.asyncio
    async def test_no_face_sentinel_is_not_a_previous_label(self, session, registry, recorder):
        detector = FakeDetector([face("HAPPY", 80.0)], [], [face("SAD", 70.0)])
        sampler = _sampler(detector, registry, recorder)

        for i in range(3):
            await sampler.on_frame(session, b"jpeg", now=T0 + i * 2.0)

        # HAPPY → no face → SAD: the sentinel in between breaks the chain
        assert session.current_emotion == "SAD (70.0%)"
        assert session.emotion_just_changed is False

    @pytest.mark.asyncio
    async def test_zero_faces_for_five_samples(self, session, registry, recorder):
        sampler = _sampler(FakeDetector([]), registry, recorder)

        for i in range(5):
            await sampler.on_frame(session, b"jpeg", now=T0 + i * 2.0)
            assert session.emotion_just_changed is False

        assert session.current_emotion == NO_FACE_DETECTED
        assert len(session.mood_history) == 0
        assert session.frame_count == 5
        assert recorder.of("emotion-detected") == []

    @pytest.mark.asyncio
    async def test_empty_detections_emitted_when_configured(self, session, registry, recorder):
        sampler = _sampler(FakeDetector([]), registry, recorder, emit_empty=True)

        await sampler.on_frame(session, b"jpeg", now=T0)

        assert recorder.of("emotion-detected")[0]["faces"] == []


class TestFailures:
    @pytest.mark.asyncio
    async def test_credentials_error_reported_once(self, session, registry, recorder):
        detector = FakeDetector(DetectorCredentialsError("no key"))
        sampler = _sampler(detector, registry, recorder)

        for i in range(3):
            assert await sampler.on_frame(session, b"jpeg", now=T0 + i * 2.0) is True

        assert len(recorder.of("emotion-error")) == 1
        assert session.frame_count == 3
        assert session.current_emotion is None
        assert session.telemetry.detection_failures == 3

    @pytest.mark.asyncio
    async def test_credentials_error_reported_again_after_recovery(self, session, registry, recorder):
        detector = FakeDetector(
            DetectorCredentialsError("no key"),
            [face("CALM", 60.0)],
            DetectorCredentialsError("revoked"),
        )
        sampler = _sampler(detector, registry, recorder)

        for i in range(3):
            await sampler.on_frame(session, b"jpeg", now=T0 + i * 2.0)

        assert len(recorder.of("emotion-error")) == 2

    @pytest.mark.asyncio
    async def test_transient_failure_leaves_state_untouched(self, session, registry, recorder):
        detector = FakeDetector([face("HAPPY", 90.0)], CollaboratorError("503"))
        sampler = _sampler(detector, registry, recorder)

        await sampler.on_frame(session, b"jpeg", now=T0)
        await sampler.on_frame(session, b"jpeg", now=T0 + 2.0)

        assert session.current_emotion == "HAPPY (90.0%)"
        assert len(session.mood_history) == 1
        assert recorder.of("emotion-error") == []

    @pytest.mark.asyncio
    async def test_late_result_for_closed_session_is_discarded(self, session, registry, recorder):
        gate = asyncio.Event()

        class SlowDetector:
            async def detect(self, image):
                await gate.wait()
                return [face("ANGRY", 88.0)]

        sampler = _sampler(SlowDetector(), registry, recorder)
        task = asyncio.create_task(sampler.on_frame(session, b"jpeg", now=T0))
        await asyncio.sleep(0)

        registry.remove(session.connection_id)
        gate.set()
        await task

        assert session.current_emotion is None
        assert len(session.mood_history) == 0
        assert recorder.of("emotion-detected") == []


class TestOverlappingDetections:
    @pytest.mark.asyncio
    async def test_older_result_finishing_last_is_discarded(self, session, registry, recorder):
        slow = asyncio.Event()

        class OutOfOrderDetector:
            async def detect(self, image):
                if image == b"old":
                    await slow.wait()
                    return [face("HAPPY", 90.0)]
                return [face("SAD", 70.0)]

        sampler = _sampler(OutOfOrderDetector(), registry, recorder)
        first = asyncio.create_task(sampler.on_frame(session, b"old", now=T0))
        await asyncio.sleep(0)

        assert await sampler.on_frame(session, b"new", now=T0 + 3.0) is True
        slow.set()
        assert await first is True

        assert session.current_emotion == "SAD (70.0%)"
        assert session.emotion_just_changed is False
        assert [m.timestamp for m in session.mood_history] == [T0 + 3.0]
        assert [m.emotion for m in session.mood_log] == ["SAD"]
        assert session.telemetry.stale_detections == 1
        assert len(recorder.of("emotion-detected")) == 1

        session.mood_history.prune(60.0, T0 + 62.0)
        assert all(m.timestamp > T0 + 2.0 for m in session.mood_history)
