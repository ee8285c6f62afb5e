"""
OpenAI Transcriber — streaming transcription of one PCM batch.

The session core hands over a stream of raw 16-bit PCM pieces; the
transcription endpoint wants a file, so the pieces are collected into a WAV
container and sent with stream=True. Text deltas come back as partial events,
the completed transcript as the final one.
"""

from __future__ import annotations

import io
import logging
import wave
from typing import AsyncIterator, Optional

from openai import AsyncOpenAI

from ..core.config import provider_cfg
from ..core.models import TranscriptEvent
from .openai_llm import make_client

logger = logging.getLogger("speakeasy.providers.stt")


def pcm_to_wav(pcm: bytes, sample_rate: int, channels: int = 1) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buf.getvalue()


class OpenAITranscriber:
    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = provider_cfg.transcribe_model,
        language: str = provider_cfg.transcribe_language,
    ) -> None:
        self._client = client or make_client()
        self._model = model
        self._language = language
        logger.info(f"OpenAI transcriber ready (model={model})")

    async def transcribe(
        self,
        audio: AsyncIterator[bytes],
        sample_rate: int,
        encoding: str,
    ) -> AsyncIterator[TranscriptEvent]:
        if encoding.lower() != "pcm":
            raise ValueError(f"Unsupported encoding: {encoding}")

        pcm = bytearray()
        async for piece in audio:
            pcm.extend(piece)
        if not pcm:
            return

        audio_file = io.BytesIO(pcm_to_wav(bytes(pcm), sample_rate))
        audio_file.name = "batch.wav"

        stream = await self._client.audio.transcriptions.create(
            model=self._model,
            file=audio_file,
            language=self._language,
            stream=True,
        )
        async for event in stream:
            kind = getattr(event, "type", "")
            if kind == "transcript.text.delta":
                yield TranscriptEvent(text=getattr(event, "delta", ""), is_final=False)
            elif kind == "transcript.text.done":
                yield TranscriptEvent(text=getattr(event, "text", ""), is_final=True)

