"""
SpeakEasy — Provider Factory

Builds the collaborator set from configuration: vendor adapters where keys
are configured, simulated fallbacks otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict

from ..core.config import ProviderConfig, SessionConfig, provider_cfg, session_cfg
from ..core.interfaces import (
    AdviceGenerator,
    EmotionDetector,
    IdentityVerifier,
    ObjectStore,
    SummaryGenerator,
    Transcriber,
)
from .identity import JWTIdentityVerifier
from .simulated import (
    RuleAdviceGenerator,
    SimulatedEmotionDetector,
    SimulatedTranscriber,
    TemplateSummaryGenerator,
)
from .storage import FileObjectStore

logger = logging.getLogger("speakeasy.providers")


@dataclass
class Providers:
    detector: EmotionDetector
    transcriber: Transcriber
    advisor: AdviceGenerator
    summarizer: SummaryGenerator
    store: ObjectStore
    identity: IdentityVerifier
    modes: Dict[str, str]

    async def close(self) -> None:
        """Release collaborator clients (HTTP connection pools)."""
        seen = set()
        for collaborator in (self.detector, self.transcriber, self.advisor, self.summarizer):
            close = getattr(collaborator, "close", None)
            if close is None or id(collaborator) in seen:
                continue
            seen.add(id(collaborator))
            try:
                await close()
            except Exception as e:
                logger.warning(f"Closing {type(collaborator).__name__} failed: {e}")


def build_providers(
    cfg: ProviderConfig = provider_cfg,
    session: SessionConfig = session_cfg,
) -> Providers:
    modes: Dict[str, str] = {}

    if cfg.has_emotion_service:
        from .http_emotion import HttpEmotionDetector
        detector: EmotionDetector = HttpEmotionDetector(
            cfg.emotion_service_url, cfg.emotion_service_key, cfg.emotion_service_timeout
        )
        modes["emotion"] = "http"
    else:
        detector = SimulatedEmotionDetector()
        modes["emotion"] = "simulated"

    if cfg.has_openai:
        from .openai_llm import OpenAIAdviceGenerator, OpenAISummaryGenerator, make_client
        from .openai_stt import OpenAITranscriber
        client = make_client(cfg)
        transcriber: Transcriber = OpenAITranscriber(
            client, cfg.transcribe_model, cfg.transcribe_language
        )
        advisor: AdviceGenerator = OpenAIAdviceGenerator(client, cfg.advice_model)
        summarizer: SummaryGenerator = OpenAISummaryGenerator(client, cfg.summary_model)
        modes.update(transcription="openai", advice="openai", summary="openai")
    else:
        transcriber = SimulatedTranscriber()
        advisor = RuleAdviceGenerator()
        summarizer = TemplateSummaryGenerator()
        modes.update(transcription="simulated", advice="rules", summary="template")

    identity = JWTIdentityVerifier(cfg.jwt_secret, cfg.jwt_algorithm, cfg.jwt_audience)
    modes["identity"] = "jwt" if identity.configured else "disabled"

    for concern, mode in modes.items():
        logger.info(f"   {concern:<13} → {mode}")

    return Providers(
        detector=detector,
        transcriber=transcriber,
        advisor=advisor,
        summarizer=summarizer,
        store=FileObjectStore(session.storage_root),
        identity=identity,
        modes=modes,
    )
