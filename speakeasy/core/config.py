"""
SpeakEasy — Configuration

Centralised settings from environment variables.
All tuneable constants live here — zero magic numbers in other files.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv
import certifi

os.environ.setdefault("SSL_CERT_FILE", certifi.where())
os.environ.setdefault("REQUESTS_CA_BUNDLE", certifi.where())

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerConfig:
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3001"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: tuple[str, ...] = (
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    )


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderConfig:
    """API keys and endpoints for the analysis, storage and identity services."""
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "")
    advice_model: str = os.getenv("ADVICE_MODEL", "gpt-4o-mini")
    summary_model: str = os.getenv("SUMMARY_MODEL", "gpt-4o-mini")
    transcribe_model: str = os.getenv("TRANSCRIBE_MODEL", "gpt-4o-transcribe")
    transcribe_language: str = os.getenv("TRANSCRIBE_LANGUAGE", "en")

    # Face-emotion analysis service (JSON over HTTP)
    emotion_service_url: str = os.getenv("EMOTION_SERVICE_URL", "")
    emotion_service_key: str = os.getenv("EMOTION_SERVICE_KEY", "")
    emotion_service_timeout: float = float(os.getenv("EMOTION_SERVICE_TIMEOUT", "10"))

    # Bearer tokens for the conversation API
    jwt_secret: str = os.getenv("JWT_SECRET", "")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_audience: str = os.getenv("JWT_AUDIENCE", "")

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_emotion_service(self) -> bool:
        return bool(self.emotion_service_url)


# ---------------------------------------------------------------------------
# Streaming cadence tunables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CadenceConfig:
    # Minimum gap between two emotion detection calls (rate-limit protection)
    frame_interval: float = 2.0
    # Minimum gap between two transcription batches
    audio_interval: float = 6.0
    # Minimum buffered chunks before a transcription batch is dispatched
    min_audio_chunks: int = 15
    # Minimum gap between two advice generations
    advice_cooldown: float = 15.0
    # Retention of mood history / transcript segments
    ledger_window: float = 60.0
    # Look-back used when building advice context
    context_window: float = 30.0
    # Sub-chunk size for the streaming transcription input (4096 16-bit samples)
    transcribe_chunk_bytes: int = 4096 * 2
    # Client capture format
    sample_rate: int = 48000
    encoding: str = "pcm"
    # Hard timeouts for collaborator calls
    detect_timeout: float = 10.0
    transcribe_timeout: float = 30.0
    advice_timeout: float = 20.0
    summary_timeout: float = 60.0
    # Number of suggestions per advice update
    advice_options: int = 4


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionConfig:
    # Persist the session when the client drops without sending stream-stop
    finalize_on_disconnect: bool = _env_bool("FINALIZE_ON_DISCONNECT", False)
    # Delay before the detached finalization starts (seconds)
    summary_delay: float = float(os.getenv("SUMMARY_DELAY", "1.0"))
    # Root directory of the file-backed conversation store
    storage_root: str = os.getenv("STORAGE_ROOT", "./conversations")
    # Owner used when the client supplies no user id
    fallback_user_id: str = os.getenv("FALLBACK_USER_ID", "anonymous")
    # Also send emotion-detected for frames where no face was found
    emit_empty_detections: bool = _env_bool("EMIT_EMPTY_DETECTIONS", False)
    # How long shutdown waits for pending finalizations (seconds)
    shutdown_grace: float = 10.0


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

server_cfg = ServerConfig()
provider_cfg = ProviderConfig()
cadence_cfg = CadenceConfig()
session_cfg = SessionConfig()
