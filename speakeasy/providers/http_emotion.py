"""
HTTP Emotion Detector — face analysis over a JSON API.

POSTs the raw frame (image/jpeg) to the configured service and expects:

    {"faces": [{"emotions": [{"type": "HAPPY", "confidence": 93.1}, ...],
                "ageRange": {"low": 25, "high": 35},
                "gender": "Female"}]}

401/403 responses and a missing service key raise DetectorCredentialsError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import provider_cfg
from ..core.errors import CollaboratorError, DetectorCredentialsError
from ..core.models import FaceEmotion

logger = logging.getLogger("speakeasy.providers.emotion")


def parse_faces(payload: Dict[str, Any]) -> List[FaceEmotion]:
    faces: List[FaceEmotion] = []
    for raw in payload.get("faces") or []:
        emotions = [
            {"type": str(e.get("type", "UNKNOWN")).upper(), "confidence": float(e.get("confidence") or 0.0)}
            for e in (raw.get("emotions") or [])
        ]
        emotions.sort(key=lambda e: e["confidence"], reverse=True)
        top = emotions[0] if emotions else {"type": "UNKNOWN", "confidence": 0.0}
        faces.append(FaceEmotion(
            dominant_label=top["type"],
            confidence=top["confidence"],
            emotions=emotions,
            age_range=raw.get("ageRange"),
            gender=raw.get("gender"),
        ))
    return faces


class HttpEmotionDetector:
    def __init__(
        self,
        url: str = provider_cfg.emotion_service_url,
        api_key: str = provider_cfg.emotion_service_key,
        timeout: float = provider_cfg.emotion_service_timeout,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not url:
            raise ValueError("EMOTION_SERVICE_URL not set")
        self._url = url
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        logger.info(f"HTTP emotion detector ready ({url})")

    async def detect(self, image: bytes) -> List[FaceEmotion]:
        if not self._api_key:
            raise DetectorCredentialsError("EMOTION_SERVICE_KEY not set")

        try:
            response = await self._client.post(
                self._url,
                content=image,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "image/jpeg",
                },
            )
        except httpx.HTTPError as e:
            raise CollaboratorError(f"emotion service unreachable: {e}") from e

        if response.status_code in (401, 403):
            raise DetectorCredentialsError(
                f"emotion service rejected credentials ({response.status_code})"
            )
        try:
            response.raise_for_status()
            return parse_faces(response.json())
        except (httpx.HTTPStatusError, ValueError) as e:
            raise CollaboratorError(f"emotion service error: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()
