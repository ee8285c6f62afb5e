"""
JWT Identity Verifier — bearer tokens for the conversation API.

Accepts HS256 (or the configured algorithm) tokens and resolves the owner id
from the first present claim among `sub`, `uid` and `user_id`.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import jwt

from ..core.config import provider_cfg

logger = logging.getLogger("speakeasy.providers.identity")

_OWNER_CLAIMS = ("sub", "uid", "user_id")


class JWTIdentityVerifier:
    def __init__(
        self,
        secret: str = provider_cfg.jwt_secret,
        algorithm: str = provider_cfg.jwt_algorithm,
        audience: str = provider_cfg.jwt_audience,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience or None

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def verify(self, token: str) -> Optional[str]:
        if not self._secret or not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except jwt.PyJWTError as e:
            logger.debug(f"Token rejected: {e}")
            return None

        for claim in _OWNER_CLAIMS:
            value = claims.get(claim)
            if value:
                return str(value)
        return None

    def issue(self, owner_id: str, ttl: int = 3600) -> str:
        """Mint a token for local tooling and tests."""
        now = int(time.time())
        payload = {"sub": owner_id, "iat": now, "exp": now + ttl}
        if self._audience:
            payload["aud"] = self._audience
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)
