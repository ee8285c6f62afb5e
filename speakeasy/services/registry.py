"""
SpeakEasy — Session Registry

Maps connection_id → Session. The only cross-connection shared state.
Single event loop: every operation is a plain dict step with no await inside,
so no lock is needed.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from ..core.session import Session

logger = logging.getLogger("speakeasy.registry")


class SessionRegistry:
    """Maps connection_id → Session."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def insert(self, session: Session) -> bool:
        """Register a session. Returns False if the connection already has one."""
        if session.connection_id in self._sessions:
            return False
        self._sessions[session.connection_id] = session
        logger.info(
            f"SessionRegistry: created {session.connection_id} "
            f"(total: {len(self._sessions)})"
        )
        return True

    def get(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    def is_live(self, session: Session) -> bool:
        """True while this exact session object is still registered."""
        return self._sessions.get(session.connection_id) is session

    def remove(self, connection_id: str) -> Optional[Session]:
        session = self._sessions.pop(connection_id, None)
        if session:
            logger.info(
                f"SessionRegistry: removed {connection_id} "
                f"(total: {len(self._sessions)})"
            )
        return session

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    @property
    def all_sessions(self) -> Dict[str, Session]:
        return dict(self._sessions)
