"""
SpeakEasy — Session Finalizer

Runs detached after a clean stop. Works only on the SessionRecord captured at
teardown, never on the registry, so a slow summary or store cannot hold up the
session close.

  delay → summary (with placeholder on failure) → document → store.put
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.config import cadence_cfg, session_cfg
from ..core.interfaces import ObjectStore, SummaryGenerator
from ..core.models import SessionRecord
from .documents import build_session_document, conversation_id_for

logger = logging.getLogger("speakeasy.finalizer")

# Optional notification back to the (possibly closed) connection
Notifier = Callable[[str, Dict[str, Any]], Awaitable[None]]


class SessionFinalizer:
    def __init__(
        self,
        summarizer: SummaryGenerator,
        store: ObjectStore,
        delay: float = session_cfg.summary_delay,
        timeout: float = cadence_cfg.summary_timeout,
    ) -> None:
        self._summarizer = summarizer
        self._store = store
        self._delay = delay
        self._timeout = timeout

    async def finalize(
        self,
        record: SessionRecord,
        notify: Optional[Notifier] = None,
    ) -> Optional[str]:
        """Returns the conversation id when the document was stored."""
        if self._delay > 0:
            await asyncio.sleep(self._delay)

        tag = f"[{record.connection_id}]"
        logger.info(
            f"{tag} Finalizing: {record.duration:.1f}s, {record.frame_count} frames, "
            f"{len(record.mood_history)} mood samples, "
            f"{len(record.transcript.split())} words"
        )

        summary = await self._summarize(record)
        conversation_id = conversation_id_for(record)
        document = build_session_document(record, summary)

        try:
            await self._store.put(record.user_id, f"{conversation_id}.md", document)
        except Exception as e:
            logger.error(f"{tag} Failed to store conversation {conversation_id}: {e}")
            await self._notify(notify, "recording-error", {"message": f"Failed to save session: {str(e)[:100]}"})
            return None

        logger.info(f"{tag} Conversation stored: {record.user_id}/{conversation_id}.md")
        await self._notify(notify, "recording-saved", {"conversationId": conversation_id})
        return conversation_id

    async def _summarize(self, record: SessionRecord) -> str:
        try:
            return await asyncio.wait_for(
                self._summarizer.summarize(record.mood_history, record.transcript, record.duration),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{record.connection_id}] Summary generation timed out")
            return "Summary unavailable: summary generation timed out."
        except Exception as e:
            logger.warning(f"[{record.connection_id}] Summary generation failed: {e}")
            return f"Summary unavailable: {str(e)[:200]}"

    @staticmethod
    async def _notify(notify: Optional[Notifier], event: str, data: Dict[str, Any]) -> None:
        if notify is None:
            return
        try:
            await notify(event, data)
        except Exception as e:
            logger.debug(f"Finalizer notification dropped: {e}")
