"""
SpeakEasy — Conversation Library

Read side of the stored sessions: list, fetch, access check and front-matter
updates for one owner's conversation documents.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from ..core.interfaces import ObjectStore
from ..core.models import ConversationDetail, ConversationSummary
from .documents import parse_document, render_document

logger = logging.getLogger("speakeasy.conversations")

_SUFFIX = ".md"


def _name(conversation_id: str) -> str:
    return f"{conversation_id}{_SUFFIX}"


def _date_text(value: Any) -> str:
    """YAML turns unquoted ISO dates into datetime objects."""
    if isinstance(value, datetime):
        return value.isoformat()
    if value:
        return str(value)
    return datetime.now(timezone.utc).isoformat()


def _date_key(value: str) -> float:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class ConversationLibrary:
    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    async def list_conversations(self, owner_id: str) -> List[ConversationSummary]:
        """Newest first. Documents that cannot be read or parsed are skipped."""
        conversations: List[ConversationSummary] = []
        for name in await self._store.list(owner_id):
            if not name.endswith(_SUFFIX):
                continue
            conversation_id = name[: -len(_SUFFIX)]
            content = await self._store.get(owner_id, name)
            if content is None:
                continue
            try:
                data, _ = parse_document(content)
            except ValueError as e:
                logger.warning(f"Skipping unparsable conversation {owner_id}/{name}: {e}")
                continue
            conversations.append(ConversationSummary(
                id=conversation_id,
                title=str(data.get("title") or conversation_id),
                date=_date_text(data.get("date")),
            ))
        conversations.sort(key=lambda c: _date_key(c.date), reverse=True)
        return conversations

    async def get_conversation(
        self, owner_id: str, conversation_id: str
    ) -> Optional[ConversationDetail]:
        content = await self._store.get(owner_id, _name(conversation_id))
        if content is None:
            return None
        data, body = parse_document(content)
        return ConversationDetail(
            id=conversation_id,
            title=str(data.get("title") or conversation_id),
            date=_date_text(data.get("date")),
            dialogue=str(data.get("dialogue") or body),
            feedback=str(data.get("feedback") or ""),
            summary=str(data.get("summary") or ""),
        )

    async def can_access(self, owner_id: str, conversation_id: str) -> bool:
        return await self._store.get(owner_id, _name(conversation_id)) is not None

    async def update_conversation(
        self,
        owner_id: str,
        conversation_id: str,
        summary: Optional[str] = None,
        feedback: Optional[str] = None,
    ) -> bool:
        """Merge summary/feedback into the front matter. False if absent."""
        name = _name(conversation_id)
        content = await self._store.get(owner_id, name)
        if content is None:
            return False
        data, body = parse_document(content)
        if summary is not None:
            data["summary"] = summary
        if feedback is not None:
            data["feedback"] = feedback
        await self._store.put(owner_id, name, render_document(data, body))
        return True
