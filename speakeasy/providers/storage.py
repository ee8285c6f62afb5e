"""
Object Stores — conversation documents keyed by owner + name.

FileObjectStore lays documents out as <root>/<owner>/<name>. Blocking file
I/O runs in a worker thread so the event loop keeps serving media.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

logger = logging.getLogger("speakeasy.providers.storage")


def safe_component(value: str) -> str:
    """
    Percent-encode one path component. Distinct values never share an
    encoding, and separators cannot survive it.
    """
    encoded = quote(value, safe="@")
    if encoded in ("", ".", ".."):
        raise ValueError(f"Invalid storage key component: {value!r}")
    return encoded


class FileObjectStore:
    def __init__(self, root: str) -> None:
        self._root = Path(root)
        logger.info(f"File object store at {self._root.resolve()}")

    def _path(self, owner_id: str, name: str) -> Path:
        return self._root / safe_component(owner_id) / safe_component(name)

    async def put(self, owner_id: str, name: str, content: str) -> None:
        path = self._path(owner_id, name)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(content, encoding="utf-8")
            tmp.replace(path)

        await asyncio.to_thread(_write)
        logger.debug(f"Stored {path}")

    async def get(self, owner_id: str, name: str) -> Optional[str]:
        path = self._path(owner_id, name)

        def _read() -> Optional[str]:
            if not path.is_file():
                return None
            return path.read_text(encoding="utf-8")

        return await asyncio.to_thread(_read)

    async def list(self, owner_id: str) -> List[str]:
        folder = self._root / safe_component(owner_id)

        def _scan() -> List[str]:
            if not folder.is_dir():
                return []
            return sorted(
                unquote(p.name) for p in folder.iterdir()
                if p.is_file() and not p.name.endswith(".tmp")
            )

        return await asyncio.to_thread(_scan)


class MemoryObjectStore:
    """In-process store, used when no storage root is writable and in tests."""

    def __init__(self) -> None:
        self._objects: Dict[str, Dict[str, str]] = {}

    async def put(self, owner_id: str, name: str, content: str) -> None:
        self._objects.setdefault(owner_id, {})[name] = content

    async def get(self, owner_id: str, name: str) -> Optional[str]:
        return self._objects.get(owner_id, {}).get(name)

    async def list(self, owner_id: str) -> List[str]:
        return sorted(self._objects.get(owner_id, {}))
