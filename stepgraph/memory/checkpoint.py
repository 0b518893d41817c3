"""
Checkpoint stores for multi-turn sessions.

A store maps an opaque session id to the final state of the last walk in
that session. The executor loads once at walk start and saves once at walk
end; stores never see intermediate states.
"""

import asyncio
import copy
import hashlib
import json
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from langchain_core.messages import BaseMessage, messages_from_dict, messages_to_dict

from ..core.config import settings
from ..utils.logger import get_logger


logger = get_logger()


class BaseCheckpointStore(ABC):
    """Interface every checkpoint store implements."""

    @abstractmethod
    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        Load the saved state of a session.

        Returns:
            The saved state, or None when the session is new
        """

    @abstractmethod
    async def save(self, session_id: str, state: Mapping[str, Any]) -> None:
        """Persist the final state of a walk."""

    async def delete(self, session_id: str) -> bool:
        """Forget a session. Returns True when something was removed."""
        return False

    async def list_sessions(self) -> List[str]:
        return []


class InMemoryCheckpointStore(BaseCheckpointStore):
    """
    Process-local store.

    States are deep-copied on the way in and out so a caller holding a
    returned state can never mutate what is stored.
    """

    def __init__(self):
        self._states: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            state = self._states.get(session_id)
            return copy.deepcopy(state) if state is not None else None

    async def save(self, session_id: str, state: Mapping[str, Any]) -> None:
        async with self._lock:
            self._states[session_id] = copy.deepcopy(dict(state))
        logger.with_component("Memory").debug(f"Saved checkpoint for session {session_id}")

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            return self._states.pop(session_id, None) is not None

    async def list_sessions(self) -> List[str]:
        async with self._lock:
            return sorted(self._states)


class FileCheckpointStore(BaseCheckpointStore):
    """
    One JSON file per session under ``directory``.

    Message lists are encoded with LangChain's message dict format; other
    values must be JSON serializable.
    """

    MESSAGES_KEY = "__messages__"

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory or settings.checkpoint_dir)

    def _path(self, session_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", session_id)[:64]
        digest = hashlib.sha256(session_id.encode()).hexdigest()[:12]
        return self.directory / f"{safe}-{digest}.json"

    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(session_id)
        raw = await asyncio.to_thread(self._read, path)
        if raw is None:
            return None
        return {key: self._decode(value) for key, value in raw["state"].items()}

    async def save(self, session_id: str, state: Mapping[str, Any]) -> None:
        payload = {
            "session_id": session_id,
            "state": {key: self._encode(value) for key, value in state.items()},
        }
        await asyncio.to_thread(self._write, self._path(session_id), payload)
        logger.with_component("Memory").debug(f"Wrote checkpoint for session {session_id}")

    async def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        if not path.exists():
            return False
        await asyncio.to_thread(path.unlink)
        return True

    async def list_sessions(self) -> List[str]:
        if not self.directory.exists():
            return []
        sessions = []
        for path in sorted(self.directory.glob("*.json")):
            raw = await asyncio.to_thread(self._read, path)
            if raw is not None:
                sessions.append(raw["session_id"])
        return sessions

    # ==================== Encoding ====================

    def _encode(self, value: Any) -> Any:
        if isinstance(value, BaseMessage):
            return {self.MESSAGES_KEY: messages_to_dict([value]), "single": True}
        if isinstance(value, (list, tuple)) and value and all(
            isinstance(v, BaseMessage) for v in value
        ):
            return {self.MESSAGES_KEY: messages_to_dict(list(value))}
        return value

    def _decode(self, value: Any) -> Any:
        if isinstance(value, dict) and self.MESSAGES_KEY in value:
            messages = messages_from_dict(value[self.MESSAGES_KEY])
            return messages[0] if value.get("single") else messages
        return value

    @staticmethod
    def _read(path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _write(path: Path, payload: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, default=str)
        os.replace(tmp, path)
