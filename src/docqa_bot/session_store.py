"""
In-memory registry of per-chat document sessions.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from langchain_core.prompts import PromptTemplate

from .errors import NoSessionError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_session_id() -> str:
    return uuid.uuid4().hex[:16]


@dataclass(frozen=True)
class Session:
    """One accepted document for one chat, plus the lock that serializes its questions."""

    chat_id: int
    document_text: str
    prompt: PromptTemplate = field(repr=False)
    filename: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    session_id: str = field(default_factory=_new_session_id)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class SessionStore:
    """
    Thread-safe chat id -> Session mapping.
    The store lock only guards the dict; it is never held while a question is answered.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: dict[int, Session] = {}

    def put(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.chat_id] = session

    def get(self, chat_id: int) -> Session | None:
        with self._lock:
            return self._sessions.get(chat_id)

    def require(self, chat_id: int) -> Session:
        session = self.get(chat_id)
        if session is None:
            raise NoSessionError(chat_id)
        return session

    def delete(self, chat_id: int, session_id: str | None = None) -> bool:
        """Removes the chat's session; with session_id, only if that session is still the current one."""
        with self._lock:
            current = self._sessions.get(chat_id)
            if current is None or (session_id is not None and current.session_id != session_id):
                return False
            del self._sessions[chat_id]
            return True

    def __contains__(self, chat_id) -> bool:
        with self._lock:
            return chat_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
