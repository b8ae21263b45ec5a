"""Document ingestion and question orchestration for chat sessions."""
from __future__ import annotations

import time
from typing import Any

from .document_loader import load_document
from .errors import AnswerError, ExtractError, NoSessionError, SafetyRejection, UnsupportedFormatError
from .metrics import MetricsCollector
from .observability import get_logger
from .qa_chain import QuestionAnswerer
from .safety import ContentSafetyFilter
from .session_store import Session, SessionStore

logger = get_logger(__name__)


class DocumentQAService:
    """
    Owns the session store and wires loading, filtering and answering together.
    Handlers call into this class from worker threads; it never touches the messaging platform.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        answerer: QuestionAnswerer,
        safety_filter: ContentSafetyFilter,
        metrics: MetricsCollector | None = None,
    ):
        self.store = store
        self.answerer = answerer
        self.safety_filter = safety_filter
        self.metrics = metrics or MetricsCollector()

    def ingest(self, chat_id: int, filename: str, data: bytes, username: str | None = None) -> Session:
        """Loads, screens and stores a document, replacing any previous session for the chat."""
        logger.info("document_received", chat_id=chat_id, username=username, filename=filename, size_bytes=len(data))
        try:
            text = load_document(filename, data)
        except UnsupportedFormatError:
            logger.info("document_unsupported_format", chat_id=chat_id, filename=filename)
            raise
        except ExtractError as exc:
            logger.error("document_extract_failed", chat_id=chat_id, filename=filename, reason=exc.reason, detail=exc.detail)
            raise

        try:
            self.safety_filter.ensure_safe(text)
        except SafetyRejection as exc:
            logger.warning("document_rejected_unsafe", chat_id=chat_id, username=username, filename=filename, phrase=exc.phrase)
            raise

        session = self.answerer.create_session(chat_id, text, filename=filename)
        replaced = chat_id in self.store
        self.store.put(session)
        logger.info(
            "document_loaded",
            chat_id=chat_id,
            username=username,
            filename=filename,
            chars=len(text),
            replaced=replaced,
        )
        return session

    def ask(self, chat_id: int, question: str, username: str | None = None) -> str:
        """
        Answers a question against the chat's current document.
        The answering path only reads the store, so a concurrent delete is never undone.
        """
        logger.info("question_received", chat_id=chat_id, username=username, question=question)
        try:
            session = self.store.require(chat_id)
        except NoSessionError:
            logger.info("question_without_document", chat_id=chat_id, username=username)
            raise

        start = time.perf_counter()
        try:
            answer = self.answerer.answer(session, question)
        except AnswerError as exc:
            latency_ms = (time.perf_counter() - start) * 1000.0
            self.metrics.record_answer(latency_ms, success=False)
            logger.error("answer_failed", chat_id=chat_id, reason=exc.reason, error=str(exc.cause))
            raise
        latency_ms = (time.perf_counter() - start) * 1000.0
        self.metrics.record_answer(latency_ms, success=True)
        logger.info("answer_generated", chat_id=chat_id, latency_ms=round(latency_ms, 2), answer_chars=len(answer))
        return answer

    def delete(self, chat_id: int, username: str | None = None, session_id: str | None = None) -> bool:
        """Drops the chat's session. A session_id limits the delete to that exact upload."""
        removed = self.store.delete(chat_id, session_id=session_id)
        logger.info("session_deleted", chat_id=chat_id, username=username, session_id=session_id, removed=removed)
        return removed

    def status(self, chat_id: int) -> dict[str, Any]:
        session = self.store.get(chat_id)
        return {
            "has_document": session is not None,
            "filename": session.filename if session else None,
            "document_chars": len(session.document_text) if session else 0,
            "loaded_at": session.created_at.isoformat(timespec="seconds") if session else None,
            "active_sessions": len(self.store),
            "metrics": self.metrics.get_summary(),
        }
