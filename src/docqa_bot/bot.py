"""
Telegram handlers for the document Q&A bot.
Blocking work (parsing, inference) runs on a thread pool so one chat never stalls another.
"""
from __future__ import annotations

import asyncio
import contextlib
import functools
from concurrent.futures import Executor
from typing import Any, Callable

import aiohttp
from aiogram import Bot, F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandStart
from aiogram.types import CallbackQuery, Document, InlineKeyboardButton, InlineKeyboardMarkup, Message

from .document_loader import SUPPORTED_EXTENSIONS, resolve_loader
from .errors import (
    AnswerError,
    DocQAError,
    DownloadError,
    ExtractError,
    NoSessionError,
    SafetyRejection,
    UnsupportedFormatError,
)
from .observability import get_logger
from .service import DocumentQAService

logger = get_logger(__name__)

DELETE_CALLBACK = "delete"
DELETE_CALLBACK_PREFIX = f"{DELETE_CALLBACK}:"
TELEGRAM_MESSAGE_LIMIT = 4096

# Slash-prefixed text that no command handler claimed.
COMMAND_TEXT = F.text.startswith("/")
DELETE_CALLBACK_DATA = (F.data == DELETE_CALLBACK) | F.data.startswith(DELETE_CALLBACK_PREFIX)

START_TEXT = (
    "Hi! I answer questions about your documents. "
    "Upload a .txt or .docx file and then ask me anything about its content."
)
DOCUMENT_LOADED_TEXT = "Document loaded. You can now ask questions."
DOCUMENT_DELETED_TEXT = "Document deleted."
STALE_DELETE_TEXT = "This document was already replaced by a newer upload."
EMPTY_ANSWER_TEXT = "(the model returned an empty answer)"
GENERIC_ERROR_TEXT = "Something went wrong. Please try again."

_ERROR_MESSAGES: dict[type[DocQAError], str] = {
    DownloadError: "Could not fetch the file. Please try again.",
    UnsupportedFormatError: "Only .txt and .docx files are supported.",
    ExtractError: "Could not read the document.",
    SafetyRejection: "The document contains suspicious phrases and will not be processed.",
    NoSessionError: "Please upload a document first (.txt or .docx).",
    AnswerError: "Failed to generate an answer. Please try again.",
}


def user_message_for(exc: BaseException) -> str:
    """Maps a bot error to the text shown to the user."""
    for error_type, text in _ERROR_MESSAGES.items():
        if isinstance(exc, error_type):
            return text
    return GENERIC_ERROR_TEXT


def split_message(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> list[str]:
    """Splits text into Telegram-sized parts, preferring line boundaries."""
    if len(text) <= limit:
        return [text]
    parts: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        else:
            cut += 1
        parts.append(remaining[:cut])
        remaining = remaining[cut:]
    if remaining:
        parts.append(remaining)
    return parts


def delete_callback_data(session_id: str | None = None) -> str:
    return f"{DELETE_CALLBACK_PREFIX}{session_id}" if session_id else DELETE_CALLBACK


def session_id_from_callback(data: str | None) -> str | None:
    """Returns the session token carried by a delete button, or None for a bare delete."""
    if data and data.startswith(DELETE_CALLBACK_PREFIX):
        return data[len(DELETE_CALLBACK_PREFIX):] or None
    return None


def delete_keyboard(session_id: str | None = None) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text="🗑 Delete", callback_data=delete_callback_data(session_id))]]
    )


class ChatGate:
    """
    Admits one blocking question per chat to the worker pool at a time.
    Later questions from the same chat wait on the event loop, not on a worker thread.
    """

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}
        self._waiting: dict[int, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, chat_id: int):
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        self._waiting[chat_id] = self._waiting.get(chat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiting[chat_id] -= 1
            if not self._waiting[chat_id]:
                del self._waiting[chat_id]
                del self._locks[chat_id]

    def __len__(self) -> int:
        return len(self._locks)


def format_status(status: dict[str, Any]) -> str:
    metrics = status.get("metrics") or {}
    latency = metrics.get("latency") or {}
    answers = metrics.get("answers") or {}
    errors = metrics.get("errors") or {}
    if status.get("has_document"):
        header = f"Document: {status.get('filename') or 'unnamed'} ({status.get('document_chars', 0)} chars)"
    else:
        header = "No document loaded."
    return "\n".join(
        [
            header,
            f"Active sessions: {status.get('active_sessions', 0)}",
            f"Answers: {answers.get('total', 0)} (errors: {errors.get('count', 0)})",
            f"Avg latency: {latency.get('avg_ms', 0.0)} ms",
        ]
    )


def _username(user) -> str | None:
    return getattr(user, "username", None) if user is not None else None


async def _run_blocking(executor: Executor | None, func: Callable[..., Any], *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, functools.partial(func, *args))


async def download_document(bot: Bot, document: Document) -> bytes:
    """Fetches an uploaded file's bytes; transport failures become DownloadError."""
    try:
        buffer = await bot.download(document)
    except (TelegramAPIError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.error("document_download_failed", file_id=document.file_id, error=str(exc))
        raise DownloadError(str(exc)) from exc
    if buffer is None:
        raise DownloadError(f"no content returned for file {document.file_id}")
    return buffer.getvalue()


# --- Handlers ---

async def handle_start(message: Message):
    logger.info("bot_started", chat_id=message.chat.id, username=_username(message.from_user))
    await message.answer(START_TEXT)


async def handle_status(message: Message, service: DocumentQAService):
    await message.answer(format_status(service.status(message.chat.id)))


async def handle_document(message: Message, bot: Bot, service: DocumentQAService, executor: Executor | None = None):
    document = message.document
    if document is None:
        return
    chat_id = message.chat.id
    username = _username(message.from_user)
    filename = document.file_name or ""

    try:
        resolve_loader(filename)
    except UnsupportedFormatError as exc:
        logger.info("document_unsupported_format", chat_id=chat_id, filename=filename, supported=SUPPORTED_EXTENSIONS)
        await message.answer(user_message_for(exc))
        return

    try:
        data = await download_document(bot, document)
        session = await _run_blocking(executor, service.ingest, chat_id, filename, data, username)
    except DocQAError as exc:
        await message.answer(user_message_for(exc))
        return

    await message.answer(DOCUMENT_LOADED_TEXT, reply_markup=delete_keyboard(session.session_id))


async def handle_unknown_command(message: Message):
    await message.answer(START_TEXT)


async def handle_question(
    message: Message,
    service: DocumentQAService,
    executor: Executor | None = None,
    chat_gate: ChatGate | None = None,
):
    question = message.text or ""
    if not question.strip():
        return
    chat_id = message.chat.id
    gate = chat_gate.hold(chat_id) if chat_gate is not None else contextlib.nullcontext()
    try:
        async with gate:
            answer = await _run_blocking(executor, service.ask, chat_id, question, _username(message.from_user))
    except DocQAError as exc:
        await message.answer(user_message_for(exc))
        return

    for part in split_message(answer or EMPTY_ANSWER_TEXT):
        await message.answer(part)
    logger.info("answer_sent", chat_id=chat_id, answer_chars=len(answer))


async def handle_delete(callback: CallbackQuery, service: DocumentQAService):
    message = callback.message
    if not isinstance(message, Message):
        await callback.answer()
        return
    chat_id = message.chat.id
    session_id = session_id_from_callback(callback.data)
    removed = service.delete(chat_id, username=_username(callback.from_user), session_id=session_id)
    if not removed and session_id is not None and chat_id in service.store:
        await callback.answer(STALE_DELETE_TEXT)
        return
    try:
        await message.delete()
    except TelegramAPIError as exc:
        logger.warning("message_delete_failed", chat_id=chat_id, message_id=message.message_id, error=str(exc))
    await message.answer(DOCUMENT_DELETED_TEXT)
    await callback.answer()


def create_router() -> Router:
    """Builds a fresh router; a router can only be attached to one dispatcher."""
    router = Router(name="docqa_bot")
    router.message.register(handle_start, CommandStart())
    router.message.register(handle_status, Command("status"))
    router.message.register(handle_document, F.document)
    router.message.register(handle_unknown_command, COMMAND_TEXT)
    router.message.register(handle_question, F.text)
    router.callback_query.register(handle_delete, DELETE_CALLBACK_DATA)
    return router
