# /docqa_bot/app.py
"""
Process entry point: loads settings, prepares the local model and runs Telegram long polling.
"""
from __future__ import annotations

import asyncio
import sys
from concurrent.futures import ThreadPoolExecutor

from aiogram import Bot, Dispatcher
from rich.panel import Panel

from .bot import ChatGate, create_router
from .config import Settings, console, load_settings
from .errors import ConfigurationError
from .metrics import MetricsCollector
from .observability import configure_logging, get_logger
from .qa_chain import QuestionAnswerer, initialize_llm, verify_backend
from .safety import ContentSafetyFilter
from .service import DocumentQAService
from .session_store import SessionStore

logger = get_logger(__name__)


def display_welcome_banner(settings: Settings):
    console.print(Panel(
        f"[bold green]Document Q&A bot[/bold green]\n"
        f"Model: {settings.ollama_model}\n"
        f"Ollama: {settings.ollama_base_url}\n"
        f"Log file: {settings.log_path}",
        title="Starting",
        border_style="green",
    ))


def build_service(settings: Settings, llm) -> DocumentQAService:
    return DocumentQAService(
        store=SessionStore(),
        answerer=QuestionAnswerer(llm),
        safety_filter=ContentSafetyFilter(settings.denylist_phrases),
        metrics=MetricsCollector(),
    )


def create_dispatcher(service: DocumentQAService, executor: ThreadPoolExecutor | None = None) -> Dispatcher:
    """Dispatcher whose workflow data hands the service, executor and per-chat gate to every handler."""
    dispatcher = Dispatcher(service=service, executor=executor, chat_gate=ChatGate())
    dispatcher.include_router(create_router())
    return dispatcher


async def run_polling(settings: Settings, service: DocumentQAService):
    executor = ThreadPoolExecutor(max_workers=settings.answer_max_workers, thread_name_prefix="docqa")
    bot = Bot(token=settings.telegram_bot_token)
    dispatcher = create_dispatcher(service, executor)
    logger.info("bot_polling_started", model=settings.ollama_model, workers=settings.answer_max_workers)
    try:
        await dispatcher.start_polling(bot)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
        await bot.session.close()
        logger.info("bot_polling_stopped")


def main() -> int:
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        return 1

    configure_logging(settings.log_path, settings.log_level)
    display_welcome_banner(settings)

    try:
        llm = initialize_llm(settings)
        if settings.ollama_verify_on_start:
            verify_backend(settings)
    except ConfigurationError as exc:
        logger.error("llm_initialization_failed", error=str(exc))
        console.print(f"[bold red]LLM initialization failed:[/bold red] {exc}")
        return 1

    service = build_service(settings, llm)
    try:
        asyncio.run(run_polling(settings, service))
    except KeyboardInterrupt:
        console.print("\n[bold yellow]Bot stopped.[/bold yellow]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
