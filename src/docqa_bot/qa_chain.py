"""
Prompt templating and inference for document questions.
A session's template is bound to its document once; each question only fills the question slot.
"""
from __future__ import annotations

from typing import Any

import ollama
from langchain_core.prompts import PromptTemplate
from langchain_ollama import OllamaLLM

from .config import Settings, console
from .errors import AnswerError, ConfigurationError
from .observability import get_logger
from .session_store import Session

logger = get_logger(__name__)

QA_PROMPT_TEMPLATE = """You are a helpful assistant. Answer questions strictly based on the following document.
Answer briefly and to the point using the information in the document.
If the answer is not in the document, say so.

DOCUMENT:
{document}

QUESTION: {question}

ANSWER:"""


def build_prompt(document_text: str) -> PromptTemplate:
    """Returns the QA template with the document slot already filled."""
    return PromptTemplate.from_template(QA_PROMPT_TEMPLATE).partial(document=document_text)


def coerce_answer_text(response: Any) -> str:
    """
    Pulls the answer text out of an inference response.
    Anything without a string payload yields an empty answer.
    """
    if isinstance(response, str):
        return response
    content = getattr(response, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(response, dict):
        text = response.get("text")
        if isinstance(text, str):
            return text
    return ""


# --- LLM Initialization ---

def initialize_llm(settings: Settings) -> OllamaLLM:
    """Builds the local Ollama client from settings."""
    console.print(f"[green]Using Local Model: {settings.ollama_model}[/green]")
    return OllamaLLM(
        model=settings.ollama_model,
        base_url=settings.ollama_base_url,
        temperature=settings.ollama_temperature,
        num_predict=settings.ollama_num_predict,
        client_kwargs={"timeout": settings.ollama_timeout_s},
    )


def verify_backend(settings: Settings):
    """Fails fast when the Ollama server is unreachable or lacks the configured model."""
    client = ollama.Client(host=settings.ollama_base_url, timeout=settings.ollama_timeout_s)
    try:
        client.show(settings.ollama_model)
    except Exception as exc:
        raise ConfigurationError(
            f"Ollama model {settings.ollama_model!r} is not available at {settings.ollama_base_url}: {exc}"
        ) from exc
    logger.info("llm_backend_ready", model=settings.ollama_model, base_url=settings.ollama_base_url)


# --- Question Answering ---

class QuestionAnswerer:
    """Answers questions against a session's document with one inference call each."""

    def __init__(self, llm):
        self.llm = llm

    def create_session(self, chat_id: int, document_text: str, filename: str = "") -> Session:
        return Session(
            chat_id=chat_id,
            document_text=document_text,
            prompt=build_prompt(document_text),
            filename=filename,
        )

    @staticmethod
    def render_prompt(session: Session, question: str) -> str:
        return session.prompt.format(question=question)

    def answer(self, session: Session, question: str) -> str:
        """
        Serializes on the session lock, renders the prompt and calls the model.
        Raises AnswerError when the model call fails.
        """
        with session.lock:
            prompt_text = self.render_prompt(session, question)
            try:
                response = self.llm.invoke(prompt_text)
            except Exception as exc:
                raise AnswerError(AnswerError.INFERENCE_FAILED, cause=exc) from exc
        return coerce_answer_text(response)
