"""
Exception taxonomy for the document Q&A bot.
Each runtime error is caught by the Telegram handlers and turned into a user-facing reply;
only ConfigurationError is fatal, and only at startup.
"""
from __future__ import annotations


class DocQAError(Exception):
    """Base exception for the document Q&A bot."""


class ConfigurationError(DocQAError):
    """Raised when required settings are missing or the inference backend is unusable at startup."""


class DownloadError(DocQAError):
    """Raised when the messaging platform fails to deliver the uploaded file."""


class UnsupportedFormatError(DocQAError):
    """Raised when the uploaded file's extension is not a supported document format."""

    def __init__(self, filename: str | None):
        self.filename = filename or ""
        super().__init__(f"unsupported document format: {self.filename!r}")


class ExtractError(DocQAError):
    """Raised when a .docx container cannot be turned into text."""

    CORRUPT_ARCHIVE = "corrupt-archive"
    MISSING_PART = "missing-part"
    MALFORMED_XML = "malformed-xml"

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        message = f"document extraction failed: {reason}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SafetyRejection(DocQAError):
    """Raised when a document contains a denylisted prompt-manipulation phrase."""

    def __init__(self, phrase: str):
        self.phrase = phrase
        super().__init__(f"document contains denylisted phrase: {phrase!r}")


class NoSessionError(DocQAError):
    """Raised when a question arrives for a chat without an accepted document."""

    def __init__(self, chat_id: int):
        self.chat_id = chat_id
        super().__init__(f"no document session for chat {chat_id}")


class AnswerError(DocQAError):
    """Raised when the inference call fails; no partial answer is produced."""

    INFERENCE_FAILED = "inference-failed"

    def __init__(self, reason: str = INFERENCE_FAILED, cause: BaseException | None = None):
        self.reason = reason
        self.cause = cause
        message = f"answer generation failed: {reason}"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)
