"""
Turns uploaded file bytes into document text.
Plain text is passed through; .docx containers are reduced to the paragraph/run text
of their word/document.xml part.
"""
from __future__ import annotations

import codecs
import io
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Callable
from xml.etree import ElementTree as ET

from .errors import ExtractError, UnsupportedFormatError

DOCUMENT_PART = "word/document.xml"
# Upper bound on the decompressed document part; larger parts are treated as corrupt.
MAX_DOCUMENT_PART_BYTES = 64 * 1024 * 1024

_UTF16_BOMS = (codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)
# Tried in order after UTF-8; cp1251 covers legacy Cyrillic text files.
LEGACY_TEXT_ENCODINGS: tuple[str, ...] = ("cp1251",)


# ==============================================================================
# PARSED DOCX MODEL
# ==============================================================================
@dataclass
class Paragraph:
    runs: list[str] = field(default_factory=list)

    def text(self) -> str:
        return "".join(self.runs)


@dataclass
class ParsedDocument:
    paragraphs: list[Paragraph] = field(default_factory=list)

    def to_text(self) -> str:
        """Joins each paragraph's runs and terminates every paragraph with a newline."""
        return "".join(f"{paragraph.text()}\n" for paragraph in self.paragraphs)


def _local_name(tag) -> str:
    # Comments and processing instructions carry callables as tags.
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local_name(child.tag) == name]


def _parse_document_xml(payload: bytes) -> ParsedDocument:
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        raise ExtractError(ExtractError.MALFORMED_XML, str(exc)) from exc

    parsed = ParsedDocument()
    bodies = _children(root, "body")
    if not bodies:
        return parsed

    for p_elem in _children(bodies[0], "p"):
        paragraph = Paragraph()
        for r_elem in _children(p_elem, "r"):
            paragraph.runs.append("".join("".join(t_elem.itertext()) for t_elem in _children(r_elem, "t")))
        parsed.paragraphs.append(paragraph)
    return parsed


# ==============================================================================
# LOADERS
# ==============================================================================
def extract_docx_text(data: bytes, max_part_bytes: int = MAX_DOCUMENT_PART_BYTES) -> str:
    """
    Extracts linear text from a .docx container.
    Raises ExtractError with reason corrupt-archive, missing-part or malformed-xml.
    A document part that inflates past max_part_bytes is reported as corrupt-archive.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            try:
                info = archive.getinfo(DOCUMENT_PART)
            except KeyError as exc:
                raise ExtractError(ExtractError.MISSING_PART, DOCUMENT_PART) from exc
            if info.file_size > max_part_bytes:
                raise ExtractError(
                    ExtractError.CORRUPT_ARCHIVE,
                    f"{DOCUMENT_PART} declares {info.file_size} bytes (limit {max_part_bytes})",
                )
            # The declared size can lie, so the read itself is bounded too.
            with archive.open(info) as part:
                payload = part.read(max_part_bytes + 1)
    except (zipfile.BadZipFile, zlib.error, EOFError, OSError, ValueError, RuntimeError, NotImplementedError) as exc:
        raise ExtractError(ExtractError.CORRUPT_ARCHIVE, str(exc)) from exc

    if len(payload) > max_part_bytes:
        raise ExtractError(ExtractError.CORRUPT_ARCHIVE, f"{DOCUMENT_PART} inflates past {max_part_bytes} bytes")
    return _parse_document_xml(payload).to_text()


def load_plain_text(data: bytes) -> str:
    """
    Returns the bytes as text without any normalization.
    A UTF-8 or UTF-16 byte order mark selects that encoding and is dropped. Otherwise UTF-8 is
    tried strictly, then the legacy encodings; if none fits, invalid bytes become U+FFFD.
    """
    raw = bytes(data)
    if raw.startswith(codecs.BOM_UTF8):
        return raw[len(codecs.BOM_UTF8):].decode("utf-8", errors="replace")
    if raw.startswith(_UTF16_BOMS):
        return raw.decode("utf-16", errors="replace")
    for encoding in ("utf-8",) + LEGACY_TEXT_ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="replace")


_LOADERS: dict[str, Callable[[bytes], str]] = {
    ".txt": load_plain_text,
    ".docx": extract_docx_text,
}
SUPPORTED_EXTENSIONS: tuple[str, ...] = tuple(_LOADERS)


def resolve_loader(filename: str | None) -> Callable[[bytes], str]:
    """Picks the loader for a filename by its extension, case-insensitively."""
    suffix = PurePath(filename or "").suffix.lower()
    loader = _LOADERS.get(suffix)
    if loader is None:
        raise UnsupportedFormatError(filename)
    return loader


def load_document(filename: str | None, data: bytes) -> str:
    return resolve_loader(filename)(data)
