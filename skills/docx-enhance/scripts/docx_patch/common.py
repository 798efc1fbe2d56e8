#!/usr/bin/env python3
"""
ABOUTME: Shared constants, data classes and errors for docx paragraph patching
ABOUTME: Used by the parser, patcher, container helpers and the CLI entry points
"""

import hashlib
import os
from dataclasses import dataclass
from typing import Optional


# ============================================================
# Constants
# ============================================================

NS = {
    'w': 'http://schemas.openxmlformats.org/wordprocessingml/2006/main',
}

DOCUMENT_XML_ENTRY = "word/document.xml"

# Paragraph markers in word/document.xml
PARA_OPEN_PREFIX = "<w:p"
PARA_CLOSE_TAG = "</w:p>"
# Characters allowed right after "<w:p"; anything else is <w:pPr>, <w:pStyle>, ...
PARA_OPEN_FOLLOWERS = ('>', ' ', '\t', '\n', '\r')

# Upload ceiling enforced by the entry points (10 MB)
DEFAULT_MAX_DOCX_BYTES = 10 * 1024 * 1024

ENHANCED_FILENAME_SUFFIX = "_enhanced"


def get_max_docx_bytes() -> int:
    """Upload ceiling in bytes, overridable with DOCX_ENHANCE_MAX_BYTES."""
    raw = os.getenv("DOCX_ENHANCE_MAX_BYTES", "")
    if raw.strip():
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"DOCX_ENHANCE_MAX_BYTES must be an integer, got {raw!r}")
    return DEFAULT_MAX_DOCX_BYTES


# ============================================================
# Data Classes
# ============================================================

@dataclass
class DocxParagraph:
    """One <w:p> element of word/document.xml"""
    index: int    # Zero-based position in document order
    start: int    # Offset of "<w:p" in the document XML
    end: int      # Offset immediately after "</w:p>"
    text: str     # Concatenated <w:t> text, entity-decoded

    def to_dict(self) -> dict:
        return {'index': self.index, 'text': self.text}


@dataclass
class ParagraphEdit:
    """Replacement instruction from a text generator"""
    index: Optional[int]         # None when the source key is not an integer
    new_text: str                # Plain replacement text, unescaped
    key: str = ''                # Original mapping key (section key or index string)


@dataclass
class SpanEdit:
    """Resolved edit: byte span of document.xml and its replacement markup"""
    start: int
    end: int
    replacement_xml: str


@dataclass
class EditResult:
    """Result of processing an edit"""
    success: bool
    edit: ParagraphEdit
    error_message: Optional[str] = None
    warning: bool = False  # Edit was skipped or had no effect, batch continued


# ============================================================
# Errors
# ============================================================

class DocxEnhanceError(Exception):
    """Base error. `status` follows HTTP status semantics for callers."""
    status = 500

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class InputValidationError(DocxEnhanceError, ValueError):
    """Request rejected before any parsing (missing field, bad envelope, wrong type)"""
    status = 400


class FileTooLargeError(InputValidationError):
    status = 413


class MalformedContainerError(DocxEnhanceError):
    """Archive cannot be opened or word/document.xml is missing"""
    status = 422


class NoSectionsError(DocxEnhanceError):
    """Heading policy found no usable sections"""
    status = 422


class UpstreamError(DocxEnhanceError):
    """External text generator failed or answered with an unusable body"""
    status = 502


def error_payload(exc: Exception) -> dict:
    """Render an exception as {"error": message, "status": code}."""
    if isinstance(exc, DocxEnhanceError):
        return {'error': exc.message, 'status': exc.status}
    return {'error': str(exc) or exc.__class__.__name__, 'status': 500}


# ============================================================
# Helper Functions
# ============================================================

def compute_source_hash(data: bytes) -> str:
    """Hash of the original container, formatted as "sha256:<hex>"."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def enhanced_filename(filename: str) -> str:
    """
    Output name for a patched document.

    Examples:
        "trip.docx" -> "trip_enhanced.docx"
        "TRIP.DOCX" -> "TRIP_enhanced.docx"
        "notes" -> "notes_enhanced.docx"
    """
    base = filename
    if base.lower().endswith('.docx'):
        base = base[:-5]
    return f"{base}{ENHANCED_FILENAME_SUFFIX}.docx"


def format_text_preview(text: str, max_len: int = 30) -> str:
    """
    Format text for log output: remove newlines and truncate.

    Args:
        text: Text to format
        max_len: Maximum length before truncation

    Returns:
        Clean, truncated text with "..." suffix if truncated
    """
    clean = text.replace('\n', ' ').replace('\r', '').replace('\t', ' ')
    # Collapse multiple spaces
    while '  ' in clean:
        clean = clean.replace('  ', ' ')
    clean = clean.strip()
    if len(clean) > max_len:
        return clean[:max_len] + "..."
    return clean
