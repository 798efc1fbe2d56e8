"""
ABOUTME: Index-based paragraph patching for .docx containers
"""

from .common import (
    DocxEnhanceError,
    DocxParagraph,
    EditResult,
    FileTooLargeError,
    InputValidationError,
    MalformedContainerError,
    NoSectionsError,
    ParagraphEdit,
    SpanEdit,
    UpstreamError,
    compute_source_hash,
    error_payload,
)
from .container import read_document_xml, validate_upload, write_document_xml
from .paragraphs import extract_para_text, parse_paragraphs, replace_para_texts
from .patcher import (
    PatchOutcome,
    apply_edits,
    edits_from_items,
    edits_from_mapping,
    patch_docx,
)
