"""
ABOUTME: Applies index-addressed paragraph edits to word/document.xml
ABOUTME: Resolves indexes to spans and splices replacements right-to-left by offset
"""

import sys
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from xml_utils import sanitize_xml_string

from .common import (
    DocxParagraph,
    EditResult,
    InputValidationError,
    ParagraphEdit,
    SpanEdit,
    format_text_preview,
)
from .container import check_well_formed, read_document_xml, write_document_xml
from .paragraphs import count_text_leaves, parse_paragraphs, replace_para_texts


@dataclass
class PatchOutcome:
    """Patched container plus per-edit results"""
    data: bytes
    results: List[EditResult] = field(default_factory=list)
    paragraph_count: int = 0

    @property
    def applied_count(self) -> int:
        return sum(1 for r in self.results if r.success and not r.warning)

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.results if not r.success or r.warning)


def _parse_index(key) -> Optional[int]:
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key
    if isinstance(key, str):
        try:
            return int(key.strip())
        except ValueError:
            return None
    return None


def edits_from_mapping(mapping: Mapping,
                       section_index: Optional[Mapping[str, int]] = None) -> List[ParagraphEdit]:
    """
    Build edits from a {key: newText} mapping.

    Keys are paragraph indexes (int or numeric string). When section_index is
    given, keys such as "day1" are resolved through it first. Keys that
    resolve to nothing get index=None and are reported by the patcher.
    """
    edits = []
    for key, new_text in mapping.items():
        if section_index is not None and key in section_index:
            index = section_index[key]
        else:
            index = _parse_index(key)
        edits.append(ParagraphEdit(index=index, new_text=new_text, key=str(key)))
    return edits


def edits_from_items(items: Iterable[Mapping]) -> List[ParagraphEdit]:
    """
    Build edits from [{"index": 3, "text": "..."}, ...].

    Raises:
        InputValidationError: an item is not an object
    """
    edits = []
    for position, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise InputValidationError(
                f"Replacement item {position} must be an object with index and text, got {item!r}"
            )
        raw_index = item.get('index')
        edits.append(ParagraphEdit(
            index=_parse_index(raw_index),
            new_text=item.get('text', item.get('new_text')),
            key=str(raw_index),
        ))
    return edits


def _skip(results: List[EditResult], edit: ParagraphEdit, message: str, success: bool = False):
    print(f"Warning: {message}", file=sys.stderr)
    results.append(EditResult(success=success, edit=edit, error_message=message, warning=True))


def resolve_edits(xml: str, edits: Iterable[ParagraphEdit],
                  paragraphs: List[DocxParagraph],
                  results: Optional[List[EditResult]] = None) -> List[SpanEdit]:
    """
    Resolve paragraph edits to span edits against the current markup.

    Unresolvable edits never abort the batch: out-of-range or non-integer
    indexes and non-string texts are skipped with a warning. When the same
    index appears twice the last edit wins. Paragraphs without any <w:t> are
    left unchanged and reported as a warning.

    Returns:
        Span edits sorted by start, descending
    """
    if results is None:
        results = []

    accepted: Dict[int, ParagraphEdit] = {}
    for edit in edits:
        index = edit.index
        if not isinstance(index, int) or isinstance(index, bool):
            _skip(results, edit, f"Edit key {edit.key!r} is not a paragraph index")
            continue
        if index < 0 or index >= len(paragraphs):
            _skip(results, edit,
                  f"Paragraph index {index} out of range (document has {len(paragraphs)} paragraphs)")
            continue
        if not isinstance(edit.new_text, str):
            _skip(results, edit, f"Replacement for paragraph {index} is not a string")
            continue
        if index in accepted:
            _skip(results, accepted[index], f"Duplicate edit for paragraph {index}, later edit wins")
        accepted[index] = edit

    span_edits: List[SpanEdit] = []
    for index, edit in accepted.items():
        para = paragraphs[index]
        para_xml = xml[para.start:para.end]
        if count_text_leaves(para_xml) == 0:
            _skip(results, edit,
                  f"Paragraph {index} has no text runs, left unchanged", success=True)
            continue
        new_text = sanitize_xml_string(edit.new_text)
        span_edits.append(SpanEdit(
            start=para.start,
            end=para.end,
            replacement_xml=replace_para_texts(para_xml, new_text),
        ))
        results.append(EditResult(success=True, edit=edit))

    span_edits.sort(key=lambda s: s.start, reverse=True)
    return span_edits


def apply_span_edits(xml: str, span_edits: Iterable[SpanEdit]) -> str:
    """
    Splice span edits into the markup from the highest offset down.

    Each splice only shifts text after its own start, so spans of the
    remaining (lower) edits stay valid.
    """
    for edit in sorted(span_edits, key=lambda s: s.start, reverse=True):
        xml = xml[:edit.start] + edit.replacement_xml + xml[edit.end:]
    return xml


def apply_edits(xml: str, edits: Iterable[ParagraphEdit],
                paragraphs: List[DocxParagraph],
                results: Optional[List[EditResult]] = None) -> str:
    """
    Apply a batch of index-addressed edits to document XML.

    Args:
        xml: Full document XML
        edits: Paragraph edits (index, new text)
        paragraphs: Output of parse_paragraphs(xml)
        results: Optional list receiving one EditResult per edit

    Returns:
        Edited document XML
    """
    span_edits = resolve_edits(xml, edits, paragraphs, results)
    return apply_span_edits(xml, span_edits)


def patch_docx(docx_bytes: bytes, edits: Iterable[ParagraphEdit],
               verbose: bool = False) -> PatchOutcome:
    """
    Apply edits to a docx container and repackage it.

    The original bytes are returned untouched when no edit changes the
    markup.

    Raises:
        MalformedContainerError: archive unreadable, word/document.xml missing,
            or the patched markup is not well-formed
    """
    xml = read_document_xml(docx_bytes)
    paragraphs = parse_paragraphs(xml)
    results: List[EditResult] = []
    new_xml = apply_edits(xml, edits, paragraphs, results)

    if verbose:
        for r in results:
            status = "✓" if r.success and not r.warning else "✗"
            preview = format_text_preview(r.edit.new_text) if isinstance(r.edit.new_text, str) else ''
            print(f"  [{status}] #{r.edit.key}: {preview}")

    if new_xml == xml:
        return PatchOutcome(data=docx_bytes, results=results, paragraph_count=len(paragraphs))
    check_well_formed(new_xml)
    return PatchOutcome(
        data=write_document_xml(docx_bytes, new_xml),
        results=results,
        paragraph_count=len(paragraphs),
    )
