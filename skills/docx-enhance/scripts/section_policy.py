#!/usr/bin/env python3
"""
ABOUTME: Chooses which paragraphs are offered to the external text generator
ABOUTME: Exhaustive indexing (default) or heading-delimited "Day N" sections
"""

import io
import re
from typing import Dict, List, Optional, Sequence

from docx import Document
from docx.enum.style import WD_STYLE_TYPE

from docx_patch.common import DocxParagraph, MalformedContainerError, NoSectionsError


# Numbered day headings, Hebrew and English: "יום 3", "Day 3", "DAY3"
DEFAULT_SECTION_PATTERN = r'(?:יום|day)\s*(\d+)'

# Headings containing these never open a section (includes, not included,
# cancellation, price, terms, notes)
DEFAULT_EXCLUDED_KEYWORDS = ("כולל", "לא כולל", "ביטול", "מחיר", "תנאי", "הערות")

# A section captures its first paragraph longer than this
DEFAULT_MIN_SECTION_CHARS = 30

HEADING_STYLE_NAME = re.compile(r'^heading\s*([1-6])$', re.IGNORECASE)
PSTYLE_PATTERN = re.compile(r'<w:pStyle\s+w:val="([^"]*)"')
OUTLINE_LEVEL_PATTERN = re.compile(r'<w:outlineLvl\s+w:val="(\d+)"')


def resolve_heading_styles(docx_bytes: bytes) -> Dict[str, int]:
    """
    Map paragraph style IDs to heading levels using the document's styles part.

    Localized templates use style IDs such as "1" or "Titre1"; the style name
    ("heading 1") is what identifies a heading.

    Returns:
        {style_id: level} for every "Heading 1".."Heading 6" paragraph style
    """
    try:
        doc = Document(io.BytesIO(docx_bytes))
    except Exception as e:
        raise MalformedContainerError(f"Failed to read docx styles: {e}") from e

    levels: Dict[str, int] = {}
    for style in doc.styles:
        if style.type != WD_STYLE_TYPE.PARAGRAPH:
            continue
        match = HEADING_STYLE_NAME.match((style.name or '').strip())
        if match and style.style_id:
            levels[style.style_id] = int(match.group(1))
    return levels


def heading_level(para_xml: str, heading_styles: Dict[str, int]) -> Optional[int]:
    """Heading level (1-6) of a paragraph, or None for body text."""
    style_match = PSTYLE_PATTERN.search(para_xml)
    if style_match and style_match.group(1) in heading_styles:
        return heading_styles[style_match.group(1)]
    outline_match = OUTLINE_LEVEL_PATTERN.search(para_xml)
    if outline_match:
        level = int(outline_match.group(1))
        if level <= 5:
            return level + 1
    return None


def select_all_paragraphs(paragraphs: Sequence[DocxParagraph],
                          skip_empty: bool = False) -> List[dict]:
    """Exhaustive indexing: [{"index", "text"}] for every paragraph."""
    return [
        p.to_dict() for p in paragraphs
        if not (skip_empty and not p.text.strip())
    ]


def extract_day_sections(xml: str, paragraphs: Sequence[DocxParagraph],
                         heading_styles: Dict[str, int],
                         pattern: str = DEFAULT_SECTION_PATTERN,
                         excluded_keywords: Sequence[str] = DEFAULT_EXCLUDED_KEYWORDS,
                         min_chars: int = DEFAULT_MIN_SECTION_CHARS) -> Dict[str, DocxParagraph]:
    """
    Heading-delimited extraction.

    A heading matching `pattern` opens section "day{N}" unless it contains an
    excluded keyword; any other heading closes the current section. Each
    section captures the first following paragraph whose stripped text is
    longer than min_chars. A key is never overwritten by a later heading with
    the same number.

    Returns:
        {section_key: paragraph}, in document order
    """
    section_re = re.compile(pattern, re.IGNORECASE)
    sections: Dict[str, DocxParagraph] = {}
    current_key: Optional[str] = None

    for para in paragraphs:
        para_xml = xml[para.start:para.end]
        if heading_level(para_xml, heading_styles) is not None:
            heading_text = para.text.strip()
            match = section_re.search(heading_text)
            is_excluded = any(kw in heading_text for kw in excluded_keywords)
            current_key = f"day{match.group(1)}" if match and not is_excluded else None
            continue

        if current_key and current_key not in sections:
            if len(para.text.strip()) > min_chars:
                sections[current_key] = para

    return sections


class ExhaustivePolicy:
    """Offer every paragraph; the generator decides which indexes to rewrite."""
    name = 'exhaustive'

    def __init__(self, skip_empty: bool = False):
        self.skip_empty = skip_empty
        self.section_index: Optional[Dict[str, int]] = None

    def build_request(self, docx_bytes: bytes, xml: str,
                      paragraphs: Sequence[DocxParagraph]) -> dict:
        return {'paragraphs': select_all_paragraphs(paragraphs, self.skip_empty)}


class HeadingSectionPolicy:
    """Offer the first substantial paragraph under each "Day N" heading."""
    name = 'sections'

    def __init__(self, pattern: str = DEFAULT_SECTION_PATTERN,
                 excluded_keywords: Sequence[str] = DEFAULT_EXCLUDED_KEYWORDS,
                 min_chars: int = DEFAULT_MIN_SECTION_CHARS):
        self.pattern = pattern
        self.excluded_keywords = tuple(excluded_keywords)
        self.min_chars = min_chars
        # Filled by build_request(); maps "day1" -> paragraph index
        self.section_index: Optional[Dict[str, int]] = None

    def sections(self, docx_bytes: bytes, xml: str,
                 paragraphs: Sequence[DocxParagraph]) -> Dict[str, DocxParagraph]:
        return extract_day_sections(
            xml, paragraphs, resolve_heading_styles(docx_bytes),
            pattern=self.pattern,
            excluded_keywords=self.excluded_keywords,
            min_chars=self.min_chars,
        )

    def build_request(self, docx_bytes: bytes, xml: str,
                      paragraphs: Sequence[DocxParagraph]) -> dict:
        """
        Raises:
            NoSectionsError: no "Day N" heading with a usable paragraph
        """
        sections = self.sections(docx_bytes, xml, paragraphs)
        if not sections:
            raise NoSectionsError(
                "No matching sections found; make sure the document has 'Day N' headings"
            )
        self.section_index = {key: p.index for key, p in sections.items()}
        return {'texts': {key: p.text.strip() for key, p in sections.items()}}


def make_policy(name: str, **kwargs):
    """Policy factory for the CLI --policy flag."""
    if name == ExhaustivePolicy.name:
        return ExhaustivePolicy(**kwargs)
    if name == HeadingSectionPolicy.name:
        return HeadingSectionPolicy(**kwargs)
    raise ValueError(f"Unknown policy: {name!r} (expected 'exhaustive' or 'sections')")
