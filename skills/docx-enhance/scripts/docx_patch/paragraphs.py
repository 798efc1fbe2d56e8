"""
ABOUTME: Paragraph addressing over raw word/document.xml markup
ABOUTME: Parses <w:p> spans, extracts their w:t text and rewrites it in place
"""

import re
from typing import List

from xml_utils import xml_escape, xml_unescape

from .common import (
    PARA_CLOSE_TAG,
    PARA_OPEN_FOLLOWERS,
    PARA_OPEN_PREFIX,
    DocxParagraph,
)

# <w:t>, <w:t xml:space="preserve">; never <w:tab/>, <w:tbl>, <w:t/>
TEXT_LEAF_PATTERN = re.compile(r'(<w:t(?:\s[^>]*)?(?<!/)>)([^<]*)(</w:t>)')


def parse_paragraphs(xml: str) -> List[DocxParagraph]:
    """
    Parse every <w:p> element of a document XML string.

    Every paragraph is counted, including empty ones, so indexes stay aligned
    with what a generator saw in an earlier pass over the same bytes.
    <w:pPr>, <w:pStyle> and other <w:p* elements are skipped by checking the
    single character after the "<w:p" prefix. A paragraph with no closing tag
    ends the scan; the paragraphs found before it are kept.

    Args:
        xml: Full document XML

    Returns:
        Paragraphs in document order with zero-based indexes
    """
    result: List[DocxParagraph] = []
    prefix_len = len(PARA_OPEN_PREFIX)
    i = 0

    while i < len(xml):
        p_start = xml.find(PARA_OPEN_PREFIX, i)
        if p_start == -1:
            break

        follower = xml[p_start + prefix_len:p_start + prefix_len + 1]
        if follower not in PARA_OPEN_FOLLOWERS:
            i = p_start + prefix_len + 1
            continue

        close_pos = xml.find(PARA_CLOSE_TAG, p_start)
        if close_pos == -1:
            break

        end = close_pos + len(PARA_CLOSE_TAG)
        result.append(DocxParagraph(
            index=len(result),
            start=p_start,
            end=end,
            text=extract_para_text(xml[p_start:end]),
        ))
        i = end

    return result


def extract_para_text(para_xml: str) -> str:
    """Concatenate all <w:t> values inside one <w:p> block, entity-decoded."""
    return ''.join(
        xml_unescape(m.group(2)) for m in TEXT_LEAF_PATTERN.finditer(para_xml)
    )


def count_text_leaves(para_xml: str) -> int:
    return sum(1 for _ in TEXT_LEAF_PATTERN.finditer(para_xml))


def replace_para_texts(para_xml: str, new_text: str) -> str:
    """
    Replace the text content of a single <w:p> block with new_text.

    Strategy: iterate every <w:t> element in document order.
    - The first <w:t> receives the full new text, with xml:space="preserve"
      added when the tag has no xml:space attribute.
    - Every subsequent <w:t> is emptied; its tag and attributes are kept.
    <w:pPr>, <w:rPr> and all other markup are left byte-for-byte untouched.
    A paragraph without any <w:t> is returned unchanged.

    Args:
        para_xml: Markup of one paragraph, "<w:p ...>...</w:p>"
        new_text: Plain replacement text (escaped here)

    Returns:
        Rewritten paragraph markup
    """
    first_seen = False

    def _rewrite(match: re.Match) -> str:
        nonlocal first_seen
        open_tag, _, close_tag = match.groups()
        if first_seen:
            return f"{open_tag}{close_tag}"
        first_seen = True
        if 'xml:space' not in open_tag:
            open_tag = '<w:t xml:space="preserve"' + open_tag[len('<w:t'):]
        return f"{open_tag}{xml_escape(new_text)}{close_tag}"

    return TEXT_LEAF_PATTERN.sub(_rewrite, para_xml)
