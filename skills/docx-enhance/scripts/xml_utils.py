#!/usr/bin/env python3
"""
ABOUTME: XML utility functions for document processing
ABOUTME: Provides sanitization, escaping and entity decoding for w:t text
"""

import re

# Order matters: '&' first so produced entities are not escaped again
_XML_ESCAPES = (
    ('&', '&amp;'),
    ('<', '&lt;'),
    ('>', '&gt;'),
    ('"', '&quot;'),
    ("'", '&apos;'),
)

_ILLEGAL_XML_CHARS = ''.join(
    chr(c) for c in range(0x20)
    if c not in (0x09, 0x0A, 0x0D)
)
_ILLEGAL_XML_TABLE = str.maketrans('', '', _ILLEGAL_XML_CHARS)

# The five predefined XML entities plus decimal and hex character references
_XML_ENTITY_PATTERN = re.compile(r'&(amp|lt|gt|quot|apos|#[0-9]+|#x[0-9a-fA-F]+);')
_XML_ENTITIES = {'amp': '&', 'lt': '<', 'gt': '>', 'quot': '"', 'apos': "'"}


def sanitize_xml_string(text: str) -> str:
    """
    Remove control characters that are illegal in XML 1.0.

    XML 1.0 allows: #x9 (tab), #xA (LF), #xD (CR), and #x20-#xD7FF, #xE000-#xFFFD, #x10000-#x10FFFF
    This function removes all other control characters (0x00-0x08, 0x0B, 0x0C, 0x0E-0x1F).

    Args:
        text: Text that may contain control characters

    Returns:
        Sanitized text safe for XML. Returns input unchanged if not a non-empty string.
    """
    if not text or not isinstance(text, str):
        return text
    return text.translate(_ILLEGAL_XML_TABLE)


def xml_escape(text: str) -> str:
    """
    Escape a string for a w:t text node.

    Converts &, <, >, " and ' to entities. Apply to generated text only,
    never to markup copied from the document.
    """
    for char, entity in _XML_ESCAPES:
        text = text.replace(char, entity)
    return text


def _decode_entity(match: re.Match) -> str:
    name = match.group(1)
    if not name.startswith('#'):
        return _XML_ENTITIES[name]
    code = int(name[2:], 16) if name[1] == 'x' else int(name[1:])
    try:
        return chr(code)
    except (ValueError, OverflowError):
        return match.group(0)


def xml_unescape(text: str) -> str:
    """
    Decode entity and character references found in w:t content.

    Only XML references are decoded: &amp; &lt; &gt; &quot; &apos; and
    &#N; / &#xH;. HTML names such as &nbsp; are left as written.
    """
    if '&' not in text:
        return text
    return _XML_ENTITY_PATTERN.sub(_decode_entity, text)
