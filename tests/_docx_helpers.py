#!/usr/bin/env python3
"""
ABOUTME: Shared helpers for docx paragraph patching tests.
"""

import io
import struct
import sys
import zipfile
from pathlib import Path

# Add skills/docx-enhance/scripts directory to path (must be before import)
_scripts_dir = Path(__file__).parent.parent / 'skills' / 'docx-enhance' / 'scripts'
sys.path.insert(0, str(_scripts_dir))

from docx import Document  # noqa: E402

from docx_patch.common import NS  # noqa: E402  # type: ignore[import-not-found]

W_NS = NS['w']

CONTENT_TYPES_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    '</Types>'
)

RELS_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
    'Target="word/document.xml"/>'
    '</Relationships>'
)

# ============================================================
# Paragraph fixtures
# ============================================================

# Plain paragraph
P_SIMPLE_A = '<w:p><w:r><w:t>a</w:t></w:r></w:p>'

# RTL paragraph with two formatted runs: "hello " (bold) + "world" (italic)
P_HELLO_WORLD = (
    '<w:p w:rsidR="00AB12CD">'
    '<w:pPr><w:pStyle w:val="Normal"/><w:bidi/><w:jc w:val="right"/></w:pPr>'
    '<w:r><w:rPr><w:b/><w:rtl/></w:rPr><w:t xml:space="preserve">hello </w:t></w:r>'
    '<w:r><w:rPr><w:i/></w:rPr><w:t>world</w:t></w:r>'
    '</w:p>'
)

P_SIMPLE_C = '<w:p><w:r><w:t>c</w:t></w:r></w:p>'

# Paragraph with properties but no text leaf
P_EMPTY = '<w:p><w:pPr><w:spacing w:after="0"/></w:pPr></w:p>'


def make_document_xml(body: str) -> str:
    """Wrap body markup in a minimal w:document."""
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        f'<w:document xmlns:w="{W_NS}"><w:body>{body}<w:sectPr/></w:body></w:document>'
    )


def make_docx_bytes(document_xml: str, extra_entries: dict = None,
                    include_document: bool = True) -> bytes:
    """
    Build a minimal docx container in memory.

    Args:
        document_xml: Content of word/document.xml
        extra_entries: Additional {name: bytes} entries, stored uncompressed
        include_document: False to build a container without word/document.xml
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zf:
        zf.writestr('[Content_Types].xml', CONTENT_TYPES_XML)
        zf.writestr('_rels/.rels', RELS_XML)
        if include_document:
            zf.writestr('word/document.xml', document_xml)
        for name, data in (extra_entries or {}).items():
            zf.writestr(zipfile.ZipInfo(name), data)
    return buffer.getvalue()


def read_entry(docx_bytes: bytes, name: str) -> bytes:
    with zipfile.ZipFile(io.BytesIO(docx_bytes), 'r') as zf:
        return zf.read(name)


def make_three_paragraph_docx() -> bytes:
    return make_docx_bytes(make_document_xml(P_SIMPLE_A + P_HELLO_WORLD + P_SIMPLE_C))


def build_itinerary_document(days=None, trailing_headings=None) -> bytes:
    """
    Build a real Word document with python-docx.

    Args:
        days: [(heading, [paragraph, ...]), ...]
        trailing_headings: [(heading, [paragraph, ...]), ...] appended after days

    Returns:
        docx bytes
    """
    doc = Document()
    doc.add_heading("טיול לצפון", level=0)
    doc.add_paragraph("Intro paragraph that is long enough to be captured if misrouted.")
    for heading, paragraphs in (days or []) + (trailing_headings or []):
        doc.add_heading(heading, level=2)
        for text in paragraphs:
            doc.add_paragraph(text)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def make_long_docx(count: int = 60) -> bytes:
    """Container whose word/document.xml compresses to a few hundred bytes."""
    body = ''.join(
        f'<w:p><w:r><w:t>Paragraph {i}: stop {i * 7} at km {i * 13}</w:t></w:r></w:p>'
        for i in range(count)
    )
    return make_docx_bytes(make_document_xml(body))


def corrupt_entry(docx_bytes: bytes, name: str, count: int = 8) -> bytes:
    """Flip `count` bytes in the middle of an entry's compressed payload."""
    with zipfile.ZipFile(io.BytesIO(docx_bytes), 'r') as zf:
        info = zf.getinfo(name)
    buf = bytearray(docx_bytes)
    offset = info.header_offset
    name_len, extra_len = struct.unpack('<HH', buf[offset + 26:offset + 30])
    middle = offset + 30 + name_len + extra_len + info.compress_size // 2
    for i in range(middle, middle + count):
        buf[i] ^= 0xFF
    return bytes(buf)
