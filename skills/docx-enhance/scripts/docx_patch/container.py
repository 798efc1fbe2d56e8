"""
ABOUTME: Reads and repackages the word/document.xml entry of a .docx container
ABOUTME: Validates uploads (extension, size, zip signature) before any parsing
"""

import base64
import binascii
import io
import zipfile
import zlib
from typing import Optional

from lxml import etree

from .common import (
    DOCUMENT_XML_ENTRY,
    FileTooLargeError,
    InputValidationError,
    MalformedContainerError,
    get_max_docx_bytes,
)

# Corrupt deflate stream, unsupported compression method, encrypted entry
_ARCHIVE_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    EOFError,
    zlib.error,
    NotImplementedError,
    RuntimeError,
)


def validate_upload(data: bytes, filename: str, max_bytes: Optional[int] = None,
                    check_extension: bool = True):
    """
    Reject an upload before parsing.

    Raises:
        InputValidationError: empty file, wrong extension or not a zip archive
        FileTooLargeError: larger than max_bytes (DOCX_ENHANCE_MAX_BYTES)
    """
    if max_bytes is None:
        max_bytes = get_max_docx_bytes()
    if check_extension and (not filename or not filename.lower().endswith('.docx')):
        raise InputValidationError(f"Only .docx files are accepted, got {filename!r}")
    if not data:
        raise InputValidationError("Uploaded file is empty")
    if len(data) > max_bytes:
        raise FileTooLargeError(
            f"File too large ({len(data)} bytes, max {max_bytes} bytes)"
        )
    if not zipfile.is_zipfile(io.BytesIO(data)):
        raise InputValidationError(f"{filename} is not a valid .docx (zip) container")


def decode_base64_docx(value: str, field: str = 'originalBase64') -> bytes:
    """Decode a base64 document field, raising InputValidationError on bad input."""
    if not isinstance(value, str) or not value:
        raise InputValidationError(f"Missing required field: {field}")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InputValidationError(f"Invalid base64 in {field}: {e}")


def encode_base64_docx(data: bytes) -> str:
    return base64.b64encode(data).decode('ascii')


def read_document_xml(docx_bytes: bytes) -> str:
    """
    Return word/document.xml of a docx container as text.

    Raises:
        MalformedContainerError: archive unreadable, entry missing or not UTF-8
    """
    try:
        with zipfile.ZipFile(io.BytesIO(docx_bytes), 'r') as zf:
            try:
                raw = zf.read(DOCUMENT_XML_ENTRY)
            except KeyError:
                raise MalformedContainerError(
                    f"Invalid docx: {DOCUMENT_XML_ENTRY} not found"
                )
    except _ARCHIVE_ERRORS as e:
        raise MalformedContainerError(f"Failed to unpack docx: {e}")

    try:
        return raw.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedContainerError(f"{DOCUMENT_XML_ENTRY} is not valid UTF-8: {e}")


def write_document_xml(docx_bytes: bytes, xml: str) -> bytes:
    """
    Repackage a docx container with a new word/document.xml.

    Every other entry is copied through with its original name, order,
    compression type and metadata.

    Args:
        docx_bytes: Original container
        xml: New document XML

    Returns:
        New container bytes
    """
    output = io.BytesIO()
    try:
        with zipfile.ZipFile(io.BytesIO(docx_bytes), 'r') as src:
            if DOCUMENT_XML_ENTRY not in src.namelist():
                raise MalformedContainerError(
                    f"Invalid docx: {DOCUMENT_XML_ENTRY} not found"
                )
            with zipfile.ZipFile(output, 'w') as dst:
                for info in src.infolist():
                    if info.filename == DOCUMENT_XML_ENTRY:
                        dst.writestr(info, xml.encode('utf-8'))
                    else:
                        dst.writestr(info, src.read(info.filename))
    except _ARCHIVE_ERRORS as e:
        raise MalformedContainerError(f"Failed to unpack docx: {e}")
    return output.getvalue()


def check_well_formed(xml: str):
    """
    Parse document XML with lxml to make sure a patched entry is still valid.

    Raises:
        MalformedContainerError: markup is not well-formed XML
    """
    parser = etree.XMLParser(huge_tree=True, resolve_entities=False, no_network=True)
    try:
        etree.fromstring(xml.encode('utf-8'), parser)
    except etree.XMLSyntaxError as e:
        raise MalformedContainerError(f"{DOCUMENT_XML_ENTRY} is not well-formed after patching: {e}")
