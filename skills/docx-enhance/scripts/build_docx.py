#!/usr/bin/env python3
"""
ABOUTME: Patch entry point called back by the text generator workflow
ABOUTME: Takes {replacements, originalBase64, filename} and returns the patched docx
"""

import argparse
import json
import sys
from typing import List, Optional

from docx_patch.common import (
    InputValidationError,
    ParagraphEdit,
    compute_source_hash,
    enhanced_filename,
    error_payload,
)
from docx_patch.container import (
    decode_base64_docx,
    encode_base64_docx,
    read_document_xml,
    validate_upload,
)
from docx_patch.paragraphs import parse_paragraphs
from docx_patch.patcher import PatchOutcome, edits_from_items, edits_from_mapping, patch_docx
from section_policy import HeadingSectionPolicy


def verify_source_hash(data: bytes, expected_hash: Optional[str]):
    """
    Check that edits target the same document that was indexed.

    Raises:
        InputValidationError (409): hash does not match
    """
    if not expected_hash:
        return
    actual_hash = compute_source_hash(data)
    if actual_hash != expected_hash:
        raise InputValidationError(
            "Document does not match the one the edits were generated for "
            f"(expected {expected_hash}, got {actual_hash})",
            status=409,
        )


def _edits_from_payload(payload: dict, data: bytes) -> List[ParagraphEdit]:
    edits: List[ParagraphEdit] = []

    enhanced_texts = payload.get('enhancedTexts')
    if enhanced_texts is not None:
        if not isinstance(enhanced_texts, dict):
            raise InputValidationError("enhancedTexts must be an object of {sectionKey: text}")
        xml = read_document_xml(data)
        sections = HeadingSectionPolicy().sections(data, xml, parse_paragraphs(xml))
        section_index = {key: p.index for key, p in sections.items()}
        edits.extend(edits_from_mapping(enhanced_texts, section_index))

    # Index-keyed replacements come last so they win over section keys
    replacements = payload.get('replacements')
    if isinstance(replacements, dict):
        edits.extend(edits_from_mapping(replacements))
    elif isinstance(replacements, list):
        edits.extend(edits_from_items(replacements))
    elif replacements is not None:
        raise InputValidationError("replacements must be an object of {index: text} or a list")

    return edits


def build_docx(payload: dict, skip_hash: bool = False, verbose: bool = False) -> dict:
    """
    Apply generator edits to the original document.

    Args:
        payload: {"replacements": {index: text}, "originalBase64", "filename",
                  optional "sourceHash"}; the legacy {"enhancedTexts":
                  {"day1": text}} form is resolved through the heading policy
        skip_hash: Do not verify sourceHash
        verbose: Print one line per edit

    Returns:
        {"file": base64, "filename": "<stem>_enhanced.docx", "applied": n, "skipped": n}

    Raises:
        InputValidationError: missing fields, bad base64, hash mismatch
        FileTooLargeError: document over the size ceiling
        MalformedContainerError: word/document.xml missing or unreadable
    """
    if not isinstance(payload, dict):
        raise InputValidationError("Invalid JSON: expected an object")

    filename = payload.get('filename')
    has_edits = payload.get('replacements') is not None or payload.get('enhancedTexts') is not None
    if not has_edits or not payload.get('originalBase64') or not filename:
        raise InputValidationError(
            "Missing required fields: replacements, originalBase64 and filename are required"
        )
    if not isinstance(filename, str):
        raise InputValidationError("filename must be a string")

    data = decode_base64_docx(payload['originalBase64'])
    validate_upload(data, filename, check_extension=False)
    if not skip_hash:
        verify_source_hash(data, payload.get('sourceHash'))

    edits = _edits_from_payload(payload, data)
    outcome: PatchOutcome = patch_docx(data, edits, verbose=verbose)

    return {
        'file': encode_base64_docx(outcome.data),
        'filename': enhanced_filename(filename),
        'applied': outcome.applied_count,
        'skipped': outcome.skipped_count,
    }


# ============================================================
# Main Function
# ============================================================

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Apply {index: text} replacements from a JSON payload to the embedded docx"
    )
    parser.add_argument('payload', help='JSON payload file ("-" for stdin)')
    parser.add_argument('-o', '--output', help='Response JSON file (default: stdout)')
    parser.add_argument('--skip-hash', action='store_true',
                        help='Skip sourceHash verification')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')

    args = parser.parse_args()

    try:
        if args.payload == '-':
            raw = sys.stdin.read()
        else:
            with open(args.payload, 'r', encoding='utf-8') as f:
                raw = f.read()
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InputValidationError(f"Invalid JSON: {e}")

        response = build_docx(payload, skip_hash=args.skip_hash, verbose=args.verbose)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.output:
            with open(args.output, 'w', encoding='utf-8') as f:
                json.dump(error_payload(e), f, ensure_ascii=False)
        return 1

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump(response, f, ensure_ascii=False)
        print(f"Applied {response['applied']} edits, skipped {response['skipped']}", file=sys.stderr)
        print(f"Saved to: {args.output}", file=sys.stderr)
    else:
        json.dump(response, sys.stdout, ensure_ascii=False)
        sys.stdout.write('\n')
    return 0


if __name__ == '__main__':
    sys.exit(main())
