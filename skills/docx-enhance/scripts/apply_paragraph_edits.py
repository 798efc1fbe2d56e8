#!/usr/bin/env python3
"""
ABOUTME: Applies index-addressed paragraph replacements to a Word document
ABOUTME: Reads {index: text} JSON or a JSONL export edited by a generator
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from build_docx import verify_source_hash
from docx_patch.common import (
    DocxEnhanceError,
    EditResult,
    InputValidationError,
    ParagraphEdit,
    enhanced_filename,
    format_text_preview,
)
from docx_patch.container import read_document_xml, validate_upload
from docx_patch.paragraphs import parse_paragraphs
from docx_patch.patcher import edits_from_items, edits_from_mapping, patch_docx
from section_policy import HeadingSectionPolicy


def load_edits_file(path: Path) -> Tuple[Dict, List[dict], Dict[str, str]]:
    """
    Load an edits file.

    Supports two formats:
    1. JSON: {index: text}, or {"replacements": {...}, "sourceHash": ...}
    2. JSONL: optional meta line ({"type": "meta", "source_hash": ...}) followed by
       {"index": 3, "text": "..."} or {"key": "day1", "text": "..."} lines

    Returns:
        (meta, index_items, section_texts)
    """
    meta: Dict = {}
    items: List[dict] = []
    section_texts: Dict[str, str] = {}

    with open(path, 'r', encoding='utf-8') as f:
        if path.suffix.lower() == '.jsonl':
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError as e:
                    raise InputValidationError(f"Invalid JSON at line {line_num}: {e}")
                if not isinstance(data, dict):
                    raise InputValidationError(f"Line {line_num} must be a JSON object")
                if data.get('type') == 'meta':
                    meta = data
                elif 'index' in data:
                    items.append(data)
                elif 'key' in data:
                    section_texts[data['key']] = data.get('text')
                else:
                    raise InputValidationError(
                        f"Line {line_num} has neither 'index' nor 'key'"
                    )
            return meta, items, section_texts

        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise InputValidationError(f"Invalid JSON: {e}")

    if not isinstance(data, dict):
        raise InputValidationError("Edits file must contain a JSON object")
    if 'replacements' in data:
        meta = {'source_hash': data.get('sourceHash', '')}
        replacements = data['replacements']
    else:
        replacements = data
    if isinstance(replacements, list):
        items.extend(replacements)
    elif not isinstance(replacements, dict):
        raise InputValidationError("replacements must be an object or a list")
    else:
        items.extend({'index': k, 'text': v} for k, v in replacements.items())
    return meta, items, section_texts


def collect_edits(data: bytes, items: List[dict],
                  section_texts: Dict[str, str]) -> List[ParagraphEdit]:
    edits: List[ParagraphEdit] = []
    if section_texts:
        xml = read_document_xml(data)
        sections = HeadingSectionPolicy().sections(data, xml, parse_paragraphs(xml))
        section_index = {key: p.index for key, p in sections.items()}
        edits.extend(edits_from_mapping(section_texts, section_index))
    edits.extend(edits_from_items(items))
    return edits


def save_failed_items(edits_path: Path, results: List[EditResult],
                      source_file: str) -> Optional[Path]:
    """
    Save skipped edits to <edits>_fail.jsonl for retry.

    Returns:
        Path to the file if any edit was skipped, None otherwise
    """
    failed = [r for r in results if not r.success or r.warning]
    if not failed:
        return None

    fail_path = edits_path.with_name(edits_path.stem + '_fail.jsonl')
    with open(fail_path, 'w', encoding='utf-8') as f:
        meta_line = {
            'type': 'meta',
            'source_file': source_file,
            'original_edits': edits_path.name,
            'generated_at': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S%z'),
            'failed_count': len(failed),
            'total_count': len(results),
        }
        json.dump(meta_line, f, ensure_ascii=False)
        f.write('\n')
        for r in failed:
            json.dump({
                'index': r.edit.index if r.edit.index is not None else r.edit.key,
                'text': r.edit.new_text,
                '_error': r.error_message,
            }, f, ensure_ascii=False)
            f.write('\n')
    return fail_path


# ============================================================
# Main Function
# ============================================================

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Apply paragraph replacements to a Word document by index"
    )
    parser.add_argument('input', help='Original .docx file')
    parser.add_argument('edits', help='Edits file: {index: text} JSON or JSONL export')
    parser.add_argument('-o', '--output', help='Output path (default: <input>_enhanced.docx)')
    parser.add_argument('--skip-hash', action='store_true',
                        help='Skip source hash verification')
    parser.add_argument('--dry-run', action='store_true',
                        help='Validate only, do not save')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')

    args = parser.parse_args()

    input_path = Path(args.input)
    edits_path = Path(args.edits)
    output_path = Path(args.output) if args.output else \
        input_path.with_name(enhanced_filename(input_path.name))

    try:
        data = input_path.read_bytes()
        validate_upload(data, input_path.name)
        meta, items, section_texts = load_edits_file(edits_path)
        if not args.skip_hash:
            verify_source_hash(data, meta.get('source_hash'))

        edits = collect_edits(data, items, section_texts)
        print(f"Source file: {input_path}")
        print(f"Output to: {output_path}")
        print(f"Edit items: {len(edits)}")
        if args.verbose:
            print("-" * 50)

        outcome = patch_docx(data, edits, verbose=args.verbose)
    except DocxEnhanceError as e:
        print(f"Error: {e.message} (status {e.status})", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    skipped = [r for r in outcome.results if not r.success or r.warning]
    if skipped:
        print("\nSkipped items:")
        for r in skipped:
            preview = format_text_preview(r.edit.new_text) if isinstance(r.edit.new_text, str) else ''
            print(f"  - [{r.edit.key}] {r.error_message}: {preview}")

    print("-" * 50)
    print(f"Completed: {outcome.applied_count} applied, {outcome.skipped_count} skipped")

    if args.dry_run:
        print(f"[DRY RUN] Would save to: {output_path}")
    else:
        output_path.write_bytes(outcome.data)
        print(f"Saved to: {output_path}")

    fail_file = save_failed_items(edits_path, outcome.results, input_path.name)
    if fail_file:
        print(f"\n{'=' * 50}")
        print(f"Skipped items saved to: {fail_file}")
        print(f"  → Fix the indexes and retry with: python {sys.argv[0]} {input_path} {fail_file} --skip-hash")
        print(f"{'=' * 50}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
