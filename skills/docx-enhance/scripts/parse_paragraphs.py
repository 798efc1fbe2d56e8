#!/usr/bin/env python3
"""
ABOUTME: Exports the indexed paragraphs of a DOCX document as JSONL
ABOUTME: First line is metadata with source_hash, then one paragraph or section per line
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

from docx_patch.common import DocxEnhanceError, compute_source_hash
from docx_patch.container import read_document_xml, validate_upload
from docx_patch.paragraphs import parse_paragraphs
from section_policy import (
    DEFAULT_MIN_SECTION_CHARS,
    DEFAULT_SECTION_PATTERN,
    HeadingSectionPolicy,
)


def build_export(data: bytes, source_name: str, policy: str = 'exhaustive',
                 skip_empty: bool = False, section_pattern: str = DEFAULT_SECTION_PATTERN,
                 min_chars: int = DEFAULT_MIN_SECTION_CHARS) -> list:
    """
    Build the JSONL export entries for one document.

    Returns:
        [meta, entry, ...] where entries are {"index", "text", "start", "end"}
        (exhaustive) or {"key", "index", "text"} (sections)
    """
    xml = read_document_xml(data)
    paragraphs = parse_paragraphs(xml)

    meta = {
        'type': 'meta',
        'source_file': source_name,
        'source_hash': compute_source_hash(data),
        'policy': policy,
        'paragraph_count': len(paragraphs),
        'parsed_at': datetime.now().isoformat(),
    }

    if policy == 'sections':
        sections = HeadingSectionPolicy(pattern=section_pattern, min_chars=min_chars).sections(
            data, xml, paragraphs
        )
        entries = [
            {'key': key, 'index': p.index, 'text': p.text.strip()}
            for key, p in sections.items()
        ]
    else:
        entries = [
            {'index': p.index, 'text': p.text, 'start': p.start, 'end': p.end}
            for p in paragraphs
            if not (skip_empty and not p.text.strip())
        ]

    return [meta] + entries


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Export indexed paragraphs of a Word document"
    )
    parser.add_argument('input', help='Input .docx file')
    parser.add_argument('-o', '--output', help='Output JSONL file (default: <input>_paragraphs.jsonl)')
    parser.add_argument('--policy', choices=['exhaustive', 'sections'], default='exhaustive',
                        help='Paragraph selection policy (default: exhaustive)')
    parser.add_argument('--skip-empty', action='store_true',
                        help='Omit paragraphs without text (indexes are unchanged)')
    parser.add_argument('--section-pattern', default=DEFAULT_SECTION_PATTERN,
                        help='Regex for section headings, group 1 is the section number')
    parser.add_argument('--min-chars', type=int, default=DEFAULT_MIN_SECTION_CHARS,
                        help=f'Minimum paragraph length captured per section (default: {DEFAULT_MIN_SECTION_CHARS})')

    args = parser.parse_args()

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: File not found: {input_path}", file=sys.stderr)
        return 1

    output_path = Path(args.output) if args.output else \
        input_path.with_name(input_path.stem + '_paragraphs.jsonl')

    try:
        data = input_path.read_bytes()
        validate_upload(data, input_path.name)
        entries = build_export(
            data, input_path.name,
            policy=args.policy,
            skip_empty=args.skip_empty,
            section_pattern=args.section_pattern,
            min_chars=args.min_chars,
        )
    except DocxEnhanceError as e:
        print(f"Error: {e.message} (status {e.status})", file=sys.stderr)
        return 1

    with open(output_path, 'w', encoding='utf-8') as f:
        for entry in entries:
            f.write(json.dumps(entry, ensure_ascii=False) + '\n')

    meta = entries[0]
    print(f"Source file: {input_path}")
    print(f"Paragraphs: {meta['paragraph_count']}")
    print(f"Exported {len(entries) - 1} {'sections' if args.policy == 'sections' else 'paragraphs'}")
    print(f"Saved to: {output_path}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
