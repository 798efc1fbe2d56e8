#!/usr/bin/env python3
"""
ABOUTME: Full enhance pipeline: index paragraphs, ask a generator, patch by index
ABOUTME: Returns the generator's finished file or patches the original locally
"""

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from docx_patch.common import (
    DocxEnhanceError,
    MalformedContainerError,
    UpstreamError,
    compute_source_hash,
    enhanced_filename,
    format_text_preview,
)
from docx_patch.container import encode_base64_docx, read_document_xml, validate_upload
from docx_patch.paragraphs import parse_paragraphs
from docx_patch.patcher import PatchOutcome, edits_from_mapping, patch_docx
from generators import make_generator
from section_policy import (
    DEFAULT_MIN_SECTION_CHARS,
    DEFAULT_SECTION_PATTERN,
    ExhaustivePolicy,
    make_policy,
)


@dataclass
class EnhanceResult:
    data: bytes
    filename: str
    outcome: Optional[PatchOutcome] = None  # None when the generator built the file


def build_extraction_request(data: bytes, filename: str, policy) -> dict:
    """
    Build the request sent to the text generator.

    Returns:
        {"paragraphs": [...]} or {"texts": {...}} plus originalBase64,
        filename and sourceHash
    """
    xml = read_document_xml(data)
    paragraphs = parse_paragraphs(xml)
    request = policy.build_request(data, xml, paragraphs)
    request.update({
        'originalBase64': encode_base64_docx(data),
        'filename': filename,
        'sourceHash': compute_source_hash(data),
    })
    return request


def enhance_document(data: bytes, filename: str, generator, policy=None,
                     verbose: bool = False) -> EnhanceResult:
    """
    Run one document through the generator and return the enhanced file.

    Args:
        data: Uploaded .docx bytes
        filename: Uploaded file name (must end with .docx)
        generator: Object with generate(request) -> GeneratorReply
        policy: Paragraph selection policy (ExhaustivePolicy by default)
        verbose: Print progress and per-edit results

    Raises:
        InputValidationError / FileTooLargeError: upload rejected
        MalformedContainerError: upload is not a readable docx
        NoSectionsError: heading policy found nothing to send
        UpstreamError: generator failed or returned an unusable document
    """
    validate_upload(data, filename)
    policy = policy or ExhaustivePolicy()

    request = build_extraction_request(data, filename, policy)
    if verbose:
        offered = request.get('paragraphs', request.get('texts', {}))
        print(f"Offering {len(offered)} {'sections' if 'texts' in request else 'paragraphs'} to generator")

    reply = generator.generate(request)

    if reply.has_file:
        try:
            read_document_xml(reply.file_bytes)
        except MalformedContainerError as e:
            raise UpstreamError(f"Text generator returned an invalid document: {e.message}") from e
        return EnhanceResult(data=reply.file_bytes, filename=reply.filename)

    edits = edits_from_mapping(reply.replacements, policy.section_index)
    if verbose:
        print(f"Generator returned {len(edits)} replacements")
    outcome = patch_docx(data, edits, verbose=verbose)
    return EnhanceResult(data=outcome.data, filename=enhanced_filename(filename), outcome=outcome)


# ============================================================
# Main Function
# ============================================================

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Enhance the paragraphs of a Word document with an external text generator"
    )
    parser.add_argument('input', help='Input .docx file')
    parser.add_argument('-o', '--output', help='Output path (default: <input>_enhanced.docx)')
    parser.add_argument('--generator', choices=['webhook', 'llm'], default='webhook',
                        help='Text generator (default: webhook)')
    parser.add_argument('--webhook-url',
                        help='Webhook URL (default: DOCX_ENHANCE_WEBHOOK_URL)')
    parser.add_argument('--timeout', type=float,
                        help='Webhook timeout in seconds (default: DOCX_ENHANCE_WEBHOOK_TIMEOUT or 120)')
    parser.add_argument('--provider', choices=['auto', 'gemini', 'openai'], default='auto',
                        help='LLM provider for --generator llm (default: auto)')
    parser.add_argument('--model', help='LLM model name')
    parser.add_argument('--instructions', help='Editorial instructions for the LLM')
    parser.add_argument('--policy', choices=['exhaustive', 'sections'], default='exhaustive',
                        help='Paragraph selection policy (default: exhaustive)')
    parser.add_argument('--section-pattern', default=DEFAULT_SECTION_PATTERN,
                        help='Regex for section headings, group 1 is the section number')
    parser.add_argument('--min-chars', type=int, default=DEFAULT_MIN_SECTION_CHARS,
                        help=f'Minimum paragraph length captured per section (default: {DEFAULT_MIN_SECTION_CHARS})')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')

    args = parser.parse_args()

    input_path = Path(args.input)
    try:
        if args.policy == 'sections':
            policy = make_policy('sections', pattern=args.section_pattern, min_chars=args.min_chars)
        else:
            policy = make_policy('exhaustive')

        if args.generator == 'webhook':
            generator = make_generator('webhook', url=args.webhook_url,
                                       timeout=args.timeout, verbose=args.verbose)
        else:
            generator = make_generator('llm', provider=args.provider, model=args.model,
                                       instructions=args.instructions, verbose=args.verbose)

        print(f"Source file: {input_path}")
        result = enhance_document(input_path.read_bytes(), input_path.name, generator,
                                  policy=policy, verbose=args.verbose)
    except DocxEnhanceError as e:
        print(f"Error: {e.message} (status {e.status})", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    output_path = Path(args.output) if args.output else input_path.with_name(Path(result.filename).name)
    output_path.write_bytes(result.data)

    if result.outcome is not None:
        outcome = result.outcome
        print("-" * 50)
        print(f"Paragraphs: {outcome.paragraph_count}")
        print(f"Completed: {outcome.applied_count} applied, {outcome.skipped_count} skipped")
        for r in outcome.results:
            if not r.success or r.warning:
                preview = format_text_preview(r.edit.new_text) if isinstance(r.edit.new_text, str) else ''
                print(f"  - [{r.edit.key}] {r.error_message}: {preview}")
    else:
        print("Generator returned a finished document")
    print(f"Saved to: {output_path}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
