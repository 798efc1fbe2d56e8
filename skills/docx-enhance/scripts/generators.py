#!/usr/bin/env python3
"""
ABOUTME: External text generators that rewrite indexed paragraphs
ABOUTME: n8n-style HTTP webhook (httpx) or a direct Gemini/OpenAI call
"""

import base64
import binascii
import copy
import json
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from docx_patch.common import UpstreamError, format_text_preview
from prompt import (
    REWRITE_RESULT_SCHEMA,
    build_rewrite_system_prompt,
    build_rewrite_user_prompt,
)
from utils import (
    create_gemini_client,
    create_openai_client,
    detect_llm_provider,
    estimate_tokens,
    get_model_name,
    get_webhook_timeout,
    get_webhook_url,
    types,
)

# Token budget of paragraph text per LLM request
MAX_BATCH_TOKENS = 6000


@dataclass
class GeneratorReply:
    """Either a finished document or a {key: newText} mapping"""
    file_bytes: Optional[bytes] = None
    filename: Optional[str] = None
    replacements: Optional[Dict[str, str]] = None

    @property
    def has_file(self) -> bool:
        return self.file_bytes is not None


def _replacements_from_list(items: list) -> Dict[str, str]:
    mapping = {}
    for item in items:
        if not isinstance(item, dict) or 'index' not in item:
            raise UpstreamError("Invalid response from text generator: malformed replacement item")
        text = item.get('text', item.get('new_text'))
        if not isinstance(text, str):
            raise UpstreamError(
                f"Invalid response from text generator: replacement {item['index']!r} has no text"
            )
        mapping[str(item['index'])] = text
    return mapping


def parse_generator_reply(body) -> GeneratorReply:
    """
    Interpret a generator response body.

    Accepted shapes:
        {"file": base64, "filename": name}
        {"replacements": {key: text}} or {"replacements": [{"index", "text"}]}
        {key: text, ...}
    A single-element list wrapping one of these (n8n "all items" mode) is
    unwrapped.

    Raises:
        UpstreamError: body is not one of the accepted shapes
    """
    if isinstance(body, list) and len(body) == 1:
        body = body[0]
    if not isinstance(body, dict):
        raise UpstreamError("Invalid response from text generator: expected a JSON object")

    if 'file' in body:
        file_b64 = body.get('file')
        filename = body.get('filename')
        if not isinstance(file_b64, str) or not file_b64 or not isinstance(filename, str) or not filename:
            raise UpstreamError("Invalid response from text generator: missing file or filename")
        try:
            file_bytes = base64.b64decode(file_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise UpstreamError(f"Invalid response from text generator: bad base64 file ({e})")
        return GeneratorReply(file_bytes=file_bytes, filename=filename)

    mapping = body.get('replacements', body)
    if isinstance(mapping, list):
        return GeneratorReply(replacements=_replacements_from_list(mapping))
    if not isinstance(mapping, dict):
        raise UpstreamError("Invalid response from text generator: replacements must be an object")
    for key, value in mapping.items():
        if not isinstance(value, str):
            raise UpstreamError(
                f"Invalid response from text generator: value for {key!r} is not text"
            )
    return GeneratorReply(replacements={str(k): v for k, v in mapping.items()})


class WebhookGenerator:
    """
    POSTs the extraction request to an HTTP webhook (n8n in production).

    Every failure (transport error, non-2xx status, unparseable body) is
    raised as UpstreamError.
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None,
                 verbose: bool = False):
        self.url = url or get_webhook_url()
        self.timeout = timeout if timeout is not None else get_webhook_timeout()
        self.verbose = verbose
        if not self.url:
            raise ValueError("Webhook URL not configured. Set DOCX_ENHANCE_WEBHOOK_URL or pass --webhook-url")

    def generate(self, request: dict) -> GeneratorReply:
        if self.verbose:
            print(f"POST {self.url} (timeout {self.timeout}s)")
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=request)
        except httpx.HTTPError as e:
            print(f"Error: webhook request failed: {e}", file=sys.stderr)
            raise UpstreamError(f"Failed to reach text generator: {e}") from e

        if not response.is_success:
            print(
                f"Error: webhook responded with {response.status_code}: {response.text[:500]}",
                file=sys.stderr
            )
            raise UpstreamError(f"Text generator responded with {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError("Invalid response from text generator: body is not JSON") from e
        return parse_generator_reply(body)


def _openai_strict_schema(schema: dict) -> dict:
    """Copy of a JSON schema with additionalProperties=false on every object (OpenAI strict mode)."""
    strict = copy.deepcopy(schema)
    stack = [strict]
    while stack:
        node = stack.pop()
        if node.get("type") == "object":
            node["additionalProperties"] = False
            stack.extend(node.get("properties", {}).values())
        elif node.get("type") == "array":
            stack.append(node.get("items", {}))
    return strict


def batch_items(items: List[dict], max_tokens: int = MAX_BATCH_TOKENS) -> List[List[dict]]:
    """Split [{"index", "text"}] into consecutive batches under max_tokens each."""
    batches: List[List[dict]] = []
    current: List[dict] = []
    current_tokens = 0
    for item in items:
        tokens = estimate_tokens(item["text"])
        if current and current_tokens + tokens > max_tokens:
            batches.append(current)
            current, current_tokens = [], 0
        current.append(item)
        current_tokens += tokens
    if current:
        batches.append(current)
    return batches


class LLMGenerator:
    """
    Rewrites paragraphs with Gemini or OpenAI using structured JSON output.

    Accepts the same extraction request as the webhook: "paragraphs"
    ([{"index", "text"}]) or "texts" ({section_key: text}).
    """

    def __init__(self, provider: str = "auto", model: Optional[str] = None,
                 client=None, instructions: Optional[str] = None,
                 max_batch_tokens: int = MAX_BATCH_TOKENS, verbose: bool = False):
        self.provider = detect_llm_provider() if provider == "auto" else provider
        if self.provider not in ("gemini", "openai"):
            raise ValueError(f"Unknown LLM provider: {provider!r}")
        self.model = model or get_model_name(self.provider)
        self.client = client
        self.instructions = instructions
        self.max_batch_tokens = max_batch_tokens
        self.verbose = verbose

    def _get_client(self):
        if self.client is None:
            if self.provider == "gemini":
                self.client = create_gemini_client()
            else:
                self.client = create_openai_client()
        return self.client

    def _call_gemini(self, system_prompt: str, user_prompt: str) -> dict:
        response = self._get_client().models.generate_content(
            model=self.model,
            contents=user_prompt,
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                response_mime_type="application/json",
                response_schema=REWRITE_RESULT_SCHEMA
            )
        )
        return json.loads(response.text)

    def _call_openai(self, system_prompt: str, user_prompt: str) -> dict:
        response = self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            temperature=0.4,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "rewrite_result",
                    "strict": True,
                    "schema": _openai_strict_schema(REWRITE_RESULT_SCHEMA)
                }
            }
        )
        return json.loads(response.choices[0].message.content)

    def generate(self, request: dict) -> GeneratorReply:
        sections = 'texts' in request
        if sections:
            items = [{"index": k, "text": v} for k, v in request['texts'].items()]
        else:
            items = list(request.get('paragraphs', []))
        items = [item for item in items if item["text"].strip()]
        filename = request.get('filename', 'document.docx')

        system_prompt = build_rewrite_system_prompt(self.instructions)
        replacements: Dict[str, str] = {}
        batches = batch_items(items, self.max_batch_tokens)
        for n, batch in enumerate(batches, 1):
            if self.verbose:
                print(f"[{n}/{len(batches)}] Rewriting {len(batch)} paragraphs with {self.model}")
            user_prompt = build_rewrite_user_prompt(batch, filename, sections=sections)
            try:
                if self.provider == "gemini":
                    result = self._call_gemini(system_prompt, user_prompt)
                else:
                    result = self._call_openai(system_prompt, user_prompt)
            except Exception as e:
                print(f"Error: {self.provider} call failed: {e}", file=sys.stderr)
                raise UpstreamError(f"LLM request failed: {e}") from e

            reply = parse_generator_reply(result)
            if reply.replacements is None:
                raise UpstreamError("Invalid response from LLM: expected replacements")
            offered = {str(item["index"]) for item in batch}
            for key, text in reply.replacements.items():
                if key not in offered:
                    print(f"Warning: LLM returned unknown index {key!r}: {format_text_preview(text)}",
                          file=sys.stderr)
                replacements[key] = text

        return GeneratorReply(replacements=replacements)


def make_generator(name: str, **kwargs):
    """Generator factory for the CLI --generator flag."""
    if name == "webhook":
        return WebhookGenerator(**kwargs)
    if name == "llm":
        return LLMGenerator(**kwargs)
    raise ValueError(f"Unknown generator: {name!r} (expected 'webhook' or 'llm')")
