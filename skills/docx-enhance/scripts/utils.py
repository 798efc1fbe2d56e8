#!/usr/bin/env python3
"""
ABOUTME: Shared token estimation and LLM client helpers for the enhance scripts
ABOUTME: Reads provider configuration from environment variables
"""

import os
import re

try:
    from google import genai
    from google.genai import types
    HAS_GEMINI = True
except ImportError:  # pragma: no cover - optional dependency
    genai = None
    types = None
    HAS_GEMINI = False

try:
    import openai
    HAS_OPENAI = True
except ImportError:  # pragma: no cover - optional dependency
    openai = None
    HAS_OPENAI = False


DEFAULT_GEMINI_MODEL = "gemini-3-flash"
DEFAULT_OPENAI_MODEL = "gpt-5.2"
DEFAULT_WEBHOOK_TIMEOUT = 120.0


def estimate_tokens(text: str) -> int:
    """
    Estimate token count for LLM context management.

    Uses a weighted formula based on character types:
    - CJK and Hebrew characters: ~0.75 tokens per character
    - JSON structural characters (brackets, quotes, commas): ~1 token per character
    - Other characters (English, numbers, symbols): ~0.4 tokens per character

    Includes 5% buffer and a small fixed offset.

    Args:
        text: Input text to estimate tokens for

    Returns:
        int: Estimated token count
    """
    if not text:
        return 0

    wide_count = len(re.findall(r'[\u4e00-\u9fa5\u0590-\u05ff]', text))
    json_chars_count = len(re.findall(r'[\[\]",{}]', text))
    other_count = len(text) - wide_count - json_chars_count

    base_estimate = (wide_count * 0.75) + (json_chars_count * 1) + (other_count * 0.4)
    return int(base_estimate * 1.05) + 2


def get_webhook_url() -> str:
    return os.getenv("DOCX_ENHANCE_WEBHOOK_URL", "")


def get_webhook_timeout() -> float:
    """Webhook timeout in seconds from DOCX_ENHANCE_WEBHOOK_TIMEOUT (default 120)."""
    raw = os.getenv("DOCX_ENHANCE_WEBHOOK_TIMEOUT", "")
    if not raw.strip():
        return DEFAULT_WEBHOOK_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"DOCX_ENHANCE_WEBHOOK_TIMEOUT must be a number, got {raw!r}")


def is_vertex_ai_mode() -> bool:
    """
    Check if Vertex AI mode is enabled via environment variable.

    Returns:
        True if GOOGLE_GENAI_USE_VERTEXAI is set to 'true', False otherwise
    """
    return os.getenv("GOOGLE_GENAI_USE_VERTEXAI", "").lower() == "true"


def create_gemini_client():
    """
    Create Gemini client for AI Studio or Vertex AI.

    Supports two modes:
    - AI Studio (default): Uses GOOGLE_API_KEY for authentication
    - Vertex AI: Uses ADC (GOOGLE_APPLICATION_CREDENTIALS or gcloud auth)

    Environment variables for Vertex AI mode:
    - GOOGLE_GENAI_USE_VERTEXAI: Set to 'true' to enable Vertex AI mode
    - GOOGLE_CLOUD_PROJECT: Required GCP project ID
    - GOOGLE_CLOUD_LOCATION: Optional region (default: us-central1)
    - GOOGLE_VERTEX_BASE_URL: Optional custom API endpoint (for API gateway proxies)

    Returns:
        Sync Gemini client instance

    Raises:
        ValueError: If google-genai is missing or required environment variables are not set
    """
    if not HAS_GEMINI:
        raise ValueError("google-genai library is not installed.")

    if is_vertex_ai_mode():
        project = os.getenv("GOOGLE_CLOUD_PROJECT")
        location = os.getenv("GOOGLE_CLOUD_LOCATION", "us-central1")
        base_url = os.getenv("GOOGLE_VERTEX_BASE_URL")

        if not project:
            raise ValueError(
                "GOOGLE_CLOUD_PROJECT is required for Vertex AI mode. "
                "Set GOOGLE_GENAI_USE_VERTEXAI=false to use AI Studio mode instead."
            )

        http_options = None
        if base_url:
            http_options = {"base_url": base_url}

        return genai.Client(
            vertexai=True,
            project=project,
            location=location,
            http_options=http_options
        )

    api_key = os.getenv("GOOGLE_API_KEY")
    if not api_key:
        raise ValueError(
            "GOOGLE_API_KEY is required for AI Studio mode. "
            "Set GOOGLE_GENAI_USE_VERTEXAI=true and configure GCP credentials for Vertex AI mode."
        )
    return genai.Client(api_key=api_key)


def create_openai_client():
    """
    Create OpenAI client with optional custom base URL.

    Environment variables:
    - OPENAI_API_KEY: Required API key
    - OPENAI_BASE_URL: Optional custom API endpoint (for proxies, Azure, etc.)

    Raises:
        ValueError: If openai is missing or OPENAI_API_KEY is not set
    """
    if not HAS_OPENAI:
        raise ValueError("openai library is not installed.")
    if not os.getenv("OPENAI_API_KEY"):
        raise ValueError("OPENAI_API_KEY is required for OpenAI mode.")
    return openai.OpenAI(base_url=os.getenv("OPENAI_BASE_URL"))


def detect_llm_provider() -> str:
    """
    Pick an LLM provider from available libraries and credentials.

    Returns:
        "gemini" or "openai"

    Raises:
        ValueError: If neither provider is usable
    """
    if HAS_GEMINI and (os.getenv("GOOGLE_API_KEY") or is_vertex_ai_mode()):
        return "gemini"
    if HAS_OPENAI and os.getenv("OPENAI_API_KEY"):
        return "openai"
    raise ValueError("No API key found. Set GOOGLE_API_KEY or OPENAI_API_KEY")


def get_model_name(provider: str) -> str:
    if provider == "gemini":
        return os.getenv("DOCX_ENHANCE_GEMINI_MODEL", DEFAULT_GEMINI_MODEL)
    return os.getenv("DOCX_ENHANCE_OPENAI_MODEL", DEFAULT_OPENAI_MODEL)
