#!/usr/bin/env python3
"""
ABOUTME: Centralized prompt management for paragraph rewriting LLM calls
ABOUTME: Contains system/user prompts and the structured response schema
"""

import json
import os


# ============================================================
# Prompt Templates
# ============================================================

PROMPT_TEMPLATES = {
    # Paragraph Rewrite System Prompt
    "rewrite_system": """You are a professional copy editor. Your task is to improve paragraphs of a Word document so they read better for the document's audience.

{instructions}

---

Instructions:
1. You receive a JSON list of paragraphs. Each paragraph has an "index" and its current "text".
2. Rewrite only paragraphs that clearly benefit from it. Skip headings, table labels, empty paragraphs and paragraphs that are already good.
3. Keep the meaning, names, dates, prices and numbers exactly as given. Do not invent facts.
4. Write the rewritten text in {output_language} unless the original paragraph is in a different language, in which case keep its language.
5. Return plain text only: no markdown, no HTML, no surrounding quotes, no line breaks inside a paragraph.
6. The "index" of every returned item MUST be copied exactly from the input. Never renumber, merge or split paragraphs.

Return your result as a JSON object with this structure:
{{
  "replacements": [
    {{
      "index": <index copied from the input>,
      "text": "the complete rewritten paragraph"
    }}
  ]
}}

If no paragraph needs rewriting, return {{"replacements": []}}.""",

    # Paragraph Rewrite User Prompt
    "rewrite_user": """Document: {filename}

Paragraphs:
{paragraphs_text}""",

    # Section Rewrite User Prompt (heading policy)
    "rewrite_sections_user": """Document: {filename}

Each item below is the main paragraph of one day of an itinerary. Use the section key as "index".

Sections:
{paragraphs_text}""",
}

DEFAULT_INSTRUCTIONS = (
    "Make the text vivid, clear and inviting while staying accurate and concise."
)


# Structured output schema shared by Gemini and OpenAI
REWRITE_RESULT_SCHEMA = {
    "type": "object",
    "properties": {
        "replacements": {
            "type": "array",
            "description": "Rewritten paragraphs",
            "items": {
                "type": "object",
                "properties": {
                    "index": {
                        "type": "string",
                        "description": "Paragraph index or section key copied from the input"
                    },
                    "text": {
                        "type": "string",
                        "description": "Complete rewritten paragraph text"
                    }
                },
                "required": ["index", "text"]
            }
        }
    },
    "required": ["replacements"]
}


# ============================================================
# Prompt Builders
# ============================================================

def build_rewrite_system_prompt(instructions: str = None) -> str:
    """
    Build the system prompt for paragraph rewriting.

    Args:
        instructions: Editorial goal for this document (uses DEFAULT_INSTRUCTIONS if None)

    Returns:
        System prompt string
    """
    output_language = os.getenv("DOCX_ENHANCE_LANGUAGE", "the language of the document")
    return PROMPT_TEMPLATES["rewrite_system"].format(
        instructions=instructions or DEFAULT_INSTRUCTIONS,
        output_language=output_language
    )


def build_rewrite_user_prompt(items: list, filename: str = "document.docx",
                              sections: bool = False) -> str:
    """
    Build the user prompt for one batch of paragraphs.

    Args:
        items: [{"index": ..., "text": ...}] to offer for rewriting
        filename: Original file name, for context
        sections: True when indexes are section keys such as "day1"

    Returns:
        User prompt string
    """
    paragraphs_text = json.dumps(
        [{"index": str(item["index"]), "text": item["text"]} for item in items],
        ensure_ascii=False,
        indent=2
    )
    template = "rewrite_sections_user" if sections else "rewrite_user"
    return PROMPT_TEMPLATES[template].format(
        filename=filename,
        paragraphs_text=paragraphs_text
    )
