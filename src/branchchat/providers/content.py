"""Normalize streamed message content across providers.

Some providers (notably Google Gemini and Anthropic) stream
``AIMessageChunk.content`` as a list of content-block dicts rather than a
plain string. This module extracts the text regardless of format.
"""

from __future__ import annotations

from typing import Any


def extract_chunk_text(content: str | list[Any]) -> str:
    """Extract plain text from a streamed chunk's content field.

    Handles two formats:
    - ``str``: returned as-is.
    - ``list``: text blocks (``type == "text"``) and bare strings are
      concatenated without a separator, since they are fragments of one
      running text. Non-text blocks (tool call deltas, etc.) are dropped.
    """
    if isinstance(content, str):
        return content

    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str):
                parts.append(text)
    return "".join(parts)
