"""Helpers for LangChain message content and JSON rendering of results."""

from __future__ import annotations

import json
from typing import Any


def content_text(content: Any) -> str:
    """Flatten message content (str or list of content blocks) to plain text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content)


def to_json_text(value: Any, indent: int | None = None) -> str:
    """Serialize a result for the model; strings pass through unchanged."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, indent=indent, default=str)


def truncate(text: str, limit: int, marker: str = "\n...(truncated)") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def is_error_result(value: Any) -> bool:
    """True for the gateway's structured failure shapes."""
    return isinstance(value, dict) and ("error" in value or value.get("denied") is True)
