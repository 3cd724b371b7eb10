"""Output formatting utilities for CLI and MCP."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

OUTPUT_FORMATS = ("toon", "json", "text")


def _encode_toon(payload: Any) -> str:
    """Encode payload to TOON, the compact format agents read best."""
    from toon_format import encode

    return encode(payload)


def render_text(payload: Any, indent: int = 0) -> str:
    """Render nested dicts/lists as indented ``key: value`` lines."""
    pad = "  " * indent
    if isinstance(payload, dict):
        lines = []
        for key, value in payload.items():
            label = str(key).replace("_", " ").capitalize()
            if isinstance(value, (dict, list)) and value:
                lines.append(f"{pad}{label}:")
                lines.append(render_text(value, indent + 1))
            elif isinstance(value, (dict, list)):
                lines.append(f"{pad}{label}: (none)")
            else:
                lines.append(f"{pad}{label}: {value}")
        return "\n".join(lines)
    if isinstance(payload, list):
        lines = []
        for item in payload:
            if isinstance(item, dict):
                lines.append(f"{pad}-")
                lines.append(render_text(item, indent + 1))
            else:
                lines.append(f"{pad}- {item}")
        return "\n".join(lines)
    return f"{pad}{payload}"


def format_response(
    payload: Any,
    output_format: str = "toon",
    text_renderer: Optional[Callable[[Any], str]] = None,
) -> dict:
    """Normalize response with format metadata and content.

    Args:
        payload: Data to serialize.
        output_format: "toon", "json", or "text".
        text_renderer: Optional renderer for text output.
    """
    output_format = (output_format or "toon").lower()

    if output_format == "json":
        return {"format": "json", "content": payload}
    if output_format == "text":
        renderer = text_renderer or render_text
        return {"format": "text", "content": renderer(payload)}

    return {"format": "toon", "content": _encode_toon(payload)}


def render_cli(response: dict) -> str:
    """Render a formatted response into a CLI string."""
    if response.get("format") == "json":
        return json.dumps(response.get("content"), indent=2)
    return str(response.get("content"))
