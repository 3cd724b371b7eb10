"""Shared output formatting for CLI and MCP."""

from .format import OUTPUT_FORMATS, format_response, render_cli, render_text

__all__ = ["OUTPUT_FORMATS", "format_response", "render_cli", "render_text"]
