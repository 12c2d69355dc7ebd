"""Terminal rendering for one-shot output and errors."""

import json

from rich.console import Console
from rich.json import JSON
from rich.markdown import Markdown
from rich.markup import escape

from .theme import ERROR, MUTED

__all__ = ["render_chunk", "render_response", "render_error", "render_notice"]


def render_chunk(console: Console, text: str):
    """Write streamed text as-is (no markup, no trailing newline)."""
    console.print(text, end="", markup=False, highlight=False, soft_wrap=True)


def render_response(console: Console, content: str, output_format: str = "text"):
    """Render a complete reply in the requested format."""
    if output_format == "markdown":
        console.print(Markdown(content))
        return
    if output_format == "json":
        try:
            json.loads(content)
        except ValueError:
            # The model ignored the format instruction; show what it said.
            console.print(content, markup=False, highlight=False)
            return
        console.print(JSON(content))
        return
    console.print(content, markup=False, highlight=False, soft_wrap=True)


def render_error(console: Console, message: str):
    console.print(f"[bold {ERROR}]✗ error:[/bold {ERROR}] [{ERROR}]{escape(message)}[/{ERROR}]",
                  highlight=False)


def render_notice(console: Console, message: str):
    console.print(f"[{MUTED}]{escape(message)}[/{MUTED}]", highlight=False)
