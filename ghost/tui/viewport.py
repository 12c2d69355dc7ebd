"""Scrollable window over wrapped transcript lines."""

import textwrap
from dataclasses import dataclass, replace
from typing import Tuple


def wrap_lines(content: str, width: int) -> Tuple[str, ...]:
    """Wrap each logical line to ``width`` columns, keeping blank lines."""
    width = max(width, 1)
    lines = []
    for line in content.split("\n"):
        if not line:
            lines.append("")
            continue
        lines.extend(textwrap.wrap(line, width=width, replace_whitespace=False,
                                   drop_whitespace=False) or [""])
    return tuple(lines)


@dataclass(frozen=True)
class Viewport:
    width: int = 80
    height: int = 20
    lines: Tuple[str, ...] = ()
    y_offset: int = 0

    @property
    def max_offset(self) -> int:
        return max(len(self.lines) - self.height, 0)

    @property
    def at_bottom(self) -> bool:
        return self.y_offset >= self.max_offset

    def visible(self) -> Tuple[str, ...]:
        return self.lines[self.y_offset:self.y_offset + self.height]

    def render(self) -> str:
        return "\n".join(self.visible())

    def _at(self, offset: int) -> "Viewport":
        return replace(self, y_offset=min(max(offset, 0), self.max_offset))

    def set_content(self, content: str) -> "Viewport":
        updated = replace(self, lines=wrap_lines(content, self.width))
        return updated._at(self.y_offset)

    def resize(self, width: int, height: int, content: str) -> "Viewport":
        return replace(self, width=max(width, 1), height=max(height, 1)).set_content(content)

    def scroll_down(self, n: int = 1) -> "Viewport":
        return self._at(self.y_offset + n)

    def scroll_up(self, n: int = 1) -> "Viewport":
        return self._at(self.y_offset - n)

    def half_page_down(self) -> "Viewport":
        return self.scroll_down(max(self.height // 2, 1))

    def half_page_up(self) -> "Viewport":
        return self.scroll_up(max(self.height // 2, 1))

    def goto_top(self) -> "Viewport":
        return self._at(0)

    def goto_bottom(self) -> "Viewport":
        return self._at(self.max_offset)
