"""Tool registry: dict-based dispatch by tool name."""

from typing import Dict, List

from ..channel import CancelToken
from ..errors import CancelledError, ToolError, ToolExecutionError, ToolNotRegisteredError
from ..logger import get_logger
from ..messages import ToolDefinition
from .base import Tool

_log = get_logger(__name__)


class ToolRegistry:
    """Holds the tools advertised to the model. Read-only once the app starts."""

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def register(self, tool: Tool):
        if not tool.name:
            raise ValueError("tool has no name")
        if tool.name in self._tools:
            raise ValueError(f"tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        _log.debug("tool registered: %s", tool.name)

    def definitions(self) -> List[ToolDefinition]:
        return [tool.definition() for tool in self._tools.values()]

    def execute(self, cancel: CancelToken, name: str, arguments: str) -> str:
        """Run one tool call. No retry."""
        if name not in self:
            raise ToolNotRegisteredError(name)
        tool = self._tools[name]

        cancel.raise_if_cancelled()
        _log.debug("executing tool %s", name)
        try:
            return tool.execute(cancel, arguments)
        except (ToolError, CancelledError):
            raise
        except Exception as e:
            raise ToolExecutionError(name, f"{type(e).__name__}: {e}") from e
