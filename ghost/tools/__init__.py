from ..config import Config
from ..logger import get_logger
from .base import Tool
from .registry import ToolRegistry
from .search import WebSearchTool

_log = get_logger(__name__)


def build_registry(config: Config) -> ToolRegistry:
    """Registry with every tool the configuration enables."""
    registry = ToolRegistry()
    if config.tavily_api_key:
        registry.register(WebSearchTool(config.tavily_api_key, config.tavily_max_results))
    else:
        _log.debug("no tavily api key, web_search disabled")
    _log.info("tools enabled: %s", ", ".join(registry.names) or "none")
    return registry


__all__ = ["Tool", "ToolRegistry", "WebSearchTool", "build_registry"]
