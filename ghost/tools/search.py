"""Web search tool backed by Tavily."""

from typing import Any, Dict, List

from tavily import TavilyClient

from ..channel import CancelToken
from ..errors import ToolExecutionError
from .base import Tool, _S, object_schema

DEFAULT_MAX_RESULTS = 5


def format_results(results: List[Dict[str, Any]]) -> str:
    lines = []
    for i, result in enumerate(results, 1):
        lines.append(f"Result: {i}: {result.get('title', '')}")
        lines.append(f"URL: {result.get('url', '')}")
        lines.append(f"{result.get('content', '')}\n")
    if not lines:
        return "No results found."
    return "\n".join(lines)


class WebSearchTool(Tool):
    name = "web_search"
    description = "search the web for current information, news, and real time data"
    parameters = object_schema({"query": _S("the search query")}, ["query"])

    def __init__(self, api_key: str, max_results: int = DEFAULT_MAX_RESULTS, client=None):
        self.max_results = max_results or DEFAULT_MAX_RESULTS
        self._client = client or TavilyClient(api_key=api_key)

    def run(self, cancel: CancelToken, query: str = "", **_: Any) -> str:
        query = query.strip()
        if not query:
            raise ToolExecutionError(self.name, "empty query")
        try:
            response = self._client.search(query=query, max_results=self.max_results)
        except Exception as e:
            raise ToolExecutionError(self.name, f"search failed: {e}") from e
        # The request itself cannot be interrupted; drop the result if cancelled meanwhile.
        cancel.raise_if_cancelled()
        results = response.get("results", []) if isinstance(response, dict) else []
        return format_results(results)
