"""Chat message types shared by the LLM adapter, driver, store and view."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCall:
    """A function call requested by the model. ``arguments`` stays a raw JSON string."""
    name: str
    arguments: str = "{}"
    id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        function = data.get("function") or {}
        arguments = function.get("arguments", "{}")
        if not isinstance(arguments, str):
            # Ollama's native API returns arguments as an object.
            arguments = json.dumps(arguments)
        return cls(name=function["name"], arguments=arguments, id=data.get("id") or "")


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str = ""
    images: Tuple[str, ...] = ()
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_call_id: str = ""

    def __post_init__(self):
        # Accept plain strings and lists at construction; store immutably.
        object.__setattr__(self, "role", Role(self.role))
        object.__setattr__(self, "images", tuple(self.images))
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str, images: Optional[List[str]] = None) -> "ChatMessage":
        return cls(Role.USER, content, images=tuple(images or ()))

    @classmethod
    def assistant(cls, content: str, tool_calls: Optional[List[ToolCall]] = None) -> "ChatMessage":
        return cls(Role.ASSISTANT, content, tool_calls=tuple(tool_calls or ()))

    @classmethod
    def tool(cls, content: str, tool_call_id: str = "") -> "ChatMessage":
        return cls(Role.TOOL, content, tool_call_id=tool_call_id)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.images:
            data["images"] = list(self.images)
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(
            role=Role(data["role"]),
            content=data.get("content") or "",
            images=tuple(data.get("images") or ()),
            tool_calls=tuple(ToolCall.from_dict(tc) for tc in data.get("tool_calls") or ()),
            tool_call_id=data.get("tool_call_id") or "",
        )


@dataclass(frozen=True)
class ToolDefinition:
    """Function tool advertised to the model."""
    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
