"""Fakes shared across test modules."""

from typing import List, Optional

from ghost.channel import CancelToken
from ghost.errors import CancelledError
from ghost.messages import ChatMessage, ToolCall
from ghost.tools import Tool
from ghost.tools.base import _S, object_schema


class FakeLLM:
    """Scripted stand-in for LLMAdapter.

    ``responses`` are returned by ``chat`` in order; ``tokens`` are yielded by
    ``stream_chat``.
    """

    def __init__(self, responses: Optional[List[ChatMessage]] = None,
                 tokens: Optional[List[str]] = None, stream_error: Optional[Exception] = None):
        self.model = "fake-model"
        self.responses = list(responses or [])
        self.tokens = list(tokens or [])
        self.stream_error = stream_error
        self.chat_calls = []
        self.stream_calls = []

    def chat(self, messages, tools=None, model=None, cancel: Optional[CancelToken] = None):
        self.chat_calls.append({"messages": list(messages), "tools": tools, "model": model})
        if not self.responses:
            return ChatMessage.assistant("")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def stream_chat(self, messages, cancel: Optional[CancelToken] = None):
        self.stream_calls.append(list(messages))
        for token in self.tokens:
            if cancel is not None and cancel.cancelled:
                raise CancelledError()
            yield token
        if self.stream_error is not None:
            raise self.stream_error


def tool_call_message(name: str, arguments: str, call_id: str = "") -> ChatMessage:
    return ChatMessage.assistant("", [ToolCall(name=name, arguments=arguments, id=call_id)])


class EchoTool(Tool):
    name = "echo"
    description = "echo the argument back"
    parameters = object_schema({"x": _S("text to echo")}, ["x"])

    def __init__(self):
        self.calls = []

    def run(self, cancel, x="", **_):
        self.calls.append(x)
        return x


class FailingTool(Tool):
    name = "explode"
    description = "always fails"
    parameters = object_schema({}, [])

    def run(self, cancel, **_):
        raise RuntimeError("boom")
