"""Tests for ghost.llm: litellm adapter, wire format and error mapping."""

import json
import threading
import time
from types import SimpleNamespace

import litellm
import pytest

from ghost.channel import CancelToken
from ghost.errors import (CancelledError, ModelNotFoundError, ProtocolViolationError,
                          RemoteUnavailableError)
from ghost.llm import (JSON_PROMPT, MARKDOWN_PROMPT, SYSTEM_PROMPT, LLMAdapter,
                       build_system_prompt, to_wire)
from ghost.messages import ChatMessage, Role, ToolCall, ToolDefinition


def _response(content="", tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _tool_call(name, arguments, call_id="call_0"):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeStream:
    def __init__(self, chunks):
        self.chunks = chunks
        self.closed = False

    def __iter__(self):
        return iter(self.chunks)

    def close(self):
        self.closed = True


@pytest.fixture
def completion(monkeypatch):
    """Capture litellm.completion calls; set ``.result`` to control the return value."""

    class Recorder:
        result = None
        error = None
        calls = []

        def __call__(self, **kwargs):
            self.calls.append(kwargs)
            if self.error is not None:
                raise self.error
            return self.result

    recorder = Recorder()
    recorder.calls = []
    monkeypatch.setattr(litellm, "completion", recorder)
    return recorder


@pytest.fixture
def adapter():
    return LLMAdapter("llama3.1:8b", "http://ollama.test:11434", timeout=42)


class TestChat:
    def test_request_shape(self, completion, adapter):
        completion.result = _response("hi")
        tool = ToolDefinition("echo", "echo it", {"type": "object", "properties": {}})
        reply = adapter.chat([ChatMessage.user("hello")], [tool])

        kwargs = completion.calls[0]
        assert kwargs["model"] == "ollama_chat/llama3.1:8b"
        assert kwargs["api_base"] == "http://ollama.test:11434"
        assert kwargs["timeout"] == 42
        assert kwargs["messages"] == [{"role": "user", "content": "hello"}]
        assert kwargs["tools"][0]["function"]["name"] == "echo"
        assert "think" not in kwargs
        assert "stream" not in kwargs
        assert reply == ChatMessage.assistant("hi")

    def test_think_flag(self, completion):
        completion.result = _response("x")
        LLMAdapter("m", "http://h", think=True).chat([ChatMessage.user("q")])
        assert completion.calls[0]["think"] is True

    def test_model_override(self, completion, adapter):
        completion.result = _response("a cat")
        adapter.chat([ChatMessage.user("look")], model="qwen2.5vl:7b")
        assert completion.calls[0]["model"] == "ollama_chat/qwen2.5vl:7b"

    def test_prefixed_model_untouched(self, completion):
        completion.result = _response("x")
        LLMAdapter("ollama/mistral", "http://h").chat([ChatMessage.user("q")])
        assert completion.calls[0]["model"] == "ollama/mistral"

    def test_tool_calls_parsed(self, completion, adapter):
        completion.result = _response("", [
            _tool_call("web_search", '{"query": "ghost"}', "c1"),
            _tool_call("echo", {"x": "a"}, None),
        ])
        reply = adapter.chat([ChatMessage.user("q")])
        assert reply.tool_calls[0] == ToolCall("web_search", '{"query": "ghost"}', "c1")
        assert json.loads(reply.tool_calls[1].arguments) == {"x": "a"}
        assert reply.tool_calls[1].id == ""

    def test_malformed_response(self, completion, adapter):
        completion.result = SimpleNamespace(choices=[])
        with pytest.raises(ProtocolViolationError):
            adapter.chat([ChatMessage.user("q")])


class TestErrorMapping:
    def test_connection_error(self, completion, adapter):
        completion.error = litellm.exceptions.APIConnectionError(
            message="refused", llm_provider="ollama", model="llama3.1:8b")
        with pytest.raises(RemoteUnavailableError):
            adapter.chat([ChatMessage.user("q")])

    def test_timeout(self, completion, adapter):
        completion.error = litellm.exceptions.Timeout(
            message="slow", model="llama3.1:8b", llm_provider="ollama")
        with pytest.raises(RemoteUnavailableError):
            adapter.chat([ChatMessage.user("q")])

    def test_model_not_found(self, completion, adapter):
        completion.error = litellm.exceptions.NotFoundError(
            message="model not found", model="llama3.1:8b", llm_provider="ollama")
        with pytest.raises(ModelNotFoundError) as info:
            adapter.chat([ChatMessage.user("q")])
        assert info.value.model == "llama3.1:8b"

    def test_anything_else_is_protocol_violation(self, completion, adapter):
        completion.error = ValueError("bad payload")
        with pytest.raises(ProtocolViolationError, match="bad payload"):
            adapter.chat([ChatMessage.user("q")])


class TestStream:
    def test_yields_content_tokens(self, completion, adapter):
        stream = FakeStream([_chunk("Hel"), _chunk(None), SimpleNamespace(choices=[]),
                             _chunk("lo")])
        completion.result = stream
        assert list(adapter.stream_chat([ChatMessage.user("q")])) == ["Hel", "lo"]
        assert completion.calls[0]["stream"] is True
        assert stream.closed

    def test_cancel_closes_stream(self, completion, adapter):
        stream = FakeStream([_chunk("a"), _chunk("b"), _chunk("c")])
        completion.result = stream
        cancel = CancelToken()
        got = []
        with pytest.raises(CancelledError):
            for token in adapter.stream_chat([ChatMessage.user("q")], cancel):
                got.append(token)
                cancel.cancel()
        assert got == ["a"]
        assert stream.closed

    def test_already_cancelled_sends_nothing(self, completion, adapter):
        cancel = CancelToken()
        cancel.cancel()
        with pytest.raises(CancelledError):
            list(adapter.stream_chat([ChatMessage.user("q")], cancel))
        assert completion.calls == []

    def test_error_while_iterating(self, completion, adapter):
        class Broken(FakeStream):
            def __iter__(self):
                yield _chunk("a")
                raise litellm.exceptions.APIConnectionError(
                    message="reset", llm_provider="ollama", model="llama3.1:8b")

        completion.result = Broken([])
        with pytest.raises(RemoteUnavailableError):
            list(adapter.stream_chat([ChatMessage.user("q")]))


class TestWireFormat:
    def test_images_become_data_urls(self):
        png = "iVBORw0KGgoAAAANSUhEUg"
        wire = to_wire(ChatMessage.user("what is this", images=[png, "/9j/4AAQ"]))
        assert wire["content"][0] == {"type": "text", "text": "what is this"}
        assert wire["content"][1]["image_url"]["url"] == f"data:image/png;base64,{png}"
        assert wire["content"][2]["image_url"]["url"].startswith("data:image/jpeg;base64,")

    def test_tool_result(self):
        wire = to_wire(ChatMessage.tool("result", tool_call_id="c1"))
        assert wire == {"role": "tool", "content": "result", "tool_call_id": "c1"}

    def test_assistant_tool_calls(self):
        wire = to_wire(ChatMessage.assistant("", [ToolCall("echo", '{"x": 1}', "c1")]))
        assert wire["tool_calls"][0]["function"] == {"name": "echo", "arguments": '{"x": 1}'}
        assert wire["role"] == Role.ASSISTANT.value


class TestSystemPrompt:
    def test_default(self):
        assert build_system_prompt() == SYSTEM_PROMPT

    def test_formats(self):
        assert build_system_prompt("json").endswith(JSON_PROMPT)
        assert build_system_prompt("markdown").endswith(MARKDOWN_PROMPT)

    def test_override(self):
        assert build_system_prompt("text", "be terse") == "be terse"
        assert build_system_prompt("json", "be terse") == "be terse\n\n" + JSON_PROMPT


class TestInFlightCancel:
    """A cancel must not wait for a slow endpoint to answer."""

    def test_cancel_abandons_blocked_completion(self, monkeypatch, adapter):
        release = threading.Event()

        def blocking_completion(**kwargs):
            release.wait(5.0)
            return _response("too late")

        monkeypatch.setattr(litellm, "completion", blocking_completion)
        cancel = CancelToken()
        threading.Timer(0.1, cancel.cancel).start()
        started = time.monotonic()
        try:
            with pytest.raises(CancelledError):
                adapter.chat([ChatMessage.user("q")], cancel=cancel)
        finally:
            release.set()
        assert time.monotonic() - started < 1.0

    def test_cancel_interrupts_stalled_stream(self, completion, adapter):
        release = threading.Event()

        class StalledStream(FakeStream):
            def __iter__(self):
                yield _chunk("first")
                release.wait(5.0)
                yield _chunk("late")

        stream = StalledStream([])
        completion.result = stream
        cancel = CancelToken()
        got = []
        started = time.monotonic()
        try:
            with pytest.raises(CancelledError):
                for token in adapter.stream_chat([ChatMessage.user("q")], cancel):
                    got.append(token)
                    threading.Timer(0.1, cancel.cancel).start()
        finally:
            release.set()
        assert got == ["first"]
        assert time.monotonic() - started < 1.0
        assert stream.closed

    def test_abandoned_stream_is_closed_when_it_arrives(self, monkeypatch, adapter):
        release = threading.Event()
        stream = FakeStream([_chunk("x")])

        def slow_open(**kwargs):
            release.wait(5.0)
            return stream

        monkeypatch.setattr(litellm, "completion", slow_open)
        cancel = CancelToken()
        cancel_timer = threading.Timer(0.05, cancel.cancel)
        cancel_timer.start()
        with pytest.raises(CancelledError):
            list(adapter.stream_chat([ChatMessage.user("q")], cancel))
        release.set()
        for _ in range(100):
            if stream.closed:
                break
            time.sleep(0.01)
        assert stream.closed
