"""CLI tests: ask, chat, health and threads through click's CliRunner."""

import logging
import sys

import pytest
from click.testing import CliRunner

import ghost.main as main_module
from ghost.errors import RemoteUnavailableError
from ghost.messages import ChatMessage, Role
from ghost.store import ThreadStore
from helpers import FakeLLM

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger("ghost")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def env(tmp_dir, monkeypatch):
    monkeypatch.setenv("GHOST_MODEL", "llama3.1:8b")
    monkeypatch.setenv("GHOST_DATA_DIR", str(tmp_dir / "data"))
    return tmp_dir


@pytest.fixture
def llm(monkeypatch):
    fake = FakeLLM(tokens=["<think>plan</think>", "Hello ", "world"])
    monkeypatch.setattr(main_module, "_llm_for", lambda config: fake)
    return fake


def invoke(*args, input=None):
    return CliRunner().invoke(main_module.cli, list(args), input=input)


class TestAsk:
    def test_streams_visible_text(self, env, llm):
        result = invoke("ask", "say", "hi")
        assert result.exit_code == 0, result.output
        assert "Hello world" in result.output
        assert "plan" not in result.output
        sent = llm.stream_calls[0]
        assert sent[0].role is Role.SYSTEM
        assert sent[-1] == ChatMessage.user("say hi")

    def test_piped_input_prepended(self, env, llm):
        result = invoke("ask", "explain", input="Traceback: boom\n")
        assert result.exit_code == 0, result.output
        assert llm.stream_calls[0][-1].content == "Traceback: boom\n\nexplain"

    def test_json_format(self, env, llm):
        llm.tokens = ['{"status": ', '"online"}']
        result = invoke("ask", "status?", "--format", "json")
        assert result.exit_code == 0, result.output
        assert '"status": "online"' in result.output
        assert "Format the response as json" in llm.stream_calls[0][0].content

    def test_markdown_format(self, env, llm):
        llm.tokens = ["# Title\n\nbody"]
        result = invoke("ask", "doc", "-f", "markdown")
        assert result.exit_code == 0, result.output
        assert "Title" in result.output
        assert "#" not in result.output

    def test_no_input(self, env, llm):
        result = invoke("ask")
        assert result.exit_code == 66
        assert "no input" in result.output

    def test_model_not_configured(self, tmp_dir, llm):
        result = invoke("ask", "hi")
        assert result.exit_code == 78
        assert "model not configured" in result.output

    def test_model_flag_satisfies_requirement(self, tmp_dir, llm):
        assert invoke("--model", "mistral", "ask", "hi").exit_code == 0

    def test_remote_failure(self, env, llm):
        llm.tokens = []
        llm.stream_error = RemoteUnavailableError("cannot reach http://localhost:11434")
        result = invoke("ask", "hi")
        assert result.exit_code == 69
        assert "cannot reach" in result.output

    def test_image_requires_vision_model(self, env, llm):
        (env / "shot.png").write_bytes(PNG)
        result = invoke("ask", "what", "--image", str(env / "shot.png"))
        assert result.exit_code == 78
        assert "vision-model" in result.output

    def test_image_analysis_joins_prompt(self, env, llm, monkeypatch):
        monkeypatch.setenv("GHOST_VISION_MODEL", "qwen2.5vl:7b")
        (env / "shot.png").write_bytes(PNG)
        llm.responses = [ChatMessage.assistant("IMAGE_ANALYSIS a terminal END_IMAGE_ANALYSIS")]
        result = invoke("ask", "what", "-i", str(env / "shot.png"))
        assert result.exit_code == 0, result.output
        assert llm.chat_calls[0]["model"] == "qwen2.5vl:7b"
        sent = llm.stream_calls[0]
        assert sent[-2].content.startswith("IMAGE_ANALYSIS")
        assert sent[-1] == ChatMessage.user("what")

    def test_bad_format_is_usage_error(self, env, llm, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["ghost", "ask", "hi", "--format", "yaml"])
        with pytest.raises(SystemExit) as info:
            main_module.main()
        assert info.value.code == 64


class TestThreads:
    def test_lists_threads(self, env):
        store = ThreadStore(env / "data")
        thread = store.create_thread("debugging the filter")
        result = invoke("threads")
        assert result.exit_code == 0, result.output
        assert thread.id in result.output
        assert "debugging the filter" in result.output

    def test_empty(self, env):
        result = invoke("threads")
        assert "no stored threads" in result.output

    def test_delete(self, env):
        store = ThreadStore(env / "data")
        thread = store.create_thread("old")
        result = invoke("threads", "--delete", thread.id)
        assert result.exit_code == 0, result.output
        assert store.list_threads() == []

    def test_delete_unknown(self, env):
        result = invoke("threads", "--delete", "f" * 32)
        assert result.exit_code == 66


class TestChat:
    @pytest.fixture
    def app_calls(self, monkeypatch, llm):
        calls = []

        class FakeApp:
            def __init__(self, driver, config, messages):
                calls.append({"driver": driver, "config": config, "messages": messages})

            def run(self):
                return None

        monkeypatch.setattr("ghost.tui.GhostApp", FakeApp)
        return calls

    def test_new_session(self, env, app_calls):
        result = invoke("chat")
        assert result.exit_code == 0, result.output
        messages = app_calls[0]["messages"]
        assert len(messages) == 1
        assert messages[0].role is Role.SYSTEM
        assert app_calls[0]["driver"].thread_id is None

    def test_resume_thread(self, env, app_calls):
        store = ThreadStore(env / "data")
        thread = store.create_thread("resume me")
        store.add_message(thread.id, ChatMessage.user("ping"))
        store.add_message(thread.id, ChatMessage.assistant("pong"))

        result = invoke("chat", "--thread", thread.id)
        assert result.exit_code == 0, result.output
        call = app_calls[0]
        assert [m.content for m in call["messages"][1:]] == ["ping", "pong"]
        assert call["driver"].thread_id == thread.id
        assert f"thread saved: {thread.id}" in result.output

    def test_unknown_thread(self, env, app_calls):
        result = invoke("chat", "-t", "0" * 32)
        assert result.exit_code == 66
        assert app_calls == []


class TestHealth:
    def test_ok(self, env, monkeypatch):
        monkeypatch.setattr(main_module, "run_health", lambda config, console: 0)
        assert invoke("health").exit_code == 0

    def test_failures_exit_unavailable(self, env, monkeypatch):
        monkeypatch.setattr(main_module, "run_health", lambda config, console: 2)
        assert invoke("health").exit_code == 69


def test_version():
    result = invoke("--version")
    assert result.exit_code == 0
    assert "1.0.0" in result.output
