"""Shared fixtures for ghost tests."""

import os
from unittest.mock import MagicMock

import pytest

import ghost.config as config_module
import ghost.logger as logger_module
from ghost.tools import ToolRegistry
from helpers import EchoTool, FakeLLM

_GHOST_ENV = (
    "GHOST_HOST", "OLLAMA_BASE_URL", "GHOST_MODEL", "DEFAULT_MODEL",
    "GHOST_VISION_MODEL", "GHOST_SYSTEM", "GHOST_THINK", "GHOST_TIMEOUT",
    "TAVILY_API_KEY", "GHOST_DATA_DIR", "GHOST_VERBOSE",
)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from the user's config, env vars and log file."""
    config_dir = tmp_path / "ghost-home"
    monkeypatch.setattr(config_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_dir / "config.yml")
    monkeypatch.setattr(logger_module, "DEFAULT_LOG_FILE", config_dir / "ghost.log")
    for name in _GHOST_ENV:
        monkeypatch.delenv(name, raising=False)
    return config_dir


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def sample_config_data(tmp_path):
    """Minimal config.yml data dict."""
    return {
        "host": "http://ollama.test:11434",
        "model": "llama3.1:8b",
        "vision-model": "qwen2.5vl:7b",
        "think": False,
        "timeout": 60,
        "max-tool-iterations": 4,
        "data-dir": str(tmp_path / "data"),
    }


@pytest.fixture
def fake_llm_factory():
    return FakeLLM


@pytest.fixture
def echo_tool():
    return EchoTool()


@pytest.fixture
def registry(echo_tool):
    reg = ToolRegistry()
    reg.register(echo_tool)
    return reg


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    return c
