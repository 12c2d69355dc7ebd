"""Health diagnostics: configuration summary plus Ollama connectivity checks."""

from typing import Optional

import requests
from rich.console import Console
from rich.markup import escape

from .config import Config
from .errors import ModelNotFoundError, ProtocolViolationError, RemoteUnavailableError
from .logger import get_logger
from .theme import ACCENT, ERROR, SUCCESS, WARN

_log = get_logger(__name__)

PROBE_TIMEOUT = 10


class OllamaProbe:
    """Minimal client for the Ollama metadata endpoints."""

    def __init__(self, host: str, timeout: int = PROBE_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.host = host.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.host}{path}"
        try:
            return self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteUnavailableError(f"cannot reach {url}: {e}") from e

    def version(self) -> str:
        response = self._request("GET", "/api/version")
        if response.status_code >= 400:
            raise ProtocolViolationError(f"/api/version returned HTTP {response.status_code}")
        try:
            return response.json()["version"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProtocolViolationError(f"malformed /api/version response: {e}") from e

    def show(self, model: str):
        response = self._request("POST", "/api/show", json={"model": model})
        if response.status_code == 404:
            raise ModelNotFoundError(model)
        if response.status_code >= 400:
            raise ProtocolViolationError(f"/api/show returned HTTP {response.status_code}")


def _line(console: Console, ok: bool, text: str):
    mark, color = ("◆", SUCCESS) if ok else ("✗", ERROR)
    console.print(f"  [{color}]{mark}[/{color}] {escape(text)}", highlight=False)


def _shown(value) -> str:
    if value in ("", None):
        return "(not set)"
    if isinstance(value, (list, tuple)):
        return ", ".join(value)
    return str(value)


def run_health(config: Config, console: Console, probe: Optional[OllamaProbe] = None) -> int:
    """Print diagnostics and return the number of critical errors."""
    probe = probe or OllamaProbe(config.host)
    errors = 0

    console.print(f"[{ACCENT}]>> initializing ghost diagnostics...[/{ACCENT}]\n")

    console.print(f"[bold {WARN}]SYSTEM CONFIG[/bold {WARN}]")
    if config.config_source:
        _line(console, True, f"config loaded: {config.config_source}")
    else:
        _line(console, True, "config file not loaded: using defaults")
    for key, value in config.describe().items():
        _line(console, True, f"{key}: {_shown(value)}")
    _line(console, True, f"web search: {'enabled' if config.tavily_api_key else 'disabled'}")
    console.print()

    console.print(f"[bold {WARN}]NEURAL LINK STATUS[/bold {WARN}]")
    try:
        version = probe.version()
        _line(console, True, f"ollama api CONNECTED [v{version}]")
    except (RemoteUnavailableError, ProtocolViolationError) as e:
        errors += 1
        _line(console, False, f"ollama api CONNECTION FAILED: {e}")

    for label, model in (("chat", config.model), ("vision", config.vision_model)):
        if not model:
            # Vision is optional; a missing chat model is not.
            if label == "vision":
                _line(console, True, "vision model not configured: image analysis disabled")
            else:
                errors += 1
                _line(console, False, f"{label} model NOT CONFIGURED")
            continue
        try:
            probe.show(model)
            _line(console, True, f"{label} model {model} ACTIVE")
        except ModelNotFoundError:
            errors += 1
            _line(console, False, f"{label} model {model} NOT LOADED: pull model")
        except (RemoteUnavailableError, ProtocolViolationError) as e:
            errors += 1
            _line(console, False, f"{label} model {model} NOT LOADED: {e}")
    console.print()

    if errors == 0:
        console.print(f"[{SUCCESS}]>> ghost online :: all systems nominal[/{SUCCESS}]")
    else:
        console.print(f"[{ERROR}]>> ghost offline :: {errors} critical errors detected[/{ERROR}]")
    _log.info("health check finished with %d errors", errors)
    return errors
