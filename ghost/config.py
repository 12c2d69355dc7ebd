"""
Configuration from the YAML file, .env, environment variables and CLI flags.

Resolution order (highest first):
  1. CLI flags (``Config.apply_overrides``)
  2. Environment variables (``GHOST_*``, legacy ``OLLAMA_BASE_URL``/``DEFAULT_MODEL``)
  3. ``--config`` file, else ~/.config/ghost/config.yml
  4. Defaults
"""

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigMissingError, UsageError
from .logger import get_logger

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".config" / "ghost"
CONFIG_FILE = CONFIG_DIR / "config.yml"
DEFAULT_DATA_DIR = CONFIG_DIR

DEFAULT_HOST = "http://localhost:11434"
DEFAULT_IMAGE_TYPES = ["image/png", "image/jpeg", "image/webp"]
OUTPUT_FORMATS = {"text", "json", "markdown"}


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    field_name: str
    description: str
    value_type: str  # "str", "int", "bool", "list"
    default: Any
    env: tuple = ()
    validator: Optional[Callable[[Any], tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple[bool, int, str]:
    """Validate integer within range."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_bool(value: Any) -> tuple[bool, bool, str]:
    """Validate boolean value."""
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_url(value: Any) -> tuple[bool, str, str]:
    url = str(value or "").strip().rstrip("/")
    if not re.match(r"^https?://", url):
        return False, "", "Must start with http:// or https://"
    # The Ollama client appends /api/... itself.
    if url.endswith("/api"):
        url = url[: -len("/api")]
    return True, url, ""


def _validate_mime_list(value: Any) -> tuple[bool, List[str], str]:
    if isinstance(value, str):
        raw_values = re.split(r"[\s,]+", value)
    elif isinstance(value, list):
        raw_values = [str(item) for item in value]
    else:
        return False, [], "Must be a comma-separated list of image mime types"

    cleaned = []
    for item in raw_values:
        mime = item.strip().lower()
        if not mime or mime in cleaned:
            continue
        if not mime.startswith("image/"):
            return False, [], f"Not an image mime type: {mime}"
        cleaned.append(mime)

    if not cleaned:
        return False, [], "At least one image type required"
    return True, cleaned, ""


CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    "host": ConfigFieldSpec(
        key="host",
        field_name="host",
        description="Base URL of the Ollama-compatible chat endpoint",
        value_type="str",
        default=DEFAULT_HOST,
        env=("GHOST_HOST", "OLLAMA_BASE_URL"),
        validator=_validate_url,
    ),
    "model": ConfigFieldSpec(
        key="model",
        field_name="model",
        description="Chat model name",
        value_type="str",
        default="",
        env=("GHOST_MODEL", "DEFAULT_MODEL"),
    ),
    "vision-model": ConfigFieldSpec(
        key="vision-model",
        field_name="vision_model",
        description="Vision model used to analyse attached images",
        value_type="str",
        default="",
        env=("GHOST_VISION_MODEL",),
    ),
    "system": ConfigFieldSpec(
        key="system",
        field_name="system",
        description="Override for the chat system prompt",
        value_type="str",
        default="",
        env=("GHOST_SYSTEM",),
    ),
    "vision-system": ConfigFieldSpec(
        key="vision-system",
        field_name="vision_system",
        description="Override for the vision system prompt",
        value_type="str",
        default="",
    ),
    "think": ConfigFieldSpec(
        key="think",
        field_name="think",
        description="Ask the model to surface its reasoning",
        value_type="bool",
        default=False,
        env=("GHOST_THINK",),
        validator=_validate_bool,
    ),
    "timeout": ConfigFieldSpec(
        key="timeout",
        field_name="timeout",
        description="Chat request timeout in seconds",
        value_type="int",
        default=300,
        env=("GHOST_TIMEOUT",),
        validator=lambda v: _validate_int_range(v, 1, 3600),
    ),
    "max-tool-iterations": ConfigFieldSpec(
        key="max-tool-iterations",
        field_name="max_tool_iterations",
        description="Safety cap on tool-use rounds per turn",
        value_type="int",
        default=16,
        validator=lambda v: _validate_int_range(v, 1, 256),
    ),
    "tavily-api-key": ConfigFieldSpec(
        key="tavily-api-key",
        field_name="tavily_api_key",
        description="Tavily API key; enables the web_search tool",
        value_type="str",
        default="",
        env=("TAVILY_API_KEY",),
    ),
    "tavily-max-results": ConfigFieldSpec(
        key="tavily-max-results",
        field_name="tavily_max_results",
        description="Results returned by web_search",
        value_type="int",
        default=5,
        validator=lambda v: _validate_int_range(v, 1, 20),
    ),
    "image-types": ConfigFieldSpec(
        key="image-types",
        field_name="image_types",
        description="Accepted image mime types for vision analysis",
        value_type="list",
        default=DEFAULT_IMAGE_TYPES,
        validator=_validate_mime_list,
    ),
    "data-dir": ConfigFieldSpec(
        key="data-dir",
        field_name="data_dir",
        description="Directory holding stored threads",
        value_type="str",
        default=str(DEFAULT_DATA_DIR),
        env=("GHOST_DATA_DIR",),
    ),
    "verbose": ConfigFieldSpec(
        key="verbose",
        field_name="verbose",
        description="Enable debug logging",
        value_type="bool",
        default=False,
        env=("GHOST_VERBOSE",),
        validator=_validate_bool,
    ),
}


def validate_config_value(key: str, value: Any) -> tuple[bool, Any, str]:
    """
    Validate a configuration value.

    Returns:
        (is_valid, coerced_value, error_message)
    """
    if key not in CONFIG_FIELDS:
        return False, value, f"Unknown configuration key: {key}"

    spec = CONFIG_FIELDS[key]

    if spec.validator:
        return spec.validator(value)

    if spec.value_type == "str":
        return True, str(value).strip(), ""
    elif spec.value_type == "int":
        try:
            return True, int(value), ""
        except (TypeError, ValueError):
            return False, spec.default, "Must be an integer"
    elif spec.value_type == "bool":
        return _validate_bool(value)

    return True, value, ""


@dataclass
class Config:
    host: str = DEFAULT_HOST
    model: str = ""
    vision_model: str = ""
    system: str = ""
    vision_system: str = ""
    think: bool = False
    timeout: int = 300
    max_tool_iterations: int = 16
    tavily_api_key: str = ""
    tavily_max_results: int = 5
    image_types: List[str] = field(default_factory=lambda: list(DEFAULT_IMAGE_TYPES))
    data_dir: str = str(DEFAULT_DATA_DIR)
    verbose: bool = False
    config_source: str = ""

    @classmethod
    def load(cls, config_file: Optional[str] = None) -> "Config":
        config = cls()

        for env_path in [CONFIG_DIR / ".env", Path.cwd() / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        if config_file:
            path = Path(config_file).expanduser()
            if not path.exists():
                raise UsageError(f"config file not found: {path}")
            config._load_yaml(path)
        elif CONFIG_FILE.exists():
            config._load_yaml(CONFIG_FILE)

        config._apply_env()
        return config

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise UsageError(f"cannot read config file {filepath}: {e}") from e
        if not isinstance(data, dict):
            raise UsageError(f"config file {filepath} must contain a mapping")

        self.config_source = str(filepath)
        for key, value in data.items():
            if key not in CONFIG_FIELDS:
                _log.warning("ignoring unknown config key %r in %s", key, filepath)
                continue
            self.set(key, value, source=str(filepath))

    def _apply_env(self):
        for key, spec in CONFIG_FIELDS.items():
            for env_var in spec.env:
                val = os.environ.get(env_var)
                if val:
                    self.set(key, val, source=env_var)
                    break

    def set(self, key: str, value: Any, source: str = "flag"):
        """Validate and assign one kebab-case key."""
        ok, coerced, message = validate_config_value(key, value)
        if not ok:
            raise UsageError(f"invalid {key} from {source}: {message}")
        setattr(self, CONFIG_FIELDS[key].field_name, coerced)

    def apply_overrides(self, **overrides: Any) -> "Config":
        """Apply CLI flag values; ``None`` means the flag was not given."""
        names = {f.name for f in fields(self)}
        for field_name, value in overrides.items():
            if value is None or field_name not in names:
                continue
            key = field_name.replace("_", "-")
            self.set(key, value)
        return self

    def require(self, vision: bool = False):
        if not self.host:
            raise ConfigMissingError(
                "host", "set it via GHOST_HOST, the config file, or --host")
        if not self.model:
            raise ConfigMissingError(
                "model", "set it via GHOST_MODEL, the config file, or --model")
        if vision and not self.vision_model:
            raise ConfigMissingError(
                "vision-model", "set it via GHOST_VISION_MODEL, the config file, or --vision-model")

    @property
    def threads_base(self) -> Path:
        return Path(self.data_dir).expanduser()

    def describe(self) -> Dict[str, Any]:
        """Return the effective settings keyed by config key (secrets masked)."""
        result = {}
        for key, spec in CONFIG_FIELDS.items():
            value = getattr(self, spec.field_name)
            if key == "tavily-api-key" and value:
                value = value[:4] + "…"
            result[key] = value
        return result
