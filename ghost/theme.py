"""Centralized color constants (cyberpunk palette)."""

import os

TEXT = "#EAEAF2"
MUTED = "#8A86A0"

ACCENT = "#CA0174"
CYAN = "#00F0FF"
MAGENTA = "#FF00FF"

SUCCESS = "#00FF9C"
WARN = "#FFD300"
ERROR = "#FF003C"

if os.environ.get("NO_COLOR"):
    TEXT = MUTED = ACCENT = CYAN = MAGENTA = "default"
    SUCCESS = WARN = ERROR = "default"
