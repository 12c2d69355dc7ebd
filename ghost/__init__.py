"""ghost, a terminal assistant for Ollama-compatible chat models."""

__version__ = "1.0.0"
