from .app import GhostApp

__all__ = ["GhostApp"]
