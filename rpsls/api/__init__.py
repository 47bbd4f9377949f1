"""
API Module - REST and WebSocket exposure of the GameManager.
"""

from .app import create_app

__all__ = ["create_app"]
