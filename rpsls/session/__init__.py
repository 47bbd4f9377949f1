"""
Session Module - What the UI layer talks to.

GameManager exposes commands (create, join, reveal, claim timeout),
queries (list, get, result label), and games-changed notifications.
"""

from .manager import GameManager, PROVISIONAL_PREFIX
from . import presentation

__all__ = ["GameManager", "PROVISIONAL_PREFIX", "presentation"]
