"""
WebSocket server and event handling for Projective Set.
"""

from .handlers import EventChannel, EventRouter
from .server import ConnectionManager, create_app

__all__ = ["ConnectionManager", "EventChannel", "EventRouter", "create_app"]
