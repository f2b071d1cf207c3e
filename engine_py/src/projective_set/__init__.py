"""Projective Set multiplayer game engine."""

__version__ = "1.0.0"
