"""Identifier generation for cards, players, lobbies and chat messages."""

import random
import uuid

from .constants import LOBBY_CODE_CHARS


def generate_card_id() -> str:
    return f"card_{uuid.uuid4().hex[:12]}"


def generate_player_id() -> str:
    return f"player_{uuid.uuid4().hex[:12]}"


def generate_chat_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:10]}"


def generate_lobby_code(length: int = 6) -> str:
    """Random code drawn from the ambiguity-free alphabet. Uniqueness is the caller's job."""
    return ''.join(random.choice(LOBBY_CODE_CHARS) for _ in range(length))
