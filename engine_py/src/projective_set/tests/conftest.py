"""
Shared fixtures for the Projective Set tests.
"""

import asyncio
from collections import defaultdict

import pytest
from projective_set.constants import PHASE_PLAYING, player_color
from projective_set.game_manager import GameManager
from projective_set.lobby import LobbyManager
from projective_set.models import CardInstance, GameState, Player
from projective_set.rules import MultiplayerSettings
from projective_set.ws.handlers import EventChannel, EventRouter


class RecordingChannel(EventChannel):
    """In-memory channel that records every message per connection."""

    def __init__(self):
        self.outbox = defaultdict(list)
        self.rooms = defaultdict(set)

    async def send(self, connection_id, message):
        self.outbox[connection_id].append(message)

    async def broadcast(self, room, message):
        for connection_id in list(self.rooms.get(room, ())):
            self.outbox[connection_id].append(message)

    def join_room(self, connection_id, room):
        self.rooms[room].add(connection_id)

    def leave_room(self, connection_id, room):
        self.rooms[room].discard(connection_id)

    def close_room(self, room):
        self.rooms.pop(room, None)

    def types(self, connection_id):
        return [message["type"] for message in self.outbox[connection_id]]

    def last(self, connection_id, event_type):
        for message in reversed(self.outbox[connection_id]):
            if message["type"] == event_type:
                return message
        return None

    def clear(self):
        self.outbox.clear()


class YieldingChannel(RecordingChannel):
    """Recording channel that hands control back to the event loop on every broadcast."""

    async def broadcast(self, room, message):
        await asyncio.sleep(0)
        await super().broadcast(room, message)


@pytest.fixture
def make_state():
    """
    Build a playing GameState with known card values.

    Table cards get ids ``c<value>`` and deck cards ``d<value>``; the last
    deck value is dealt first.
    """
    def _make(active_values, deck_values=(), player_ids=("p1", "p2"), settings=None):
        settings = settings or MultiplayerSettings()
        players = [
            Player(id=pid, name=pid.upper(), player_number=i + 1, color=player_color(i + 1))
            for i, pid in enumerate(player_ids)
        ]
        return GameState(
            settings=settings,
            phase=PHASE_PLAYING,
            deck=[CardInstance(id=f"d{value}", value=value) for value in deck_values],
            active_cards=[CardInstance(id=f"c{value}", value=value) for value in active_values],
            players=players,
            turn_time_remaining_ms=settings.turn_timer.duration_ms if settings.turn_timer else None,
            game_time_remaining_ms=settings.game_timer.duration_ms if settings.game_timer else None,
            started_at=0,
        )
    return _make


@pytest.fixture
def lobbies():
    return LobbyManager()


@pytest.fixture
def games():
    return GameManager(tick_rate_ms=10)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def router(lobbies, games, channel):
    return EventRouter(lobbies, games, channel)


@pytest.fixture
def yielding_channel():
    return YieldingChannel()


@pytest.fixture
def yielding_router(lobbies, games, yielding_channel):
    return EventRouter(lobbies, games, yielding_channel)
