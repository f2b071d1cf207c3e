"""
Event routing: maps client messages to lobby and game manager operations
and fans the results out over an event channel.

The router knows nothing about sockets. It talks to an ``EventChannel``
that can address one connection or every connection in a room.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..constants import END_PLAYER_QUIT, MAX_CHAT_LENGTH, SET_FOUND_IMMEDIATE
from ..engine import create_multiplayer_game, create_single_player_game
from ..errors import ErrorCode, GameError
from ..game_manager import ClaimOutcome, GameManager
from ..ids import generate_chat_message_id, generate_player_id
from ..lobby import LobbyManager
from ..models import ChatMessage, GameState
from .events import (
    BaseEvent, EventType, OutboundEventType, create_cards_dealt_event,
    create_chat_event, create_connection_event, create_error_event,
    create_game_ended_event, create_game_starting_event, create_game_state_event,
    create_lobby_event, create_player_left_event, create_selection_changed_event,
    create_set_claimed_event, create_set_pending_event, create_timer_event,
    parse_inbound_event,
)

logger = logging.getLogger(__name__)


class EventChannel(ABC):
    """Transport abstraction: per-connection sends and per-room broadcasts."""

    @abstractmethod
    async def send(self, connection_id: str, message: Dict[str, Any]) -> None:
        """Send a message to a single connection."""

    @abstractmethod
    async def broadcast(self, room: str, message: Dict[str, Any]) -> None:
        """Send a message to every connection in a room."""

    @abstractmethod
    def join_room(self, connection_id: str, room: str) -> None:
        """Subscribe a connection to a room's broadcasts."""

    @abstractmethod
    def leave_room(self, connection_id: str, room: str) -> None:
        """Unsubscribe a connection from a room."""

    @abstractmethod
    def close_room(self, room: str) -> None:
        """Drop every subscription to a room."""


@dataclass
class Session:
    """What the server knows about one connection."""
    player_id: str
    room_code: Optional[str] = None
    solo: bool = False


class EventRouter:
    """Dispatches parsed client events for every connection."""

    def __init__(self, lobbies: LobbyManager, games: GameManager, channel: EventChannel):
        self.lobbies = lobbies
        self.games = games
        self.channel = channel
        self.sessions: Dict[str, Session] = {}
        self._handlers = {
            EventType.LOBBY_CREATE: self._lobby_create,
            EventType.LOBBY_JOIN: self._lobby_join,
            EventType.LOBBY_REJOIN: self._lobby_rejoin,
            EventType.LOBBY_LEAVE: self._lobby_leave,
            EventType.LOBBY_UPDATE_SETTINGS: self._lobby_update_settings,
            EventType.LOBBY_TOGGLE_SETTINGS_LOCK: self._lobby_toggle_settings_lock,
            EventType.LOBBY_TOGGLE_READY: self._lobby_toggle_ready,
            EventType.LOBBY_START_GAME: self._lobby_start_game,
            EventType.LOBBY_CHAT: self._lobby_chat,
            EventType.LOBBY_GET_STATE: self._lobby_get_state,
            EventType.GAME_TOGGLE_CARD: self._game_toggle_card,
            EventType.GAME_CONFIRM_SET: self._game_confirm_set,
            EventType.GAME_CLEAR_SELECTION: self._game_clear_selection,
            EventType.SOLO_START: self._solo_start,
            EventType.SOLO_QUIT: self._solo_quit,
        }

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, connection_id: str) -> str:
        """Register a connection and hand it an ephemeral player id."""
        player_id = generate_player_id()
        self.sessions[connection_id] = Session(player_id=player_id)
        await self.channel.send(connection_id, create_connection_event(player_id))
        logger.info(f"Player {player_id} connected ({connection_id})")
        return player_id

    async def disconnect(self, connection_id: str) -> None:
        """A dropped connection leaves its room exactly as an explicit leave would."""
        session = self.sessions.pop(connection_id, None)
        if session is None:
            return
        await self._leave_room(connection_id, session)
        logger.info(f"Player {session.player_id} disconnected ({connection_id})")

    async def handle(self, connection_id: str, data: Any) -> None:
        """
        Handle one raw client message.

        Errors are reported to the sending connection only. Unexpected
        failures are logged and reported as INTERNAL without touching the
        room.
        """
        session = self.sessions.get(connection_id)
        if session is None:
            logger.warning(f"Message from unknown connection {connection_id}")
            return

        try:
            event = parse_inbound_event(data)
            await self._handlers[event.type](connection_id, session, event)
        except GameError as e:
            logger.debug(f"Rejected event from {session.player_id}: {e}")
            await self._send_error(connection_id, e.code, e.message)
        except Exception:
            logger.exception(f"Error handling event from {session.player_id}")
            await self._send_error(connection_id, ErrorCode.INTERNAL, "Internal server error")

    async def _send_error(self, connection_id: str, code: ErrorCode, message: str) -> None:
        await self.channel.send(connection_id, create_error_event(code, message))

    def _lobby_code(self, session: Session) -> str:
        if not session.room_code or session.solo:
            raise GameError(ErrorCode.INVALID_REQUEST, "Not in a lobby")
        return session.room_code

    def _game_code(self, session: Session) -> str:
        if not session.room_code:
            raise GameError(ErrorCode.GAME_NOT_STARTED, "Not in a game")
        return session.room_code

    def _enter_room(self, connection_id: str, session: Session, code: str, solo: bool = False) -> None:
        self.channel.join_room(connection_id, code)
        session.room_code = code
        session.solo = solo

    # ------------------------------------------------------------------
    # Lobby events
    # ------------------------------------------------------------------

    async def _lobby_create(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        await self._leave_room(connection_id, session)
        lobby = self.lobbies.create_lobby(session.player_id, event.player_name)
        self._enter_room(connection_id, session, lobby.code)
        await self.channel.send(connection_id, create_lobby_event(OutboundEventType.LOBBY_CREATED, lobby))

    async def _lobby_join(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        await self._join(connection_id, session, event.code.upper(), event.player_name, rejoin=False)

    async def _lobby_rejoin(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        await self._join(connection_id, session, event.code.upper(), event.player_name, rejoin=True)

    async def _join(self, connection_id: str, session: Session, code: str, player_name: str, rejoin: bool) -> None:
        is_member = self.lobbies.get_player(code, session.player_id) is not None
        if self.games.has_game(code) and not is_member:
            raise GameError(ErrorCode.LOBBY_GAME_IN_PROGRESS, "A game is already in progress in this lobby")

        if session.room_code != code:
            await self._leave_room(connection_id, session)

        result = self.lobbies.join_lobby(code, session.player_id, player_name)
        if not result.success:
            raise GameError(result.error_code, result.error_message)

        lobby = result.data.lobby
        self._enter_room(connection_id, session, code)
        if not rejoin:
            await self.channel.send(connection_id, create_lobby_event(OutboundEventType.LOBBY_JOINED, lobby))
        await self.channel.broadcast(code, create_lobby_event(OutboundEventType.LOBBY_UPDATED, lobby))

        state = self.games.get_game_state(code)
        if state is not None:
            await self.channel.send(connection_id, create_game_state_event(state))

    async def _lobby_leave(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        await self._leave_room(connection_id, session)

    async def _leave_room(self, connection_id: str, session: Session) -> None:
        code = session.room_code
        if not code:
            return
        self.channel.leave_room(connection_id, code)
        session.room_code = None

        if session.solo:
            session.solo = False
            self.games.end_game(code)
            return

        if self.games.has_game(code):
            self.games.player_left(code, session.player_id)

        result = self.lobbies.leave_lobby(code, session.player_id)
        if not result.success:
            return

        if result.data.lobby_deleted:
            self.games.end_game(code)
            self.channel.close_room(code)
            return

        await self.channel.broadcast(code, create_player_left_event(session.player_id))
        lobby = self.lobbies.get_lobby(code)
        if lobby is not None:
            # numbers and colors shift for everyone after a leave
            await self.channel.broadcast(code, create_lobby_event(OutboundEventType.LOBBY_UPDATED, lobby))
        logger.info(f"Player {session.player_id} left lobby {code}")

    async def _lobby_update_settings(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        code = self._lobby_code(session)
        result = self.lobbies.update_settings(code, session.player_id, event.settings.changes())
        if not result.success:
            raise GameError(result.error_code, result.error_message)
        await self.channel.broadcast(code, create_lobby_event(OutboundEventType.LOBBY_UPDATED, result.data))

    async def _lobby_toggle_settings_lock(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        code = self._lobby_code(session)
        result = self.lobbies.toggle_settings_lock(code, session.player_id)
        if not result.success:
            raise GameError(result.error_code, result.error_message)
        await self.channel.broadcast(code, create_lobby_event(OutboundEventType.LOBBY_UPDATED, result.data))

    async def _lobby_toggle_ready(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        code = self._lobby_code(session)
        result = self.lobbies.toggle_ready(code, session.player_id)
        if not result.success:
            raise GameError(result.error_code, result.error_message)
        await self.channel.broadcast(code, create_lobby_event(OutboundEventType.LOBBY_UPDATED, result.data))

    async def _lobby_start_game(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        code = self._lobby_code(session)
        result = self.lobbies.can_start_game(code, session.player_id)
        if not result.success:
            raise GameError(result.error_code, result.error_message)
        if self.games.has_game(code):
            raise GameError(ErrorCode.LOBBY_GAME_IN_PROGRESS, "A game is already in progress")

        lobby = result.data
        await self.channel.broadcast(code, create_game_starting_event())

        state = create_multiplayer_game(lobby.players, lobby.settings)
        self.games.create_game(code, state)
        await self.channel.broadcast(code, create_game_state_event(state))
        self._start_timers(code, state)
        logger.info(f"Started game for lobby {code} with {len(lobby.players)} players")

    async def _lobby_chat(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        code = self._lobby_code(session)
        player = self.lobbies.get_player(code, session.player_id)
        if player is None:
            raise GameError(ErrorCode.INVALID_REQUEST, "Player not in lobby")

        message = ChatMessage(
            id=generate_chat_message_id(),
            player_id=session.player_id,
            player_name=player.name,
            content=event.content[:MAX_CHAT_LENGTH],
            timestamp=int(time.time() * 1000),
        )
        self.lobbies.add_chat_message(code, message)
        await self.channel.broadcast(code, create_chat_event(message))

    async def _lobby_get_state(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        code = self._lobby_code(session)
        lobby = self.lobbies.get_lobby(code)
        if lobby is None:
            raise GameError(ErrorCode.LOBBY_NOT_FOUND, "Lobby not found")
        await self.channel.send(connection_id, create_lobby_event(OutboundEventType.LOBBY_UPDATED, lobby))

        state = self.games.get_game_state(code)
        if state is not None:
            await self.channel.send(connection_id, create_game_state_event(state))

    # ------------------------------------------------------------------
    # Game events
    # ------------------------------------------------------------------

    async def _game_toggle_card(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        code = self._game_code(session)
        player_id = session.player_id
        result = self.games.toggle_card(code, player_id, event.card_id)
        if not result.success:
            raise GameError(result.error_code, result.error_message)

        outcome = result.data
        selected = outcome.selected_card_ids
        await self.channel.broadcast(code, create_selection_changed_event(player_id, selected))
        if outcome.pending_reserved:
            await self.channel.broadcast(code, create_set_pending_event(player_id, selected))
            return
        if not outcome.valid_set_formed:
            return

        state = self.games.get_game_state(code)
        if state is not None and state.settings.set_found_behavior == SET_FOUND_IMMEDIATE:
            # the claim re-checks the table; cards taken meanwhile fail it
            claim = self.games.claim_set(code, player_id, selected)
            if not claim.success:
                raise GameError(claim.error_code, claim.error_message)
            await self._announce_claim(code, player_id, claim.data)

    async def _game_confirm_set(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        code = self._game_code(session)
        result = self.games.confirm_set(code, session.player_id)
        if not result.success:
            raise GameError(result.error_code, result.error_message)
        await self._announce_claim(code, session.player_id, result.data)

    async def _game_clear_selection(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        code = self._game_code(session)
        result = self.games.clear_selection(code, session.player_id)
        if not result.success:
            raise GameError(result.error_code, result.error_message)
        await self.channel.broadcast(code, create_selection_changed_event(session.player_id, []))

    async def _announce_claim(self, code: str, player_id: str, outcome: ClaimOutcome) -> None:
        await self.channel.broadcast(
            code, create_set_claimed_event(player_id, outcome.claimed_card_ids, outcome.points_awarded)
        )
        if outcome.new_cards:
            await self.channel.broadcast(code, create_cards_dealt_event(outcome.new_cards))
        if outcome.game_ended:
            await self._finish_room(code, self.games.get_game_state(code))

    # ------------------------------------------------------------------
    # Single player
    # ------------------------------------------------------------------

    async def _solo_start(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        await self._leave_room(connection_id, session)
        code = f"solo-{session.player_id}"
        state = create_single_player_game(session.player_id, event.player_name, event.settings)
        self.games.create_game(code, state)
        self._enter_room(connection_id, session, code, solo=True)
        await self.channel.send(connection_id, create_game_state_event(state))
        self._start_timers(code, state)
        logger.info(f"Started single-player game {code}")

    async def _solo_quit(self, connection_id: str, session: Session, event: BaseEvent) -> None:
        if not session.solo or not session.room_code:
            raise GameError(ErrorCode.INVALID_REQUEST, "Not in a single-player game")
        code = session.room_code
        result = self.games.finish_game(code, END_PLAYER_QUIT)
        if not result.success:
            raise GameError(result.error_code, result.error_message)
        await self._finish_room(code, result.data)

    # ------------------------------------------------------------------
    # Timers and teardown
    # ------------------------------------------------------------------

    def _start_timers(self, code: str, state: GameState) -> None:
        if state.settings.turn_timer is None and state.settings.game_timer is None:
            return

        async def on_tick(tick_state: GameState) -> None:
            await self.channel.broadcast(code, create_timer_event(tick_state))

        async def on_end(final_state: GameState) -> None:
            await self._finish_room(code, final_state)

        self.games.start_game_loop(code, on_tick, on_end)

    async def _finish_room(self, code: str, final_state: GameState) -> None:
        """Announce the result, then tear the room down."""
        await self.channel.broadcast(code, create_game_ended_event(final_state))
        self.games.end_game(code)
        self.lobbies.delete_lobby(code)
        self.channel.close_room(code)
        for session in self.sessions.values():
            if session.room_code == code:
                session.room_code = None
                session.solo = False
        logger.info(f"Room {code} closed ({final_state.end_reason})")
