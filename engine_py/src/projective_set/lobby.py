"""
Lobby lifecycle: creation, joining and leaving, settings, ready state and chat.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .constants import MAX_CHAT_MESSAGES, player_color
from .errors import ActionResult, ErrorCode
from .ids import generate_lobby_code
from .models import ChatMessage, LobbyState, Player
from .rules import MultiplayerSettings, merge_settings

logger = logging.getLogger(__name__)


@dataclass
class JoinOutcome:
    lobby: LobbyState
    player: Player


@dataclass
class LeaveOutcome:
    lobby_deleted: bool
    new_host_id: Optional[str] = None


def _not_found() -> ActionResult:
    return ActionResult.error(ErrorCode.LOBBY_NOT_FOUND, "Lobby not found")


class LobbyManager:
    """Holds every open lobby, keyed by lobby code."""

    def __init__(self, max_players: int = 8, code_length: int = 6):
        self.max_players = max_players
        self.code_length = code_length
        self._lobbies: Dict[str, LobbyState] = {}
        self._lock = threading.RLock()

    def create_lobby(self, host_id: str, host_name: str) -> LobbyState:
        """
        Create a lobby with ``host_id`` as player #1.

        The host starts unready, settings start at the multiplayer defaults
        and only the host may change them until unlocked.
        """
        with self._lock:
            code = generate_lobby_code(self.code_length)
            while code in self._lobbies:
                code = generate_lobby_code(self.code_length)

            host = Player(
                id=host_id,
                name=host_name,
                player_number=1,
                color=player_color(1),
                is_ready=False,
            )
            lobby = LobbyState(
                code=code,
                host_id=host_id,
                players=[host],
                settings=MultiplayerSettings(),
                settings_unlocked=False,
            )
            self._lobbies[code] = lobby

        logger.info(f"Created lobby {code} for host {host_name} ({host_id})")
        return lobby

    def join_lobby(self, code: str, player_id: str, player_name: str) -> ActionResult:
        """
        Add a player to a lobby.

        Joining again with an id that is already a member returns the
        existing membership unchanged.

        Returns:
            ActionResult with a ``JoinOutcome``, or LOBBY_NOT_FOUND / LOBBY_FULL
        """
        with self._lock:
            lobby = self._lobbies.get(code)
            if lobby is None:
                return _not_found()

            existing = self._find_player(lobby, player_id)
            if existing is not None:
                return ActionResult.ok(JoinOutcome(lobby=lobby, player=existing))

            if len(lobby.players) >= self.max_players:
                return ActionResult.error(ErrorCode.LOBBY_FULL, "Lobby is full")

            player_number = len(lobby.players) + 1
            player = Player(
                id=player_id,
                name=player_name,
                player_number=player_number,
                color=player_color(player_number),
            )
            lobby.players.append(player)

        logger.info(f"{player_name} ({player_id}) joined lobby {code} as P{player_number}")
        return ActionResult.ok(JoinOutcome(lobby=lobby, player=player))

    def leave_lobby(self, code: str, player_id: str) -> ActionResult:
        """
        Remove a player from a lobby.

        An emptied lobby is deleted. Otherwise the remaining players are
        renumbered and recolored by position, and if the host left the new
        player #1 becomes host.

        Returns:
            ActionResult with a ``LeaveOutcome``
        """
        with self._lock:
            lobby = self._lobbies.get(code)
            if lobby is None:
                return _not_found()

            player = self._find_player(lobby, player_id)
            if player is None:
                return ActionResult.error(ErrorCode.INVALID_REQUEST, "Player not in lobby")

            lobby.players.remove(player)

            if not lobby.players:
                del self._lobbies[code]
                logger.info(f"Lobby {code} deleted (last player left)")
                return ActionResult.ok(LeaveOutcome(lobby_deleted=True))

            for i, remaining in enumerate(lobby.players):
                remaining.player_number = i + 1
                remaining.color = player_color(i + 1)

            new_host_id = None
            if player_id == lobby.host_id:
                new_host_id = lobby.players[0].id
                lobby.host_id = new_host_id
                logger.info(f"Lobby {code}: host passed to {new_host_id}")

        return ActionResult.ok(LeaveOutcome(lobby_deleted=False, new_host_id=new_host_id))

    def update_settings(self, code: str, player_id: str, settings: Dict[str, Any]) -> ActionResult:
        """Merge partial settings into the lobby's settings (host only unless unlocked)."""
        with self._lock:
            lobby = self._lobbies.get(code)
            if lobby is None:
                return _not_found()

            if not lobby.settings_unlocked and player_id != lobby.host_id:
                return ActionResult.error(ErrorCode.SETTINGS_LOCKED, "Only host can change settings")

            try:
                lobby.settings = merge_settings(lobby.settings, settings)
            except ValidationError as e:
                return ActionResult.error(ErrorCode.INVALID_REQUEST, f"Invalid settings: {e.error_count()} error(s)")

        return ActionResult.ok(lobby)

    def toggle_settings_lock(self, code: str, player_id: str) -> ActionResult:
        with self._lock:
            lobby = self._lobbies.get(code)
            if lobby is None:
                return _not_found()
            if player_id != lobby.host_id:
                return ActionResult.error(ErrorCode.NOT_HOST, "Only host can toggle settings lock")
            lobby.settings_unlocked = not lobby.settings_unlocked
        return ActionResult.ok(lobby)

    def toggle_ready(self, code: str, player_id: str) -> ActionResult:
        with self._lock:
            lobby = self._lobbies.get(code)
            if lobby is None:
                return _not_found()
            player = self._find_player(lobby, player_id)
            if player is None:
                return ActionResult.error(ErrorCode.INVALID_REQUEST, "Player not in lobby")
            player.is_ready = not player.is_ready
        return ActionResult.ok(lobby)

    def can_start_game(self, code: str, player_id: str) -> ActionResult:
        """Only checks that the requester is host; readiness is not required."""
        lobby = self._lobbies.get(code)
        if lobby is None:
            return _not_found()
        if player_id != lobby.host_id:
            return ActionResult.error(ErrorCode.NOT_HOST, "Only host can start the game")
        return ActionResult.ok(lobby)

    def add_chat_message(self, code: str, message: ChatMessage) -> bool:
        """Append a chat message, keeping only the most recent 100."""
        with self._lock:
            lobby = self._lobbies.get(code)
            if lobby is None:
                return False
            lobby.chat_messages.append(message)
            if len(lobby.chat_messages) > MAX_CHAT_MESSAGES:
                del lobby.chat_messages[:-MAX_CHAT_MESSAGES]
        return True

    def set_player_connected(self, code: str, player_id: str, connected: bool) -> None:
        with self._lock:
            player = self.get_player(code, player_id)
            if player is not None:
                player.is_connected = connected

    def get_lobby(self, code: str) -> Optional[LobbyState]:
        return self._lobbies.get(code)

    def get_player(self, code: str, player_id: str) -> Optional[Player]:
        lobby = self._lobbies.get(code)
        if lobby is None:
            return None
        return self._find_player(lobby, player_id)

    def delete_lobby(self, code: str) -> None:
        with self._lock:
            if self._lobbies.pop(code, None) is not None:
                logger.info(f"Lobby {code} deleted")

    def lobby_count(self) -> int:
        return len(self._lobbies)

    @staticmethod
    def _find_player(lobby: LobbyState, player_id: str) -> Optional[Player]:
        for player in lobby.players:
            if player.id == player_id:
                return player
        return None
