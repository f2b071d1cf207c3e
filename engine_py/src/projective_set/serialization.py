"""
State serialization for transmission to clients.

Internal models use snake_case dataclasses; the wire format uses the
camelCase field names the clients expect.
"""

from typing import Any, Dict, List

from .models import CardInstance, ChatMessage, GameState, LobbyState, Player
from .rules import GameSettings


def serialize_card(card: CardInstance) -> Dict[str, Any]:
    return {"id": card.id, "value": card.value}


def serialize_cards(cards: List[CardInstance]) -> List[Dict[str, Any]]:
    return [serialize_card(card) for card in cards]


def serialize_settings(settings: GameSettings) -> Dict[str, Any]:
    return settings.model_dump(by_alias=True)


def serialize_player(player: Player) -> Dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "playerNumber": player.player_number,
        "color": player.color,
        "claimedCards": serialize_cards(player.claimed_cards),
        "selectedCardIds": list(player.selected_card_ids),
        "score": player.score,
        "isConnected": player.is_connected,
        "isReady": player.is_ready,
    }


def serialize_game_state(state: GameState) -> Dict[str, Any]:
    """
    Serialize the full authoritative game state.

    Args:
        state: Game state to serialize

    Returns:
        JSON-safe dictionary with camelCase keys
    """
    return {
        "phase": state.phase,
        "deck": serialize_cards(state.deck),
        "activeCards": serialize_cards(state.active_cards),
        "players": [serialize_player(player) for player in state.players],
        "settings": serialize_settings(state.settings),
        "turnTimeRemainingMs": state.turn_time_remaining_ms,
        "gameTimeRemainingMs": state.game_time_remaining_ms,
        "endReason": state.end_reason,
        "startedAt": state.started_at,
    }


def serialize_chat_message(message: ChatMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "playerId": message.player_id,
        "playerName": message.player_name,
        "content": message.content,
        "timestamp": message.timestamp,
    }


def serialize_lobby(lobby: LobbyState) -> Dict[str, Any]:
    return {
        "code": lobby.code,
        "hostId": lobby.host_id,
        "players": [serialize_player(player) for player in lobby.players],
        "settings": serialize_settings(lobby.settings),
        "settingsUnlocked": lobby.settings_unlocked,
        "chatMessages": [serialize_chat_message(message) for message in lobby.chat_messages],
    }
