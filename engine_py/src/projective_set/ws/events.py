"""
WebSocket event models and validation.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..errors import ErrorCode, GameError
from ..models import CardInstance, ChatMessage, GameState, LobbyState
from ..rules import SinglePlayerSettings, TimerConfig
from ..serialization import (
    serialize_cards, serialize_chat_message, serialize_game_state, serialize_lobby,
)


class EventType(str, Enum):
    """Inbound event types."""
    LOBBY_CREATE = "lobby.create"
    LOBBY_JOIN = "lobby.join"
    LOBBY_REJOIN = "lobby.rejoin"
    LOBBY_LEAVE = "lobby.leave"
    LOBBY_UPDATE_SETTINGS = "lobby.updateSettings"
    LOBBY_TOGGLE_SETTINGS_LOCK = "lobby.toggleSettingsLock"
    LOBBY_TOGGLE_READY = "lobby.toggleReady"
    LOBBY_START_GAME = "lobby.startGame"
    LOBBY_CHAT = "lobby.chat"
    LOBBY_GET_STATE = "lobby.getState"
    GAME_TOGGLE_CARD = "game.toggleCard"
    GAME_CONFIRM_SET = "game.confirmSet"
    GAME_CLEAR_SELECTION = "game.clearSelection"
    SOLO_START = "solo.start"
    SOLO_QUIT = "solo.quit"


class OutboundEventType(str, Enum):
    """Outbound event types."""
    CONNECTION_ESTABLISHED = "connection.established"
    ERROR = "error"
    LOBBY_CREATED = "lobby.created"
    LOBBY_JOINED = "lobby.joined"
    LOBBY_UPDATED = "lobby.updated"
    LOBBY_PLAYER_LEFT = "lobby.playerLeft"
    LOBBY_CHAT_MESSAGE = "lobby.chatMessage"
    LOBBY_GAME_STARTING = "lobby.gameStarting"
    GAME_STATE = "game.state"
    GAME_SELECTION_CHANGED = "game.selectionChanged"
    GAME_SET_CLAIMED = "game.setClaimed"
    GAME_SET_PENDING = "game.setPending"
    GAME_CARDS_DEALT = "game.cardsDealt"
    GAME_TIMER_UPDATE = "game.timerUpdate"
    GAME_ENDED = "game.ended"


# Inbound event models
class BaseEvent(BaseModel):
    """Base event model. Payload fields travel in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: EventType


class LobbyCreateEvent(BaseEvent):
    type: EventType = EventType.LOBBY_CREATE
    player_name: str = Field(..., min_length=1, max_length=30)


class LobbyJoinEvent(BaseEvent):
    type: EventType = EventType.LOBBY_JOIN
    code: str = Field(..., min_length=1, max_length=12)
    player_name: str = Field(..., min_length=1, max_length=30)


class LobbyRejoinEvent(BaseEvent):
    type: EventType = EventType.LOBBY_REJOIN
    code: str = Field(..., min_length=1, max_length=12)
    player_name: str = Field(..., min_length=1, max_length=30)


class LobbyLeaveEvent(BaseEvent):
    type: EventType = EventType.LOBBY_LEAVE


class SettingsPatch(BaseModel):
    """Partial multiplayer settings; only the fields sent are applied."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    colors_enabled: Optional[bool] = None
    binary_mode: Optional[bool] = None
    turn_timer: Optional[TimerConfig] = None
    game_timer: Optional[TimerConfig] = None
    set_found_behavior: Optional[Literal['immediate', 'click']] = None
    infinite_deck: Optional[bool] = None
    scoring_mode: Optional[Literal['cards', 'sets']] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class LobbyUpdateSettingsEvent(BaseEvent):
    type: EventType = EventType.LOBBY_UPDATE_SETTINGS
    settings: SettingsPatch


class LobbyToggleSettingsLockEvent(BaseEvent):
    type: EventType = EventType.LOBBY_TOGGLE_SETTINGS_LOCK


class LobbyToggleReadyEvent(BaseEvent):
    type: EventType = EventType.LOBBY_TOGGLE_READY


class LobbyStartGameEvent(BaseEvent):
    type: EventType = EventType.LOBBY_START_GAME


class LobbyChatEvent(BaseEvent):
    type: EventType = EventType.LOBBY_CHAT
    content: str = Field(..., min_length=1)


class LobbyGetStateEvent(BaseEvent):
    type: EventType = EventType.LOBBY_GET_STATE


class GameToggleCardEvent(BaseEvent):
    type: EventType = EventType.GAME_TOGGLE_CARD
    card_id: str = Field(..., min_length=1)


class GameConfirmSetEvent(BaseEvent):
    type: EventType = EventType.GAME_CONFIRM_SET


class GameClearSelectionEvent(BaseEvent):
    type: EventType = EventType.GAME_CLEAR_SELECTION


class SoloStartEvent(BaseEvent):
    type: EventType = EventType.SOLO_START
    player_name: str = Field(..., min_length=1, max_length=30)
    settings: Optional[SinglePlayerSettings] = None


class SoloQuitEvent(BaseEvent):
    type: EventType = EventType.SOLO_QUIT


EVENT_MODELS = {
    EventType.LOBBY_CREATE: LobbyCreateEvent,
    EventType.LOBBY_JOIN: LobbyJoinEvent,
    EventType.LOBBY_REJOIN: LobbyRejoinEvent,
    EventType.LOBBY_LEAVE: LobbyLeaveEvent,
    EventType.LOBBY_UPDATE_SETTINGS: LobbyUpdateSettingsEvent,
    EventType.LOBBY_TOGGLE_SETTINGS_LOCK: LobbyToggleSettingsLockEvent,
    EventType.LOBBY_TOGGLE_READY: LobbyToggleReadyEvent,
    EventType.LOBBY_START_GAME: LobbyStartGameEvent,
    EventType.LOBBY_CHAT: LobbyChatEvent,
    EventType.LOBBY_GET_STATE: LobbyGetStateEvent,
    EventType.GAME_TOGGLE_CARD: GameToggleCardEvent,
    EventType.GAME_CONFIRM_SET: GameConfirmSetEvent,
    EventType.GAME_CLEAR_SELECTION: GameClearSelectionEvent,
    EventType.SOLO_START: SoloStartEvent,
    EventType.SOLO_QUIT: SoloQuitEvent,
}


def parse_inbound_event(data: Any) -> BaseEvent:
    """
    Parse raw event data into the matching event model.

    Args:
        data: Decoded JSON message from the client

    Returns:
        Parsed event model

    Raises:
        GameError: INVALID_REQUEST if the type is unknown or the payload is malformed
    """
    if not isinstance(data, dict):
        raise GameError(ErrorCode.INVALID_REQUEST, "Event must be a JSON object")

    event_type = data.get("type")
    if not event_type:
        raise GameError(ErrorCode.INVALID_REQUEST, "Missing event type")

    try:
        event_type = EventType(event_type)
    except ValueError:
        raise GameError(ErrorCode.INVALID_REQUEST, f"Invalid event type: {event_type}")

    try:
        return EVENT_MODELS[event_type].model_validate(data)
    except ValidationError as e:
        raise GameError(ErrorCode.INVALID_REQUEST, f"Invalid {event_type.value} payload: {e.errors()[0]['msg']}")


# Outbound event builders
def _event(event_type: OutboundEventType, **payload: Any) -> Dict[str, Any]:
    return {"type": event_type.value, **payload}


def create_connection_event(player_id: str) -> Dict[str, Any]:
    return _event(OutboundEventType.CONNECTION_ESTABLISHED, playerId=player_id)


def create_error_event(code: ErrorCode, message: str) -> Dict[str, Any]:
    return _event(OutboundEventType.ERROR, code=code.value, message=message)


def create_lobby_event(event_type: OutboundEventType, lobby: LobbyState) -> Dict[str, Any]:
    """lobby.created / lobby.joined / lobby.updated"""
    return _event(event_type, lobby=serialize_lobby(lobby))


def create_player_left_event(player_id: str) -> Dict[str, Any]:
    return _event(OutboundEventType.LOBBY_PLAYER_LEFT, playerId=player_id)


def create_chat_event(message: ChatMessage) -> Dict[str, Any]:
    return _event(OutboundEventType.LOBBY_CHAT_MESSAGE, message=serialize_chat_message(message))


def create_game_starting_event() -> Dict[str, Any]:
    return _event(OutboundEventType.LOBBY_GAME_STARTING)


def create_game_state_event(state: GameState) -> Dict[str, Any]:
    return _event(OutboundEventType.GAME_STATE, state=serialize_game_state(state))


def create_selection_changed_event(player_id: str, selected_card_ids: List[str]) -> Dict[str, Any]:
    return _event(
        OutboundEventType.GAME_SELECTION_CHANGED,
        playerId=player_id,
        selectedCardIds=list(selected_card_ids),
    )


def create_set_claimed_event(player_id: str, card_ids: List[str], points_awarded: int) -> Dict[str, Any]:
    return _event(
        OutboundEventType.GAME_SET_CLAIMED,
        playerId=player_id,
        cardIds=list(card_ids),
        pointsAwarded=points_awarded,
    )


def create_set_pending_event(player_id: str, card_ids: List[str]) -> Dict[str, Any]:
    return _event(OutboundEventType.GAME_SET_PENDING, playerId=player_id, cardIds=list(card_ids))


def create_cards_dealt_event(cards: List[CardInstance]) -> Dict[str, Any]:
    return _event(OutboundEventType.GAME_CARDS_DEALT, cards=serialize_cards(cards))


def create_timer_event(state: GameState) -> Dict[str, Any]:
    return _event(
        OutboundEventType.GAME_TIMER_UPDATE,
        turnTimeRemainingMs=state.turn_time_remaining_ms,
        gameTimeRemainingMs=state.game_time_remaining_ms,
    )


def create_game_ended_event(state: GameState) -> Dict[str, Any]:
    return _event(
        OutboundEventType.GAME_ENDED,
        reason=state.end_reason,
        finalState=serialize_game_state(state),
    )
