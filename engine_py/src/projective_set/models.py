"""Game models and data structures"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .constants import PHASE_WAITING
from .rules import GameSettings, MultiplayerSettings


@dataclass(frozen=True)
class CardInstance:
    id: str
    value: int  # 1..63, bit i = dot at position i + 1


@dataclass
class Player:
    id: str
    name: str
    player_number: int  # 1-indexed join order
    color: str
    claimed_cards: List[CardInstance] = field(default_factory=list)
    selected_card_ids: List[str] = field(default_factory=list)  # selection order
    score: int = 0
    is_connected: bool = True
    is_ready: bool = False


@dataclass
class GameState:
    settings: GameSettings  # frozen at game start
    phase: str = PHASE_WAITING  # waiting|playing|ended
    deck: List[CardInstance] = field(default_factory=list)  # end of list is dealt next
    active_cards: List[CardInstance] = field(default_factory=list)
    players: List[Player] = field(default_factory=list)
    turn_time_remaining_ms: Optional[int] = None
    game_time_remaining_ms: Optional[int] = None
    end_reason: Optional[str] = None  # deck_empty|timer_expired|player_quit
    started_at: Optional[int] = None  # epoch milliseconds


@dataclass
class ChatMessage:
    id: str
    player_id: str
    player_name: str
    content: str
    timestamp: int  # epoch milliseconds


@dataclass
class LobbyState:
    code: str
    host_id: str
    players: List[Player] = field(default_factory=list)
    settings: MultiplayerSettings = field(default_factory=MultiplayerSettings)
    settings_unlocked: bool = False
    chat_messages: List[ChatMessage] = field(default_factory=list)


@dataclass(frozen=True)
class PendingSet:
    player_id: str
    card_ids: Tuple[str, ...]
    timestamp: int  # epoch milliseconds
