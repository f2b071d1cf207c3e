"""
Game state transitions.

Every function here is pure: it returns a new ``GameState`` (or the same
object when nothing changes) and never mutates the state it was given.
Expected domain conditions such as an unknown player or a stale card id
are no-ops rather than errors, so duplicate or late client messages can't
corrupt a game.
"""

import random
import time
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from .constants import (
    ACTIVE_CARD_COUNT, END_DECK_EMPTY, END_REASONS, END_TIMER_EXPIRED,
    PHASE_ENDED, PHASE_PLAYING, SCORING_CARDS, player_color,
)
from .deck import create_shuffled_deck, deal_cards, return_cards_to_deck
from .models import CardInstance, GameState, Player
from .rules import (
    DEFAULT_MULTIPLAYER_SETTINGS, DEFAULT_SINGLE_PLAYER_SETTINGS,
    GameSettings, MultiplayerSettings, SinglePlayerSettings, scoring_mode_of,
)
from .validate import has_valid_set, is_valid_set


def _now_ms() -> int:
    return int(time.time() * 1000)


def _timer_ms(timer) -> Optional[int]:
    return timer.duration_ms if timer is not None else None


def _new_game(players: List[Player], settings: GameSettings, seed: Optional[int]) -> GameState:
    deck = create_shuffled_deck(seed)
    active_cards = deal_cards(deck, ACTIVE_CARD_COUNT)
    return GameState(
        settings=settings,
        phase=PHASE_PLAYING,
        deck=deck,
        active_cards=active_cards,
        players=players,
        turn_time_remaining_ms=_timer_ms(settings.turn_timer),
        game_time_remaining_ms=_timer_ms(settings.game_timer),
        end_reason=None,
        started_at=_now_ms(),
    )


# ---------------------------------------------------------------------------
# Game creation
# ---------------------------------------------------------------------------

def create_single_player_game(
    player_id: str,
    player_name: str,
    settings: Optional[SinglePlayerSettings] = None,
    seed: Optional[int] = None
) -> GameState:
    """
    Create a single-player game, dealt and ready to play.

    Args:
        player_id: ID of the player
        player_name: Display name
        settings: Game settings (defaults if omitted)
        seed: Optional seed for a deterministic deck

    Returns:
        Initial game state in the ``playing`` phase
    """
    settings = settings or DEFAULT_SINGLE_PLAYER_SETTINGS
    player = Player(
        id=player_id,
        name=player_name,
        player_number=1,
        color=player_color(1),
        is_connected=True,
        is_ready=True,
    )
    return _new_game([player], settings, seed)


def create_multiplayer_game(
    players: Sequence[Player],
    settings: Optional[MultiplayerSettings] = None,
    seed: Optional[int] = None
) -> GameState:
    """
    Create a multiplayer game from lobby players.

    Identity (id, name, color, connection) is kept; game-scoped fields are
    reset and players are renumbered 1..n in list order.
    """
    settings = settings or DEFAULT_MULTIPLAYER_SETTINGS
    game_players = [
        replace(
            player,
            player_number=index + 1,
            claimed_cards=[],
            selected_card_ids=[],
            score=0,
        )
        for index, player in enumerate(players)
    ]
    return _new_game(game_players, settings, seed)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_player(state: GameState, player_id: str) -> Optional[Player]:
    for player in state.players:
        if player.id == player_id:
            return player
    return None


def _player_index(state: GameState, player_id: str) -> int:
    for index, player in enumerate(state.players):
        if player.id == player_id:
            return index
    return -1


def _active_card(state: GameState, card_id: str) -> Optional[CardInstance]:
    for card in state.active_cards:
        if card.id == card_id:
            return card
    return None


def _with_player(state: GameState, index: int, player: Player) -> GameState:
    players = list(state.players)
    players[index] = player
    return replace(state, players=players)


def total_card_count(state: GameState) -> int:
    """Cards in the deck, on the table and in every claimed pile."""
    claimed = sum(len(player.claimed_cards) for player in state.players)
    return len(state.deck) + len(state.active_cards) + claimed


# ---------------------------------------------------------------------------
# Player actions
# ---------------------------------------------------------------------------

def toggle_card_selection(state: GameState, player_id: str, card_id: str) -> GameState:
    """
    Select a table card for a player, or deselect it if already selected.

    Returns the same state if the player is unknown or the card is not on
    the table. Set validity is not checked here.
    """
    index = _player_index(state, player_id)
    if index == -1 or _active_card(state, card_id) is None:
        return state

    player = state.players[index]
    if card_id in player.selected_card_ids:
        selection = [cid for cid in player.selected_card_ids if cid != card_id]
    else:
        selection = player.selected_card_ids + [card_id]
    return _with_player(state, index, replace(player, selected_card_ids=selection))


def get_selected_card_values(state: GameState, player_id: str) -> List[int]:
    """Values of a player's selected table cards, in selection order."""
    player = get_player(state, player_id)
    if player is None:
        return []
    values = []
    for card_id in player.selected_card_ids:
        card = _active_card(state, card_id)
        if card is not None:
            values.append(card.value)
    return values


def is_player_selection_valid(state: GameState, player_id: str) -> bool:
    return is_valid_set(get_selected_card_values(state, player_id))


def claim_set(
    state: GameState,
    player_id: str,
    card_ids: Sequence[str],
    rng: Optional[random.Random] = None
) -> Tuple[GameState, int]:
    """
    Claim a set of table cards for a player.

    Fails closed, returning ``(state, 0)``, when the player is unknown, any
    card is not on the table, or the cards do not form a valid set.

    On success the cards move to the player's pile, the player scores,
    claimed ids drop out of everyone's selection, the table is refilled to
    7 from the deck (after returning regenerated cards in infinite mode) and
    the shared turn timer restarts.

    Returns:
        Tuple of (new state, points awarded)
    """
    index = _player_index(state, player_id)
    if index == -1:
        return state, 0

    card_ids = list(card_ids)
    if len(set(card_ids)) != len(card_ids):
        return state, 0

    claimed_cards = []
    for card_id in card_ids:
        card = _active_card(state, card_id)
        if card is None:
            return state, 0
        claimed_cards.append(card)

    if not is_valid_set([card.value for card in claimed_cards]):
        return state, 0

    points = len(claimed_cards) if scoring_mode_of(state.settings) == SCORING_CARDS else 1

    claimed_ids = set(card_ids)
    active_cards = [card for card in state.active_cards if card.id not in claimed_ids]
    deck = list(state.deck)
    if state.settings.infinite_deck:
        return_cards_to_deck(deck, claimed_cards, rng)
    active_cards.extend(deal_cards(deck, ACTIVE_CARD_COUNT - len(active_cards)))

    players = []
    for i, player in enumerate(state.players):
        if i == index:
            players.append(replace(
                player,
                claimed_cards=player.claimed_cards + claimed_cards,
                selected_card_ids=[],
                score=player.score + points,
            ))
        elif any(cid in claimed_ids for cid in player.selected_card_ids):
            players.append(replace(
                player,
                selected_card_ids=[cid for cid in player.selected_card_ids if cid not in claimed_ids],
            ))
        else:
            players.append(player)

    new_state = replace(
        state,
        deck=deck,
        active_cards=active_cards,
        players=players,
        turn_time_remaining_ms=_timer_ms(state.settings.turn_timer),
    )
    return new_state, points


def clear_selection(state: GameState, player_id: str) -> GameState:
    index = _player_index(state, player_id)
    if index == -1:
        return state
    return _with_player(state, index, replace(state.players[index], selected_card_ids=[]))


def set_player_connected(state: GameState, player_id: str, connected: bool) -> GameState:
    """Mark a player as (dis)connected; they stay in the game and keep their score."""
    index = _player_index(state, player_id)
    if index == -1 or state.players[index].is_connected == connected:
        return state
    return _with_player(state, index, replace(state.players[index], is_connected=connected))


# ---------------------------------------------------------------------------
# Game flow
# ---------------------------------------------------------------------------

def check_game_end(state: GameState) -> Optional[str]:
    """
    Decide whether the game is over.

    Returns:
        ``timer_expired`` if a configured timer ran out, ``deck_empty`` if
        the (finite) deck is exhausted and no set remains on the table,
        otherwise None
    """
    if state.game_time_remaining_ms is not None and state.game_time_remaining_ms <= 0:
        return END_TIMER_EXPIRED
    if state.turn_time_remaining_ms is not None and state.turn_time_remaining_ms <= 0:
        return END_TIMER_EXPIRED

    if not state.settings.infinite_deck and not state.deck:
        if not has_valid_set([card.value for card in state.active_cards]):
            return END_DECK_EMPTY

    return None


def end_game(state: GameState, reason: str) -> GameState:
    if reason not in END_REASONS:
        raise ValueError(f"Unknown end reason: {reason}")
    return replace(state, phase=PHASE_ENDED, end_reason=reason)


def update_timers(state: GameState, elapsed_ms: int) -> GameState:
    """Count both active timers down by ``elapsed_ms``, never below zero."""
    turn = state.turn_time_remaining_ms
    game = state.game_time_remaining_ms
    if turn is None and game is None:
        return state
    if turn is not None:
        turn = max(0, turn - elapsed_ms)
    if game is not None:
        game = max(0, game - elapsed_ms)
    return replace(state, turn_time_remaining_ms=turn, game_time_remaining_ms=game)


def get_winners(state: GameState) -> List[Player]:
    """Players tied for the top score once the game has ended."""
    if state.phase != PHASE_ENDED or not state.players:
        return []
    best = max(player.score for player in state.players)
    return [player for player in state.players if player.score == best]
