"""
Live game instances: one per room, keyed by lobby code.

The engine functions are pure; this module owns the mutable side. Each
room has a lock and every state transition for that room runs while
holding it, so concurrent-looking actions are applied one at a time in
arrival order. For claims that makes the outcome first-writer-wins: the
first claim to execute moves the cards, later claims on the same cards
find them gone and fail with NOT_A_VALID_SET.
"""

import asyncio
import inspect
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .constants import END_REASONS, PHASE_PLAYING, SET_FOUND_CLICK
from .engine import (
    check_game_end, claim_set, clear_selection, end_game, get_player,
    is_player_selection_valid, set_player_connected, toggle_card_selection,
    update_timers,
)
from .errors import ActionResult, ErrorCode
from .models import CardInstance, GameState, PendingSet

logger = logging.getLogger(__name__)

StateCallback = Callable[[GameState], Union[None, Awaitable[None]]]

DEFAULT_TICK_MS = 100


@dataclass
class ToggleOutcome:
    selected_card_ids: List[str]
    valid_set_formed: bool
    pending_reserved: bool = False


@dataclass
class ClaimOutcome:
    claimed_card_ids: List[str]
    points_awarded: int
    new_cards: List[CardInstance]
    game_ended: bool


@dataclass
class GameInstance:
    state: GameState
    pending_set: Optional[PendingSet] = None
    loop_task: Optional[asyncio.Task] = field(default=None, repr=False)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _no_game() -> ActionResult:
    return ActionResult.error(ErrorCode.GAME_NOT_STARTED, "Game not found")


class GameManager:
    """Holds the running games and serializes every action per room."""

    def __init__(self, tick_rate_ms: int = DEFAULT_TICK_MS):
        self.tick_rate_ms = tick_rate_ms
        self._games: Dict[str, GameInstance] = {}
        self._room_locks = defaultdict(threading.Lock)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def create_game(self, code: str, initial_state: GameState) -> None:
        """Register a game for a room, replacing any previous instance."""
        self.stop_game_loop(code)
        with self._room_locks[code]:
            self._games[code] = GameInstance(state=initial_state)
        logger.info(f"Game created for room {code} with {len(initial_state.players)} player(s)")

    def get_game_state(self, code: str) -> Optional[GameState]:
        game = self._games.get(code)
        return game.state if game else None

    def get_pending_set(self, code: str) -> Optional[PendingSet]:
        game = self._games.get(code)
        return game.pending_set if game else None

    def has_game(self, code: str) -> bool:
        return code in self._games

    def game_count(self) -> int:
        return len(self._games)

    # ------------------------------------------------------------------
    # Player actions
    # ------------------------------------------------------------------

    def toggle_card(self, code: str, player_id: str, card_id: str) -> ActionResult:
        """
        Toggle a card in a player's selection.

        Several players may hold overlapping valid selections at once; this
        reports whether the caller's own selection is now a valid set.
        Nothing is claimed here. In click-to-confirm mode a valid selection
        also takes the room's pending-set slot if it is free, in the same
        locked step.

        Returns:
            ActionResult with a ``ToggleOutcome``
        """
        with self._room_locks[code]:
            game = self._games.get(code)
            if game is None:
                return _no_game()
            state = game.state
            if state.phase != PHASE_PLAYING:
                return ActionResult.error(ErrorCode.GAME_NOT_STARTED, "Game is not active")
            if get_player(state, player_id) is None:
                return ActionResult.error(ErrorCode.UNAUTHORIZED, "Player is not in this game")
            if not any(card.id == card_id for card in state.active_cards):
                if any(card.id == card_id for p in state.players for card in p.claimed_cards):
                    return ActionResult.error(ErrorCode.CARD_ALREADY_CLAIMED, "Card has already been claimed")
                return ActionResult.error(ErrorCode.INVALID_CARD, "Card is not on the table")

            game.state = toggle_card_selection(state, player_id, card_id)
            selected = list(get_player(game.state, player_id).selected_card_ids)

            pending = game.pending_set
            if pending is not None and pending.player_id == player_id and list(pending.card_ids) != selected:
                game.pending_set = None
                logger.debug(f"Room {code}: pending set of {player_id} released by deselect")

            valid = is_player_selection_valid(game.state, player_id)
            reserved = False
            if valid and game.state.settings.set_found_behavior == SET_FOUND_CLICK:
                reserved = self._reserve(code, game, player_id, selected)

            return ActionResult.ok(ToggleOutcome(
                selected_card_ids=selected,
                valid_set_formed=valid,
                pending_reserved=reserved,
            ))

    def set_pending_set(self, code: str, player_id: str, card_ids: List[str]) -> bool:
        """
        Reserve the room's single pending-set slot (click-to-confirm mode).

        The first valid selection to get here wins the slot; later attempts
        are ignored while it is held. The ids must be the player's current
        selection, all on the table, and form a valid set.

        Returns:
            True if the slot was installed for this player
        """
        with self._room_locks[code]:
            game = self._games.get(code)
            if game is None:
                return False
            return self._reserve(code, game, player_id, list(card_ids))

    def _reserve(self, code: str, game: GameInstance, player_id: str, card_ids: List[str]) -> bool:
        state = game.state
        if game.pending_set is not None or state.phase != PHASE_PLAYING:
            return False
        player = get_player(state, player_id)
        if player is None or player.selected_card_ids != card_ids:
            return False
        on_table = {card.id for card in state.active_cards}
        if not all(card_id in on_table for card_id in card_ids):
            return False
        if not is_player_selection_valid(state, player_id):
            return False
        game.pending_set = PendingSet(player_id=player_id, card_ids=tuple(card_ids), timestamp=_now_ms())
        logger.debug(f"Room {code}: pending set reserved by {player_id}")
        return True

    def confirm_set(self, code: str, player_id: str) -> ActionResult:
        """
        Claim the caller's pending set.

        Only the slot owner may confirm. Once authorized the slot is always
        consumed, whether or not the claim then succeeds.
        """
        with self._room_locks[code]:
            game = self._games.get(code)
            if game is None:
                return _no_game()
            pending = game.pending_set
            if pending is None or pending.player_id != player_id:
                return ActionResult.error(ErrorCode.NO_PENDING_SET, "No pending set to confirm")
            game.pending_set = None
            return self._claim(code, game, player_id, list(pending.card_ids))

    def claim_set(self, code: str, player_id: str, card_ids: List[str]) -> ActionResult:
        """
        Claim cards for a player against the current table.

        Returns:
            ActionResult with a ``ClaimOutcome``, or NOT_A_VALID_SET if the
            cards are not all on the table or don't form a set
        """
        with self._room_locks[code]:
            game = self._games.get(code)
            if game is None:
                return _no_game()
            return self._claim(code, game, player_id, card_ids)

    def _claim(self, code: str, game: GameInstance, player_id: str, card_ids: List[str]) -> ActionResult:
        if game.state.phase != PHASE_PLAYING:
            return ActionResult.error(ErrorCode.GAME_NOT_STARTED, "Game is not active")

        before = {card.id for card in game.state.active_cards}
        new_state, points = claim_set(game.state, player_id, card_ids)
        if points == 0:
            logger.debug(f"Room {code}: claim by {player_id} rejected")
            return ActionResult.error(ErrorCode.NOT_A_VALID_SET, "Not a valid set")

        new_cards = [card for card in new_state.active_cards if card.id not in before]
        pending = game.pending_set
        if pending is not None and set(pending.card_ids) & set(card_ids):
            game.pending_set = None
            logger.debug(f"Room {code}: pending set of {pending.player_id} released by claim")
        reason = check_game_end(new_state)
        if reason:
            new_state = end_game(new_state, reason)
        game.state = new_state
        logger.info(f"Room {code}: {player_id} claimed {len(card_ids)} cards for {points} point(s)")

        if reason:
            logger.info(f"Room {code}: game ended ({reason})")
            self._cancel_loop(game)

        return ActionResult.ok(ClaimOutcome(
            claimed_card_ids=list(card_ids),
            points_awarded=points,
            new_cards=new_cards,
            game_ended=reason is not None,
        ))

    def clear_selection(self, code: str, player_id: str) -> ActionResult:
        """Clear a player's selection, releasing the pending slot if they hold it."""
        with self._room_locks[code]:
            game = self._games.get(code)
            if game is None:
                return _no_game()
            game.state = clear_selection(game.state, player_id)
            if game.pending_set is not None and game.pending_set.player_id == player_id:
                game.pending_set = None
        return ActionResult.ok()

    def player_left(self, code: str, player_id: str) -> ActionResult:
        """Cleanup for a player who left or disconnected mid-game."""
        with self._room_locks[code]:
            game = self._games.get(code)
            if game is None:
                return _no_game()
            state = clear_selection(game.state, player_id)
            game.state = set_player_connected(state, player_id, False)
            if game.pending_set is not None and game.pending_set.player_id == player_id:
                game.pending_set = None
        return ActionResult.ok(game.state)

    def finish_game(self, code: str, reason: str) -> ActionResult:
        """End a running game for an external reason, e.g. a solo player quitting."""
        if reason not in END_REASONS:
            return ActionResult.error(ErrorCode.INVALID_REQUEST, f"Unknown end reason: {reason}")
        with self._room_locks[code]:
            game = self._games.get(code)
            if game is None:
                return _no_game()
            if game.state.phase == PHASE_PLAYING:
                game.state = end_game(game.state, reason)
                game.pending_set = None
            self._cancel_loop(game)
            state = game.state
        logger.info(f"Room {code}: game finished ({state.end_reason})")
        return ActionResult.ok(state)

    # ------------------------------------------------------------------
    # Timer loop
    # ------------------------------------------------------------------

    def start_game_loop(
        self,
        code: str,
        on_tick: StateCallback,
        on_end: StateCallback,
        interval_ms: Optional[int] = None
    ) -> bool:
        """
        Start the periodic timer task for a room. Must be called from a
        running event loop.

        Each tick measures the real time since the previous one, counts the
        timers down and checks for the end of the game. ``on_end`` runs
        exactly once, after the loop has been detached; otherwise ``on_tick``
        gets the refreshed state. Callbacks may be plain or async functions.

        Returns:
            False if there is no game or a loop is already running
        """
        game = self._games.get(code)
        if game is None or game.loop_task is not None:
            return False
        interval = (interval_ms or self.tick_rate_ms) / 1000
        game.loop_task = asyncio.get_running_loop().create_task(
            self._run_loop(code, game, on_tick, on_end, interval)
        )
        logger.debug(f"Room {code}: game loop started ({interval * 1000:.0f}ms)")
        return True

    async def _run_loop(
        self,
        code: str,
        game: GameInstance,
        on_tick: StateCallback,
        on_end: StateCallback,
        interval: float
    ) -> None:
        last_tick = time.monotonic()
        while True:
            await asyncio.sleep(interval)

            with self._room_locks[code]:
                if self._games.get(code) is not game or game.state.phase != PHASE_PLAYING:
                    break
                now = time.monotonic()
                elapsed_ms = int((now - last_tick) * 1000)
                # keep the sub-millisecond remainder for the next tick
                last_tick += elapsed_ms / 1000
                game.state = update_timers(game.state, elapsed_ms)
                reason = check_game_end(game.state)
                if reason:
                    game.state = end_game(game.state, reason)
                    game.pending_set = None
                state = game.state

            if reason:
                game.loop_task = None
                logger.info(f"Room {code}: game ended ({reason})")
                await self._invoke(code, on_end, state)
                return
            await self._invoke(code, on_tick, state)

        if game.loop_task is asyncio.current_task():
            game.loop_task = None

    @staticmethod
    async def _invoke(code: str, callback: StateCallback, state: GameState) -> Any:
        try:
            result = callback(state)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Room {code}: game loop callback failed")

    def stop_game_loop(self, code: str) -> None:
        game = self._games.get(code)
        if game is not None:
            self._cancel_loop(game)

    @staticmethod
    def _cancel_loop(game: GameInstance) -> None:
        task = game.loop_task
        game.loop_task = None
        if task is not None and task is not _current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def end_game(self, code: str) -> None:
        """Stop the loop and forget the room's game entirely."""
        self.stop_game_loop(code)
        with self._room_locks[code]:
            removed = self._games.pop(code, None)
        self._room_locks.pop(code, None)
        if removed is not None:
            logger.info(f"Game for room {code} removed")

    def shutdown(self) -> None:
        """Stop every loop and drop all games."""
        for code in list(self._games):
            self.end_game(code)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
