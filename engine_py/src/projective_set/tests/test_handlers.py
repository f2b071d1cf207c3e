"""
Tests for event routing between connections, lobbies and games.
"""

import asyncio

from projective_set.engine import get_player
from projective_set.rules import MultiplayerSettings, TimerConfig

ONE_SET_TABLE = [1, 2, 3, 4, 8, 16, 32]


async def _lobby_with_guest(router, channel):
    """Host on connection 'a', guest on 'b'. Returns (code, host_id, guest_id)."""
    host_id = await router.connect("a")
    guest_id = await router.connect("b")
    await router.handle("a", {"type": "lobby.create", "playerName": "Alice"})
    code = channel.last("a", "lobby.created")["lobby"]["code"]
    await router.handle("b", {"type": "lobby.join", "code": code.lower(), "playerName": "Bob"})
    channel.clear()
    return code, host_id, guest_id


async def _start_with_table(router, channel, make_state, settings=None, deck_values=(5, 6, 7)):
    code, host_id, guest_id = await _lobby_with_guest(router, channel)
    await router.handle("a", {"type": "lobby.startGame"})
    # swap in a table with a known layout
    state = make_state(ONE_SET_TABLE, deck_values=deck_values, player_ids=(host_id, guest_id), settings=settings)
    router.games.create_game(code, state)
    # the replaced instance took its timer loop with it
    router._start_timers(code, state)
    channel.clear()
    return code, host_id, guest_id


def test_connect_assigns_player_id(router, channel):
    player_id = asyncio.run(router.connect("a"))

    assert player_id.startswith("player_")
    assert channel.outbox["a"] == [{"type": "connection.established", "playerId": player_id}]


def test_create_and_join_lobby(router, channel):
    async def scenario():
        await router.connect("a")
        await router.connect("b")
        await router.handle("a", {"type": "lobby.create", "playerName": "Alice"})
        code = channel.last("a", "lobby.created")["lobby"]["code"]
        await router.handle("b", {"type": "lobby.join", "code": code, "playerName": "Bob"})
        return code

    code = asyncio.run(scenario())

    assert channel.types("b") == ["connection.established", "lobby.joined", "lobby.updated"]
    updated = channel.last("a", "lobby.updated")["lobby"]
    assert updated["code"] == code
    assert [p["name"] for p in updated["players"]] == ["Alice", "Bob"]
    assert updated["players"][1]["playerNumber"] == 2
    assert updated["settings"]["scoringMode"] == "cards"


def test_rejoin_is_idempotent(router, channel):
    async def scenario():
        code, _, _ = await _lobby_with_guest(router, channel)
        await router.handle("b", {"type": "lobby.rejoin", "code": code, "playerName": "Bob"})
        return code

    code = asyncio.run(scenario())

    assert channel.types("b") == ["lobby.updated"]
    assert len(router.lobbies.get_lobby(code).players) == 2


def test_errors_go_to_originator_only(router, channel):
    async def scenario():
        await _lobby_with_guest(router, channel)
        await router.handle("b", {"type": "lobby.startGame"})
        await router.handle("b", {"type": "lobby.fly"})
        await router.handle("b", {"type": "lobby.join", "code": "X"})
        await router.handle("b", ["not", "an", "object"])

    asyncio.run(scenario())

    codes = [m["code"] for m in channel.outbox["b"]]
    assert codes == ["NOT_HOST", "INVALID_REQUEST", "INVALID_REQUEST", "INVALID_REQUEST"]
    assert channel.outbox["a"] == []


def test_unexpected_failure_reports_internal(router, channel, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(router.lobbies, "create_lobby", explode)

    async def scenario():
        await router.connect("a")
        await router.handle("a", {"type": "lobby.create", "playerName": "Alice"})

    asyncio.run(scenario())
    error = channel.last("a", "error")
    assert error["code"] == "INTERNAL"


def test_settings_and_ready_broadcast(router, channel):
    async def scenario():
        code, _, _ = await _lobby_with_guest(router, channel)
        await router.handle("b", {"type": "lobby.updateSettings", "settings": {"scoringMode": "sets"}})
        await router.handle("a", {"type": "lobby.updateSettings", "settings": {"scoringMode": "sets"}})
        await router.handle("b", {"type": "lobby.toggleSettingsLock"})
        await router.handle("b", {"type": "lobby.toggleReady"})
        return code

    code = asyncio.run(scenario())

    assert channel.last("b", "error")["code"] == "NOT_HOST"
    assert [m["code"] for m in channel.outbox["b"] if m["type"] == "error"] == ["SETTINGS_LOCKED", "NOT_HOST"]
    lobby = channel.last("a", "lobby.updated")["lobby"]
    assert lobby["settings"]["scoringMode"] == "sets"
    assert lobby["players"][1]["isReady"]
    assert router.lobbies.get_lobby(code).settings.scoring_mode == "sets"


def test_start_game(router, channel):
    async def scenario():
        code, _, _ = await _lobby_with_guest(router, channel)
        await router.handle("a", {"type": "lobby.startGame"})
        await router.handle("a", {"type": "lobby.startGame"})
        return code

    code = asyncio.run(scenario())

    assert channel.types("b") == ["lobby.gameStarting", "game.state"]
    state = channel.last("b", "game.state")["state"]
    assert state["phase"] == "playing"
    assert len(state["activeCards"]) == 7
    assert len(state["deck"]) == 56
    assert [p["playerNumber"] for p in state["players"]] == [1, 2]
    assert channel.last("a", "error")["code"] == "LOBBY_GAME_IN_PROGRESS"
    assert router.games.has_game(code)


def test_join_during_game_is_refused(router, channel):
    async def scenario():
        code, _, _ = await _lobby_with_guest(router, channel)
        await router.handle("a", {"type": "lobby.startGame"})
        await router.connect("c")
        await router.handle("c", {"type": "lobby.join", "code": code, "playerName": "Carol"})

    asyncio.run(scenario())
    assert channel.last("c", "error")["code"] == "LOBBY_GAME_IN_PROGRESS"


def test_toggle_to_valid_set_claims_immediately(router, channel, make_state):
    async def scenario():
        code, host_id, _ = await _start_with_table(router, channel, make_state)
        for card_id in ("c1", "c2", "c3"):
            await router.handle("a", {"type": "game.toggleCard", "cardId": card_id})
        return code, host_id

    code, host_id = asyncio.run(scenario())

    assert channel.types("b") == [
        "game.selectionChanged", "game.selectionChanged", "game.selectionChanged",
        "game.setClaimed", "game.cardsDealt",
    ]
    claimed = channel.last("b", "game.setClaimed")
    assert claimed == {"type": "game.setClaimed", "playerId": host_id, "cardIds": ["c1", "c2", "c3"], "pointsAwarded": 3}
    assert [card["value"] for card in channel.last("b", "game.cardsDealt")["cards"]] == [7, 6, 5]
    assert get_player(router.games.get_game_state(code), host_id).score == 3


def test_click_mode_pending_and_confirm(router, channel, make_state):
    settings = MultiplayerSettings(set_found_behavior="click")

    async def scenario():
        code, host_id, guest_id = await _start_with_table(router, channel, make_state, settings=settings)
        for card_id in ("c1", "c2", "c3"):
            await router.handle("a", {"type": "game.toggleCard", "cardId": card_id})
        for card_id in ("c1", "c2", "c3"):
            await router.handle("b", {"type": "game.toggleCard", "cardId": card_id})
        await router.handle("b", {"type": "game.confirmSet"})
        await router.handle("a", {"type": "game.confirmSet"})
        return host_id

    host_id = asyncio.run(scenario())

    pending = [m for m in channel.outbox["a"] if m["type"] == "game.setPending"]
    assert pending == [{"type": "game.setPending", "playerId": host_id, "cardIds": ["c1", "c2", "c3"]}]
    assert channel.last("b", "error")["code"] == "NO_PENDING_SET"
    assert channel.last("a", "error") is None
    assert channel.last("b", "game.setClaimed")["playerId"] == host_id


def test_claim_ending_game_closes_room(router, channel, make_state):
    async def scenario():
        code, host_id, guest_id = await _start_with_table(router, channel, make_state, deck_values=())
        for card_id in ("c1", "c2", "c3"):
            await router.handle("b", {"type": "game.toggleCard", "cardId": card_id})
        return code, guest_id

    code, guest_id = asyncio.run(scenario())

    ended = channel.last("a", "game.ended")
    assert ended["reason"] == "deck_empty"
    assert ended["finalState"]["phase"] == "ended"
    scores = {p["id"]: p["score"] for p in ended["finalState"]["players"]}
    assert scores[guest_id] == 3
    assert not router.games.has_game(code)
    assert router.lobbies.get_lobby(code) is None
    assert all(session.room_code is None for session in router.sessions.values())


def test_claim_ending_timed_game_announces_once(router, channel, make_state):
    """The timer loop does not announce a game a claim already ended."""
    settings = MultiplayerSettings(game_timer=TimerConfig(duration_ms=5000))

    async def scenario():
        code, _, _ = await _start_with_table(router, channel, make_state, settings=settings, deck_values=())
        await asyncio.sleep(0.03)
        for card_id in ("c1", "c2", "c3"):
            await router.handle("b", {"type": "game.toggleCard", "cardId": card_id})
        await asyncio.sleep(0.05)
        return code

    code = asyncio.run(scenario())

    for connection_id in ("a", "b"):
        types = channel.types(connection_id)
        assert types.count("game.ended") == 1
        assert types[-1] == "game.ended"
    assert "game.timerUpdate" in channel.types("a")
    assert not router.games.has_game(code)


def test_confirm_racing_a_completing_selection(yielding_router, yielding_channel, make_state):
    """A selection completed while the slot holder confirms leaves no stale slot."""
    router, channel = yielding_router, yielding_channel
    settings = MultiplayerSettings(set_found_behavior="click")

    async def toggle(connection_id, card_ids):
        for card_id in card_ids:
            await router.handle(connection_id, {"type": "game.toggleCard", "cardId": card_id})

    async def scenario():
        code, _, guest_id = await _start_with_table(router, channel, make_state, settings=settings)
        await toggle("b", ["c1", "c2", "c3"])
        await toggle("a", ["c1", "c2"])

        await asyncio.gather(
            router.handle("a", {"type": "game.toggleCard", "cardId": "c3"}),
            router.handle("b", {"type": "game.confirmSet"}),
        )
        pending = router.games.get_pending_set(code)
        on_table = {card.id for card in router.games.get_game_state(code).active_cards}
        stale = pending is not None and not set(pending.card_ids) <= on_table
        claims = channel.types("a").count("game.setClaimed")

        channel.clear()
        # after the refill {4, 5, 6, 7} is the next set on the table
        await toggle("b", ["c4", "d5", "d6", "d7"])
        await router.handle("b", {"type": "game.confirmSet"})
        return guest_id, stale, claims

    guest_id, stale, claims = asyncio.run(scenario())

    assert not stale
    assert claims == 1
    assert channel.last("a", "game.setPending") == {
        "type": "game.setPending", "playerId": guest_id, "cardIds": ["c4", "d5", "d6", "d7"],
    }
    assert channel.last("b", "error") is None
    claimed = channel.last("a", "game.setClaimed")
    assert claimed["playerId"] == guest_id
    assert claimed["cardIds"] == ["c4", "d5", "d6", "d7"]


def test_clear_selection_broadcasts(router, channel, make_state):
    async def scenario():
        _, _, guest_id = await _start_with_table(router, channel, make_state)
        await router.handle("b", {"type": "game.toggleCard", "cardId": "c4"})
        await router.handle("b", {"type": "game.clearSelection"})
        return guest_id

    guest_id = asyncio.run(scenario())
    assert channel.outbox["a"][-1] == {"type": "game.selectionChanged", "playerId": guest_id, "selectedCardIds": []}


def test_game_events_outside_game(router, channel):
    async def scenario():
        await router.connect("a")
        await router.handle("a", {"type": "game.toggleCard", "cardId": "c1"})
        await router.handle("a", {"type": "lobby.chat", "content": "hi"})

    asyncio.run(scenario())
    assert [m["code"] for m in channel.outbox["a"] if m["type"] == "error"] == ["GAME_NOT_STARTED", "INVALID_REQUEST"]


def test_leave_reassigns_host(router, channel):
    async def scenario():
        code, host_id, guest_id = await _lobby_with_guest(router, channel)
        await router.handle("a", {"type": "lobby.leave"})
        return code, host_id, guest_id

    code, host_id, guest_id = asyncio.run(scenario())

    assert channel.types("b") == ["lobby.playerLeft", "lobby.updated"]
    assert channel.last("b", "lobby.playerLeft")["playerId"] == host_id
    lobby = channel.last("b", "lobby.updated")["lobby"]
    assert lobby["hostId"] == guest_id
    assert lobby["players"][0]["playerNumber"] == 1
    assert channel.outbox["a"] == []


def test_disconnect_runs_leave_path(router, channel, make_state):
    async def scenario():
        code, host_id, guest_id = await _start_with_table(router, channel, make_state)
        await router.handle("b", {"type": "game.toggleCard", "cardId": "c1"})
        await router.disconnect("b")
        return code, guest_id

    code, guest_id = asyncio.run(scenario())

    assert channel.last("a", "lobby.playerLeft")["playerId"] == guest_id
    player = get_player(router.games.get_game_state(code), guest_id)
    assert not player.is_connected
    assert player.selected_card_ids == []
    assert "b" not in router.sessions


def test_last_player_leaving_ends_game(router, channel):
    async def scenario():
        await router.connect("a")
        await router.handle("a", {"type": "lobby.create", "playerName": "Alice"})
        code = channel.last("a", "lobby.created")["lobby"]["code"]
        await router.handle("a", {"type": "lobby.startGame"})
        await router.disconnect("a")
        return code

    code = asyncio.run(scenario())
    assert router.lobbies.get_lobby(code) is None
    assert not router.games.has_game(code)


def test_chat_is_broadcast_and_truncated(router, channel):
    async def scenario():
        code, _, _ = await _lobby_with_guest(router, channel)
        await router.handle("b", {"type": "lobby.chat", "content": "x" * 600})
        return code

    code = asyncio.run(scenario())

    message = channel.last("a", "lobby.chatMessage")["message"]
    assert message["playerName"] == "Bob"
    assert len(message["content"]) == 500
    assert len(router.lobbies.get_lobby(code).chat_messages) == 1


def test_get_state(router, channel):
    async def scenario():
        await _lobby_with_guest(router, channel)
        await router.handle("b", {"type": "lobby.getState"})

    asyncio.run(scenario())
    assert channel.types("b") == ["lobby.updated"]
    assert channel.outbox["a"] == []


def test_solo_game(router, channel):
    async def scenario():
        player_id = await router.connect("a")
        await router.handle("a", {
            "type": "solo.start",
            "playerName": "Alice",
            "settings": {"binaryMode": True},
        })
        started = router.games.game_count()
        await router.handle("a", {"type": "solo.quit"})
        return player_id, started

    player_id, started = asyncio.run(scenario())

    assert started == 1
    state = channel.last("a", "game.state")["state"]
    assert state["settings"]["binaryMode"]
    assert state["players"][0]["id"] == player_id
    ended = channel.last("a", "game.ended")
    assert ended["reason"] == "player_quit"
    assert router.games.game_count() == 0
    assert router.lobbies.lobby_count() == 0


def test_solo_quit_without_game(router, channel):
    async def scenario():
        await router.connect("a")
        await router.handle("a", {"type": "solo.quit"})

    asyncio.run(scenario())
    assert channel.last("a", "error")["code"] == "INVALID_REQUEST"
