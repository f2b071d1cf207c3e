"""
FastAPI WebSocket server for Projective Set.
"""

import logging
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Set

import orjson
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from ..config import ServerConfig, load_config
from ..errors import ErrorCode
from ..game_manager import GameManager
from ..lobby import LobbyManager
from .events import create_error_event
from .handlers import EventChannel, EventRouter

logger = logging.getLogger(__name__)


class ConnectionManager(EventChannel):
    """Manages WebSocket connections and room broadcasting."""

    def __init__(self):
        self.connections: Dict[str, WebSocket] = {}
        self.rooms: Dict[str, Set[str]] = defaultdict(set)
        self.connection_rooms: Dict[str, Set[str]] = defaultdict(set)

    def connect(self, websocket: WebSocket) -> str:
        """Track an accepted WebSocket and return its connection id."""
        connection_id = uuid.uuid4().hex
        self.connections[connection_id] = websocket
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        """Forget a connection and all its room subscriptions."""
        self.connections.pop(connection_id, None)
        for room in self.connection_rooms.pop(connection_id, set()):
            members = self.rooms.get(room)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self.rooms[room]

    def join_room(self, connection_id: str, room: str) -> None:
        self.rooms[room].add(connection_id)
        self.connection_rooms[connection_id].add(room)

    def leave_room(self, connection_id: str, room: str) -> None:
        members = self.rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self.rooms[room]
        rooms = self.connection_rooms.get(connection_id)
        if rooms is not None:
            rooms.discard(room)

    def close_room(self, room: str) -> None:
        for connection_id in self.rooms.pop(room, set()):
            rooms = self.connection_rooms.get(connection_id)
            if rooms is not None:
                rooms.discard(room)

    def connection_count(self) -> int:
        return len(self.connections)

    async def send(self, connection_id: str, message: Dict[str, Any]) -> None:
        """Send an event to a single connection."""
        websocket = self.connections.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.send_text(orjson.dumps(message).decode())
        except Exception as e:
            logger.error(f"Error sending to {connection_id}: {e}")
            # Remove dead connection
            self.disconnect(connection_id)

    async def broadcast(self, room: str, message: Dict[str, Any]) -> None:
        """Broadcast an event to all connections in a room."""
        members = list(self.rooms.get(room, ()))
        if not members:
            return
        payload = orjson.dumps(message).decode()
        for connection_id in members:
            websocket = self.connections.get(connection_id)
            if websocket is None:
                continue
            try:
                await websocket.send_text(payload)
            except Exception as e:
                logger.error(f"Error broadcasting to {connection_id}: {e}")
                self.disconnect(connection_id)


def create_app(config: Optional[ServerConfig] = None) -> FastAPI:
    """
    Build the application with its own lobby, game and connection registries.

    Args:
        config: Server settings; read from the environment when omitted

    Returns:
        Configured FastAPI app
    """
    config = config or load_config()
    lobbies = LobbyManager(
        max_players=config.max_players_per_lobby,
        code_length=config.lobby_code_length,
    )
    games = GameManager(tick_rate_ms=config.tick_rate_ms)
    connections = ConnectionManager()
    router = EventRouter(lobbies, games, connections)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        games.shutdown()
        logger.info("Game loops stopped")

    app = FastAPI(title="Projective Set Game Server", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.lobbies = lobbies
    app.state.games = games
    app.state.connections = connections
    app.state.router = router

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "lobbies": lobbies.lobby_count(),
            "games": games.game_count(),
            "connections": connections.connection_count(),
        }

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Main WebSocket endpoint."""
        await websocket.accept()
        connection_id = connections.connect(websocket)
        logger.info(f"WebSocket connection accepted ({connection_id})")

        try:
            await router.connect(connection_id)
            while True:
                raw_data = await websocket.receive_text()
                try:
                    data = orjson.loads(raw_data)
                except orjson.JSONDecodeError:
                    await connections.send(
                        connection_id, create_error_event(ErrorCode.INVALID_REQUEST, "Malformed JSON")
                    )
                    continue
                await router.handle(connection_id, data)

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected ({connection_id})")
        except Exception as e:
            logger.error(f"WebSocket error ({connection_id}): {e}")
        finally:
            await router.disconnect(connection_id)
            connections.disconnect(connection_id)

    return app
