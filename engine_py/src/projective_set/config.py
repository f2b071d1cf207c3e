"""
Server configuration with environment variable support.

Defaults are suitable for local development.
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    """Process-wide server settings."""

    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(default=3001, ge=1, le=65535, description="Port the server listens on")
    client_url: str = Field(
        default="http://localhost:5173",
        description="Allowed client origin (CORS)"
    )
    tick_rate_ms: int = Field(
        default=100,
        ge=10,
        le=5000,
        description="Game loop tick interval in milliseconds"
    )
    max_players_per_lobby: int = Field(default=8, ge=1, le=64, description="Maximum players per lobby")
    lobby_code_length: int = Field(default=6, ge=4, le=12, description="Lobby code length")
    log_level: str = Field(default="info", description="Logging level name")
    reload: bool = Field(default=False, description="Auto-reload on code changes (development)")


# Environment variable -> config field
ENV_VARS = {
    "HOST": "host",
    "PORT": "port",
    "CLIENT_URL": "client_url",
    "TICK_RATE_MS": "tick_rate_ms",
    "MAX_PLAYERS": "max_players_per_lobby",
    "LOBBY_CODE_LENGTH": "lobby_code_length",
    "LOG_LEVEL": "log_level",
    "RELOAD": "reload",
}


def load_config(environ: Optional[Mapping[str, str]] = None) -> ServerConfig:
    """
    Build a ServerConfig from environment variables.

    Raises:
        pydantic.ValidationError: If a variable holds an invalid value
    """
    environ = os.environ if environ is None else environ
    overrides = {field: environ[var] for var, field in ENV_VARS.items() if environ.get(var)}
    return ServerConfig(**overrides)
