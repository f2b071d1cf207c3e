# engine_py/src/projective_set/errors.py

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Error codes reported to clients."""
    # Lobby errors
    LOBBY_NOT_FOUND = "LOBBY_NOT_FOUND"
    LOBBY_FULL = "LOBBY_FULL"
    LOBBY_GAME_IN_PROGRESS = "LOBBY_GAME_IN_PROGRESS"
    NOT_HOST = "NOT_HOST"
    SETTINGS_LOCKED = "SETTINGS_LOCKED"
    PLAYERS_NOT_READY = "PLAYERS_NOT_READY"  # reserved, start is not gated on readiness

    # Game errors
    GAME_NOT_STARTED = "GAME_NOT_STARTED"
    INVALID_CARD = "INVALID_CARD"
    CARD_ALREADY_CLAIMED = "CARD_ALREADY_CLAIMED"
    NOT_A_VALID_SET = "NOT_A_VALID_SET"
    NO_PENDING_SET = "NO_PENDING_SET"

    # General errors
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL = "INTERNAL"


class GameError(Exception):
    """Raised for requests that cannot be handled at all (e.g. malformed messages)."""
    def __init__(self, code: ErrorCode, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code.value}] {message}")


class ActionResult:
    """Outcome of a manager operation: a payload or an error, never both."""

    def __init__(
        self,
        success: bool,
        data: Any = None,
        error_code: Optional[ErrorCode] = None,
        error_message: Optional[str] = None
    ):
        self.success = success
        self.data = data
        self.error_code = error_code
        self.error_message = error_message

    @classmethod
    def ok(cls, data: Any = None) -> 'ActionResult':
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def error(cls, error_code: ErrorCode, error_message: str) -> 'ActionResult':
        """Create an error result."""
        return cls(success=False, error_code=error_code, error_message=error_message)

    def __repr__(self) -> str:
        if self.success:
            return f"ActionResult.ok({self.data!r})"
        return f"ActionResult.error({self.error_code.value}, {self.error_message!r})"
