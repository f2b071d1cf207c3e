"""
Game settings configuration and validation.
"""

from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import SCORING_CARDS, SET_FOUND_IMMEDIATE


class TimerConfig(BaseModel):
    """A countdown duration. A disabled timer is represented by ``None``."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    duration_ms: int = Field(..., gt=0, description="Duration in milliseconds")


class SinglePlayerSettings(BaseModel):
    """Settings for a single-player game."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    colors_enabled: bool = Field(
        default=True,
        description="Show colored dots (false = grey dots)"
    )
    binary_mode: bool = Field(
        default=False,
        description="Show binary representation instead of dots"
    )
    turn_timer: Optional[TimerConfig] = Field(
        default=None,
        description="Per-set timer, reset after every claimed set"
    )
    game_timer: Optional[TimerConfig] = Field(
        default=None,
        description="Total game timer"
    )
    set_found_behavior: Literal['immediate', 'click'] = Field(
        default=SET_FOUND_IMMEDIATE,
        description="Claim instantly or wait for a confirmation click"
    )
    infinite_deck: bool = Field(
        default=False,
        description="Shuffle claimed cards back into the deck"
    )


class MultiplayerSettings(SinglePlayerSettings):
    """Settings for a multiplayer game."""

    scoring_mode: Literal['cards', 'sets'] = Field(
        default=SCORING_CARDS,
        description="'cards' scores the set size, 'sets' scores 1 per set"
    )


GameSettings = Union[SinglePlayerSettings, MultiplayerSettings]

# Default configuration instances
DEFAULT_SINGLE_PLAYER_SETTINGS = SinglePlayerSettings()
DEFAULT_MULTIPLAYER_SETTINGS = MultiplayerSettings()


def scoring_mode_of(settings: GameSettings) -> str:
    """Single-player settings have no scoring mode and score by cards."""
    return getattr(settings, 'scoring_mode', SCORING_CARDS)


def merge_settings(current: MultiplayerSettings, overrides: Dict[str, Any]) -> MultiplayerSettings:
    """
    Shallow-merge ``overrides`` into ``current`` and validate the result.

    Keys may use field names (``turn_timer``) or wire aliases (``turnTimer``).

    Raises:
        pydantic.ValidationError: If a merged value is invalid
    """
    config_dict = current.model_dump()
    for key, value in overrides.items():
        field_name = _field_name(key)
        if field_name is not None:
            config_dict[field_name] = value
    return MultiplayerSettings(**config_dict)


def _field_name(key: str) -> Optional[str]:
    fields = MultiplayerSettings.model_fields
    if key in fields:
        return key
    for name, info in fields.items():
        if info.alias == key:
            return name
    return None
