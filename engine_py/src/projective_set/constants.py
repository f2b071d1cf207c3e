"""Game constants"""

DECK_SIZE = 63  # 2^6 - 1, every non-zero 6-bit value
BITS_PER_CARD = 6
ACTIVE_CARD_COUNT = 7
MIN_SET_SIZE = 3

# Game phases
PHASE_WAITING = 'waiting'
PHASE_PLAYING = 'playing'
PHASE_ENDED = 'ended'

# End reasons
END_DECK_EMPTY = 'deck_empty'
END_TIMER_EXPIRED = 'timer_expired'
END_PLAYER_QUIT = 'player_quit'
END_REASONS = (END_DECK_EMPTY, END_TIMER_EXPIRED, END_PLAYER_QUIT)

# Set found behaviour
SET_FOUND_IMMEDIATE = 'immediate'
SET_FOUND_CLICK = 'click'

# Scoring modes
SCORING_CARDS = 'cards'
SCORING_SETS = 'sets'

# Assigned in join order, cycling past the end
PLAYER_COLORS = [
    '#3B82F6',  # Blue
    '#EF4444',  # Red
    '#10B981',  # Green
    '#F59E0B',  # Amber
    '#8B5CF6',  # Purple
    '#EC4899',  # Pink
    '#06B6D4',  # Cyan
    '#F97316',  # Orange
]

# Uppercase alphanumerics without 0, O, I, 1, L
LOBBY_CODE_CHARS = 'ABCDEFGHJKMNPQRSTUVWXYZ23456789'

MAX_CHAT_MESSAGES = 100
MAX_CHAT_LENGTH = 500


def player_color(player_number: int) -> str:
    """Palette color for a 1-indexed player number."""
    return PLAYER_COLORS[(player_number - 1) % len(PLAYER_COLORS)]
