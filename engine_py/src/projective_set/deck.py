"""
Deck creation, shuffling and dealing utilities.
"""

import random
from typing import List, MutableSequence, Optional, TypeVar

from .constants import BITS_PER_CARD, DECK_SIZE
from .ids import generate_card_id
from .models import CardInstance

T = TypeVar('T')


def create_deck() -> List[CardInstance]:
    """Create an unshuffled deck: one card per value 1..63, ascending."""
    return [CardInstance(id=generate_card_id(), value=value) for value in range(1, DECK_SIZE + 1)]


def shuffle(cards: MutableSequence[T], rng: Optional[random.Random] = None) -> MutableSequence[T]:
    """
    Shuffle in place with Fisher-Yates.

    Args:
        cards: Sequence to permute (modified in place)
        rng: Optional random source for deterministic shuffling

    Returns:
        The same sequence, shuffled
    """
    rng = rng or random
    for i in range(len(cards) - 1, 0, -1):
        j = rng.randint(0, i)
        cards[i], cards[j] = cards[j], cards[i]
    return cards


def create_shuffled_deck(seed: Optional[int] = None) -> List[CardInstance]:
    """Create a deck and shuffle it, deterministically if seed is provided."""
    rng = random.Random(seed) if seed is not None else None
    deck = create_deck()
    shuffle(deck, rng)
    return deck


def deal_cards(deck: List[CardInstance], count: int) -> List[CardInstance]:
    """
    Deal up to ``count`` cards from the top (end) of the deck.

    The deck is modified in place. Deals whatever is left if the deck runs short.
    """
    dealt = []
    while len(dealt) < count and deck:
        dealt.append(deck.pop())
    return dealt


def return_cards_to_deck(
    deck: List[CardInstance],
    cards: List[CardInstance],
    rng: Optional[random.Random] = None
) -> List[CardInstance]:
    """
    Put claimed cards back into the deck for infinite play.

    Returned cards get fresh ids so they never collide with the ids sitting
    in players' claimed piles. The whole deck is reshuffled.
    """
    deck.extend(CardInstance(id=generate_card_id(), value=card.value) for card in cards)
    shuffle(deck, rng)
    return deck


def card_dots(value: int) -> List[bool]:
    """Dot presence per position; index i is bit i."""
    return [bool(value & (1 << i)) for i in range(BITS_PER_CARD)]


def card_binary(value: int) -> str:
    """Six-character binary string, most significant bit first."""
    return format(value, f'0{BITS_PER_CARD}b')
