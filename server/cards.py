"""
Cards and deck building for Donkey King.

A standard 52-card deck without jokers. Every card built gets a fresh,
unique id so that identical suit/rank pairs from different builds can
never be confused once they are in play.

Rank order (used only to compare cards of the same suit):
    2 < 3 < 4 < 5 < 6 < 7 < 8 < 9 < 10 < J < Q < K < A
"""

import random
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Suit(str, Enum):
    """Card suits for a standard deck."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"


class Rank(str, Enum):
    """Card ranks with their display values."""

    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"


# Lowest to highest
RANK_ORDER: list[Rank] = [
    Rank.TWO, Rank.THREE, Rank.FOUR, Rank.FIVE, Rank.SIX, Rank.SEVEN,
    Rank.EIGHT, Rank.NINE, Rank.TEN, Rank.JACK, Rank.QUEEN, Rank.KING, Rank.ACE,
]
RANK_STRENGTH: dict[Rank, int] = {rank: idx for idx, rank in enumerate(RANK_ORDER)}

DECK_SIZE = len(Suit) * len(Rank)


def new_card_id(suit: Suit, rank: Rank) -> str:
    """Generate a unique card id like ``hearts-Q-3f9a1c2b7``."""
    return f"{suit.value}-{rank.value}-{uuid.uuid4().hex[:9]}"


@dataclass(frozen=True)
class Card:
    """
    A playing card.

    Cards are immutable once dealt. Ownership moves from hand to trick to
    the center pile, but the id stays the same.

    Attributes:
        suit: The card's suit.
        rank: The card's rank.
        id: Unique id for this physical card.
    """

    suit: Suit
    rank: Rank
    id: str

    @classmethod
    def make(cls, suit: Suit, rank: Rank, card_id: Optional[str] = None) -> "Card":
        """Build a card, generating an id when none is given."""
        return cls(suit=suit, rank=rank, id=card_id or new_card_id(suit, rank))

    def to_dict(self) -> dict:
        """Convert card to dictionary for JSON serialization."""
        return {
            "suit": self.suit.value,
            "rank": self.rank.value,
            "id": self.id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Card":
        return cls(suit=Suit(data["suit"]), rank=Rank(data["rank"]), id=data["id"])

    def __str__(self) -> str:
        return f"{self.rank.value}{self.suit.value[0].upper()}"


def build_deck() -> list[Card]:
    """Build all 52 suit/rank combinations exactly once, unshuffled."""
    return [Card.make(suit, rank) for suit in Suit for rank in Rank]


def shuffle_cards(cards: list[Card], rng: Optional[random.Random] = None) -> list[Card]:
    """
    Fisher-Yates shuffle in place.

    Walks i from the last index down to 1 and swaps with a uniformly
    random index in [0, i].

    Args:
        cards: Cards to permute.
        rng: Optional random source (for deterministic simulations/tests).

    Returns:
        The same list, permuted.
    """
    rng = rng or random
    for i in range(len(cards) - 1, 0, -1):
        j = rng.randint(0, i)
        cards[i], cards[j] = cards[j], cards[i]
    return cards


def build_shuffled_deck(rng: Optional[random.Random] = None) -> list[Card]:
    """
    Build a fresh 52-card deck and shuffle it.

    Safe to call any number of times; each call yields new card ids and an
    independent permutation.
    """
    return shuffle_cards(build_deck(), rng)
