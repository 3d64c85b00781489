"""
Rules engine for Donkey King.

Pure functions with no I/O: card ordering, play legality, trick
resolution (including "bent cards"), turn order, finish positions and the
game-over/donkey checks. Rule variants are expressed as RuleSet values so
the session controller never hardcodes party size or hand size.

Donkey King Rules Summary:
    - 4 players, 13 cards each, seat 0 leads the first trick
    - Players must follow the lead suit when they can
    - Highest card of the lead suit wins the trick and collects it
    - If all cards in a trick share a rank ("bent cards") nobody collects
    - Players finish in the order their hands empty
    - The last player still holding cards is the donkey
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence

from cards import RANK_STRENGTH, Card, Rank, Suit
from errors import UnknownRuleSet

if TYPE_CHECKING:
    from room import Player


@dataclass(frozen=True)
class PlayedCard:
    """A card in the current trick, tagged with who played it."""

    card: Card
    player_id: str

    def to_dict(self) -> dict:
        return {**self.card.to_dict(), "playedBy": self.player_id}


@dataclass(frozen=True)
class RuleSet:
    """
    A rules configuration selectable per room.

    Attributes:
        key: Identifier sent by clients (e.g. "standard").
        title: Display name.
        min_players: Fewest players allowed to start.
        max_players: Room capacity.
        cards_per_player: Cards dealt per seat (None = split the deck evenly).
        follow_suit: Whether players must follow the lead suit when able.
        trick_taking: False for the legacy pass-and-set variant.
        description: Short explanation for the lobby.
    """

    key: str
    title: str
    min_players: int
    max_players: int
    cards_per_player: Optional[int]
    follow_suit: bool = True
    trick_taking: bool = True
    description: str = ""

    def hand_size(self, num_players: int) -> int:
        if self.cards_per_player is not None:
            return self.cards_per_player
        return (len(Suit) * len(Rank)) // num_players

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "title": self.title,
            "minPlayers": self.min_players,
            "maxPlayers": self.max_players,
            "cardsPerPlayer": self.cards_per_player,
            "followSuit": self.follow_suit,
            "trickTaking": self.trick_taking,
            "description": self.description,
        }


STANDARD_RULES = RuleSet(
    key="standard",
    title="Donkey King",
    min_players=4,
    max_players=4,
    cards_per_player=13,
    description="Four players, thirteen cards each, follow suit if you can.",
)

SPEED_RULES = RuleSet(
    key="speed",
    title="Speed Donkey",
    min_players=4,
    max_players=4,
    cards_per_player=7,
    description="Seven cards each for a shorter game.",
)

FREE_PLAY_RULES = RuleSet(
    key="free_play",
    title="Free Play",
    min_players=4,
    max_players=4,
    cards_per_player=13,
    follow_suit=False,
    description="Any card may be played at any time.",
)

PASS_AND_SET_RULES = RuleSet(
    key="pass_and_set",
    title="Pass and Set (classic)",
    min_players=2,
    max_players=6,
    cards_per_player=None,
    trick_taking=False,
    description="Pass one card left per turn and lay down sets of four.",
)

RULE_SETS: dict[str, RuleSet] = {
    rules.key: rules
    for rules in (STANDARD_RULES, SPEED_RULES, FREE_PLAY_RULES, PASS_AND_SET_RULES)
}


def get_rule_set(key: str) -> RuleSet:
    """Look up a rule set by key, raising UnknownRuleSet if missing."""
    try:
        return RULE_SETS[key]
    except KeyError:
        raise UnknownRuleSet(f"Unknown rule set: {key}") from None


# -----------------------------------------------------------------------------
# Card ordering and play legality
# -----------------------------------------------------------------------------

def compare_rank(a: Card, b: Card) -> int:
    """Negative if a ranks below b, zero if equal, positive if above."""
    return RANK_STRENGTH[a.rank] - RANK_STRENGTH[b.rank]


def is_valid_play(
    card: Card,
    current_trick: Sequence[PlayedCard],
    hand_before_play: Sequence[Card],
    lead_suit: Optional[Suit],
    follow_suit: bool = True,
) -> bool:
    """
    Check whether a card may be played into the current trick.

    Any card may lead. After that the card must match the lead suit,
    unless the hand holds no card of the lead suit.
    """
    if not current_trick or lead_suit is None or not follow_suit:
        return True
    if card.suit == lead_suit:
        return True
    return not any(c.suit == lead_suit for c in hand_before_play)


# -----------------------------------------------------------------------------
# Trick resolution
# -----------------------------------------------------------------------------

def is_bent(trick: Sequence[PlayedCard]) -> bool:
    """All cards in the trick share one rank."""
    return len(trick) > 1 and len({played.card.rank for played in trick}) == 1


def resolve_trick(trick: Sequence[PlayedCard], lead_suit: Suit) -> Optional[PlayedCard]:
    """
    Determine the winning card of a completed trick.

    Returns:
        The highest card of the lead suit, or None when the trick is void
        (bent cards).

    Raises:
        ValueError: If no card matches the lead suit. The lead card sets the
            lead suit, so this means the trick state is corrupt.
    """
    if not trick:
        raise ValueError("cannot resolve an empty trick")
    if is_bent(trick):
        return None

    following = [played for played in trick if played.card.suit == lead_suit]
    if not following:
        raise ValueError(f"no card in trick matches lead suit {lead_suit.value}")

    winner = following[0]
    for played in following[1:]:
        if compare_rank(played.card, winner.card) > 0:
            winner = played
    return winner


def should_collect(trick: Sequence[PlayedCard], lead_suit: Optional[Suit] = None) -> bool:
    """Winner collects unless the trick is void."""
    return not is_bent(trick)


# -----------------------------------------------------------------------------
# Turn order and finishing
# -----------------------------------------------------------------------------

def next_player_index(players: Sequence["Player"], current_index: int) -> int:
    """
    Next seat clockwise, skipping finished players.

    Returns current_index unchanged when every other player has finished.
    """
    count = len(players)
    for step in range(1, count):
        candidate = (current_index + step) % count
        if not players[candidate].is_finished:
            return candidate
    return current_index


def is_game_over(players: Sequence["Player"]) -> bool:
    """The game ends once at most one player still holds cards."""
    return sum(1 for p in players if p.card_count > 0) <= 1


def assign_finish_position(players: Sequence["Player"], finished_player_id: str) -> int:
    """
    Give a player the next finish position.

    Positions are handed out in strict finishing order and never reused;
    a player who already has one keeps it.
    """
    for player in players:
        if player.id == finished_player_id:
            if player.finish_position is not None:
                return player.finish_position
            position = 1 + sum(1 for p in players if p.finish_position is not None)
            player.is_finished = True
            player.finish_position = position
            return position
    raise KeyError(finished_player_id)


def find_winner(players: Sequence["Player"]) -> Optional[str]:
    """The player who finished first."""
    for player in players:
        if player.finish_position == 1:
            return player.id
    return None


def find_donkey(players: Sequence["Player"]) -> Optional[str]:
    """The sole player still holding cards, if the game is over."""
    holding = [p for p in players if p.card_count > 0]
    if len(holding) == 1:
        return holding[0].id
    return None
