"""
Rule variants behind the GameSession controller.

Each variant owns dealing and the actions specific to its rules. The
session performs the checks every variant shares (game in progress,
player seated) before delegating here.

    TrickTakingVariant  - the Donkey King trick game (standard/speed/free_play)
    PassAndSetVariant   - the older pass-one-left / lay-down-sets game
"""

import logging
import random
from typing import TYPE_CHECKING, Optional

from cards import Card, build_shuffled_deck
from errors import (
    InvalidPassSize,
    InvalidSet,
    InvalidSetSize,
    MustFollowSuit,
    NotYourTurn,
    UnsupportedAction,
)
from rules import (
    PlayedCard,
    RuleSet,
    assign_finish_position,
    is_valid_play,
    next_player_index,
    resolve_trick,
)

if TYPE_CHECKING:
    from game import GameSession
    from room import Player

logger = logging.getLogger(__name__)


class GameVariant:
    """
    Base class for rule variants.

    Actions a variant does not support raise UnsupportedAction.
    """

    def __init__(self, rules: RuleSet):
        self.rules = rules

    def deal(self, session: "GameSession", rng: Optional[random.Random] = None) -> None:
        """
        Shuffle one deck and deal hand_size cards to each seat in seat order.

        Undealt cards (speed rules) are simply discarded.
        """
        room = session.room
        deck = build_shuffled_deck(rng)
        hand_size = self.rules.hand_size(len(room.players))
        for seat, player in enumerate(room.players):
            hand = deck[seat * hand_size:(seat + 1) * hand_size]
            session.hands.set_hand(room.id, player.id, hand)
            player.card_count = len(hand)

    def play_card(self, session: "GameSession", player: "Player", card_id: str) -> None:
        raise UnsupportedAction()

    def pass_cards(self, session: "GameSession", player: "Player", card_ids: list[str]) -> None:
        raise UnsupportedAction()

    def make_set(self, session: "GameSession", player: "Player", card_ids: list[str]) -> None:
        raise UnsupportedAction()

    def can_pass(self, session: "GameSession", player_id: str) -> bool:
        return False


class TrickTakingVariant(GameVariant):
    """Donkey King: follow suit, highest lead-suit card collects, bent tricks are void."""

    def play_card(self, session: "GameSession", player: "Player", card_id: str) -> None:
        room = session.room
        if not player.is_current_turn:
            raise NotYourTurn()

        hand = session.hands.get_hand(room.id, player.id)
        card = session.hands.find_card(room.id, player.id, card_id)
        if not is_valid_play(card, room.current_trick, hand, room.trick_lead_suit, self.rules.follow_suit):
            raise MustFollowSuit()

        # Validated; everything below mutates
        if not room.current_trick:
            room.trick_lead_suit = card.suit
            room.trick_start_player = room.current_player_index

        session.hands.remove_card(room.id, player.id, card.id)
        player.card_count -= 1
        room.current_trick.append(PlayedCard(card=card, player_id=player.id))

        if player.card_count == 0:
            position = assign_finish_position(room.players, player.id)
            logger.info("%s finished in position %d", player.display_name, position,
                        extra={"room_code": room.id})

        if session.check_game_over():
            return

        if self._trick_complete(session):
            self._resolve(session)
            session.check_game_over()
        else:
            room.set_turn(next_player_index(room.players, room.current_player_index))

    def _trick_complete(self, session: "GameSession") -> bool:
        """One card from every seat that was still playing when the trick started."""
        room = session.room
        played_by = {played.player_id for played in room.current_trick}
        active = sum(1 for p in room.players if not p.is_finished or p.id in played_by)
        return len(room.current_trick) >= active

    def _resolve(self, session: "GameSession") -> None:
        room = session.room
        trick = list(room.current_trick)
        winning = resolve_trick(trick, room.trick_lead_suit)

        room.center_cards.extend(played.card for played in trick)
        room.current_trick = []
        room.trick_lead_suit = None

        if winning is None:
            room.last_trick = {"cards": [p.to_dict() for p in trick], "winnerId": None, "void": True}
            logger.info("Bent cards: trick of %s is void", " ".join(str(p.card) for p in trick),
                        extra={"room_code": room.id})
            leader = room.trick_start_player
            if room.players[leader].is_finished:
                leader = next_player_index(room.players, leader)
        else:
            winner_seat = room.seat_of(winning.player_id)
            winner = room.players[winner_seat]
            winner.collected_cards += len(trick)
            room.last_trick = {"cards": [p.to_dict() for p in trick], "winnerId": winner.id, "void": False}
            logger.info("%s wins the trick with %s", winner.display_name, winning.card,
                        extra={"room_code": room.id})
            leader = winner_seat
            if winner.is_finished:
                leader = next_player_index(room.players, winner_seat)

        room.trick_start_player = leader
        room.set_turn(leader)

        for player in room.players:
            if player.card_count == 0 and player.finish_position is None:
                assign_finish_position(room.players, player.id)


class PassAndSetVariant(GameVariant):
    """
    The classic pass-and-set game.

    On your turn pass exactly one card to the next seat. Any time during
    play you may lay down four cards of one rank. The first player to empty
    their hand wins; if exactly one other player still holds cards, they are
    the donkey.
    """

    def pass_cards(self, session: "GameSession", player: "Player", card_ids: list[str]) -> None:
        room = session.room
        if not player.is_current_turn:
            raise NotYourTurn()
        if len(card_ids) != 1:
            raise InvalidPassSize()
        card = session.hands.find_card(room.id, player.id, card_ids[0])

        seat = room.seat_of(player.id)
        target = room.players[(seat + 1) % len(room.players)]
        session.hands.remove_card(room.id, player.id, card.id)
        session.hands.add_card(room.id, target.id, card)
        player.card_count -= 1
        target.card_count += 1

        if player.card_count == 0:
            self._finish(session, player)
            return
        room.set_turn((seat + 1) % len(room.players))

    def make_set(self, session: "GameSession", player: "Player", card_ids: list[str]) -> None:
        room = session.room
        if len(card_ids) != 4 or len(set(card_ids)) != 4:
            raise InvalidSetSize()
        cards: list[Card] = [session.hands.find_card(room.id, player.id, cid) for cid in card_ids]
        if len({card.rank for card in cards}) != 1:
            raise InvalidSet()

        for card in cards:
            session.hands.remove_card(room.id, player.id, card.id)
        player.card_count -= len(cards)
        player.sets.append(cards)
        logger.info("%s laid down a set of %s", player.display_name, cards[0].rank.value,
                    extra={"room_code": room.id})

        if player.card_count == 0:
            self._finish(session, player)

    def can_pass(self, session: "GameSession", player_id: str) -> bool:
        current = session.room.current_player()
        return current is not None and current.id == player_id

    def _finish(self, session: "GameSession", player: "Player") -> None:
        room = session.room
        assign_finish_position(room.players, player.id)
        holding = [p for p in room.players if p.card_count > 0]
        donkey = holding[0].id if len(holding) == 1 else None
        session.finish(winner=player.id, donkey=donkey)


def variant_for(rules: RuleSet) -> GameVariant:
    """The variant implementing a rule set."""
    if rules.trick_taking:
        return TrickTakingVariant(rules)
    return PassAndSetVariant(rules)
