"""
Game session controller for Donkey King.

GameSession is the state machine for one room. It is built on demand by
RoomManager.session(room) and holds no state of its own: the public state
lives on the Room, the concealed hands in the manager's HandStore.

State flow:
    WAITING --start_game--> PLAYING --(game over / forfeit)--> FINISHED

Every action validates first and raises a GameError before touching any
state, so a rejected action leaves the room exactly as it was. Callers are
expected to hold room.lock for the whole call.
"""

import logging
import random
from typing import TYPE_CHECKING, Optional

from errors import (
    GameAlreadyInProgress,
    GameNotInProgress,
    InvalidPartySize,
    NotHost,
    NotInRoom,
)
from room import GameState, Player, Room
from rules import find_donkey, find_winner, is_game_over
from variants import GameVariant, variant_for

if TYPE_CHECKING:
    from room import RoomManager

logger = logging.getLogger(__name__)

PASS_DIRECTION = "left"


class GameSession:
    """
    Controller for a single room's game.

    Args:
        room: The room being played.
        manager: Registry owning the room and the hand store.
        rng: Optional random source for the deal (simulations/tests).
    """

    def __init__(self, room: Room, manager: "RoomManager", rng: Optional[random.Random] = None):
        self.room = room
        self.manager = manager
        self.hands = manager.hands
        self.rng = rng
        self.variant: GameVariant = variant_for(room.rules)

    def _require_player(self, player_id: str) -> Player:
        player = self.room.get_player(player_id)
        if player is None:
            raise NotInRoom()
        return player

    def _require_playing(self) -> None:
        if self.room.game_state != GameState.PLAYING:
            raise GameNotInProgress()

    # -------------------------------------------------------------------------
    # Game Lifecycle
    # -------------------------------------------------------------------------

    def start_game(self, player_id: str) -> None:
        """
        Deal and begin play. Seat 0 leads.

        Raises:
            NotInRoom: Player is not seated here.
            GameAlreadyInProgress: Room is not waiting.
            NotHost: Only the host may start.
            InvalidPartySize: Player count outside the rule set's bounds.
        """
        room = self.room
        player = self._require_player(player_id)
        if room.game_state != GameState.WAITING:
            raise GameAlreadyInProgress()
        if not player.is_host:
            raise NotHost()

        rules = room.rules
        count = len(room.players)
        if not rules.min_players <= count <= rules.max_players:
            if rules.min_players == rules.max_players:
                raise InvalidPartySize(f"Need exactly {rules.min_players} players to start")
            raise InvalidPartySize(
                f"Need between {rules.min_players} and {rules.max_players} players to start"
            )

        for p in room.players:
            p.reset_for_game()
        room.current_trick = []
        room.trick_lead_suit = None
        room.center_cards = []
        room.last_trick = None
        room.winner = None
        room.donkey = None

        self.variant.deal(self, self.rng)

        room.game_state = GameState.PLAYING
        room.trick_start_player = 0
        room.set_turn(0)
        room.touch()
        logger.info("Game started with %d players (rules=%s)", count, rules.key,
                    extra={"room_code": room.id})

    def play_card(self, player_id: str, card_id: str) -> None:
        """Play one card from the player's hand into the current trick."""
        player = self._require_player(player_id)
        self._require_playing()
        self.variant.play_card(self, player, card_id)
        self.room.touch()

    def pass_cards(self, player_id: str, card_ids: list[str]) -> None:
        """Pass a card to the next seat (pass-and-set rules)."""
        player = self._require_player(player_id)
        self._require_playing()
        self.variant.pass_cards(self, player, card_ids)
        self.room.touch()

    def make_set(self, player_id: str, card_ids: list[str]) -> None:
        """Lay down four cards of one rank (pass-and-set rules)."""
        player = self._require_player(player_id)
        self._require_playing()
        self.variant.make_set(self, player, card_ids)
        self.room.touch()

    def leave(self, player_id: str) -> Optional[Player]:
        """
        Remove a player from the room.

        Leaving mid-game ends the game. An unfinished leaver forfeits and
        becomes the donkey. A leaver who already emptied their hand is not
        penalised; the result is settled among the players who remain.
        The winner is always one of the remaining players: the best finisher
        among them, or else whoever holds the fewest cards.

        Returns:
            The removed Player, or None if they were not seated.
        """
        room = self.room
        player = room.get_player(player_id)
        if player is None:
            return None

        if room.game_state == GameState.PLAYING:
            others = [p for p in room.players if p.id != player_id]
            winner = _leading_player(others)
            if player.finish_position is None:
                donkey = player_id
                logger.info("%s forfeited", player.display_name, extra={"room_code": room.id})
            else:
                donkey = find_donkey(others) or _trailing_player(others, exclude=winner)
                logger.info("%s left after finishing", player.display_name, extra={"room_code": room.id})
            self.finish(winner=winner, donkey=donkey)

        player.is_connected = False
        return self.manager.remove_player(room, player_id)

    # -------------------------------------------------------------------------
    # Game end
    # -------------------------------------------------------------------------

    def check_game_over(self) -> bool:
        """Finish the game if at most one player still holds cards."""
        if self.room.game_state != GameState.PLAYING:
            return self.room.game_state == GameState.FINISHED
        if not is_game_over(self.room.players):
            return False
        self.finish(winner=find_winner(self.room.players), donkey=find_donkey(self.room.players))
        return True

    def finish(self, winner: Optional[str], donkey: Optional[str]) -> None:
        room = self.room
        room.game_state = GameState.FINISHED
        room.winner = winner
        room.donkey = donkey
        room.clear_turn()
        logger.info("Game finished: winner=%s donkey=%s", winner, donkey,
                    extra={"room_code": room.id})

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def get_state(self, for_player_id: str) -> dict:
        """
        Get the game state as seen by one player.

        Only that player's own hand is included; everyone else appears
        through public fields (cardCount etc.) only.

        Args:
            for_player_id: The player who will receive this state.

        Returns:
            Dict with the public room, the player's cards and turn hints.
        """
        return {
            "room": self.room.to_dict(),
            "myCards": [card.to_dict() for card in self.hands.get_hand(self.room.id, for_player_id)],
            "myId": for_player_id,
            "selectedCards": [],
            "canPass": (
                self.room.game_state == GameState.PLAYING
                and self.variant.can_pass(self, for_player_id)
            ),
            "passDirection": PASS_DIRECTION,
        }


def _leading_player(players: list[Player]) -> Optional[str]:
    """The best finisher among players, or else whoever holds the fewest cards."""
    finished = [p for p in players if p.finish_position is not None]
    if finished:
        return min(finished, key=lambda p: p.finish_position).id
    if players:
        return min(players, key=lambda p: p.card_count).id
    return None


def _trailing_player(players: list[Player], exclude: Optional[str] = None) -> Optional[str]:
    """Whoever holds the most cards, skipping exclude."""
    candidates = [p for p in players if p.id != exclude and p.card_count > 0]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.card_count).id
