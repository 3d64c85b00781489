"""
Test suite for the GameSession controller.

Covers:
- Starting a game (host, party size, deal)
- Play validation (turn, ownership, follow suit) with no partial mutation
- Trick resolution: winner collects and leads, bent cards are void
- Finish positions, the donkey and game end
- Forfeit on leaving mid-game
- Player-scoped views
- A full 13-trick game and card conservation

Run with: pytest test_game.py -v
"""

import random

import pytest

from cards import Card, Rank, Suit
from errors import (
    CardNotInHand,
    GameAlreadyInProgress,
    GameNotInProgress,
    InvalidPartySize,
    MustFollowSuit,
    NotHost,
    NotInRoom,
    NotYourTurn,
    UnsupportedAction,
)
from room import GameState, RoomManager
from rules import is_valid_play


def c(rank: str, suit: Suit) -> Card:
    return Card.make(suit, Rank(rank))


def make_room(num_players: int = 4, rules: str = "standard"):
    rm = RoomManager()
    room = rm.create_room("P0", "p0", rules)
    for i in range(1, num_players):
        rm.join_room(room.id, f"P{i}", f"p{i}")
    return rm, room


def start(num_players: int = 4, rules: str = "standard", seed: int = 1):
    rm, room = make_room(num_players, rules)
    session = rm.session(room, rng=random.Random(seed))
    session.start_game("p0")
    return rm, room, session


def rig_hands(rm: RoomManager, room, hands: list[list[Card]]) -> None:
    """Replace the dealt hands with known cards."""
    for player, hand in zip(room.players, hands):
        rm.hands.set_hand(room.id, player.id, hand)
        player.card_count = len(hand)


def total_cards(rm: RoomManager, room) -> int:
    return (
        sum(p.card_count for p in room.players)
        + len(room.current_trick)
        + len(room.center_cards)
    )


def play_random_legal(rm: RoomManager, room, session, rng: random.Random) -> None:
    player = room.current_player()
    hand = rm.hands.get_hand(room.id, player.id)
    legal = [card for card in hand if is_valid_play(card, room.current_trick, hand, room.trick_lead_suit)]
    session.play_card(player.id, rng.choice(legal).id)


# =============================================================================
# Start
# =============================================================================

class TestStartGame:

    def test_deal_13_each_disjoint(self):
        rm, room, _ = start()
        hands = [rm.hands.get_hand(room.id, p.id) for p in room.players]
        assert all(len(h) == 13 for h in hands)
        ids = [card.id for h in hands for card in h]
        assert len(set(ids)) == 52
        assert {(card.suit, card.rank) for h in hands for card in h} == {(s, r) for s in Suit for r in Rank}

    def test_seat_zero_leads(self):
        _, room, _ = start()
        assert room.game_state == GameState.PLAYING
        assert room.current_player_index == 0
        assert [p.is_current_turn for p in room.players] == [True, False, False, False]
        assert all(p.card_count == 13 for p in room.players)

    def test_only_host_can_start(self):
        rm, room = make_room()
        with pytest.raises(NotHost):
            rm.session(room).start_game("p1")
        assert room.game_state == GameState.WAITING

    def test_needs_exactly_four(self):
        rm, room = make_room(3)
        with pytest.raises(InvalidPartySize):
            rm.session(room).start_game("p0")
        assert all(rm.hands.get_hand(room.id, p.id) == [] for p in room.players)

    def test_cannot_start_twice(self):
        _, _, session = start()
        with pytest.raises(GameAlreadyInProgress):
            session.start_game("p0")

    def test_stranger_cannot_start(self):
        rm, room = make_room()
        with pytest.raises(NotInRoom):
            rm.session(room).start_game("stranger")

    def test_speed_rules_deal_seven(self):
        rm, room, _ = start(rules="speed")
        assert all(p.card_count == 7 for p in room.players)
        assert total_cards(rm, room) == 28


# =============================================================================
# Play validation
# =============================================================================

class TestPlayValidation:

    def setup_method(self):
        self.rm, self.room, self.session = start()
        rig_hands(self.rm, self.room, [
            [c("9", Suit.HEARTS), c("2", Suit.CLUBS)],
            [c("K", Suit.HEARTS), c("3", Suit.SPADES)],
            [c("4", Suit.DIAMONDS), c("5", Suit.DIAMONDS)],
            [c("7", Suit.CLUBS), c("8", Suit.SPADES)],
        ])

    def hand(self, seat: int) -> list[Card]:
        return self.rm.hands.get_hand(self.room.id, f"p{seat}")

    def test_not_your_turn(self):
        with pytest.raises(NotYourTurn):
            self.session.play_card("p1", self.hand(1)[0].id)
        assert self.room.current_trick == []

    def test_card_not_in_hand(self):
        with pytest.raises(CardNotInHand):
            self.session.play_card("p0", self.hand(1)[0].id)
        assert self.room.players[0].card_count == 2

    def test_must_follow_suit(self):
        self.session.play_card("p0", self.hand(0)[0].id)
        before = self.hand(1)
        with pytest.raises(MustFollowSuit):
            self.session.play_card("p1", before[1].id)
        assert self.hand(1) == before
        assert len(self.room.current_trick) == 1
        assert self.room.players[1].card_count == 2

    def test_void_in_suit_may_discard(self):
        self.session.play_card("p0", self.hand(0)[0].id)
        self.session.play_card("p1", self.hand(1)[0].id)
        self.session.play_card("p2", self.hand(2)[0].id)
        assert len(self.room.current_trick) == 3

    def test_first_card_sets_lead_suit(self):
        self.session.play_card("p0", self.hand(0)[0].id)
        assert self.room.trick_lead_suit == Suit.HEARTS
        assert self.room.current_trick[0].player_id == "p0"
        assert self.room.current_player_index == 1

    def test_unsupported_actions(self):
        with pytest.raises(UnsupportedAction):
            self.session.pass_cards("p0", [self.hand(0)[0].id])
        with pytest.raises(UnsupportedAction):
            self.session.make_set("p0", [card.id for card in self.hand(0)])

    def test_not_in_progress(self):
        rm, room = make_room()
        with pytest.raises(GameNotInProgress):
            rm.session(room).play_card("p0", "hearts-A-000000000")


# =============================================================================
# Trick resolution
# =============================================================================

class TestTrickResolution:

    def setup_method(self):
        self.rm, self.room, self.session = start()

    def test_winner_collects_and_leads(self):
        rig_hands(self.rm, self.room, [
            [c("3", Suit.HEARTS), c("4", Suit.CLUBS)],
            [c("A", Suit.SPADES), c("5", Suit.CLUBS)],
            [c("2", Suit.HEARTS), c("6", Suit.CLUBS)],
            [c("K", Suit.CLUBS), c("7", Suit.CLUBS)],
        ])
        for seat in range(4):
            self.session.play_card(f"p{seat}", self.rm.hands.get_hand(self.room.id, f"p{seat}")[0].id)

        assert self.room.players[0].collected_cards == 4
        assert self.room.current_player_index == 0
        assert self.room.trick_start_player == 0
        assert self.room.current_trick == []
        assert self.room.trick_lead_suit is None
        assert len(self.room.center_cards) == 4
        assert self.room.last_trick["winnerId"] == "p0"
        assert self.room.last_trick["void"] is False

    def test_winner_from_later_seat_leads_next(self):
        rig_hands(self.rm, self.room, [
            [c("3", Suit.HEARTS), c("4", Suit.CLUBS)],
            [c("Q", Suit.HEARTS), c("5", Suit.CLUBS)],
            [c("2", Suit.HEARTS), c("6", Suit.CLUBS)],
            [c("K", Suit.CLUBS), c("7", Suit.CLUBS)],
        ])
        for seat in range(4):
            self.session.play_card(f"p{seat}", self.rm.hands.get_hand(self.room.id, f"p{seat}")[0].id)

        assert self.room.current_player_index == 1
        assert self.room.players[1].is_current_turn
        assert self.room.players[1].collected_cards == 4

    def test_bent_cards_void(self):
        rig_hands(self.rm, self.room, [
            [c("A", Suit.HEARTS), c("4", Suit.CLUBS)],
            [c("A", Suit.SPADES), c("5", Suit.CLUBS)],
            [c("A", Suit.DIAMONDS), c("6", Suit.CLUBS)],
            [c("A", Suit.CLUBS), c("7", Suit.CLUBS)],
        ])
        for seat in range(4):
            self.session.play_card(f"p{seat}", self.rm.hands.get_hand(self.room.id, f"p{seat}")[0].id)

        assert all(p.collected_cards == 0 for p in self.room.players)
        assert len(self.room.center_cards) == 4
        assert self.room.last_trick["void"] is True
        assert self.room.last_trick["winnerId"] is None
        # Same leader leads again
        assert self.room.current_player_index == 0

    def test_final_trick_ends_game(self):
        rig_hands(self.rm, self.room, [
            [c("3", Suit.HEARTS)],
            [c("Q", Suit.HEARTS)],
            [c("2", Suit.HEARTS)],
            [c("K", Suit.CLUBS)],
        ])
        for seat in range(3):
            self.session.play_card(f"p{seat}", self.rm.hands.get_hand(self.room.id, f"p{seat}")[0].id)

        room = self.room
        assert room.game_state == GameState.FINISHED
        assert [p.finish_position for p in room.players] == [1, 2, 3, None]
        assert room.winner == "p0"
        assert room.donkey == "p3"
        assert not any(p.is_current_turn for p in room.players)
        assert len(room.current_trick) == 3

        with pytest.raises(GameNotInProgress):
            self.session.play_card("p3", self.rm.hands.get_hand(room.id, "p3")[0].id)


# =============================================================================
# Leaving
# =============================================================================

class TestLeave:

    def test_leave_in_lobby(self):
        rm, room = make_room(3)
        removed = rm.session(room).leave("p1")
        assert removed.id == "p1"
        assert len(room.players) == 2
        assert room.game_state == GameState.WAITING

    def test_leave_mid_game_forfeits(self):
        rm, room, session = start()
        rig_hands(rm, room, [
            [c("3", Suit.HEARTS), c("4", Suit.HEARTS)],
            [c("Q", Suit.HEARTS)],
            [c("2", Suit.HEARTS), c("6", Suit.CLUBS)],
            [c("K", Suit.CLUBS), c("7", Suit.CLUBS)],
        ])
        session.leave("p2")

        assert room.game_state == GameState.FINISHED
        assert room.donkey == "p2"
        assert room.winner == "p1"
        assert len(room.players) == 3
        assert not any(p.is_current_turn for p in room.players)
        assert rm.hands.get_hand(room.id, "p2") == []

    def test_forfeit_prefers_first_finisher(self):
        rm, room, session = start()
        room.players[3].finish_position = 1
        room.players[3].is_finished = True
        session.leave("p0")
        assert room.winner == "p3"

    def test_finished_player_leaving_is_not_the_donkey(self):
        rm, room, session = start()
        three_hearts = c("3", Suit.HEARTS)
        rig_hands(rm, room, [
            [three_hearts],
            [c("Q", Suit.HEARTS), c("4", Suit.HEARTS)],
            [c("2", Suit.HEARTS), c("5", Suit.CLUBS)],
            [c("K", Suit.CLUBS), c("7", Suit.CLUBS)],
        ])
        session.play_card("p0", three_hearts.id)
        assert room.get_player("p0").finish_position == 1
        assert room.game_state == GameState.PLAYING

        session.leave("p0")

        remaining = {p.id for p in room.players}
        assert room.game_state == GameState.FINISHED
        assert "p0" not in remaining
        assert room.winner != room.donkey
        assert room.winner in remaining
        assert room.donkey in remaining
        assert room.winner == "p1"
        assert room.donkey == "p2"

    def test_finished_leaver_hands_win_to_next_finisher(self):
        rm, room, session = start()
        for pid, position in (("p0", 1), ("p3", 2)):
            player = room.get_player(pid)
            player.finish_position = position
            player.is_finished = True
            player.card_count = 0
        session.leave("p0")
        assert room.winner == "p3"
        assert room.donkey in {"p1", "p2"}

    def test_last_leave_deletes_room(self):
        rm, room = make_room(1)
        rm.session(room).leave("p0")
        assert rm.get_room(room.id) is None

    def test_leave_unknown(self):
        rm, room = make_room(2)
        assert rm.session(room).leave("ghost") is None


# =============================================================================
# Views
# =============================================================================

class TestGetState:

    def test_view_hides_other_hands(self):
        rm, room, session = start()
        state = session.get_state("p1")
        own = {card.id for card in rm.hands.get_hand(room.id, "p1")}
        assert {card["id"] for card in state["myCards"]} == own
        assert state["myId"] == "p1"
        assert state["selectedCards"] == []
        assert state["canPass"] is False
        assert state["passDirection"] == "left"

        others = set()
        for pid in ("p0", "p2", "p3"):
            others |= {card.id for card in rm.hands.get_hand(room.id, pid)}
        room_text = str(state["room"])
        assert not any(card_id in room_text for card_id in others)

    def test_room_view_fields(self):
        _, room, session = start()
        view = session.get_state("p0")["room"]
        assert view["gameState"] == "playing"
        assert view["currentPlayerIndex"] == 0
        assert [p["cardCount"] for p in view["players"]] == [13, 13, 13, 13]
        assert view["currentTrick"] == []
        assert view["winner"] is None

    def test_lobby_view_has_no_cards(self):
        rm, room = make_room(2)
        assert rm.session(room).get_state("p0")["myCards"] == []


# =============================================================================
# Full games
# =============================================================================

class TestFullGame:

    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    def test_full_game_conserves_cards(self, seed):
        rng = random.Random(seed)
        rm, room, session = start(seed=seed)
        plays = 0
        while room.game_state == GameState.PLAYING:
            play_random_legal(rm, room, session, rng)
            plays += 1
            assert total_cards(rm, room) == 52
            if room.game_state == GameState.PLAYING:
                assert sum(p.is_current_turn for p in room.players) == 1

        assert plays == 51
        assert len(room.center_cards) == 48
        assert sum(p.collected_cards for p in room.players) <= len(room.center_cards)
        positions = sorted(p.finish_position for p in room.players if p.finish_position)
        assert positions == [1, 2, 3]
        assert room.donkey is not None
        donkey = room.get_player(room.donkey)
        assert donkey.finish_position is None
        assert donkey.card_count == 1
        assert room.winner == next(p.id for p in room.players if p.finish_position == 1)
