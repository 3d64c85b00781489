"""
Test suite for Room, HandStore and RoomManager.

Covers:
- Room creation and code uniqueness
- Join validation (not found, full, in progress) and rejoin
- Display name de-duplication
- Leave with host reassignment and empty-room deletion
- Case-insensitive room lookup
- Idle room listing and room removal
- Hand storage kept apart from the broadcast room

Run with: pytest test_room.py -v
"""

import pytest

from cards import Card, Rank, Suit
from errors import CardNotInHand, GameAlreadyInProgress, RoomFull, RoomNotFound, UnknownRuleSet
from room import GameState, HandStore, RoomManager, unique_display_name


def make_full_room(rm: RoomManager, count: int = 4):
    room = rm.create_room("Host", "c0")
    for i in range(1, count):
        rm.join_room(room.id, f"Player {i}", f"c{i}")
    return room


# =============================================================================
# RoomManager tests
# =============================================================================

class TestRoomManagerCreate:

    def test_create_room_returns_room(self):
        rm = RoomManager()
        room = rm.create_room("Alice", "c1")
        assert len(room.id) == 6
        assert room.id.isupper() or room.id.isdigit()
        assert room.id in rm.rooms
        assert room.game_state == GameState.WAITING

    def test_creator_is_host(self):
        rm = RoomManager()
        room = rm.create_room("Alice", "c1")
        host = room.players[0]
        assert host.id == "c1"
        assert host.is_host
        assert host.card_count == 0
        assert not host.is_current_turn

    def test_create_multiple_rooms_unique_codes(self):
        rm = RoomManager()
        codes = {rm.create_room(f"P{i}", f"c{i}").id for i in range(20)}
        assert len(codes) == 20

    def test_code_collision_exhaustion(self, monkeypatch):
        rm = RoomManager()
        room = rm.create_room("Alice", "c1")
        monkeypatch.setattr("room.random.choices", lambda alphabet, k: list(room.id))
        with pytest.raises(RuntimeError):
            rm.create_room("Bob", "c2")

    def test_standard_room_capacity(self):
        rm = RoomManager()
        assert rm.create_room("Alice", "c1").max_players == 4

    def test_rules_selected(self):
        rm = RoomManager()
        room = rm.create_room("Alice", "c1", rules="pass_and_set")
        assert room.rules.key == "pass_and_set"
        assert room.max_players == 6

    def test_unknown_rules_rejected(self):
        rm = RoomManager()
        with pytest.raises(UnknownRuleSet):
            rm.create_room("Alice", "c1", rules="bridge")
        assert rm.rooms == {}

    def test_connection_association(self):
        rm = RoomManager()
        room = rm.create_room("Alice", "c1")
        assert rm.find_connection_room("c1") is room
        assert rm.find_connection_room("nobody") is None


class TestRoomManagerJoin:

    def test_join_appends_in_seat_order(self):
        rm = RoomManager()
        room = make_full_room(rm, 3)
        assert [p.id for p in room.players] == ["c0", "c1", "c2"]
        assert not room.players[1].is_host

    def test_join_case_insensitive(self):
        rm = RoomManager()
        room = rm.create_room("Alice", "c1")
        rm.join_room(room.id.lower(), "Bob", "c2")
        assert len(room.players) == 2

    def test_join_missing_room(self):
        rm = RoomManager()
        with pytest.raises(RoomNotFound):
            rm.join_room("NOPE12", "Bob", "c2")

    def test_join_full_room(self):
        rm = RoomManager()
        room = make_full_room(rm, 4)
        with pytest.raises(RoomFull):
            rm.join_room(room.id, "Eve", "c9")
        assert len(room.players) == 4

    def test_check_can_join_does_not_mutate(self):
        rm = RoomManager()
        room = make_full_room(rm, 4)
        with pytest.raises(RoomFull):
            rm.check_can_join(room, "c9")
        rm.check_can_join(room, "c0")
        assert len(room.players) == 4
        assert rm.find_connection_room("c9") is None

    def test_join_in_progress(self):
        rm = RoomManager()
        room = rm.create_room("Alice", "c1")
        room.game_state = GameState.PLAYING
        with pytest.raises(GameAlreadyInProgress):
            rm.join_room(room.id, "Bob", "c2")

    def test_duplicate_names_get_suffix(self):
        rm = RoomManager()
        room = rm.create_room("Sam", "c1")
        rm.join_room(room.id, "Sam", "c2")
        rm.join_room(room.id, "Sam", "c3")
        assert [p.display_name for p in room.players] == ["Sam", "Sam (2)", "Sam (3)"]
        assert all(p.name == "Sam" for p in room.players)

    def test_rejoin_replaces_entry_and_keeps_host(self):
        rm = RoomManager()
        room = make_full_room(rm, 4)
        rm.join_room(room.id, "Host Again", "c0")
        assert len(room.players) == 4
        assert room.players[0].display_name == "Host Again"
        assert room.players[0].is_host

    def test_unique_display_name(self):
        assert unique_display_name("Ann", set()) == "Ann"
        assert unique_display_name("Ann", {"Ann", "Ann (2)"}) == "Ann (3)"


class TestRoomManagerLeave:

    def test_leave_removes_player(self):
        rm = RoomManager()
        room = make_full_room(rm, 3)
        result_room, removed = rm.leave_or_disconnect("c2")
        assert result_room is room
        assert removed.id == "c2"
        assert len(room.players) == 2
        assert rm.find_connection_room("c2") is None

    def test_host_promoted(self):
        rm = RoomManager()
        room = make_full_room(rm, 3)
        rm.leave_or_disconnect("c0")
        assert room.players[0].id == "c1"
        assert room.players[0].is_host
        assert sum(p.is_host for p in room.players) == 1

    def test_last_player_deletes_room(self):
        rm = RoomManager()
        room = rm.create_room("Alice", "c1")
        result_room, removed = rm.leave_or_disconnect("c1")
        assert result_room is None
        assert removed.id == "c1"
        assert room.id not in rm.rooms

    def test_unknown_connection(self):
        rm = RoomManager()
        assert rm.leave_or_disconnect("ghost") == (None, None)

    def test_leave_drops_hand(self):
        rm = RoomManager()
        room = make_full_room(rm, 2)
        rm.hands.set_hand(room.id, "c1", [Card.make(Suit.HEARTS, Rank.TWO)])
        rm.leave_or_disconnect("c1")
        assert rm.hands.get_hand(room.id, "c1") == []


class TestRoomExpiry:

    def test_idle_rooms_listed(self):
        rm = RoomManager()
        old = rm.create_room("Alice", "c1")
        fresh = rm.create_room("Bob", "c2")
        old.last_activity = 0.0
        fresh.last_activity = 1000.0

        assert [room.id for room in rm.idle_rooms(300, now=1100.0)] == [old.id]

    def test_nothing_idle(self):
        rm = RoomManager()
        room = rm.create_room("Alice", "c1")
        assert rm.idle_rooms(300, now=room.last_activity + 10) == []

    def test_remove_room_drops_associations(self):
        rm = RoomManager()
        room = rm.create_room("Alice", "c1")
        rm.join_room(room.id, "Bob", "c2")
        rm.remove_room(room.id)
        assert room.id not in rm.rooms
        assert rm.find_connection_room("c1") is None
        assert rm.find_connection_room("c2") is None


# =============================================================================
# HandStore tests
# =============================================================================

class TestHandStore:

    def test_get_returns_copy(self):
        store = HandStore()
        card = Card.make(Suit.CLUBS, Rank.FIVE)
        store.set_hand("R", "p", [card])
        store.get_hand("R", "p").clear()
        assert store.get_hand("R", "p") == [card]

    def test_remove_card(self):
        store = HandStore()
        card = Card.make(Suit.CLUBS, Rank.FIVE)
        store.set_hand("R", "p", [card])
        assert store.remove_card("R", "p", card.id) == card
        assert store.get_hand("R", "p") == []

    def test_remove_missing_card(self):
        store = HandStore()
        store.set_hand("R", "p", [])
        with pytest.raises(CardNotInHand):
            store.remove_card("R", "p", "hearts-A-000000000")

    def test_add_card_and_drop_room(self):
        store = HandStore()
        store.add_card("R", "p", Card.make(Suit.CLUBS, Rank.FIVE))
        store.add_card("S", "p", Card.make(Suit.CLUBS, Rank.SIX))
        store.drop_room("R")
        assert store.get_hand("R", "p") == []
        assert store.hand_size("S", "p") == 1


# =============================================================================
# Room serialization
# =============================================================================

class TestRoomToDict:

    def test_public_fields_only(self):
        rm = RoomManager()
        room = make_full_room(rm, 2)
        rm.hands.set_hand(room.id, "c0", [Card.make(Suit.HEARTS, Rank.ACE)])
        data = room.to_dict()
        assert data["id"] == room.id
        assert data["gameState"] == "waiting"
        assert data["maxPlayers"] == 4
        assert data["rules"] == "standard"
        assert "cards" not in data["players"][0]
        assert "hand" not in data["players"][0]
        assert data["players"][0]["displayName"] == "Host"
        assert data["players"][0]["isHost"] is True
