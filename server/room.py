"""
Room management for multiplayer Donkey King games.

This module owns every live room and every concealed hand. Nothing else
keeps a reference from room code to room, or from connection to room;
handlers go through RoomManager for all lookups.

A Room contains:
    - A unique 6-character code for joining
    - An ordered list of Players (order = seat = turn order)
    - The public game state (trick, center pile, turn, winner/donkey)
    - An asyncio.Lock serializing every mutation of the room

Concealed hands live in the HandStore, keyed by (room code, player id),
and are never embedded in anything that gets broadcast.
"""

import asyncio
import logging
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from cards import Card, Suit
from config import config
from errors import CardNotInHand, GameAlreadyInProgress, RoomFull, RoomNotFound
from rules import PlayedCard, RuleSet, get_rule_set

if TYPE_CHECKING:
    from game import GameSession

logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


class GameState(str, Enum):
    """
    Room lifecycle.

    Flow: WAITING -> PLAYING -> FINISHED (terminal)
    """

    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


@dataclass
class Player:
    """
    A seated player, as everybody in the room sees them.

    Attributes:
        id: Connection id assigned by the transport.
        name: Name the player typed in.
        display_name: Name shown in the room, unique within it.
        card_count: Number of cards in the concealed hand.
        is_host: Whether this player can start the game.
        is_current_turn: Whether this player must act now.
        collected_cards: Cards won from resolved tricks.
        is_finished: True once the hand is empty.
        finish_position: 1-based finishing rank, None while playing.
        is_connected: False only transiently while leaving.
        sets: Sets laid down in the pass-and-set variant (public).
    """

    id: str
    name: str
    display_name: str
    card_count: int = 0
    is_host: bool = False
    is_current_turn: bool = False
    collected_cards: int = 0
    is_finished: bool = False
    finish_position: Optional[int] = None
    is_connected: bool = True
    sets: list[list[Card]] = field(default_factory=list)

    def reset_for_game(self) -> None:
        self.card_count = 0
        self.is_current_turn = False
        self.collected_cards = 0
        self.is_finished = False
        self.finish_position = None
        self.sets = []

    def to_dict(self) -> dict:
        """Public fields only."""
        return {
            "id": self.id,
            "name": self.name,
            "displayName": self.display_name,
            "cardCount": self.card_count,
            "isHost": self.is_host,
            "isCurrentTurn": self.is_current_turn,
            "collectedCards": self.collected_cards,
            "isFinished": self.is_finished,
            "finishPosition": self.finish_position,
            "isConnected": self.is_connected,
            "sets": [[card.to_dict() for card in s] for s in self.sets],
        }


@dataclass
class Room:
    """
    A game room and its public state.

    Attributes:
        id: 6-character room code.
        rules: Rule set this room plays with.
        players: Seated players in turn order.
        game_state: Lifecycle state.
        current_player_index: Seat whose turn it is.
        max_players: Room capacity.
        current_trick: Cards played into the trick in progress.
        trick_lead_suit: Suit of the first card of the trick, if any.
        trick_start_player: Seat that led the current (or last) trick.
        center_cards: Every resolved trick's cards, oldest first.
        last_trick: Summary of the most recently resolved trick.
        winner: Id of the first player to finish.
        donkey: Id of the last player holding cards.
        created_at: Creation time (UTC).
        last_activity: Monotonic timestamp of the last event.
        lock: Serializes every mutation of this room.
    """

    id: str
    rules: RuleSet
    players: list[Player] = field(default_factory=list)
    game_state: GameState = GameState.WAITING
    current_player_index: int = 0
    max_players: int = 4
    current_trick: list[PlayedCard] = field(default_factory=list)
    trick_lead_suit: Optional[Suit] = None
    trick_start_player: int = 0
    center_cards: list[Card] = field(default_factory=list)
    last_trick: Optional[dict] = None
    winner: Optional[str] = None
    donkey: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_activity: float = field(default_factory=time.monotonic)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def code(self) -> str:
        return self.id

    @property
    def finished_players(self) -> int:
        return sum(1 for p in self.players if p.finish_position is not None)

    def get_player(self, player_id: str) -> Optional[Player]:
        """Get a player by ID, or None if not found."""
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def seat_of(self, player_id: str) -> Optional[int]:
        for index, player in enumerate(self.players):
            if player.id == player_id:
                return index
        return None

    def host(self) -> Optional[Player]:
        for player in self.players:
            if player.is_host:
                return player
        return None

    def current_player(self) -> Optional[Player]:
        """Get the player whose turn it currently is."""
        if self.game_state == GameState.PLAYING and self.players:
            return self.players[self.current_player_index]
        return None

    def set_turn(self, index: int) -> None:
        """Move the turn to a seat and keep the isCurrentTurn flags in sync."""
        self.current_player_index = index
        for seat, player in enumerate(self.players):
            player.is_current_turn = seat == index

    def clear_turn(self) -> None:
        for player in self.players:
            player.is_current_turn = False

    def is_empty(self) -> bool:
        return len(self.players) == 0

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def to_dict(self) -> dict:
        """Broadcastable room state. Never contains a concealed hand."""
        return {
            "id": self.id,
            "rules": self.rules.key,
            "players": [p.to_dict() for p in self.players],
            "gameState": self.game_state.value,
            "currentPlayerIndex": self.current_player_index,
            "maxPlayers": self.max_players,
            "currentTrick": [played.to_dict() for played in self.current_trick],
            "trickLeadSuit": self.trick_lead_suit.value if self.trick_lead_suit else None,
            "trickStartPlayer": self.trick_start_player,
            "centerCards": [card.to_dict() for card in self.center_cards],
            "lastTrick": self.last_trick,
            "winner": self.winner,
            "donkey": self.donkey,
            "finishedPlayers": self.finished_players,
            "createdAt": self.created_at.isoformat(),
        }


class HandStore:
    """
    Concealed hands, keyed by (room code, player id).

    Kept apart from Room/Player so a broadcast can never leak a hand.
    """

    def __init__(self) -> None:
        self._hands: dict[tuple[str, str], list[Card]] = {}

    def get_hand(self, room_id: str, player_id: str) -> list[Card]:
        """A copy of the player's hand (empty if none dealt)."""
        return list(self._hands.get((room_id, player_id), []))

    def set_hand(self, room_id: str, player_id: str, cards: list[Card]) -> None:
        self._hands[(room_id, player_id)] = list(cards)

    def find_card(self, room_id: str, player_id: str, card_id: str) -> Card:
        for card in self._hands.get((room_id, player_id), []):
            if card.id == card_id:
                return card
        raise CardNotInHand()

    def remove_card(self, room_id: str, player_id: str, card_id: str) -> Card:
        """Take a card out of a hand, raising CardNotInHand if it isn't there."""
        hand = self._hands.get((room_id, player_id), [])
        for index, card in enumerate(hand):
            if card.id == card_id:
                return hand.pop(index)
        raise CardNotInHand()

    def add_card(self, room_id: str, player_id: str, card: Card) -> None:
        self._hands.setdefault((room_id, player_id), []).append(card)

    def hand_size(self, room_id: str, player_id: str) -> int:
        return len(self._hands.get((room_id, player_id), []))

    def drop_player(self, room_id: str, player_id: str) -> None:
        self._hands.pop((room_id, player_id), None)

    def drop_room(self, room_id: str) -> None:
        for key in [k for k in self._hands if k[0] == room_id]:
            del self._hands[key]


def unique_display_name(name: str, taken: set[str]) -> str:
    """Append " (2)", " (3)", ... until the name is not taken."""
    if name not in taken:
        return name
    suffix = 2
    while f"{name} ({suffix})" in taken:
        suffix += 1
    return f"{name} ({suffix})"


class RoomManager:
    """
    Registry of all active game rooms.

    Provides room creation with unique codes, lookup, join/leave, the
    connection -> room association and the private hand store. A single
    RoomManager instance is used by the server.
    """

    def __init__(self, code_length: Optional[int] = None) -> None:
        self.rooms: dict[str, Room] = {}
        self.hands = HandStore()
        self.connection_rooms: dict[str, str] = {}
        self.code_length = code_length or config.ROOM_CODE_LENGTH

    def _generate_code(self, max_attempts: int = 100) -> str:
        """Generate a unique room code."""
        for _ in range(max_attempts):
            code = "".join(random.choices(ROOM_CODE_ALPHABET, k=self.code_length))
            if code not in self.rooms:
                return code
        raise RuntimeError("Could not generate unique room code")

    def create_room(
        self,
        host_name: str,
        connection_id: str,
        rules: Optional[str] = None,
    ) -> Room:
        """
        Create a new room with the creator seated as host.

        Args:
            host_name: Name the creator typed in.
            connection_id: The creator's connection id (becomes their player id).
            rules: Rule set key; defaults to config.DEFAULT_RULES.

        Returns:
            The newly created Room, in the waiting state.
        """
        rule_set = get_rule_set(rules or config.DEFAULT_RULES)
        code = self._generate_code()
        room = Room(
            id=code,
            rules=rule_set,
            max_players=min(rule_set.max_players, config.MAX_PLAYERS_PER_ROOM),
        )
        room.players.append(Player(
            id=connection_id,
            name=host_name,
            display_name=host_name,
            is_host=True,
        ))
        self.rooms[code] = room
        self.connection_rooms[connection_id] = code
        logger.info("Room created by %s (rules=%s)", host_name, rule_set.key, extra={"room_code": code})
        return room

    def check_can_join(self, room: Room, connection_id: str) -> None:
        """
        Raise if connection_id could not take a seat in room right now.

        Raises:
            GameAlreadyInProgress: Room is not waiting for players.
            RoomFull: Room is at capacity and the connection has no seat there.
        """
        if room.game_state != GameState.WAITING:
            raise GameAlreadyInProgress()
        if room.seat_of(connection_id) is None and len(room.players) >= room.max_players:
            raise RoomFull()

    def join_room(self, room_id: str, player_name: str, connection_id: str) -> Room:
        """
        Seat a player in an existing room.

        A connection that already has a seat in the room is rejoining: its
        entry is replaced in place and keeps its host flag.

        Raises:
            RoomNotFound: No room with that code.
            GameAlreadyInProgress: Room is not waiting for players.
            RoomFull: Room is at capacity.
        """
        room = self.get_room(room_id)
        if room is None:
            raise RoomNotFound()
        self.check_can_join(room, connection_id)

        seat = room.seat_of(connection_id)

        taken = {p.display_name for p in room.players if p.id != connection_id}
        display_name = unique_display_name(player_name, taken)

        if seat is not None:
            previous = room.players[seat]
            room.players[seat] = Player(
                id=connection_id,
                name=player_name,
                display_name=display_name,
                is_host=previous.is_host,
            )
            logger.info("%s rejoined", display_name, extra={"room_code": room.id})
        else:
            room.players.append(Player(
                id=connection_id,
                name=player_name,
                display_name=display_name,
                is_host=room.host() is None,
            ))
            logger.info("%s joined", display_name, extra={"room_code": room.id})

        self.connection_rooms[connection_id] = room.id
        room.touch()
        return room

    def remove_player(self, room: Room, player_id: str) -> Optional[Player]:
        """
        Remove a player from a room.

        Deletes the room once it is empty; otherwise promotes the first
        remaining player to host if nobody holds the flag.

        Returns:
            The removed Player, or None if not found.
        """
        seat = room.seat_of(player_id)
        if seat is None:
            return None

        removed = room.players.pop(seat)
        self.hands.drop_player(room.id, player_id)
        if self.connection_rooms.get(player_id) == room.id:
            del self.connection_rooms[player_id]

        if room.is_empty():
            self.remove_room(room.id)
            return removed

        # Keep the turn pointer on a valid seat
        if room.current_player_index >= len(room.players):
            room.current_player_index = 0
        if room.trick_start_player >= len(room.players):
            room.trick_start_player = 0

        if room.host() is None:
            for player in room.players:
                player.is_host = False
            room.players[0].is_host = True
            logger.info("New host assigned: %s", room.players[0].display_name, extra={"room_code": room.id})

        room.touch()
        return removed

    def leave_or_disconnect(self, connection_id: str) -> tuple[Optional[Room], Optional[Player]]:
        """
        Remove a connection's player from whichever room holds them.

        Returns:
            (room, removed player); room is None if the connection had no
            room or the room was deleted because it became empty.
        """
        room = self.find_connection_room(connection_id)
        if room is None:
            self.connection_rooms.pop(connection_id, None)
            return None, None
        removed = self.remove_player(room, connection_id)
        if room.id not in self.rooms:
            return None, removed
        return room, removed

    def get_room(self, code: str) -> Optional[Room]:
        """Get a room by its code (case-insensitive)."""
        return self.rooms.get(code.strip().upper())

    def find_connection_room(self, connection_id: str) -> Optional[Room]:
        code = self.connection_rooms.get(connection_id)
        if code is None:
            return None
        return self.rooms.get(code)

    def remove_room(self, code: str) -> None:
        """Delete a room, its hands and its connection associations."""
        room = self.rooms.pop(code, None)
        if room is None:
            return
        self.hands.drop_room(code)
        for connection_id in [c for c, r in self.connection_rooms.items() if r == code]:
            del self.connection_rooms[connection_id]
        logger.info("Room removed", extra={"room_code": code})

    def idle_rooms(self, max_idle_seconds: float, now: Optional[float] = None) -> list[Room]:
        """Rooms with no activity for longer than max_idle_seconds."""
        now = time.monotonic() if now is None else now
        return [
            room for room in self.rooms.values()
            if now - room.last_activity > max_idle_seconds
        ]

    def session(self, room: Room, rng: Optional[random.Random] = None) -> "GameSession":
        """The game session controller for a room."""
        from game import GameSession
        return GameSession(room, self, rng=rng)
