"""
Donkey King Simulation Runner

Plays complete games with random legal moves through the same
RoomManager/GameSession code the server uses, and reports trick and
finishing statistics. No server/websocket needed - runs games directly.

Usage:
    python simulate.py [num_games] [rules]
    python simulate.py detail [rules]

Examples:
    python simulate.py 100             # 100 standard games
    python simulate.py 500 speed       # 500 games with 7-card hands
    python simulate.py detail          # One game, trick by trick
"""

import random
import sys
from collections import Counter
from typing import Optional

from room import GameState, Room, RoomManager
from rules import is_valid_play

PLAYER_NAMES = ["Asha", "Bilal", "Chen", "Dara", "Emil", "Farah"]

# Safety cap for rule sets that are not guaranteed to terminate
MAX_TURNS = 5000


class SimulationStats:
    """Track simulation statistics."""

    def __init__(self):
        self.games_played = 0
        self.unfinished_games = 0
        self.total_tricks = 0
        self.void_tricks = 0
        self.total_collected = 0
        self.donkey_by_seat: Counter = Counter()
        self.wins_by_seat: Counter = Counter()

    def record_game(self, room: Room, tricks: int, void_tricks: int):
        self.games_played += 1
        self.total_tricks += tricks
        self.void_tricks += void_tricks
        self.total_collected += sum(p.collected_cards for p in room.players)

        if room.game_state != GameState.FINISHED:
            self.unfinished_games += 1
            return
        for seat, player in enumerate(room.players):
            if player.id == room.winner:
                self.wins_by_seat[seat] += 1
            if player.id == room.donkey:
                self.donkey_by_seat[seat] += 1

    def report(self) -> str:
        games = max(1, self.games_played)
        lines = [
            "=" * 50,
            "SIMULATION RESULTS",
            "=" * 50,
            f"Games played: {self.games_played}",
            f"Unfinished (turn cap): {self.unfinished_games}",
            f"Total tricks: {self.total_tricks}",
            f"Avg tricks/game: {self.total_tricks / games:.1f}",
            f"Void (bent) tricks: {self.void_tricks} "
            f"({self.void_tricks / max(1, self.total_tricks) * 100:.2f}%)",
            f"Avg cards collected/game: {self.total_collected / games:.1f}",
            "",
            "WIN RATE BY SEAT:",
        ]
        for seat in sorted(set(self.wins_by_seat) | set(self.donkey_by_seat)):
            wins = self.wins_by_seat[seat]
            lines.append(f"  Seat {seat}: {wins} ({wins / games * 100:.1f}%)")

        lines.append("")
        lines.append("DONKEY BY SEAT:")
        for seat in sorted(set(self.wins_by_seat) | set(self.donkey_by_seat)):
            donkeys = self.donkey_by_seat[seat]
            lines.append(f"  Seat {seat}: {donkeys} ({donkeys / games * 100:.1f}%)")

        return "\n".join(lines)


def _setup_room(manager: RoomManager, rules: str, num_players: Optional[int] = None) -> Room:
    """Create a room and seat enough simulated players to start."""
    room = manager.create_room(PLAYER_NAMES[0], "sim-0", rules)
    if num_players is None:
        num_players = room.rules.max_players if room.rules.trick_taking else 4
    for seat in range(1, num_players):
        manager.join_room(room.id, PLAYER_NAMES[seat], f"sim-{seat}")
    return room


def choose_move(manager: RoomManager, room: Room, rng: random.Random) -> tuple[str, list[str]]:
    """
    Pick a random legal move for whoever must act.

    Returns:
        (action, card ids) where action is "play", "set" or "pass".
    """
    player = room.current_player()
    hand = manager.hands.get_hand(room.id, player.id)

    if room.rules.trick_taking:
        legal = [
            card for card in hand
            if is_valid_play(card, room.current_trick, hand, room.trick_lead_suit, room.rules.follow_suit)
        ]
        return "play", [rng.choice(legal).id]

    by_rank: dict = {}
    for card in hand:
        by_rank.setdefault(card.rank, []).append(card)
    for cards in by_rank.values():
        if len(cards) == 4:
            return "set", [c.id for c in cards]
    return "pass", [rng.choice(hand).id]


def run_game(
    rules: str = "standard",
    rng: Optional[random.Random] = None,
    num_players: Optional[int] = None,
    stats: Optional[SimulationStats] = None,
    verbose: bool = False,
) -> Room:
    """
    Play one complete game with random legal moves.

    Returns:
        The Room in its final state (finished, unless the turn cap was hit).
    """
    rng = rng or random.Random()
    manager = RoomManager()
    room = _setup_room(manager, rules, num_players)
    session = manager.session(room, rng=rng)
    session.start_game(room.players[0].id)

    tricks = 0
    void_tricks = 0
    turns = 0
    while room.game_state == GameState.PLAYING and turns < MAX_TURNS:
        player = room.current_player()
        action, card_ids = choose_move(manager, room, rng)
        last_trick = room.last_trick

        if action == "play":
            session.play_card(player.id, card_ids[0])
        elif action == "set":
            session.make_set(player.id, card_ids)
        else:
            session.pass_cards(player.id, card_ids)
        turns += 1

        if room.last_trick is not last_trick:
            tricks += 1
            if room.last_trick["void"]:
                void_tricks += 1
            if verbose:
                _print_trick(room, tricks)
        elif verbose and action != "play":
            print(f"  {player.display_name}: {action} {len(card_ids)} card(s)")

    if stats is not None:
        stats.record_game(room, tricks, void_tricks)
    return room


def _print_trick(room: Room, number: int) -> None:
    names = {p.id: p.display_name for p in room.players}
    trick = room.last_trick
    plays = ", ".join(
        f"{names[c['playedBy']]} {c['rank']}{c['suit'][0].upper()}" for c in trick["cards"]
    )
    print(f"\nTrick {number}: {plays}")
    if trick["void"]:
        print("  BENT CARDS! All same rank - nobody collects")
    else:
        print(f"  {names[trick['winnerId']]} collects {len(trick['cards'])} cards")


def run_simulation(num_games: int = 10, rules: str = "standard", seed: Optional[int] = None) -> SimulationStats:
    """Run multiple games and report statistics."""
    print(f"\nRunning {num_games} games with rules '{rules}'...")
    print("=" * 50)

    rng = random.Random(seed)
    stats = SimulationStats()
    for _ in range(num_games):
        run_game(rules, rng=rng, stats=stats)

    print(stats.report())
    return stats


def run_detailed_game(rules: str = "standard", seed: Optional[int] = None) -> Room:
    """Run a single game with trick-by-trick output."""
    print(f"\nRunning detailed game with rules '{rules}'...")
    print("=" * 50)

    room = run_game(rules, rng=random.Random(seed), verbose=True)

    print("\n" + "=" * 50)
    print("FINAL STANDINGS")
    print("=" * 50)
    for player in sorted(room.players, key=lambda p: p.finish_position or 99):
        place = player.finish_position or "-"
        print(f"  {place}. {player.display_name}: collected {player.collected_cards}, "
              f"{player.card_count} card(s) left")

    names = {p.id: p.display_name for p in room.players}
    print(f"\nWinner: {names.get(room.winner, 'none')}")
    print(f"Donkey: {names.get(room.donkey, 'none')}")
    return room


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "detail":
        # Detailed single game
        rules = sys.argv[2] if len(sys.argv) > 2 else "standard"
        run_detailed_game(rules)
    else:
        # Batch simulation
        num_games = int(sys.argv[1]) if len(sys.argv) > 1 else 10
        rules = sys.argv[2] if len(sys.argv) > 2 else "standard"
        run_simulation(num_games, rules)
