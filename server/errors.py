"""
User-facing game errors.

Every rejected action raises a GameError subclass before any state is
touched. The dispatch boundary in handlers.py turns these into an ERROR
message for the one connection that sent the action.
"""

from typing import Optional


class GameError(Exception):
    """Base class for recoverable, user-facing errors."""

    message = "Invalid action"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class RoomNotFound(GameError):
    message = "Room not found"


class RoomFull(GameError):
    message = "Room is full"


class GameAlreadyInProgress(GameError):
    message = "Game already in progress"


class GameNotInProgress(GameError):
    message = "Game is not in progress"


class NotInRoom(GameError):
    message = "You are not in a room"


class NotHost(GameError):
    message = "Only the host can start the game"


class InvalidPartySize(GameError):
    message = "Need exactly 4 players to start"


class NotYourTurn(GameError):
    message = "Not your turn"


class CardNotInHand(GameError):
    message = "Card not in hand"


class MustFollowSuit(GameError):
    message = "You must follow the lead suit"


class InvalidSetSize(GameError):
    message = "A set must have exactly 4 cards"


class InvalidSet(GameError):
    message = "A set must be 4 cards of the same rank"


class InvalidPassSize(GameError):
    message = "You can only pass 1 card"


class UnsupportedAction(GameError):
    message = "That action is not available with these rules"


class UnknownRuleSet(GameError):
    message = "Unknown rule set"
