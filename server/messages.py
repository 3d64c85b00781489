"""
WebSocket wire messages.

Every frame is an envelope ``{"type": ..., "payload": {...}}``. Client
intents form a closed pydantic discriminated union on ``type``; anything
outside it fails validation. Server messages are plain dicts built by
``server_message``.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class CreateRoomPayload(_Payload):
    player_name: str = Field(alias="playerName", min_length=1, max_length=32)
    rules: Optional[str] = None


class JoinRoomPayload(_Payload):
    room_id: str = Field(alias="roomId", min_length=1, max_length=16)
    player_name: str = Field(alias="playerName", min_length=1, max_length=32)


class EmptyPayload(_Payload):
    pass


class PlayCardPayload(_Payload):
    card_id: str = Field(alias="cardId", min_length=1)


class CardIdsPayload(_Payload):
    card_ids: list[str] = Field(alias="cardIds")


class CreateRoom(BaseModel):
    type: Literal["CREATE_ROOM"]
    payload: CreateRoomPayload


class JoinRoom(BaseModel):
    type: Literal["JOIN_ROOM"]
    payload: JoinRoomPayload


class StartGame(BaseModel):
    type: Literal["START_GAME"]
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


class PlayCard(BaseModel):
    type: Literal["PLAY_CARD"]
    payload: PlayCardPayload


class PassCards(BaseModel):
    type: Literal["PASS_CARDS"]
    payload: CardIdsPayload


class MakeSet(BaseModel):
    type: Literal["MAKE_SET"]
    payload: CardIdsPayload


class LeaveRoom(BaseModel):
    type: Literal["LEAVE_ROOM"]
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


ClientMessage = Annotated[
    Union[CreateRoom, JoinRoom, StartGame, PlayCard, PassCards, MakeSet, LeaveRoom],
    Field(discriminator="type"),
]

CLIENT_MESSAGE_TYPES: tuple[type[BaseModel], ...] = (
    CreateRoom, JoinRoom, StartGame, PlayCard, PassCards, MakeSet, LeaveRoom,
)

_client_message_adapter: TypeAdapter = TypeAdapter(ClientMessage)


def parse_client_message(data: Any) -> BaseModel:
    """
    Validate a decoded JSON frame into one of the client intents.

    Raises:
        pydantic.ValidationError: Unknown type or malformed payload.
    """
    return _client_message_adapter.validate_python(data)


# Server -> client message types
ROOM_CREATED = "ROOM_CREATED"
ROOM_JOINED = "ROOM_JOINED"
GAME_STARTED = "GAME_STARTED"
GAME_STATE_UPDATE = "GAME_STATE_UPDATE"
GAME_FINISHED = "GAME_FINISHED"
ERROR = "ERROR"


def server_message(message_type: str, **payload: Any) -> dict:
    """Build a server envelope."""
    return {"type": message_type, "payload": payload}


def error_message(message: str) -> dict:
    return server_message(ERROR, message=message)
