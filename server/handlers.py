"""WebSocket message handlers for the Donkey King server.

Each handler corresponds to a single client intent from messages.py.
dispatch() parses a frame, looks the handler up by message class and is
the error boundary: GameErrors go back to the sender as ERROR messages,
anything unexpected is logged and reported generically.

Every handler that touches a room does validate -> mutate -> broadcast
while holding that room's lock.
"""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError

from config import config
from errors import GameError, NotInRoom, RoomNotFound
from logging_config import get_logger, room_code_var
from messages import (
    CLIENT_MESSAGE_TYPES,
    GAME_FINISHED,
    GAME_STARTED,
    GAME_STATE_UPDATE,
    ROOM_CREATED,
    ROOM_JOINED,
    CreateRoom,
    JoinRoom,
    LeaveRoom,
    MakeSet,
    PassCards,
    PlayCard,
    StartGame,
    error_message,
    parse_client_message,
    server_message,
)
from room import GameState, Room, RoomManager
from rules import get_rule_set
from transport import Transport

logger = get_logger(__name__)

ROOM_CLOSED_IDLE = "Room closed due to inactivity"


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    connection_id: str
    transport: Transport

    @property
    def player_id(self) -> str:
        return self.connection_id

    async def send(self, message: dict) -> bool:
        return await self.transport.send(self.connection_id, message)


# ---------------------------------------------------------------------------
# Broadcast helpers
# ---------------------------------------------------------------------------

async def broadcast_game_state(
    room: Room,
    room_manager: RoomManager,
    transport: Transport,
    message_type: str = GAME_STATE_UPDATE,
) -> None:
    """Send each member of the room their own view of the game."""
    session = room_manager.session(room)
    for player in room.players:
        await transport.send(player.id, server_message(
            message_type,
            gameState=session.get_state(player.id),
        ))


async def broadcast_game_finished(room: Room, transport: Transport) -> None:
    await transport.broadcast(
        [p.id for p in room.players],
        server_message(GAME_FINISHED, winner=room.winner, donkey=room.donkey),
    )


async def _after_move(room: Room, was_playing: bool, *, room_manager: RoomManager, transport: Transport) -> None:
    """Broadcast the new state, plus GAME_FINISHED once when this move ended the game."""
    await broadcast_game_state(room, room_manager, transport)
    if was_playing and room.game_state == GameState.FINISHED:
        await broadcast_game_finished(room, transport)


def _require_room(ctx: ConnectionContext, room_manager: RoomManager) -> Room:
    room = room_manager.find_connection_room(ctx.connection_id)
    if room is None:
        raise NotInRoom()
    return room


async def leave_current_room(ctx: ConnectionContext, *, room_manager: RoomManager, transport: Transport) -> None:
    """
    Take the connection out of its room (LEAVE_ROOM or disconnect).

    Leaving mid-game forfeits; the remaining players get the final state
    and a GAME_FINISHED.
    """
    room = room_manager.find_connection_room(ctx.connection_id)
    if room is None:
        return

    async with room.lock:
        was_playing = room.game_state == GameState.PLAYING
        session = room_manager.session(room)
        removed = session.leave(ctx.player_id)
        if removed is not None:
            logger.with_context(room_code=room.id, player_id=removed.id).info("%s left", removed.display_name)
        if room_manager.get_room(room.id) is room:
            await _after_move(room, was_playing, room_manager=room_manager, transport=transport)

    room_code_var.set(None)


async def close_idle_rooms(
    room_manager: RoomManager,
    transport: Transport,
    max_idle_seconds: float,
    now: Optional[float] = None,
) -> list[str]:
    """
    Tell the members of each idle room it is closing, then delete it.

    Returns:
        Codes of the closed rooms.
    """
    now = time.monotonic() if now is None else now
    closed = []
    for room in room_manager.idle_rooms(max_idle_seconds, now):
        async with room.lock:
            # Skip rooms removed or touched while waiting for the lock
            if room_manager.get_room(room.id) is not room or now - room.last_activity <= max_idle_seconds:
                continue
            await transport.broadcast(
                [p.id for p in room.players],
                error_message(ROOM_CLOSED_IDLE),
            )
            room_manager.remove_room(room.id)
            closed.append(room.id)
    if closed:
        logger.info("Closed %d idle room(s): %s", len(closed), ", ".join(closed))
    return closed


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(msg: CreateRoom, ctx: ConnectionContext, *, room_manager: RoomManager, transport: Transport, **kw) -> None:
    # Reject unknown rules before giving up the current seat
    get_rule_set(msg.payload.rules or config.DEFAULT_RULES)
    await leave_current_room(ctx, room_manager=room_manager, transport=transport)

    room = room_manager.create_room(msg.payload.player_name, ctx.connection_id, msg.payload.rules)
    room_code_var.set(room.id)

    async with room.lock:
        await ctx.send(server_message(
            ROOM_CREATED,
            roomId=room.id,
            gameState=room_manager.session(room).get_state(ctx.player_id),
        ))


async def handle_join_room(msg: JoinRoom, ctx: ConnectionContext, *, room_manager: RoomManager, transport: Transport, **kw) -> None:
    room = room_manager.get_room(msg.payload.room_id)
    if room is None:
        raise RoomNotFound()

    current = room_manager.find_connection_room(ctx.connection_id)
    if current is not None and current is not room:
        room_manager.check_can_join(room, ctx.connection_id)
        await leave_current_room(ctx, room_manager=room_manager, transport=transport)

    async with room.lock:
        room_manager.join_room(room.id, msg.payload.player_name, ctx.connection_id)
        room_code_var.set(room.id)

        await ctx.send(server_message(
            ROOM_JOINED,
            gameState=room_manager.session(room).get_state(ctx.player_id),
        ))
        await broadcast_game_state(room, room_manager, transport)


async def handle_leave_room(msg: LeaveRoom, ctx: ConnectionContext, *, room_manager: RoomManager, transport: Transport, **kw) -> None:
    await leave_current_room(ctx, room_manager=room_manager, transport=transport)


# ---------------------------------------------------------------------------
# Game action handlers
# ---------------------------------------------------------------------------

async def handle_start_game(msg: StartGame, ctx: ConnectionContext, *, room_manager: RoomManager, transport: Transport, **kw) -> None:
    room = _require_room(ctx, room_manager)

    async with room.lock:
        room_manager.session(room).start_game(ctx.player_id)
        await broadcast_game_state(room, room_manager, transport, message_type=GAME_STARTED)


async def handle_play_card(msg: PlayCard, ctx: ConnectionContext, *, room_manager: RoomManager, transport: Transport, **kw) -> None:
    room = _require_room(ctx, room_manager)

    async with room.lock:
        was_playing = room.game_state == GameState.PLAYING
        room_manager.session(room).play_card(ctx.player_id, msg.payload.card_id)
        await _after_move(room, was_playing, room_manager=room_manager, transport=transport)


async def handle_pass_cards(msg: PassCards, ctx: ConnectionContext, *, room_manager: RoomManager, transport: Transport, **kw) -> None:
    room = _require_room(ctx, room_manager)

    async with room.lock:
        was_playing = room.game_state == GameState.PLAYING
        room_manager.session(room).pass_cards(ctx.player_id, msg.payload.card_ids)
        await _after_move(room, was_playing, room_manager=room_manager, transport=transport)


async def handle_make_set(msg: MakeSet, ctx: ConnectionContext, *, room_manager: RoomManager, transport: Transport, **kw) -> None:
    room = _require_room(ctx, room_manager)

    async with room.lock:
        was_playing = room.game_state == GameState.PLAYING
        room_manager.session(room).make_set(ctx.player_id, msg.payload.card_ids)
        await _after_move(room, was_playing, room_manager=room_manager, transport=transport)


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

Handler = Callable[..., Awaitable[None]]

HANDLERS: dict[type[BaseModel], Handler] = {
    CreateRoom: handle_create_room,
    JoinRoom: handle_join_room,
    StartGame: handle_start_game,
    PlayCard: handle_play_card,
    PassCards: handle_pass_cards,
    MakeSet: handle_make_set,
    LeaveRoom: handle_leave_room,
}

_unhandled = [cls.__name__ for cls in CLIENT_MESSAGE_TYPES if cls not in HANDLERS]
if _unhandled:
    raise RuntimeError(f"No handler for client messages: {', '.join(_unhandled)}")


async def dispatch(data: Any, ctx: ConnectionContext, *, room_manager: RoomManager, transport: Transport) -> None:
    """
    Parse one client frame and run its handler.

    Never raises: every failure is reported to the sender as an ERROR.
    """
    try:
        msg = parse_client_message(data)
    except ValidationError as e:
        logger.debug("Invalid message: %s", e.errors(include_url=False))
        await ctx.send(error_message("Invalid message"))
        return

    handler = HANDLERS[type(msg)]
    try:
        await handler(msg, ctx, room_manager=room_manager, transport=transport)
    except GameError as e:
        logger.with_context(player_id=ctx.player_id).info("%s rejected: %s", msg.type, e.message)
        await ctx.send(error_message(e.message))
    except Exception:
        logger.exception("Error handling %s", msg.type)
        await ctx.send(error_message("An error occurred"))
