"""FastAPI WebSocket server for the Donkey King card game."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from config import config
from handlers import ConnectionContext, close_idle_rooms, dispatch, leave_current_room
from logging_config import connection_id_var, room_code_var, setup_logging
from room import RoomManager
from routers.health import router as health_router
from routers.health import set_health_dependencies
from rules import RULE_SETS
from transport import WebSocketTransport

# Initialize Sentry if configured
if config.SENTRY_DSN:
    sentry_sdk.init(
        dsn=config.SENTRY_DSN,
        environment=config.ENVIRONMENT,
        traces_sample_rate=0.1 if config.ENVIRONMENT == "production" else 1.0,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
    )
    logging.getLogger(__name__).info("Sentry error tracking initialized")

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)

room_manager = RoomManager()
transport = WebSocketTransport()


async def _periodic_room_sweep():
    """Periodic task deleting rooms that have been idle too long."""
    max_idle = config.ROOM_TIMEOUT_MINUTES * 60
    while True:
        try:
            await asyncio.sleep(config.ROOM_SWEEP_INTERVAL_SECONDS)
            await close_idle_rooms(room_manager, transport, max_idle)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Room sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler: wires health checks, runs the room sweeper."""
    set_health_dependencies(room_manager=room_manager, transport=transport)

    sweep_task = None
    if config.ROOM_TIMEOUT_MINUTES > 0:
        sweep_task = asyncio.create_task(_periodic_room_sweep())
        logger.info("Idle room sweeper started (timeout=%d min)", config.ROOM_TIMEOUT_MINUTES)

    logger.info(f"Donkey King server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    if sweep_task:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    await transport.close_all()
    for code in list(room_manager.rooms):
        room_manager.remove_room(code)
    logger.info("Shutdown complete")


app = FastAPI(
    title="Donkey King",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(health_router)


@app.get("/api/rules")
async def list_rules():
    """Rule sets a room can be created with."""
    return {
        "default": config.DEFAULT_RULES,
        "rules": [rules.to_dict() for rules in RULE_SETS.values()],
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    connection_id_var.set(connection_id)
    room_code_var.set(None)
    transport.register(connection_id, websocket)
    logger.debug("WebSocket connected")

    ctx = ConnectionContext(connection_id=connection_id, transport=transport)

    # Shared dependencies passed to every handler
    handler_deps = dict(
        room_manager=room_manager,
        transport=transport,
    )

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                # Not JSON
                await dispatch(None, ctx, **handler_deps)
                continue
            await dispatch(data, ctx, **handler_deps)
    except WebSocketDisconnect:
        logger.debug("WebSocket disconnected")
    finally:
        transport.disconnect(connection_id)
        await leave_current_room(ctx, **handler_deps)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Donkey King server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
