from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from typing import Optional
import os

from backend import RoomTable
from connections import ConnectionRegistry
from constants import DEFAULT_ROOM, LOG_FILE, LOG_LEVEL, STATIC_DIR
from lifecycle import LifecycleManager
from logging_config import get_logger, setup_logging
from relay import MessageRouter
from routers.rooms import rooms_router
from schemas.rooms import HealthResponse

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


async def websocket_endpoint(websocket: WebSocket):
    """Signaling socket. The first valid join message fixes the room and role."""
    lifecycle: LifecycleManager = websocket.app.state.lifecycle
    await websocket.accept()
    connection = lifecycle.connect(websocket)
    client_host = websocket.client.host if websocket.client else "unknown"
    logger.info(f"New client connection {connection.connection_id} from {client_host}")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected for connection {connection.connection_id} (code {message.get('code')})")
                break
            frame = message.get("text")
            if frame is None:
                frame = message.get("bytes") or b""
            await lifecycle.handle_frame(connection, frame)
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection.connection_id}: {e}", exc_info=True)
    finally:
        await lifecycle.disconnect(connection)
        logger.info(f"Client connection {connection.connection_id} closed ({connection.role.value if connection.role else 'never joined'})")


def create_app(room_table: Optional[RoomTable] = None, static_dir: Optional[str] = STATIC_DIR) -> FastAPI:
    app = FastAPI(title="360 Relay Signaling")

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    room_table = room_table if room_table is not None else RoomTable()
    registry = ConnectionRegistry(room_table)
    router = MessageRouter(room_table)
    app.state.room_table = room_table
    app.state.registry = registry
    app.state.lifecycle = LifecycleManager(room_table, registry, router, default_room=DEFAULT_ROOM)

    app.include_router(rooms_router)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="ok", rooms=len(room_table), connections=len(registry))

    # Browser clients open ws://<host>/ ; /ws is kept as an explicit alias
    app.add_api_websocket_route("/", websocket_endpoint)
    app.add_api_websocket_route("/ws", websocket_endpoint)

    if static_dir and os.path.isdir(static_dir):
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        logger.info(f"Serving client pages from {static_dir}")

    logger.info(f"FastAPI application initialized (default room: {DEFAULT_ROOM})")
    return app


app = create_app()
