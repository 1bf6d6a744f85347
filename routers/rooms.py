from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import RoomDetailsResponse, RoomListResponse, RoomSummary
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/", response_model=RoomListResponse)
async def list_rooms(request: Request):
    room_table = request.app.state.room_table
    rooms = []
    for room_id in room_table.room_ids():
        room = room_table.get(room_id)
        if room is None:
            continue
        rooms.append(RoomSummary(
            room_id=room_id,
            has_publisher=room.publisher is not None,
            subscriber_count=len(room.subscribers),
        ))
    logger.debug(f"Listing {len(rooms)} rooms")
    return RoomListResponse(rooms=rooms, count=len(rooms))


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Current membership of a room.

    Returns:
    - room_id: Room key used in join messages
    - created_at: When the first member joined
    - has_publisher / publisher_id: Current sender, if any
    - subscriber_count / subscriber_ids: Current receivers
    """
    room = request.app.state.room_table.get(room_id)
    if room is None:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    publisher = room.publisher
    return RoomDetailsResponse(
        room_id=room_id,
        created_at=room.created_at,
        has_publisher=publisher is not None,
        publisher_id=publisher.connection_id if publisher is not None else None,
        subscriber_count=len(room.subscribers),
        subscriber_ids=sorted(s.connection_id for s in room.subscribers),
    )
