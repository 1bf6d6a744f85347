from pydantic import BaseModel
from typing import Optional


class RoomSummary(BaseModel):
    room_id: str
    has_publisher: bool
    subscriber_count: int


class RoomDetailsResponse(BaseModel):
    room_id: str
    created_at: str
    has_publisher: bool
    publisher_id: Optional[str] = None
    subscriber_count: int
    subscriber_ids: list[str]


class RoomListResponse(BaseModel):
    rooms: list[RoomSummary]
    count: int


class HealthResponse(BaseModel):
    status: str
    rooms: int
    connections: int
