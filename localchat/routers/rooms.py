from __future__ import annotations

from typing import List

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ..constants import DEFAULT_PAGE_SIZE, ERR_ROOM_NOT_FOUND, MAX_PAGE_SIZE
from ..errors import PersistenceError, ValidationError
from ..gateway import Gateway, serialize_message
from ..schemas import ChatMessage, CreateRoomRequest, RoomOut
from ..state import gateway

router = APIRouter(prefix="/api", tags=["rooms"])


def get_gateway() -> Gateway:
    return gateway


@router.get("/rooms", response_model=List[RoomOut])
async def list_rooms(store: Gateway = Depends(get_gateway)):
    try:
        rooms = await store.find_rooms()
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to fetch rooms")
    return rooms


@router.post("/rooms", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
async def create_room(
    req: CreateRoomRequest = Body(default=CreateRoomRequest()),
    store: Gateway = Depends(get_gateway),
):
    try:
        room = await store.create_room(req.name, req.description)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to create room")
    return RoomOut(
        id=room.id,
        name=room.name,
        description=room.description,
        is_private=room.is_private,
        max_users=room.max_users,
        created_at=room.created_at,
    )


@router.get("/rooms/{room_id}/messages", response_model=List[ChatMessage])
async def list_messages(
    room_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    store: Gateway = Depends(get_gateway),
):
    try:
        if await store.find_room(room_id) is None:
            raise HTTPException(status_code=404, detail=ERR_ROOM_NOT_FOUND)
        messages = await store.find_messages_by_room(room_id, page=page, page_size=limit)
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to fetch messages")
    return [serialize_message(m) for m in messages]
