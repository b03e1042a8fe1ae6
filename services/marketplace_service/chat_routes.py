from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
from database import get_db
from schemas import ChatRoomResponse, MessageCreate, MessageResponse
from crud import count_unread_messages, get_last_message, get_messages, get_user_chat_rooms
from auth import get_current_user
from connections import manager
from models import User
import chat

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.get("/rooms", response_model=List[ChatRoomResponse])
def list_rooms(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    responses = []
    for room in get_user_chat_rooms(db, user.id):
        payload = ChatRoomResponse.model_validate(room)
        payload.unread_count = count_unread_messages(db, room.id, user.id)
        last_message = get_last_message(db, room.id)
        payload.last_message = MessageResponse.model_validate(last_message) if last_message else None
        responses.append(payload)
    return responses


@router.get("/rooms/{room_id}/messages", response_model=List[MessageResponse])
def list_room_messages(room_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    room = chat.get_room_for_participant(db, user, room_id)
    messages = get_messages(db, room.id)
    if chat.read_messages(db, user, room):
        manager.push_to_room(room.id, {
            "type": "message_read",
            "data": {"roomId": room.id, "readerId": user.id},
        })
    return messages


@router.post("/rooms/{room_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_room_message(
    room_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    room = chat.get_room_for_participant(db, user, room_id)
    message, _ = chat.post_message(db, user, room, payload.content)
    manager.push_to_room(room.id, chat.message_event(message))
    return message
