"""Chat room access checks and message posting shared by REST and WebSocket."""
from sqlalchemy.orm import Session
from typing import Optional, Tuple
from connections import manager
from crud import create_message, get_chat_room, mark_messages_read
from errors import forbidden, invalid, invalid_state, not_found
from models import ChatRoom, ChatRoomStatus, Message, Notification, User
from notifications import notify
from schemas import MessageResponse


def get_room_for_participant(db: Session, user: User, room_id: int) -> ChatRoom:
    room = get_chat_room(db, room_id)
    if not room:
        raise not_found("Chat room not found")
    if not room.has_participant(user.id):
        raise forbidden("Unauthorized access to chat room")
    return room


def message_event(message: Message) -> dict:
    return {
        "type": "new_message",
        "data": MessageResponse.model_validate(message).model_dump(mode="json", by_alias=True),
    }


def post_message(db: Session, user: User, room: ChatRoom, content: Optional[str]) -> Tuple[Message, Optional[Notification]]:
    """
    Persist a message. The other participant gets a stored notification unless
    their live socket is already joined to the room.
    """
    content = (content or "").strip()
    if not content:
        raise invalid("Message content is required")
    if room.status != ChatRoomStatus.ACTIVE:
        raise invalid_state("Chat room is closed")

    message = create_message(db, room, user.id, content)
    recipient_id = room.other_participant(user.id)
    recipient_socket = manager.get_connection(recipient_id)
    note = None
    if recipient_socket is None or not manager.in_room(recipient_socket, room.id):
        note = notify(db, recipient_id, "new_message", f"New message from {user.name}", room.id)
    return message, note


def read_messages(db: Session, user: User, room: ChatRoom) -> int:
    return mark_messages_read(db, room.id, user.id)
