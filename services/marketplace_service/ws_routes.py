from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from auth import authenticate_token
from connections import manager
from crud import get_chat_room, get_unread_notifications, get_user_by_id, mark_notifications_read
from database import SessionLocal
from errors import MarketplaceError
from notifications import serialize_notification
import chat
import json
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


def error_frame(message: str) -> dict:
    return {"type": "error", "data": {"error": message}}


def _room_id(frame: dict):
    try:
        return int(frame.get("roomId"))
    except (TypeError, ValueError):
        return None


async def handle_auth(websocket: WebSocket, frame: dict):
    """Verify the token, register the socket and flush unread notifications."""
    db = SessionLocal()
    try:
        user = authenticate_token(db, frame.get("token"))
        if user is None:
            await manager.send_json(websocket, error_frame("Invalid token"))
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return None

        await manager.register(websocket, user.id)
        unread = get_unread_notifications(db, user.id)
        sent = await manager.send_json(websocket, {
            "type": "initial_notifications",
            "data": [serialize_notification(n) for n in unread],
        })
        # Unread rows stay unread until the flush actually reached the socket
        if sent:
            mark_notifications_read(db, [n.id for n in unread])
        logger.info("Socket authenticated for user %s (%s unread, flushed=%s)", user.id, len(unread), sent)
        return user.id
    finally:
        db.close()


async def handle_join_room(websocket: WebSocket, user_id: int, frame: dict):
    room_id = _room_id(frame)
    if room_id is None:
        await manager.send_json(websocket, error_frame("roomId is required"))
        return
    db = SessionLocal()
    try:
        room = get_chat_room(db, room_id)
        if not room or not room.has_participant(user_id):
            await manager.send_json(websocket, error_frame("Unauthorized access to chat room"))
            return
    finally:
        db.close()

    manager.join_room(websocket, room_id)
    await manager.send_json(websocket, {
        "type": "room_message",
        "data": {"roomId": room_id, "event": "joined"},
    })
    await manager.broadcast_to_room(
        {"type": "room_message", "data": {"roomId": room_id, "event": "user_joined", "userId": user_id}},
        room_id,
        exclude=websocket,
    )


async def handle_send_message(websocket: WebSocket, user_id: int, frame: dict):
    room_id = _room_id(frame)
    if room_id is None or not manager.in_room(websocket, room_id):
        await manager.send_json(websocket, error_frame("Join the room before sending messages"))
        return
    db = SessionLocal()
    try:
        user = get_user_by_id(db, user_id)
        room = chat.get_room_for_participant(db, user, room_id)
        message, _ = chat.post_message(db, user, room, frame.get("content"))
        event = chat.message_event(message)
    except MarketplaceError as exc:
        await manager.send_json(websocket, error_frame(exc.message))
        return
    finally:
        db.close()
    await manager.broadcast_to_room(event, room_id)


async def handle_mark_read(websocket: WebSocket, user_id: int, frame: dict):
    room_id = _room_id(frame)
    if room_id is None or not manager.in_room(websocket, room_id):
        await manager.send_json(websocket, error_frame("Join the room before marking messages read"))
        return
    db = SessionLocal()
    try:
        user = get_user_by_id(db, user_id)
        room = chat.get_room_for_participant(db, user, room_id)
        count = chat.read_messages(db, user, room)
    except MarketplaceError as exc:
        await manager.send_json(websocket, error_frame(exc.message))
        return
    finally:
        db.close()
    await manager.broadcast_to_room(
        {"type": "message_read", "data": {"roomId": room_id, "readerId": user_id, "count": count}},
        room_id,
    )


HANDLERS = {
    "join_room": handle_join_room,
    "send_message": handle_send_message,
    "mark_read": handle_mark_read,
}


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    user_id = None
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                frame = None
            if not isinstance(frame, dict):
                await manager.send_json(websocket, error_frame("Invalid message"))
                continue

            frame_type = frame.get("type")
            if frame_type == "auth":
                if user_id is not None:
                    manager.unregister(websocket, user_id)
                user_id = await handle_auth(websocket, frame)
                if user_id is None:
                    return
                continue

            if user_id is None:
                await manager.send_json(websocket, error_frame("Not authenticated"))
                continue

            handler = HANDLERS.get(frame_type)
            if handler is None:
                await manager.send_json(websocket, error_frame(f"Unknown message type: {frame_type}"))
                continue
            await handler(websocket, user_id, frame)
    except WebSocketDisconnect:
        logger.debug("Socket for user %s disconnected", user_id)
    finally:
        manager.unregister(websocket, user_id)
