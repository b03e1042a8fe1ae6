"""
In-memory WebSocket connection registry.

One live socket per user (a newer authenticated socket evicts the older one) and
a set of sockets per chat room. The maps are touched from the event loop that
serves the sockets and from threadpool HTTP handlers, so a lock guards them.
Sends always run on the loop that accepted the socket.
"""
from fastapi import WebSocket
from typing import Dict, Optional, Set
import asyncio
import json
import logging
import threading

logger = logging.getLogger(__name__)

EVICTED_CLOSE_CODE = 4000


class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[int, WebSocket] = {}
        self.room_connections: Dict[int, Set[WebSocket]] = {}
        self._loops: Dict[WebSocket, asyncio.AbstractEventLoop] = {}
        self._lock = threading.Lock()

    async def register(self, websocket: WebSocket, user_id: int) -> Optional[WebSocket]:
        """Bind ``websocket`` to ``user_id``; close and return any socket it replaces."""
        with self._lock:
            previous = self.active_connections.get(user_id)
            self.active_connections[user_id] = websocket
            self._loops[websocket] = asyncio.get_running_loop()
            previous_loop = self._loops.get(previous) if previous is not None else None
        if previous is None or previous is websocket:
            return None

        self._forget_socket(previous)
        logger.info("Evicting previous socket for user %s", user_id)
        try:
            await self._on_loop(previous_loop, previous.close(code=EVICTED_CLOSE_CODE))
        except RuntimeError as exc:
            logger.debug("Previous socket for user %s already closed: %s", user_id, exc)
        return previous

    def unregister(self, websocket: WebSocket, user_id: Optional[int]):
        with self._lock:
            if user_id is not None and self.active_connections.get(user_id) is websocket:
                del self.active_connections[user_id]
        self._forget_socket(websocket)

    def _forget_socket(self, websocket: WebSocket):
        with self._lock:
            self._loops.pop(websocket, None)
            for room_id in list(self.room_connections):
                members = self.room_connections[room_id]
                members.discard(websocket)
                if not members:
                    del self.room_connections[room_id]

    def join_room(self, websocket: WebSocket, room_id: int):
        with self._lock:
            self.room_connections.setdefault(room_id, set()).add(websocket)

    def in_room(self, websocket: WebSocket, room_id: int) -> bool:
        with self._lock:
            return websocket in self.room_connections.get(room_id, set())

    def is_connected(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self.active_connections

    def get_connection(self, user_id: int) -> Optional[WebSocket]:
        with self._lock:
            return self.active_connections.get(user_id)

    def room_members(self, room_id: int) -> Set[WebSocket]:
        with self._lock:
            return set(self.room_connections.get(room_id, set()))

    async def _on_loop(self, loop: Optional[asyncio.AbstractEventLoop], coro):
        if loop is None or loop is asyncio.get_running_loop():
            return await coro
        return await asyncio.wrap_future(asyncio.run_coroutine_threadsafe(coro, loop))

    async def _send(self, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_text(json.dumps(message, default=str))
            return True
        except Exception as exc:
            logger.warning("Dropping push to a dead socket: %s", exc)
            return False

    async def send_json(self, websocket: WebSocket, message: dict) -> bool:
        with self._lock:
            loop = self._loops.get(websocket)
        return await self._on_loop(loop, self._send(websocket, message))

    async def send_personal_message(self, message: dict, user_id: int) -> bool:
        websocket = self.get_connection(user_id)
        if websocket is None:
            return False
        return await self.send_json(websocket, message)

    async def broadcast_to_room(self, message: dict, room_id: int, exclude: Optional[WebSocket] = None) -> int:
        delivered = 0
        for websocket in self.room_members(room_id):
            if websocket is exclude:
                continue
            if await self.send_json(websocket, message):
                delivered += 1
        return delivered

    def _schedule(self, websocket: WebSocket, message: dict) -> bool:
        with self._lock:
            loop = self._loops.get(websocket)
        if loop is None:
            return False
        try:
            asyncio.run_coroutine_threadsafe(self._send(websocket, message), loop)
        except RuntimeError as exc:
            logger.warning("Push skipped: %s", exc)
            return False
        return True

    def push(self, user_id: int, message: dict) -> bool:
        """
        Best-effort delivery from synchronous code.

        Schedules the send on the loop that owns the user's socket and returns
        immediately. Returns False when the user has no live socket.
        """
        websocket = self.get_connection(user_id)
        if websocket is None:
            return False
        return self._schedule(websocket, message)

    def push_to_room(self, room_id: int, message: dict) -> int:
        return sum(1 for websocket in self.room_members(room_id) if self._schedule(websocket, message))


manager = ConnectionManager()
