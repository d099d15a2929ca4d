from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from typing import Dict, List, Optional
import json
import time
import logging

import config
from room import Room
from room_codes import RoomCodeExhausted
from room_registry import RoomLimitReached, RoomRegistry
from schemas import ROOM_ACTIONS, CreateRoomMessage, JoinMessage

logger = logging.getLogger(__name__)


class RoomChannel:
    """Fan-out of room messages to every connection subscribed to one room."""

    def __init__(self, code: str):
        self.code = code
        self.subscribers: Dict[str, WebSocket] = {}

    def subscribe(self, client_id: str, websocket: WebSocket):
        self.subscribers[client_id] = websocket

    def unsubscribe(self, client_id: str):
        self.subscribers.pop(client_id, None)

    async def publish(self, message: dict):
        disconnected = []
        for client_id, ws in list(self.subscribers.items()):
            try:
                await ws.send_json(message)
            except Exception:
                logger.warning("Dropping subscriber %s from room %s: send failed", client_id, self.code)
                disconnected.append(client_id)
        for client_id in disconnected:
            self.unsubscribe(client_id)


class SocketManager:
    def __init__(self, registry: RoomRegistry):
        self.registry = registry
        self.channels: Dict[str, RoomChannel] = {}
        self.connections: Dict[str, WebSocket] = {}
        self.memberships: Dict[str, str] = {}  # client_id -> room code, at most one per connection
        self.msg_timestamps: Dict[str, list] = {}
        self.allowed_origins: List[str] = []

    def room_for(self, client_id: str) -> Optional[Room]:
        code = self.memberships.get(client_id)
        return self.registry.get(code) if code else None

    async def send(self, client_id: str, message: dict):
        ws = self.connections.get(client_id)
        if not ws:
            return
        try:
            await ws.send_json(message)
        except Exception:
            logger.warning("Failed to send %s to client %s", message.get("type"), client_id)

    async def send_error(self, client_id: str, message: str):
        await self.send(client_id, {"type": "ROOM_ERROR", "message": message})

    async def broadcast_update(self, room: Room):
        channel = self.channels.get(room.code)
        if channel:
            await channel.publish({"type": "ROOM_UPDATE", "state": room.snapshot()})

    def _bind(self, client_id: str, room: Room):
        self.memberships[client_id] = room.code
        channel = self.channels.setdefault(room.code, RoomChannel(room.code))
        ws = self.connections.get(client_id)
        if ws:
            channel.subscribe(client_id, ws)

    async def connect(self, websocket: WebSocket, client_id: str):
        # Validate WebSocket origin
        origin = websocket.headers.get("origin", "")
        if self.allowed_origins and origin not in self.allowed_origins:
            logger.warning("Rejected WebSocket from unauthorized origin: %s", origin)
            await websocket.close(code=1008)
            return

        await websocket.accept()
        if client_id in self.connections:
            logger.warning("Rejected duplicate connection id %s", client_id)
            await websocket.send_json({"type": "ROOM_ERROR", "message": "Connection id already in use."})
            await websocket.close(code=1008)
            return

        self.connections[client_id] = websocket
        logger.info("Client %s connected", client_id)

        try:
            while True:
                data = await websocket.receive_text()

                # Enforce message size limit
                if len(data) > config.MAX_WS_MESSAGE_SIZE:
                    await self.send_error(client_id, "Message too large")
                    continue

                # Per-client rate limiting
                now = time.time()
                timestamps = self.msg_timestamps.setdefault(client_id, [])
                timestamps[:] = [t for t in timestamps if now - t < 1.0]
                if len(timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
                    await self.send_error(client_id, "Too many messages")
                    continue
                timestamps.append(now)

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Malformed JSON from client %s: %s", client_id, data[:100])
                    await self.send_error(client_id, "Invalid message format")
                    continue
                if not isinstance(message, dict):
                    await self.send_error(client_id, "Invalid message format")
                    continue

                await self.handle_message(client_id, message)
        except WebSocketDisconnect:
            logger.info("Client %s disconnected", client_id)
        except Exception:
            logger.exception("WebSocket error for client %s", client_id)
        finally:
            await self.disconnect(client_id)

    async def handle_message(self, client_id: str, message: dict):
        msg_type = message.get("type")

        if msg_type == "CREATE_ROOM":
            await self._create_room(client_id, message)
        elif msg_type == "JOIN":
            await self._join(client_id, message)
        elif msg_type in ROOM_ACTIONS:
            await self._room_action(client_id, msg_type, message)
        else:
            logger.warning("Unknown message type %r from client %s", msg_type, client_id)

    async def _create_room(self, client_id: str, message: dict):
        if client_id in self.memberships:
            await self.send_error(client_id, "Already in a room.")
            return
        request = CreateRoomMessage.model_validate(message)
        try:
            room = await self.registry.create(client_id, request.hostName, request.mode)
        except RoomLimitReached:
            logger.warning("Room creation refused for %s: room limit reached", client_id)
            await self.send_error(client_id, "Too many active rooms. Please try again later.")
            return
        except RoomCodeExhausted:
            logger.exception("Room code allocation failed")
            await self.send_error(client_id, "Could not allocate a room code.")
            return

        self._bind(client_id, room)
        await self.send(client_id, {"type": "ROOM_CREATED", "code": room.code, "state": room.snapshot()})

    async def _join(self, client_id: str, message: dict):
        try:
            request = JoinMessage.model_validate(message)
        except ValidationError:
            await self.send_error(client_id, "Room not found.")
            return
        if client_id in self.memberships:
            await self.send_error(client_id, "Already in a room.")
            return

        room = self.registry.get(request.code)
        if room is None:
            await self.send_error(client_id, "Room not found.")
            return

        async with room.lock:
            if room.closed:
                await self.send_error(client_id, "Room not found.")
                return
            if len(room.players) >= config.MAX_PLAYERS_PER_ROOM:
                await self.send_error(client_id, "Room is full.")
                return
            room.add_player(client_id, request.playerName, request.teamIndex)
            self._bind(client_id, room)
            await self.broadcast_update(room)
            await self.send(client_id, {"type": "PLAYER_JOINED", "code": room.code, "state": room.snapshot()})

    async def _room_action(self, client_id: str, msg_type: str, message: dict):
        try:
            action = ROOM_ACTIONS[msg_type].model_validate(message)
        except ValidationError as e:
            logger.warning("Ignoring invalid %s from client %s: %d error(s)", msg_type, client_id, e.error_count())
            return

        bound_code = self.memberships.get(client_id)
        if action.code and action.code != bound_code:
            if action.code not in self.registry:
                await self.send_error(client_id, "Room not found.")
            return
        if bound_code is None:
            logger.debug("Ignoring %s from client %s outside any room", msg_type, client_id)
            return
        room = self.registry.get(bound_code)
        if room is None:
            await self.send_error(client_id, "Room not found.")
            return

        async with room.lock:
            if room.closed:
                return
            if msg_type == "NEW_ROUND":
                if not room.is_host(client_id):
                    return
                board = await self.registry.board_engine.build_board(room.used_question_ids)
                # Host may have left while the board was being built
                if room.closed:
                    return
                changed = room.new_round(client_id, board, action.keepScores)
            else:
                changed = self._apply(room, client_id, msg_type, action)

            if changed:
                await self.broadcast_update(room)
            else:
                logger.debug("Room %s: %s from %s was a no-op", room.code, msg_type, client_id)

    def _apply(self, room: Room, client_id: str, msg_type: str, action) -> bool:
        if msg_type == "PICK_CLUE":
            return room.pick_clue(client_id, action.catIdx, action.rowIdx)
        elif msg_type == "SHOW_ANSWER":
            return room.show_answer(client_id)
        elif msg_type == "CLOSE_CLUE":
            return room.close_clue(client_id, action.markUsed)
        elif msg_type == "SCORE":
            return room.score(client_id, action.teamIndex, action.delta)
        elif msg_type == "RENAME_TEAM":
            return room.rename_team(client_id, action.teamIndex, action.name)
        elif msg_type == "SET_TURN":
            return room.set_turn(client_id, action.teamIndex)
        elif msg_type == "NEXT_TURN":
            return room.next_turn(client_id)
        elif msg_type == "BUZZ":
            return room.buzz(client_id)
        elif msg_type == "UNLOCK_BUZZER":
            return room.unlock_buzzer(client_id)
        return False

    async def disconnect(self, client_id: str):
        self.connections.pop(client_id, None)
        self.msg_timestamps.pop(client_id, None)
        code = self.memberships.pop(client_id, None)
        if code is None:
            return

        channel = self.channels.get(code)
        if channel:
            channel.unsubscribe(client_id)
        room = self.registry.get(code)
        if room is None:
            return

        async with room.lock:
            if room.closed:
                return
            if room.is_host(client_id):
                await self._end_room(room)
            elif room.remove_player(client_id):
                await self.broadcast_update(room)

    async def _end_room(self, room: Room):
        channel = self.channels.pop(room.code, None)
        if channel:
            await channel.publish({"type": "ROOM_ENDED", "code": room.code})
        self.registry.destroy(room.code)
        for client_id, code in list(self.memberships.items()):
            if code == room.code:
                del self.memberships[client_id]
        logger.info("Room %s ended: host disconnected", room.code)
