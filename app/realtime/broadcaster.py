"""
Task Change Broadcaster.

Keeps the open change-feed websockets of every user and pushes row-level
insert/update/delete notifications to the owner of the row.
"""

import json
from typing import Dict, Set, Any
from datetime import datetime, timezone

from fastapi import WebSocket, WebSocketDisconnect

from app.utils.logger import get_logger

logger = get_logger(__name__)

CHANGE_KINDS = ("insert", "update", "delete")


class TaskChangeBroadcaster:
    """Handler for change-feed connections and message broadcasting."""

    def __init__(self):
        """Initialize the broadcaster with no connections."""
        self.user_connections: Dict[str, Set[WebSocket]] = {}

    @property
    def connection_count(self) -> int:
        return sum(len(connections) for connections in self.user_connections.values())

    async def connect(self, websocket: WebSocket, user_id: str):
        """Accept a change-feed client and hold the connection until it closes."""
        await websocket.accept()
        self.user_connections.setdefault(user_id, set()).add(websocket)
        logger.info("Feed client connected", user_id=user_id, connections=self.connection_count)

        try:
            await websocket.send_text(json.dumps({
                "type": "connection_established",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "message": f"Subscribed to task changes for user {user_id}"
            }))

            # The feed is one-way; reading only detects the disconnect
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("Feed client disconnected", user_id=user_id)
        finally:
            self.disconnect(websocket, user_id)

    def disconnect(self, websocket: WebSocket, user_id: str):
        """Forget a change-feed client."""
        connections = self.user_connections.get(user_id)
        if connections is None:
            return

        connections.discard(websocket)
        if not connections:
            del self.user_connections[user_id]

        logger.info("Feed client removed", user_id=user_id, connections=self.connection_count)

    async def broadcast_to_user(self, user_id: str, message: Dict[str, Any]):
        """Broadcast message to all connections for a specific user."""
        connections = self.user_connections.get(user_id)
        if not connections:
            return

        message["timestamp"] = datetime.now(timezone.utc).isoformat()
        json_message = json.dumps(message)

        disconnected_clients = set()
        for connection in list(connections):
            try:
                await connection.send_text(json_message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning("Dropping feed client after failed send", user_id=user_id, error=str(e))
                disconnected_clients.add(connection)

        for client in disconnected_clients:
            self.disconnect(client, user_id)

    async def publish_change(self, kind: str, row: Dict[str, Any]):
        """
        Notify the owner of a row that it was inserted, updated or deleted.

        Args:
            kind: One of insert, update, delete
            row: Full task row including user_id
        """
        if kind not in CHANGE_KINDS:
            raise ValueError(f"Unknown change kind: {kind}")

        await self.broadcast_to_user(row["user_id"], {
            "type": "task_change",
            "kind": kind,
            "task": row,
        })
        logger.debug("Published task change", kind=kind, task_id=row.get("id"))


# Global broadcaster instance
task_change_broadcaster = TaskChangeBroadcaster()
