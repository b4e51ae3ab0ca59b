"""Websocket endpoint for the task change feed."""
from fastapi import APIRouter, WebSocket, status

from app.errors import AuthError
from app.middleware.auth import decode_access_token
from app.realtime.broadcaster import task_change_broadcaster
from app.utils.logger import get_logger

router = APIRouter(tags=["Realtime"])

logger = get_logger(__name__)


@router.websocket("/ws/tasks")
async def task_feed(websocket: WebSocket):
    """Stream insert/update/delete events for the rows of the token's owner."""
    token = websocket.query_params.get("token")
    if not token:
        logger.warning("Feed connection without token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        current_user = decode_access_token(token)
    except AuthError as e:
        logger.warning("Feed token rejected", reason=e.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await task_change_broadcaster.connect(websocket, current_user.user_id)
