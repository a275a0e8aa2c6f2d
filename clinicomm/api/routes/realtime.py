"""
Live update WebSocket.

Clients connect to /ws/{user_id}; the server pushes incomingMessage and
messageStatusUpdate frames. Sending {"event": "register"} renews presence.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from clinicomm.api.dependencies.services import get_connection_hub
from clinicomm.core.logging.logger import get_logger

router = APIRouter(tags=["Realtime"])

REGISTER_EVENT = "register"


@router.websocket("/ws/{user_id}")
async def realtime_socket(websocket: WebSocket, user_id: str):
    logger = get_logger(__name__)
    hub = get_connection_hub(websocket.app)

    await websocket.accept()
    connection_id = await hub.connect(user_id, websocket)
    await websocket.send_json({"event": "connected", "data": {"connectionId": connection_id}})

    try:
        while True:
            frame = await websocket.receive_json()
            if isinstance(frame, dict) and frame.get("event") == REGISTER_EVENT:
                await hub.refresh(user_id, connection_id)
                await websocket.send_json({"event": "registered", "data": {"userId": user_id}})
            else:
                logger.debug(f"Ignoring client frame from {user_id}: {frame!r}")
    except WebSocketDisconnect:
        logger.debug(f"WebSocket closed by {user_id}")
    except ValueError as e:
        logger.warning(f"Closing socket of {user_id} after malformed frame: {e}")
    finally:
        await hub.disconnect(user_id, connection_id)
