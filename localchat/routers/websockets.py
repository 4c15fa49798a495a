from __future__ import annotations

import json
from functools import lru_cache
from typing import FrozenSet

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..constants import ERR_INVALID_PAYLOAD, WS_CLOSE_FORBIDDEN_ORIGIN
from ..hub import WebSocketConnection
from ..logging_config import get_logger
from ..session import handle_connect, handle_disconnect, handle_ws_message
from ..state import core

logger = get_logger(__name__)

router = APIRouter(prefix="", tags=["ws"])


@lru_cache(maxsize=1)
def allowed_origins() -> FrozenSet[str]:
    return frozenset(core.settings.origin_list())


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    # Non-browser clients send no Origin header and are let through.
    origin = ws.headers.get("origin")
    if origin is not None and origin not in allowed_origins():
        logger.warning("Rejected websocket from origin %s", origin)
        await ws.close(code=WS_CLOSE_FORBIDDEN_ORIGIN)
        return

    await ws.accept()
    conn = WebSocketConnection(ws)
    conn.start()
    handle_connect(core, conn)

    try:
        while True:
            raw = await ws.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                core.send_error(conn.id, ERR_INVALID_PAYLOAD)
                continue
            await handle_ws_message(core, conn.id, frame)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket error on %s", conn.id)
    finally:
        conn.closed = True
        await handle_disconnect(core, conn.id)
        await conn.close()
