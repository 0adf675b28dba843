"""
Server-push stream + request API（SSE 版）

重點：
1. GET /api/events 開一條 text/event-stream，訂閱團隊的兩個頻道
2. POST /api/events 以 {action, data} 發出請求，共用 EventDispatcher
3. 每 keepalive_interval 秒送一次 {"type": "ping"}，避免閒置連線被切斷
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from dependencies import AppContext, get_context
from core.broadcaster import QueueConnection, action_items_channel, queue_channel
from core.exceptions import InvalidStateError, NotFoundError, ValidationError
from schemas import ActionRequest
from services.team_service import resolve_team

router = APIRouter(prefix="/api", tags=["events"])
logger = logging.getLogger(__name__)

PING = {"type": "ping"}


def format_sse(message: Dict[str, Any]) -> str:
    return f"data: {json.dumps(message)}\n\n"


async def event_stream(connection: QueueConnection, keepalive_interval: float) -> AsyncIterator[str]:
    """
    把連線佇列中的訊息轉成 SSE 格式

    連線關閉（收到 None）時結束；等待超過 keepalive_interval 則送出 ping
    """
    while True:
        try:
            message = await asyncio.wait_for(connection.receive(), timeout=keepalive_interval)
        except asyncio.TimeoutError:
            yield format_sse(PING)
            continue
        if message is None:
            break
        yield format_sse(message)


@router.get("/events")
async def stream_events(
    team: Optional[str] = Query(None),
    ctx: AppContext = Depends(get_context),
):
    """
    訂閱團隊的即時更新

    連線建立後依序收到：
        queue:updated（快照）、actionItems:updated（快照）、之後的所有變更
    """
    try:
        team = resolve_team(team, ctx.settings)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    connection = QueueConnection(maxsize=ctx.settings.connection_buffer_size)
    ctx.broadcaster.subscribe(connection, queue_channel(team))
    ctx.broadcaster.subscribe(connection, action_items_channel(team))
    logger.info(f"SSE client {connection.id} connected to team {team}")

    async def stream():
        try:
            async for chunk in event_stream(connection, ctx.settings.keepalive_interval):
                yield chunk
        finally:
            connection.close()
            ctx.broadcaster.unsubscribe_all(connection)
            logger.info(f"SSE client {connection.id} disconnected")

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/events")
async def post_event(body: ActionRequest, ctx: AppContext = Depends(get_context)):
    """
    發出一個請求（例如 queue:add、actionItems:complete）

    錯誤對應：
        ValidationError / UnknownAction -> 400
        NotFoundError -> 404
        InvalidStateError -> 409
    """
    try:
        result = ctx.dispatcher.dispatch(body.action, body.data)
        return {"success": True, **result}

    except ValidationError as e:
        logger.warning(f"Rejected {body.action}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to handle {body.action}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/teams")
def list_teams(ctx: AppContext = Depends(get_context)):
    return {"teams": ctx.settings.teams, "default": ctx.settings.default_team}
