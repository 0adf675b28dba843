"""
WebSocket API（雙向版）

協議：
1. 連線 /ws?team=<team>；帶 team 時自動加入該團隊的兩個頻道
2. 客戶端送 {"type": "queue:add", "data": {...}, "requestId": 1}
3. 成功回 {"type": "queue:ack", "requestId": 1, "data": 結果}
   失敗回 {"type": "queue:error", "data": "錯誤訊息"}，只給發出請求的連線
4. 狀態變更以 queue:updated / actionItems:updated 及細部事件推送給頻道訂閱者
"""
import asyncio
import logging
from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from dependencies import AppContext, get_context
from core.broadcaster import QUEUE, QueueConnection, action_items_channel, queue_channel
from core.dispatcher import event_kind
from core.exceptions import CommitQException, ValidationError
from schemas import ClientMessage
from services.team_service import resolve_team

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)


async def _pump(websocket: WebSocket, connection: QueueConnection) -> None:
    """把連線佇列的訊息寫到 socket；寫入失敗就關閉連線，讓 Broadcaster 下次送出時移除它"""
    while True:
        message = await connection.receive()
        if message is None:
            break
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.info(f"Write to {connection} failed, closing: {e!r}")
            connection.close()
            break


def _frame_text(frame: dict) -> Optional[str]:
    """取出 frame 的文字內容；二進位 frame 以 UTF-8 解碼，無法解碼時返回 None"""
    if frame.get("text") is not None:
        return frame["text"]
    data = frame.get("bytes")
    if data is None:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _handle_message(ctx: AppContext, connection: QueueConnection, raw: Optional[str]) -> None:
    if raw is None:
        ctx.broadcaster.send(connection, f"{QUEUE}:error", "Invalid message")
        return
    try:
        message = ClientMessage.model_validate_json(raw)
    except pydantic.ValidationError:
        ctx.broadcaster.send(connection, f"{QUEUE}:error", "Invalid message")
        return

    kind = event_kind(message.type)
    try:
        result = ctx.dispatcher.dispatch(message.type, message.data, connection)
    except CommitQException as e:
        logger.warning(f"Rejected {message.type} from {connection}: {e}")
        ctx.broadcaster.send(connection, f"{kind}:error", str(e), requestId=message.request_id)
        return
    except Exception as e:
        logger.error(f"Failed to handle {message.type} from {connection}: {e}", exc_info=True)
        ctx.broadcaster.send(connection, f"{kind}:error", "Internal error", requestId=message.request_id)
        return

    ctx.broadcaster.send(connection, f"{kind}:ack", result, requestId=message.request_id)


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    team: Optional[str] = None,
    ctx: AppContext = Depends(get_context),
):
    await websocket.accept()
    connection = QueueConnection(maxsize=ctx.settings.connection_buffer_size)
    writer = asyncio.create_task(_pump(websocket, connection))
    logger.info(f"Client connected: {connection.id}")

    try:
        if team is not None:
            try:
                resolved = resolve_team(team, ctx.settings)
            except ValidationError as e:
                ctx.broadcaster.send(connection, f"{QUEUE}:error", str(e))
            else:
                ctx.broadcaster.subscribe(connection, queue_channel(resolved))
                ctx.broadcaster.subscribe(connection, action_items_channel(resolved))

        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            _handle_message(ctx, connection, _frame_text(frame))

    except WebSocketDisconnect:
        logger.info(f"Client disconnected: {connection.id}")
    finally:
        connection.close()
        ctx.broadcaster.unsubscribe_all(connection)
        await writer
