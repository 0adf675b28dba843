"""
快照服務：把隊列與待辦事項狀態轉成推送給客戶端的 JSON payload

純計算邏輯，WebSocket 與 SSE 共用同一份輸出格式（camelCase）
"""
from datetime import datetime
from typing import Any, Dict

from models import ActionItem, ActionItemsState, QueueItem, QueueState
from schemas import (
    ActionItemOut,
    ActionItemsStateOut,
    QueueItemOut,
    QueueStateOut,
    TimerStartedOut,
)


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def serialize_queue_item(item: QueueItem) -> Dict[str, Any]:
    return _dump(QueueItemOut.model_validate(item))


def serialize_action_item(item: ActionItem) -> Dict[str, Any]:
    return _dump(ActionItemOut.model_validate(item))


def build_queue_snapshot(state: QueueState) -> Dict[str, Any]:
    """
    建立團隊隊列的快照

    參數：
        state: 團隊的 QueueState

    返回：
        {"items": [...], "currentlyServing": {...} 或 None}

    注意：
    - 結果與 Store 沒有共享物件，放進連線佇列後狀態再變也不影響已排隊的訊息
    """
    return _dump(QueueStateOut.model_validate(state))


def build_action_items_snapshot(state: ActionItemsState) -> Dict[str, Any]:
    """建立團隊待辦事項的快照，依加入順序排列"""
    out = ActionItemsStateOut(
        items=[ActionItemOut.model_validate(item) for item in state.items.values()]
    )
    return _dump(out)


def build_timer_started(item_id: str, duration_ms: int, started_at: datetime) -> Dict[str, Any]:
    return _dump(TimerStartedOut(id=item_id, duration=duration_ms, start_time=started_at))
