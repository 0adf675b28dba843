"""
Event Dispatcher：兩種傳輸方式共用的請求入口

WebSocket 與 POST /api/events 都把 (action, data) 交給這裡；
這裡負責驗證 data、解析團隊、呼叫對應的 Manager，並回傳可直接序列化的結果。
異常一律往上拋，由傳輸層決定要轉成 HTTP 錯誤碼還是 <kind>:error 事件。
"""
import logging
from typing import Any, Callable, Dict, Optional

import pydantic

from config import Settings
from core.action_item_manager import ActionItemManager
from core.broadcaster import (
    ACTION_ITEMS,
    CHANNEL_KINDS,
    QUEUE,
    Broadcaster,
    Connection,
    action_items_channel,
    queue_channel,
)
from core.exceptions import UnknownAction, ValidationError
from core.queue_manager import QueueManager
from schemas import (
    ActionItemAdd,
    ActionItemComplete,
    ActionItemRef,
    QueueAdd,
    QueueItemRef,
    TeamRef,
    TimerStart,
)
from services.snapshot_service import (
    build_action_items_snapshot,
    build_queue_snapshot,
    serialize_action_item,
    serialize_queue_item,
)
from services.team_service import resolve_team

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any], Optional[Connection]], Dict[str, Any]]


def event_kind(action: str) -> str:
    """請求所屬的頻道種類，用來決定錯誤事件名稱（queue:error / actionItems:error）"""
    kind = action.partition(":")[0]
    return kind if kind in CHANNEL_KINDS else QUEUE


def describe_validation_error(exc: pydantic.ValidationError) -> str:
    error = exc.errors()[0]
    message = error["msg"].removeprefix("Value error, ")
    location = ".".join(str(part) for part in error["loc"])
    return f"{location}: {message}" if location else message


class EventDispatcher:
    """action 名稱 -> handler"""

    def __init__(
        self,
        queue: QueueManager,
        action_items: ActionItemManager,
        broadcaster: Broadcaster,
        settings: Settings,
    ):
        self.queue = queue
        self.action_items = action_items
        self.broadcaster = broadcaster
        self.settings = settings
        self._handlers: Dict[str, Handler] = {
            f"{QUEUE}:add": self._queue_add,
            f"{QUEUE}:remove": self._queue_remove,
            f"{QUEUE}:get-state": self._queue_get_state,
            f"{QUEUE}:start-timer": self._queue_start_timer,
            f"{QUEUE}:stop-timer": self._queue_stop_timer,
            f"{QUEUE}:join-team": self._queue_join,
            f"{QUEUE}:leave-team": self._queue_leave,
            f"{ACTION_ITEMS}:add": self._action_items_add,
            f"{ACTION_ITEMS}:complete": self._action_items_complete,
            f"{ACTION_ITEMS}:uncomplete": self._action_items_uncomplete,
            f"{ACTION_ITEMS}:remove": self._action_items_remove,
            f"{ACTION_ITEMS}:get-state": self._action_items_get_state,
            f"{ACTION_ITEMS}:join-team": self._action_items_join,
            f"{ACTION_ITEMS}:leave-team": self._action_items_leave,
        }

    def dispatch(
        self,
        action: str,
        data: Optional[Dict[str, Any]] = None,
        connection: Optional[Connection] = None,
    ) -> Dict[str, Any]:
        """
        執行一個客戶端請求

        參數：
            action: 例如 "queue:add"
            data: 請求內容（camelCase 或 snake_case 皆可）
            connection: 發出請求的持久連線；HTTP 請求為 None

        返回：
            JSON-ready 的結果 dict

        異常：
            UnknownAction / ValidationError / NotFoundError / InvalidStateError
        """
        handler = self._handlers.get(action)
        if handler is None:
            raise UnknownAction(action)
        logger.debug(f"Dispatching {action} from {connection or 'http'}")
        return handler(data or {}, connection)

    # ============ 共用 ============

    def _parse(self, schema, data: Dict[str, Any]):
        try:
            request = schema.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError(describe_validation_error(exc)) from exc
        return request, resolve_team(request.team, self.settings)

    @staticmethod
    def _require_connection(action: str, connection: Optional[Connection]) -> Connection:
        if connection is None:
            raise ValidationError(f"{action} requires a persistent connection")
        return connection

    # ============ Queue ============

    def _queue_add(self, data, connection):
        request, team = self._parse(QueueAdd, data)
        item = self.queue.add(team, request.name, request.fast_track)
        return {"item": serialize_queue_item(item)}

    def _queue_remove(self, data, connection):
        request, team = self._parse(QueueItemRef, data)
        item = self.queue.remove(team, request.id)
        return {"removedItem": serialize_queue_item(item)}

    def _queue_get_state(self, data, connection):
        _, team = self._parse(TeamRef, data)
        snapshot = build_queue_snapshot(self.queue.get_state(team))
        if connection is not None:
            self.broadcaster.send(connection, f"{QUEUE}:updated", snapshot)
        return {"data": snapshot}

    def _queue_start_timer(self, data, connection):
        request, team = self._parse(TimerStart, data)
        self.queue.start_timer(team, request.id, request.duration)
        return {"timerStarted": True}

    def _queue_stop_timer(self, data, connection):
        request, team = self._parse(QueueItemRef, data)
        self.queue.stop_timer(team, request.id)
        return {"timerStopped": True}

    def _queue_join(self, data, connection):
        connection = self._require_connection(f"{QUEUE}:join-team", connection)
        _, team = self._parse(TeamRef, data)
        channel = queue_channel(team)
        self.broadcaster.subscribe(connection, channel)
        return {"channel": channel}

    def _queue_leave(self, data, connection):
        connection = self._require_connection(f"{QUEUE}:leave-team", connection)
        _, team = self._parse(TeamRef, data)
        channel = queue_channel(team)
        self.broadcaster.unsubscribe(connection, channel)
        return {"channel": channel}

    # ============ Action Items ============

    def _action_items_add(self, data, connection):
        request, team = self._parse(ActionItemAdd, data)
        item = self.action_items.add(team, request.title, request.description)
        return {"item": serialize_action_item(item)}

    def _action_items_complete(self, data, connection):
        request, team = self._parse(ActionItemComplete, data)
        item = self.action_items.complete(team, request.id, request.image, request.image_name)
        return {"item": serialize_action_item(item)}

    def _action_items_uncomplete(self, data, connection):
        request, team = self._parse(ActionItemRef, data)
        item = self.action_items.uncomplete(team, request.id)
        return {"item": serialize_action_item(item)}

    def _action_items_remove(self, data, connection):
        request, team = self._parse(ActionItemRef, data)
        item = self.action_items.remove(team, request.id)
        return {"removedItem": serialize_action_item(item)}

    def _action_items_get_state(self, data, connection):
        _, team = self._parse(TeamRef, data)
        snapshot = build_action_items_snapshot(self.action_items.get_state(team))
        if connection is not None:
            self.broadcaster.send(connection, f"{ACTION_ITEMS}:updated", snapshot)
        return {"data": snapshot}

    def _action_items_join(self, data, connection):
        connection = self._require_connection(f"{ACTION_ITEMS}:join-team", connection)
        _, team = self._parse(TeamRef, data)
        channel = action_items_channel(team)
        self.broadcaster.subscribe(connection, channel)
        return {"channel": channel}

    def _action_items_leave(self, data, connection):
        connection = self._require_connection(f"{ACTION_ITEMS}:leave-team", connection)
        _, team = self._parse(TeamRef, data)
        channel = action_items_channel(team)
        self.broadcaster.unsubscribe(connection, channel)
        return {"channel": channel}
