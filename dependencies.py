"""
應用程式相依物件

AppContext 在 lifespan 啟動時建立一次，存活到行程結束；
測試可以直接呼叫 build_context() 取得彼此隔離的實例
"""
from dataclasses import dataclass
from typing import Optional

from fastapi.requests import HTTPConnection

from config import Settings, get_settings
from core.action_item_manager import ActionItemManager
from core.broadcaster import Broadcaster
from core.dispatcher import EventDispatcher
from core.queue_manager import QueueManager
from core.state_store import TeamStateStore
from core.timer_manager import AsyncioScheduler, TimerManager


@dataclass
class AppContext:
    settings: Settings
    store: TeamStateStore
    broadcaster: Broadcaster
    timers: TimerManager
    queue: QueueManager
    action_items: ActionItemManager
    dispatcher: EventDispatcher


def build_context(settings: Optional[Settings] = None, scheduler=None) -> AppContext:
    settings = settings or get_settings()
    store = TeamStateStore()
    broadcaster = Broadcaster(store)
    timers = TimerManager(store, broadcaster, scheduler or AsyncioScheduler())
    queue = QueueManager(store, broadcaster, timers)
    action_items = ActionItemManager(store, broadcaster)
    dispatcher = EventDispatcher(queue, action_items, broadcaster, settings)
    return AppContext(
        settings=settings,
        store=store,
        broadcaster=broadcaster,
        timers=timers,
        queue=queue,
        action_items=action_items,
        dispatcher=dispatcher,
    )


def get_context(conn: HTTPConnection) -> AppContext:
    """
    FastAPI dependency：提供 AppContext

    參數型別用 HTTPConnection，HTTP route 與 WebSocket route 都能使用
    """
    return conn.app.state.context
