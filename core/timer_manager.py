"""
Timer Manager：管理「正在服務」項目的倒數計時

職責：
1. 開始計時（只允許隊首項目），設定 currently_serving
2. 停止計時，項目回到等待狀態
3. 到期時自動把項目移出隊列並廣播

狀態轉換（單一 QueueItem）：
    Waiting --start--> Serving --stop--> Waiting
                       Serving --expire / remove--> Removed

唯一的非同步邊界是 scheduler.schedule(delay_ms, action) -> handle；
handle.cancel() 之後 action 絕不會再執行。
"""
import asyncio
import logging
from typing import Callable, Dict, Optional

from models import QueueState, TimerRegistration, utcnow
from core.broadcaster import QUEUE, Broadcaster, queue_channel
from core.exceptions import ItemNotFound, NotFirstInLine, TimerNotFound, ValidationError
from core.state_store import TeamStateStore
from services.snapshot_service import build_timer_started

logger = logging.getLogger(__name__)


class AsyncioScheduler:
    """以 event loop 的 call_later 實作排程；回傳的 TimerHandle 提供 cancel()"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop

    def schedule(self, delay_ms: int, action: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self.loop or asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, action)


class TimerManager:
    """計時器登記表：item id -> TimerRegistration（每個 item 最多一筆）"""

    def __init__(self, store: TeamStateStore, broadcaster: Broadcaster, scheduler):
        self.store = store
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self._registrations: Dict[str, TimerRegistration] = {}

    def start(self, team: str, item_id: str, duration_ms: int) -> TimerRegistration:
        """
        開始倒數（Waiting -> Serving）

        前置條件：
        1. duration_ms > 0
        2. 項目存在於團隊隊列
        3. 項目位於隊首（index 0）

        流程：
        1. 驗證前置條件（全部通過前不寫入任何欄位）
        2. 排程到期動作，取消同一項目的舊計時器
        3. 同團隊若有其他項目正在服務，將其停止（每團隊最多一個倒數）
        4. 設定項目的計時欄位與 currently_serving
        5. 廣播 queue:updated，再廣播 queue:timer-started

        參數：
            team: 團隊識別碼
            item_id: 隊列項目 ID
            duration_ms: 倒數毫秒數

        返回：
            新的 TimerRegistration

        異常：
            ValidationError: duration_ms 不是正數
            ItemNotFound: 項目不存在
            NotFirstInLine: 項目不在隊首
        """
        if duration_ms is None or duration_ms <= 0:
            raise ValidationError("Timer duration must be a positive number of milliseconds")

        with self.store.lock(team):
            state = self.store.get_queue_state(team)
            index = state.index_of(item_id)
            if index == -1:
                raise ItemNotFound(item_id)
            if index != 0:
                raise NotFirstInLine(item_id)

            item = state.items[0]
            registration = TimerRegistration(
                item_id=item_id,
                team=team,
                handle=None,
                started_at=utcnow(),
                duration_ms=duration_ms,
            )
            registration.handle = self.scheduler.schedule(
                duration_ms, lambda: self._expire(registration)
            )

            if self.cancel(item_id):
                logger.info(f"Restarting timer for item {item_id} (team={team})")
            self._stop_other_timers(team, state, keep=item_id)

            self._registrations[item_id] = registration
            item.timer_started = registration.started_at
            item.timer_duration = duration_ms
            state.currently_serving = item

            self.broadcaster.publish_queue_state(team)
            self.broadcaster.broadcast(
                queue_channel(team),
                f"{QUEUE}:timer-started",
                build_timer_started(item_id, duration_ms, registration.started_at),
            )

        logger.info(f"Started {duration_ms}ms timer for {item.name} ({item_id}) in team {team}")
        return registration

    def stop(self, team: str, item_id: str) -> None:
        """
        停止倒數（Serving -> Waiting）

        只廣播 queue:updated，沒有獨立事件

        異常：
            TimerNotFound: 該項目沒有正在執行的計時器
        """
        with self.store.lock(team):
            registration = self._registrations.get(item_id)
            if registration is None or registration.team != team:
                raise TimerNotFound(item_id)

            registration.handle.cancel()
            del self._registrations[item_id]

            state = self.store.get_queue_state(team)
            self._clear_serving(state, item_id)

            self.broadcaster.publish_queue_state(team)

        logger.info(f"Stopped timer for item {item_id} in team {team}")

    def cancel(self, item_id: str) -> bool:
        """
        取消計時器但不動隊列、不廣播（項目即將被移除時使用）

        返回：
            True 如果原本有計時器
        """
        registration = self._registrations.pop(item_id, None)
        if registration is None:
            return False
        registration.handle.cancel()
        return True

    def get(self, item_id: str) -> Optional[TimerRegistration]:
        return self._registrations.get(item_id)

    def active_count(self) -> int:
        return len(self._registrations)

    def shutdown(self) -> None:
        """應用程式關閉時取消全部計時器"""
        for item_id in list(self._registrations):
            self.cancel(item_id)

    def _stop_other_timers(self, team: str, state: QueueState, keep: str) -> None:
        for other_id, registration in list(self._registrations.items()):
            if registration.team != team or other_id == keep:
                continue
            self.cancel(other_id)
            self._clear_serving(state, other_id)
            logger.info(f"Stopped timer for item {other_id} in team {team}: another item is being served")

    @staticmethod
    def _clear_serving(state: QueueState, item_id: str) -> None:
        item = state.find(item_id)
        if item is not None and item.is_serving:
            item.clear_timer()
        if state.currently_serving is not None and state.currently_serving.id == item_id:
            state.currently_serving = None

    def _expire(self, registration: TimerRegistration) -> None:
        """
        到期動作（由 scheduler 呼叫，不對外公開）

        流程：
        1. 確認這筆登記仍是最新的（被取代或取消的舊計時器直接忽略）
        2. 重新以 ID 找項目；已被移除則不做事
        3. 移除項目、清空 currently_serving
        4. 依序廣播 queue:updated、queue:timer-expired、queue:item-removed
        """
        team = registration.team
        item_id = registration.item_id

        with self.store.lock(team):
            if self._registrations.get(item_id) is not registration:
                logger.debug(f"Ignoring stale timer for item {item_id}")
                return
            del self._registrations[item_id]

            state = self.store.get_queue_state(team)
            item = state.pop(item_id)
            if item is None:
                return

            channel = queue_channel(team)
            self.broadcaster.publish_queue_state(team)
            self.broadcaster.broadcast(channel, f"{QUEUE}:timer-expired", {"id": item_id})
            self.broadcaster.broadcast(channel, f"{QUEUE}:item-removed", {"id": item_id})

        logger.info(f"Timer expired, removed {item.name} ({item_id}) from team {team}")
