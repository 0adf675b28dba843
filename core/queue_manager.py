"""
Queue Manager：管理團隊隊列的新增與移除

職責：
1. 加入隊列（含 fast-track 插隊）
2. 移出隊列（同時取消計時器、清空 currently_serving）
3. 查詢隊列
4. 計時器的開始 / 停止轉交給 TimerManager

原則：
- 所有操作都必須明確帶入 team，不從其他地方推斷
- 先驗證再修改：任何異常拋出時狀態都沒有被動過
- 每次修改後先廣播完整快照，再廣播描述變化的事件
"""
import logging

from models import NAME_MAX_LENGTH, QueueItem, QueueState
from core.broadcaster import QUEUE, Broadcaster, queue_channel
from core.exceptions import ItemNotFound, ValidationError
from core.state_store import TeamStateStore
from core.timer_manager import TimerManager
from services.id_service import generate_id
from services.snapshot_service import serialize_queue_item

logger = logging.getLogger(__name__)


def require_team(team: str) -> str:
    """核心只要求團隊識別碼非空，不檢查是否在已知列表中"""
    if not team or not team.strip():
        raise ValidationError("Team is required")
    return team


class QueueManager:
    """隊列生命週期管理器"""

    def __init__(self, store: TeamStateStore, broadcaster: Broadcaster, timers: TimerManager):
        self.store = store
        self.broadcaster = broadcaster
        self.timers = timers

    def add(self, team: str, name: str, fast_track: bool = False) -> QueueItem:
        """
        加入隊列

        流程：
        1. 驗證名稱（trim 後不可為空，且不超過 50 字）
        2. 建立 QueueItem
        3. 一般項目放到隊尾；fast-track 項目插在隊首連續 fast-track 區段之後
        4. 廣播 queue:updated，再廣播 queue:item-added

        參數：
            team: 團隊識別碼
            name: 顯示名稱
            fast_track: 是否插隊

        返回：
            新的 QueueItem

        異常：
            ValidationError: 名稱為空或過長

        範例：
            add("Alice")               -> [Alice]
            add("Bob", fast_track=True)   -> [Bob, Alice]
            add("Carol", fast_track=True) -> [Bob, Carol, Alice]
        """
        require_team(team)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Queue name cannot be empty")
        if len(name) > NAME_MAX_LENGTH:
            raise ValidationError(f"Queue name must be at most {NAME_MAX_LENGTH} characters")

        item = QueueItem(id=generate_id(), name=name, team=team, fast_track=bool(fast_track))

        with self.store.lock(team):
            state = self.store.get_queue_state(team)
            if item.fast_track:
                state.items.insert(state.fast_track_insert_index(), item)
            else:
                state.items.append(item)

            self.broadcaster.publish_queue_state(team)
            self.broadcaster.broadcast(
                queue_channel(team), f"{QUEUE}:item-added", serialize_queue_item(item)
            )

        logger.info(
            f"Added to queue: {item.name} ({item.id}) team={team} fast_track={item.fast_track}"
        )
        return item

    def remove(self, team: str, item_id: str) -> QueueItem:
        """
        移出隊列

        效果：
        - 取消該項目的計時器（如果有）
        - 若它是 currently_serving，與移除同時清空
        - 廣播 queue:updated，再廣播 queue:item-removed

        返回：
            被移除的 QueueItem

        異常：
            ItemNotFound: 項目不存在於該團隊的隊列
        """
        require_team(team)
        with self.store.lock(team):
            state = self.store.get_queue_state(team)
            if state.index_of(item_id) == -1:
                raise ItemNotFound(item_id)

            self.timers.cancel(item_id)
            item = state.pop(item_id)

            self.broadcaster.publish_queue_state(team)
            self.broadcaster.broadcast(queue_channel(team), f"{QUEUE}:item-removed", {"id": item_id})

        logger.info(f"Removed from queue: {item.name} ({item_id}) team={team}")
        return item

    def get_state(self, team: str) -> QueueState:
        """純讀取，不修改也不廣播"""
        require_team(team)
        return self.store.get_queue_state(team)

    def start_timer(self, team: str, item_id: str, duration_ms: int):
        require_team(team)
        return self.timers.start(team, item_id, duration_ms)

    def stop_timer(self, team: str, item_id: str) -> None:
        require_team(team)
        self.timers.stop(team, item_id)
