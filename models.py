"""
記憶體內的資料模型

所有實例都由 TeamStateStore 獨佔持有；Manager 只能就地修改 Store 給出的
同一份狀態，不得另外保留可變副本。狀態不做持久化，行程重啟即消失。
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ============ 輸入限制（與前端表單一致） ============

NAME_MAX_LENGTH = 50
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 300
IMAGE_MAX_BYTES = 3 * 1024 * 1024


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Team(str, Enum):
    """
    已知的團隊

    只給邊界層（API / UI）使用，核心邏輯接受任何非空字串作為團隊識別碼
    """
    BMA_TRAINING = "bma-training"
    CAFFEINE = "caffeine"
    TMLT = "tmlt"


DEFAULT_TEAM = Team.BMA_TRAINING


# ============ Queue ============

@dataclass
class QueueItem:
    id: str
    name: str
    team: str
    added_at: datetime = field(default_factory=utcnow)
    fast_track: bool = False
    timer_started: Optional[datetime] = None
    timer_duration: Optional[int] = None  # ms

    @property
    def is_serving(self) -> bool:
        return self.timer_started is not None

    def clear_timer(self) -> None:
        self.timer_started = None
        self.timer_duration = None


@dataclass
class QueueState:
    """
    一個團隊的隊列

    不變條件：
    - fast-track 項目永遠是 items 的連續前綴，且保持加入順序
    - currently_serving 若有值，必定指向 items 中仍存在的項目
    """
    items: List[QueueItem] = field(default_factory=list)
    currently_serving: Optional[QueueItem] = None

    def index_of(self, item_id: str) -> int:
        for index, item in enumerate(self.items):
            if item.id == item_id:
                return index
        return -1

    def find(self, item_id: str) -> Optional[QueueItem]:
        index = self.index_of(item_id)
        return self.items[index] if index != -1 else None

    def fast_track_insert_index(self) -> int:
        """從隊首往後掃描，回傳第一個非 fast-track 的位置（全部都是則回傳尾端）"""
        index = 0
        while index < len(self.items) and self.items[index].fast_track:
            index += 1
        return index

    def pop(self, item_id: str) -> Optional[QueueItem]:
        """移除項目，若它正在服務中則同時清空 currently_serving"""
        index = self.index_of(item_id)
        if index == -1:
            return None
        item = self.items.pop(index)
        if self.currently_serving is not None and self.currently_serving.id == item_id:
            self.currently_serving = None
        return item


# ============ Action Items ============

@dataclass
class ActionItem:
    id: str
    title: str
    team: str
    created_at: datetime = field(default_factory=utcnow)
    description: Optional[str] = None
    completed: bool = False
    completed_at: Optional[datetime] = None
    completion_image: Optional[str] = None
    completion_image_name: Optional[str] = None

    def mark_completed(self, image: Optional[str] = None, image_name: Optional[str] = None) -> None:
        self.completed = True
        self.completed_at = utcnow()
        self.completion_image = image
        self.completion_image_name = image_name

    def mark_pending(self) -> None:
        self.completed = False
        self.completed_at = None
        self.completion_image = None
        self.completion_image_name = None


@dataclass
class ActionItemsState:
    """以 ID 為鍵的待辦事項集合；dict 保留插入順序，pending / completed 由穩定過濾得出"""
    items: Dict[str, ActionItem] = field(default_factory=dict)

    def pending(self) -> List[ActionItem]:
        return [item for item in self.items.values() if not item.completed]

    def completed(self) -> List[ActionItem]:
        return [item for item in self.items.values() if item.completed]


# ============ Timer ============

@dataclass
class TimerRegistration:
    item_id: str
    team: str
    handle: Any  # 必須提供 cancel()
    started_at: datetime
    duration_ms: int
