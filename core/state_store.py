"""
Team State Store：所有隊列與待辦事項狀態的唯一真實來源

生命週期：
- 應用程式啟動時建立一次（測試中每個 test case 各自建立）
- 團隊狀態在第一次存取時建立，之後存活到行程結束，從不刪除
- 不做序列化或持久化

不驗證團隊是否屬於已知列表（那是邊界層的責任）
"""
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List

from models import ActionItemsState, QueueState
from core.locks import TeamLocks

logger = logging.getLogger(__name__)


class TeamStateStore:
    """團隊 -> (QueueState, ActionItemsState) 的對應表"""

    def __init__(self):
        self._queues: Dict[str, QueueState] = {}
        self._action_items: Dict[str, ActionItemsState] = {}
        self._locks = TeamLocks()

    def get_queue_state(self, team: str) -> QueueState:
        """
        取得團隊的隊列狀態（冪等）

        第一次呼叫會建立空隊列；之後永遠回傳同一個可變物件
        """
        state = self._queues.get(team)
        if state is None:
            with self._locks.hold(team):
                state = self._queues.get(team)
                if state is None:
                    state = QueueState()
                    self._queues[team] = state
                    logger.info(f"Created queue state for team {team}")
        return state

    def get_action_items_state(self, team: str) -> ActionItemsState:
        """取得團隊的待辦事項狀態（冪等，規則同 get_queue_state）"""
        state = self._action_items.get(team)
        if state is None:
            with self._locks.hold(team):
                state = self._action_items.get(team)
                if state is None:
                    state = ActionItemsState()
                    self._action_items[team] = state
                    logger.info(f"Created action items state for team {team}")
        return state

    @contextmanager
    def lock(self, team: str) -> Iterator[None]:
        """持有團隊的鎖，涵蓋一次修改加上其快照讀取"""
        with self._locks.hold(team):
            yield

    def teams(self) -> List[str]:
        return sorted(set(self._queues) | set(self._action_items))
