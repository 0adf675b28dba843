"""
並發控制工具

提供團隊層級（per-team）的鎖定機制，防止競態條件（Race Condition）

正常情況下所有 handler 都在同一個 event loop 上執行，修改本身不會交錯；
這裡的鎖確保即使從 worker thread 呼叫 Manager，同一個團隊的
「修改 + 讀取快照 + 廣播入列」仍然是一個不可分割的區段。
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class TeamLocks:
    """每個團隊一把 RLock，第一次使用時建立"""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, team: str) -> threading.RLock:
        """
        取得團隊的鎖（不存在則建立）

        參數：
            team: 團隊識別碼

        返回：
            threading.RLock（可重入：例如移除項目時在鎖內取消計時器）
        """
        lock = self._locks.get(team)
        if lock is None:
            with self._guard:
                lock = self._locks.setdefault(team, threading.RLock())
        return lock

    @contextmanager
    def hold(self, team: str) -> Iterator[None]:
        """
        鎖定一個團隊

        範例：
            with locks.hold(team):
                state = store.get_queue_state(team)
                state.items.append(item)
                broadcaster.broadcast(...)

        注意：
            - 鎖內不得 await 或做阻塞 I/O，廣播只是 put_nowait
        """
        lock = self.get(team)
        with lock:
            yield
