"""
Subscription & Broadcast Router

職責：
1. 記錄每個連線訂閱了哪些團隊頻道（queue:<team>、actionItems:<team>）
2. 訂閱時只對該連線送出頻道快照
3. 將狀態更新與事件扇出給該頻道的訂閱者，且只給該頻道

團隊隔離是結構性的：每個頻道有自己的訂閱者集合，不做逐訊息過濾。
送出是 best-effort：寫入失敗的連線在下一次送出時才被移除。
"""
import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import ConnectionClosed, ValidationError
from core.state_store import TeamStateStore
from services.id_service import generate_id
from services.snapshot_service import build_action_items_snapshot, build_queue_snapshot

logger = logging.getLogger(__name__)

QUEUE = "queue"
ACTION_ITEMS = "actionItems"
CHANNEL_KINDS = (QUEUE, ACTION_ITEMS)

# 每個連線最多暫存的訊息數
DEFAULT_BUFFER_SIZE = 1000


def queue_channel(team: str) -> str:
    return f"{QUEUE}:{team}"


def action_items_channel(team: str) -> str:
    return f"{ACTION_ITEMS}:{team}"


def parse_channel(channel: str) -> Tuple[str, str]:
    """
    拆解頻道名稱

    範例：
        parse_channel("queue:tmlt") -> ("queue", "tmlt")
        parse_channel("actionItems:bma-training") -> ("actionItems", "bma-training")

    異常：
        ValidationError: 格式錯誤或未知的頻道種類
    """
    kind, sep, team = channel.partition(":")
    if not sep or kind not in CHANNEL_KINDS or not team:
        raise ValidationError(f"Invalid channel: {channel}")
    return kind, team


class Connection:
    """
    一個已連線的客戶端

    子類別實作 send()：不可阻塞，連線失效時拋出 ConnectionClosed
    """

    def __init__(self, connection_id: Optional[str] = None):
        self.id = connection_id or generate_id()

    def send(self, message: Dict[str, Any]) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __repr__(self):
        return f"<{type(self).__name__} {self.id}>"


class QueueConnection(Connection):
    """
    以 asyncio.Queue 緩衝的連線

    傳輸層（WebSocket / SSE）各自有一個 writer 從 receive() 取出訊息寫到網路；
    close() 之後 receive() 會收到 None，send() 會拋出 ConnectionClosed
    緩衝滿了代表客戶端讀不動，直接關閉連線，未送出的訊息一併丟棄
    """

    def __init__(self, connection_id: Optional[str] = None, maxsize: int = DEFAULT_BUFFER_SIZE):
        super().__init__(connection_id)
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def send(self, message: Dict[str, Any]) -> None:
        if self.closed:
            raise ConnectionClosed(f"Connection {self.id} is closed")
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.close()
            raise ConnectionClosed(f"Connection {self.id} buffer is full")

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        while self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(None)

    async def receive(self) -> Optional[Dict[str, Any]]:
        return await self.queue.get()


class Broadcaster:
    """頻道 -> 訂閱連線 的路由器"""

    def __init__(self, store: TeamStateStore):
        self.store = store
        # channel -> {connection id -> connection}，dict 保留訂閱順序
        self._subscribers: Dict[str, Dict[str, Connection]] = {}
        self._guard = threading.Lock()

    # ============ 訂閱 ============

    def subscribe(self, connection: Connection, channel: str) -> None:
        """
        訂閱頻道，並立即只對這個連線送出目前的快照

        快照與登記在團隊鎖內完成，之後的廣播一定排在快照之後
        """
        kind, team = parse_channel(channel)
        with self.store.lock(team):
            with self._guard:
                self._subscribers.setdefault(channel, {})[connection.id] = connection
            logger.info(f"{connection} subscribed to {channel}")
            self.send(connection, f"{kind}:updated", self.snapshot(kind, team))

    def unsubscribe(self, connection: Connection, channel: str) -> bool:
        with self._guard:
            subscribers = self._subscribers.get(channel)
            if not subscribers or connection.id not in subscribers:
                return False
            del subscribers[connection.id]
            if not subscribers:
                del self._subscribers[channel]
        logger.info(f"{connection} unsubscribed from {channel}")
        return True

    def unsubscribe_all(self, connection: Connection) -> List[str]:
        """從所有頻道移除連線（斷線時使用），回傳原本訂閱的頻道"""
        channels = self.channels_for(connection)
        for channel in channels:
            self.unsubscribe(connection, channel)
        return channels

    def channels_for(self, connection: Connection) -> List[str]:
        with self._guard:
            return [
                channel for channel, subscribers in self._subscribers.items()
                if connection.id in subscribers
            ]

    def subscriber_count(self, channel: str) -> int:
        with self._guard:
            return len(self._subscribers.get(channel, {}))

    def connection_count(self) -> int:
        with self._guard:
            ids = set()
            for subscribers in self._subscribers.values():
                ids.update(subscribers)
            return len(ids)

    # ============ 送出 ============

    def snapshot(self, kind: str, team: str) -> Dict[str, Any]:
        if kind == QUEUE:
            return build_queue_snapshot(self.store.get_queue_state(team))
        return build_action_items_snapshot(self.store.get_action_items_state(team))

    def send(self, connection: Connection, event_type: str, data: Any, **extra: Any) -> bool:
        """
        直接回覆單一連線（快照、ack、錯誤訊息）

        返回：
            False 如果連線已失效（同時會被移出所有頻道）
        """
        message = {"type": event_type, "data": data}
        message.update(extra)
        try:
            connection.send(message)
        except ConnectionClosed:
            self.unsubscribe_all(connection)
            return False
        return True

    def broadcast(self, channel: str, event_type: str, data: Any) -> int:
        """
        送給頻道內所有訂閱者

        參數：
            channel: 頻道名稱
            event_type: 事件種類（例如 queue:updated）
            data: 已序列化、與 Store 無共享的 payload

        返回：
            成功送達的連線數
        """
        message = {"type": event_type, "data": data}
        with self._guard:
            subscribers = list(self._subscribers.get(channel, {}).values())

        delivered = 0
        for connection in subscribers:
            try:
                connection.send(message)
                delivered += 1
            except ConnectionClosed:
                logger.info(f"Pruning dead connection {connection} from {channel}")
                self.unsubscribe_all(connection)
        return delivered

    def publish_queue_state(self, team: str) -> int:
        state = self.store.get_queue_state(team)
        return self.broadcast(queue_channel(team), f"{QUEUE}:updated", build_queue_snapshot(state))

    def publish_action_items_state(self, team: str) -> int:
        state = self.store.get_action_items_state(team)
        return self.broadcast(
            action_items_channel(team),
            f"{ACTION_ITEMS}:updated",
            build_action_items_snapshot(state),
        )
