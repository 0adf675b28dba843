"""
Action Item Manager：管理團隊待辦事項

職責：
1. 新增待辦事項
2. 標記完成（可附完成證明圖片）/ 取消完成
3. 刪除待辦事項
4. 查詢

只有 completed / 未完成 兩種狀態，沒有排序不變條件；
pending 與 completed 的順序由插入順序穩定過濾得出。
圖片大小與格式在邊界層（schemas）驗證，這裡原樣儲存。
"""
import logging
from typing import Optional

from models import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH, ActionItem, ActionItemsState
from core.broadcaster import ACTION_ITEMS, Broadcaster, action_items_channel
from core.exceptions import ItemNotFound, ValidationError
from core.queue_manager import require_team
from core.state_store import TeamStateStore
from services.id_service import generate_id
from services.snapshot_service import serialize_action_item

logger = logging.getLogger(__name__)


class ActionItemManager:
    """待辦事項生命週期管理器"""

    def __init__(self, store: TeamStateStore, broadcaster: Broadcaster):
        self.store = store
        self.broadcaster = broadcaster

    def add(self, team: str, title: str, description: Optional[str] = None) -> ActionItem:
        """
        新增待辦事項（completed 一律為 False）

        異常：
            ValidationError: 標題為空、標題超過 100 字或描述超過 300 字
        """
        require_team(team)
        title = (title or "").strip()
        if not title:
            raise ValidationError("Action item title cannot be empty")
        if len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Action item title must be at most {TITLE_MAX_LENGTH} characters")

        description = (description or "").strip() or None
        if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Action item description must be at most {DESCRIPTION_MAX_LENGTH} characters"
            )

        item = ActionItem(id=generate_id(), title=title, team=team, description=description)

        with self.store.lock(team):
            state = self.store.get_action_items_state(team)
            state.items[item.id] = item
            self._publish(team, "item-added", serialize_action_item(item))

        logger.info(f"Added action item: {item.title} ({item.id}) team={team}")
        return item

    def complete(
        self,
        team: str,
        item_id: str,
        image: Optional[str] = None,
        image_name: Optional[str] = None,
    ) -> ActionItem:
        """
        標記完成

        效果：
        - completed = True，completed_at = 現在
        - 原樣儲存完成證明圖片與檔名
        - 廣播 actionItems:updated，再廣播 actionItems:item-completed

        異常：
            ItemNotFound: 項目不存在
        """
        require_team(team)
        with self.store.lock(team):
            item = self._get(team, item_id)
            item.mark_completed(image, image_name)
            self._publish(team, "item-completed", {"id": item_id})

        logger.info(
            f"Completed action item {item_id} team={team} with_image={image is not None}"
        )
        return item

    def uncomplete(self, team: str, item_id: str) -> ActionItem:
        """
        取消完成：清除 completed 與三個完成相關欄位

        只廣播 actionItems:updated
        """
        require_team(team)
        with self.store.lock(team):
            item = self._get(team, item_id)
            item.mark_pending()
            self.broadcaster.publish_action_items_state(team)

        logger.info(f"Uncompleted action item {item_id} team={team}")
        return item

    def remove(self, team: str, item_id: str) -> ActionItem:
        require_team(team)
        with self.store.lock(team):
            item = self._get(team, item_id)
            del self.store.get_action_items_state(team).items[item_id]
            self._publish(team, "item-removed", {"id": item_id})

        logger.info(f"Removed action item: {item.title} ({item_id}) team={team}")
        return item

    def get_state(self, team: str) -> ActionItemsState:
        """純讀取，不修改也不廣播"""
        require_team(team)
        return self.store.get_action_items_state(team)

    def _get(self, team: str, item_id: str) -> ActionItem:
        item = self.store.get_action_items_state(team).items.get(item_id)
        if item is None:
            raise ItemNotFound(item_id, kind="Action item")
        return item

    def _publish(self, team: str, event: str, data) -> None:
        self.broadcaster.publish_action_items_state(team)
        self.broadcaster.broadcast(action_items_channel(team), f"{ACTION_ITEMS}:{event}", data)
