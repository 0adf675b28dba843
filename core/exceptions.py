"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層（HTTP / WebSocket）統一處理

所有異常都是可恢復的：只回報給發出請求的客戶端，不會廣播，
也不會留下部分修改的狀態（驗證與查找一律在寫入前完成）
"""


class CommitQException(Exception):
    """所有 CommitQ 異常的基類"""
    pass


# ============ 輸入驗證異常 ============

class ValidationError(CommitQException):
    """輸入不合法（空白名稱、空白標題、超過長度限制等）"""
    pass


class UnknownAction(ValidationError):
    """不支援的請求類型"""
    def __init__(self, action):
        self.action = action
        super().__init__(f"Unknown action: {action}")


# ============ 查找異常 ============

class NotFoundError(CommitQException):
    """請求引用了不存在的項目"""
    pass


class ItemNotFound(NotFoundError):
    """隊列項目或待辦事項不存在"""
    def __init__(self, item_id, kind="Queue item"):
        self.item_id = item_id
        super().__init__(f"{kind} {item_id} not found")


class TimerNotFound(NotFoundError):
    """該項目沒有正在執行的計時器"""
    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__(f"No active timer found for item {item_id}")


# ============ 狀態異常 ============

class InvalidStateError(CommitQException):
    """目前狀態不允許此操作"""
    pass


class NotFirstInLine(InvalidStateError):
    """只有排在隊首的項目可以開始計時"""
    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__(
            f"Timer can only be started for the first item in queue (got {item_id})"
        )


# ============ 連線異常 ============

class ConnectionClosed(CommitQException):
    """連線已關閉，無法再寫入（由 Broadcaster 用來清除失效的訂閱者）"""
    pass
