"""
Pydantic schemas：對外的資料格式

- *Out：快照與事件 payload（camelCase，與前端既有欄位一致）
- 其餘：客戶端請求的 data 欄位，HTTP 與 WebSocket 共用
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import IMAGE_MAX_BYTES


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============ 快照 ============

class QueueItemOut(CamelModel):
    id: str
    name: str
    added_at: datetime
    fast_track: bool
    team: str
    timer_started: Optional[datetime] = None
    timer_duration: Optional[int] = None


class QueueStateOut(CamelModel):
    items: List[QueueItemOut]
    currently_serving: Optional[QueueItemOut] = None


class ActionItemOut(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    completed: bool
    created_at: datetime
    completed_at: Optional[datetime] = None
    completion_image: Optional[str] = None
    completion_image_name: Optional[str] = None
    team: str


class ActionItemsStateOut(CamelModel):
    items: List[ActionItemOut]


class TimerStartedOut(CamelModel):
    id: str
    duration: int
    start_time: datetime


# ============ 請求 ============

class TeamRef(CamelModel):
    # None 表示使用預設團隊（由邊界層決定）
    team: Optional[str] = None


class QueueAdd(TeamRef):
    name: str
    fast_track: bool = Field(
        default=False,
        validation_alias=AliasChoices("fastTrack", "isFastTrack", "fast_track"),
    )


class QueueItemRef(TeamRef):
    id: str


class TimerStart(QueueItemRef):
    duration: int = Field(
        validation_alias=AliasChoices("duration", "durationMs", "duration_ms"),
    )


class ActionItemAdd(TeamRef):
    title: str
    description: Optional[str] = None


class ActionItemRef(TeamRef):
    id: str


def _data_url_size(encoded: str) -> int:
    return len(encoded.rstrip("=")) * 3 // 4


class ActionItemComplete(ActionItemRef):
    image: Optional[str] = None
    image_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("imageName", "image_name"),
    )

    @field_validator("image")
    @classmethod
    def check_image(cls, value: Optional[str]) -> Optional[str]:
        """完成證明必須是 image/* 的 data URL，且解碼後不超過 3MB"""
        if value is None:
            return value
        header, sep, encoded = value.partition(",")
        if not sep or not header.startswith("data:image/"):
            raise ValueError("Please select an image file")
        if _data_url_size(encoded) > IMAGE_MAX_BYTES:
            raise ValueError("Image size must be less than 3MB")
        return value


class ActionRequest(BaseModel):
    """POST /api/events 的請求主體"""
    action: str
    data: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("data", "payload"),
    )


class ClientMessage(BaseModel):
    """WebSocket 上客戶端送來的訊息"""
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[Any] = Field(
        default=None,
        validation_alias=AliasChoices("requestId", "request_id"),
    )
