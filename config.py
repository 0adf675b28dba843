from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings

from models import DEFAULT_TEAM, Team


class Settings(BaseSettings):
    app_name: str = "CommitQ API"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    cors_allow_origins: List[str] = ["*"]

    # 已知團隊；restrict_teams=False 時接受任何非空團隊名稱
    teams: List[str] = [team.value for team in Team]
    default_team: str = DEFAULT_TEAM.value
    restrict_teams: bool = True

    # SSE keep-alive 間隔（秒），避免閒置連線被 proxy 中斷
    keepalive_interval: float = 30.0

    # 每個 WebSocket / SSE 連線最多暫存的訊息數，超過就斷線
    connection_buffer_size: int = 1000

    class Config:
        env_file = ".env"
        env_prefix = "COMMITQ_"


@lru_cache()
def get_settings():
    return Settings()
