"""
團隊服務：邊界層的團隊識別碼解析

核心 Manager 接受任何非空團隊名稱；是否限制在已知團隊、
未帶團隊時用哪個預設值，都只在這裡決定
"""
from typing import Optional

from config import Settings
from core.exceptions import ValidationError


def resolve_team(team: Optional[str], settings: Settings) -> str:
    """
    解析請求中的團隊

    規則：
    - 未提供或空白：使用 settings.default_team
    - restrict_teams=True 且不在 settings.teams：拒絕

    異常：
        ValidationError: 未知的團隊
    """
    if team is None or not team.strip():
        return settings.default_team
    team = team.strip()
    if settings.restrict_teams and team not in settings.teams:
        raise ValidationError(f"Unknown team: {team}")
    return team
