"""
Widget 运行时状态定义。
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from finboard.models import FetchFailure


class WidgetStatus(str, Enum):
    IDLE = "idle"  # 尚未刷新
    REFRESHING = "refreshing"
    ACTIVE = "active"
    ERROR = "error"


class WidgetState(BaseModel):
    """Widget 的运行时状态。"""
    widget_id: str
    status: WidgetStatus = WidgetStatus.IDLE
    message: Optional[str] = None
    last_updated: float = 0.0
    failure: Optional[FetchFailure] = None


class WidgetResult(BaseModel):
    """最近一次被采纳的抓取结果。"""
    widget_id: str
    sequence: int
    data: Any = None
    interval: Optional[str] = None
    fetched_at: float = 0.0
