"""
执行器：负责为 widget 抓取数据并保存最近一次结果。
每个 widget 维护单调递增的请求序号，只有最新发起的请求结果会被采纳；
结果返回时 widget 已被删除则直接丢弃。
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from finboard.gateway import FetchError
from finboard.models import FailureKind, FetchFailure, FetchRequest, Widget, WidgetType
from finboard.store import WidgetStore
from finboard.widget_state import WidgetResult, WidgetState, WidgetStatus

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = "daily"


def build_fetch_request(widget: Widget, interval: Optional[str] = None) -> FetchRequest:
    """由 widget 定义构造 fetch 请求；K 线 widget 总是带上 interval。"""
    params = dict(widget.params)
    if widget.type == WidgetType.CANDLE:
        params["interval"] = interval or params.get("interval") or DEFAULT_INTERVAL
    return FetchRequest(provider=widget.provider, endpoint=widget.endpoint, params=params)


class Executor:
    """
    负责执行 widget 的数据抓取。
    维护内存中的 WidgetState 与最近结果。
    """

    def __init__(self, store: WidgetStore, gateway):
        self._store = store
        self._gateway = gateway
        # widget_id -> 最近发起的请求序号
        self._sequence: Dict[str, int] = {}
        self._states: Dict[str, WidgetState] = {}
        self._results: Dict[str, WidgetResult] = {}

    def get_widget_state(self, widget_id: str) -> WidgetState:
        if widget_id not in self._states:
            self._states[widget_id] = WidgetState(widget_id=widget_id)
        return self._states[widget_id]

    def get_result(self, widget_id: str) -> Optional[WidgetResult]:
        return self._results.get(widget_id)

    def _update_state(
        self,
        widget_id: str,
        status: WidgetStatus,
        message: str | None = None,
        failure: FetchFailure | None = None,
    ):
        state = self.get_widget_state(widget_id)
        state.status = status
        state.message = message
        state.failure = failure
        state.last_updated = time.time()
        logger.info(f"[{widget_id}] State -> {status.value}: {message}")

    def _next_ticket(self, widget_id: str) -> int:
        ticket = self._sequence.get(widget_id, 0) + 1
        self._sequence[widget_id] = ticket
        return ticket

    def _is_current(self, widget_id: str, ticket: int) -> bool:
        if self._sequence.get(widget_id) != ticket:
            logger.debug(f"[{widget_id}] 丢弃过期结果 (ticket={ticket})")
            return False
        if self._store.get_widget(widget_id) is None:
            logger.debug(f"[{widget_id}] widget 已删除，丢弃结果")
            return False
        return True

    async def refresh_widget(self, widget_id: str, interval: Optional[str] = None) -> bool:
        """
        抓取并保存 widget 的数据。
        返回 True 表示结果已被采纳（成功或失败状态均算）。
        """
        widget = self._store.get_widget(widget_id)
        if widget is None:
            logger.warning(f"[{widget_id}] widget 不存在，跳过刷新")
            return False

        ticket = self._next_ticket(widget_id)
        self._update_state(widget_id, WidgetStatus.REFRESHING, "Starting fetch...")

        request = build_fetch_request(widget, interval)
        try:
            data = await self._gateway.fetch(request)
        except FetchError as e:
            if not self._is_current(widget_id, ticket):
                return False
            logger.warning(f"[{widget_id}] Fetch failed: {e.failure.kind.value}: {e}")
            self._update_state(widget_id, WidgetStatus.ERROR, str(e), e.failure)
            return True
        except Exception as e:
            if not self._is_current(widget_id, ticket):
                return False
            logger.error(f"[{widget_id}] Fetch failed: {e}", exc_info=True)
            failure = FetchFailure(kind=FailureKind.NETWORK, message=str(e), provider=widget.provider)
            self._update_state(widget_id, WidgetStatus.ERROR, str(e), failure)
            return True

        if not self._is_current(widget_id, ticket):
            return False

        self._results[widget_id] = WidgetResult(
            widget_id=widget_id,
            sequence=ticket,
            data=data,
            interval=request.params.get("interval"),
            fetched_at=time.time(),
        )
        self._update_state(widget_id, WidgetStatus.ACTIVE, "Fetch completed")
        return True

    async def refresh_all(self) -> List[str]:
        """并发刷新所有 widget，返回结果被采纳的 widget id。"""
        widget_ids = [w.id for w in self._store.widgets]
        applied = await asyncio.gather(*(self.refresh_widget(wid) for wid in widget_ids))
        return [wid for wid, ok in zip(widget_ids, applied) if ok]

    def forget(self, widget_id: str):
        """widget 被删除后清理其状态；迟到的结果将被丢弃。"""
        self._sequence.pop(widget_id, None)
        self._states.pop(widget_id, None)
        self._results.pop(widget_id, None)
