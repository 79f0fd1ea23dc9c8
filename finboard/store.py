"""
Widget 定义存储：维护有序的 widget 列表，负责创建、更新、删除、排序、
导入导出，以及加载时的 schema 迁移。
持久化通过 StateStorage 适配器完成（TinyDB / 内存）。
"""

import copy
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError
from tinydb import Query, TinyDB

from finboard.models import (
    DashboardExport,
    PersistedState,
    Widget,
    WidgetDraft,
)

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1
DEFAULT_NAME = "Untitled Widget"
DEFAULT_REFRESH_MS = 60000

# 旧类型 -> 当前类型
_TYPE_MIGRATIONS = {"line": "candle"}

# 字段名 -> JSON 别名
_FIELD_ALIASES = {"refresh_ms": "refreshMs"}


class UnsupportedExportVersion(ValueError):
    """导入文件的版本号无法识别。"""


# ── 持久化适配器 ──────────────────────────────────────

class StateStorage(Protocol):
    def load(self) -> Optional[Dict[str, Any]]: ...

    def save(self, state: Dict[str, Any]) -> None: ...


class MemoryStorage:
    """内存存储，主要用于测试。"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.record = copy.deepcopy(initial)

    def load(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.record)

    def save(self, state: Dict[str, Any]) -> None:
        self.record = copy.deepcopy(state)


class TinyDBStorage:
    """在 TinyDB 文件中以单条命名记录保存 {state: {...}}。"""

    def __init__(self, db_path: str | Path, record_name: str = "finboard-dashboard"):
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.record_name = record_name
        self.db = TinyDB(str(db_path), indent=2, ensure_ascii=False)
        self.table = self.db.table("persist")
        logger.info(f"TinyDB 数据库已打开: {db_path}")

    def load(self) -> Optional[Dict[str, Any]]:
        Record = Query()
        results = self.table.search(Record.name == self.record_name)
        if not results:
            return None
        return {"state": results[0].get("state")}

    def save(self, state: Dict[str, Any]) -> None:
        Record = Query()
        self.table.upsert({"name": self.record_name, **state}, Record.name == self.record_name)

    def close(self):
        self.db.close()


# ── 迁移 ──────────────────────────────────────────────

def migrate_widgets(widgets: List[Any]) -> List[Any]:
    """将旧的类型标签改写为当前值；对已迁移的数据重复执行不产生变化。"""
    migrated = []
    for w in widgets:
        if isinstance(w, dict) and w.get("type") in _TYPE_MIGRATIONS:
            w = {**w, "type": _TYPE_MIGRATIONS[w["type"]]}
        migrated.append(w)
    return migrated


def _extract_widgets(raw: Optional[Dict[str, Any]]) -> List[Any]:
    if not isinstance(raw, dict):
        return []
    state = raw.get("state") if isinstance(raw.get("state"), dict) else raw
    widgets = state.get("widgets")
    return widgets if isinstance(widgets, list) else []


def _extract_tour_flag(raw: Optional[Dict[str, Any]]) -> bool:
    if not isinstance(raw, dict):
        return False
    state = raw.get("state") if isinstance(raw.get("state"), dict) else raw
    return bool(state.get("hasSeenTour", False))


# ── Store ─────────────────────────────────────────────

class WidgetStore:
    """
    Widget 定义的唯一所有者。
    所有修改都在内存中同步完成，随后写入 storage。
    """

    def __init__(self, storage: Optional[StateStorage] = None, initial_state: Optional[Dict[str, Any]] = None):
        self._storage = storage if storage is not None else MemoryStorage()
        self._widgets: List[Widget] = []
        self._has_seen_tour = False

        raw = initial_state if initial_state is not None else self._storage.load()
        self._rehydrate(raw)

    def _rehydrate(self, raw: Optional[Dict[str, Any]]):
        """加载持久化状态；迁移在任何读取之前完成。"""
        if raw is None:
            return

        original = _extract_widgets(raw)
        migrated = migrate_widgets(original)
        for item in migrated:
            try:
                self._widgets.append(Widget.model_validate(item))
            except ValidationError as e:
                logger.error(f"跳过无法解析的 widget: {e}")
        self._has_seen_tour = _extract_tour_flag(raw)

        if migrated != original:
            logger.info("已迁移旧版 widget 类型")
            self._persist()

    def _persist(self):
        state = PersistedState.model_validate(
            {"state": {"widgets": self._widgets, "hasSeenTour": self._has_seen_tour}}
        )
        self._storage.save(state.to_json())

    def _new_id(self) -> str:
        existing = {w.id for w in self._widgets}
        while True:
            widget_id = uuid.uuid4().hex
            if widget_id not in existing:
                return widget_id

    def _index_of(self, widget_id: str) -> Optional[int]:
        for i, w in enumerate(self._widgets):
            if w.id == widget_id:
                return i
        return None

    # ── 查询 ──────────────────────────────────────────

    @property
    def widgets(self) -> List[Widget]:
        return list(self._widgets)

    @property
    def has_seen_tour(self) -> bool:
        return self._has_seen_tour

    def get_widget(self, widget_id: str) -> Optional[Widget]:
        idx = self._index_of(widget_id)
        return self._widgets[idx] if idx is not None else None

    # ── 修改 ──────────────────────────────────────────

    def create(self, draft: WidgetDraft | Dict[str, Any]) -> None:
        """根据草稿创建 widget 并追加到末尾。mapping 与类型不符时抛出 ValidationError。"""
        if not isinstance(draft, WidgetDraft):
            draft = WidgetDraft.model_validate(draft)

        widget = Widget(
            id=self._new_id(),
            name=draft.name or draft.title or DEFAULT_NAME,
            type=draft.type,
            provider=draft.provider,
            endpoint=draft.endpoint,
            params=draft.params if draft.params is not None else {},
            refresh_ms=draft.refresh_ms if draft.refresh_ms is not None else DEFAULT_REFRESH_MS,
            mapping=draft.mapping,
        )
        widget.typed_mapping()  # mapping must fit the type
        self._widgets.append(widget)
        self._persist()
        logger.info(f"[{widget.id}] 已创建 {widget.type.value} widget: {widget.name}")

    def update(self, widget_id: str, fields: Dict[str, Any]) -> None:
        """
        合并字段；id 不存在时不做任何事。id 本身不可修改。
        合并后的 mapping 必须符合 type，否则抛出 ValidationError 且不做修改。
        """
        idx = self._index_of(widget_id)
        if idx is None:
            logger.debug(f"[{widget_id}] update 跳过：widget 不存在")
            return

        changes = {_FIELD_ALIASES.get(k, k): v for k, v in fields.items() if k != "id"}
        merged = {**self._widgets[idx].to_json(), **changes}
        widget = Widget.model_validate(merged)
        widget.typed_mapping()
        self._widgets[idx] = widget
        self._persist()

    def remove(self, widget_id: str) -> None:
        original_len = len(self._widgets)
        self._widgets = [w for w in self._widgets if w.id != widget_id]
        if len(self._widgets) < original_len:
            self._persist()
            logger.info(f"[{widget_id}] 已删除")

    def reorder(self, from_index: int, to_index: int) -> None:
        """移动一个元素；下标越界属于调用方错误。"""
        size = len(self._widgets)
        if not (0 <= from_index < size and 0 <= to_index < size):
            raise IndexError(f"reorder({from_index}, {to_index}) out of range for {size} widgets")
        widget = self._widgets.pop(from_index)
        self._widgets.insert(to_index, widget)
        self._persist()

    def set_has_seen_tour(self, value: bool) -> None:
        self._has_seen_tour = value
        self._persist()

    # ── 导入导出 ──────────────────────────────────────

    def export_all(self) -> DashboardExport:
        return DashboardExport(version=EXPORT_VERSION, widgets=self.widgets)

    def import_all(self, data: DashboardExport | Dict[str, Any]) -> None:
        """整体替换 widget 列表。只做结构校验，不检查 mapping 与类型是否匹配。"""
        if isinstance(data, DashboardExport):
            data = data.to_json()
        version = data.get("version", EXPORT_VERSION)
        if version != EXPORT_VERSION:
            raise UnsupportedExportVersion(f"Unsupported export version: {version}")

        widgets = migrate_widgets(data.get("widgets") or [])
        self._widgets = DashboardExport.model_validate({"version": version, "widgets": widgets}).widgets
        self._persist()
        logger.info(f"已导入 {len(self._widgets)} 个 widget")
