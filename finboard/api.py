"""
FastAPI 路由：暴露 widget 管理、数据预览与刷新接口。
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException
from pydantic import BaseModel, ValidationError

from finboard.gateway import FetchError
from finboard.models import FetchRequest, WidgetDraft, WidgetTypeMismatch
from finboard.renderer import render_widget
from finboard.store import UnsupportedExportVersion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# 这些全局引用会在 main.py 中注入
_store = None
_executor = None
_gateway = None
_config = None
_secrets = None


def init_api(store, executor, gateway, config, secrets_controller):
    """注入全局依赖（由 main.py 调用）。"""
    global _store, _executor, _gateway, _config, _secrets
    _store = store
    _executor = executor
    _gateway = gateway
    _config = config
    _secrets = secrets_controller


def _get_widget_or_404(widget_id: str):
    widget = _store.get_widget(widget_id)
    if widget is None:
        raise HTTPException(404, f"Widget '{widget_id}' 不存在")
    return widget


class ReorderRequest(BaseModel):
    from_index: int
    to_index: int


class TourRequest(BaseModel):
    has_seen_tour: bool


class ApiKeyRequest(BaseModel):
    api_key: str


# ── Widgets ───────────────────────────────────────────

@router.get("/widgets")
async def list_widgets() -> list[dict]:
    """获取所有 widget，附带运行时状态。"""
    result = []
    for widget in _store.widgets:
        state = _executor.get_widget_state(widget.id)
        result.append({**widget.to_json(), "state": state.model_dump(mode="json")})
    return result


@router.post("/widgets")
async def create_widget(draft: WidgetDraft, background_tasks: BackgroundTasks) -> dict:
    """创建 widget 并在后台进行首次刷新。"""
    try:
        _store.create(draft)
    except ValidationError as e:
        raise HTTPException(422, e.errors(include_url=False, include_context=False))
    widget = _store.widgets[-1]
    background_tasks.add_task(_executor.refresh_widget, widget.id)
    return widget.to_json()


@router.post("/widgets/reorder")
async def reorder_widgets(req: ReorderRequest) -> list[dict]:
    try:
        _store.reorder(req.from_index, req.to_index)
    except IndexError as e:
        raise HTTPException(400, str(e))
    return [w.to_json() for w in _store.widgets]


@router.get("/widgets/{widget_id}")
async def get_widget(widget_id: str) -> dict:
    return _get_widget_or_404(widget_id).to_json()


@router.patch("/widgets/{widget_id}")
async def update_widget(widget_id: str, fields: Dict[str, Any]) -> dict:
    """部分更新；widget 不存在时为 no-op。"""
    try:
        _store.update(widget_id, fields)
    except ValidationError as e:
        raise HTTPException(422, e.errors(include_url=False, include_context=False))
    widget = _store.get_widget(widget_id)
    return {"updated": widget is not None, "widget": widget.to_json() if widget else None}


@router.delete("/widgets/{widget_id}")
async def delete_widget(widget_id: str) -> dict:
    _store.remove(widget_id)
    _executor.forget(widget_id)
    return {"message": f"Widget {widget_id} removed"}


@router.get("/widgets/{widget_id}/data")
async def get_widget_data(
    widget_id: str,
    q: str = "",
    page: int = 1,
    interval: Optional[str] = None,
) -> dict:
    """返回 widget 的运行时状态和渲染后的视图；尚无数据时 view 为 null。"""
    widget = _get_widget_or_404(widget_id)
    state = _executor.get_widget_state(widget_id)
    result = _executor.get_result(widget_id)

    view = None
    if result is not None:
        try:
            view = render_widget(widget, result.data, query=q, page=page, interval=interval or result.interval)
        except (ValidationError, WidgetTypeMismatch) as e:
            # 导入的 widget 不校验 mapping，不匹配时在渲染阶段暴露
            logger.warning(f"[{widget_id}] 渲染失败: {e}")
            raise HTTPException(422, f"Widget mapping does not match its type: {widget.type.value}")

    return {
        "widget_id": widget_id,
        "state": state.model_dump(mode="json"),
        "updated_at": result.fetched_at if result else None,
        "view": view.model_dump(mode="json") if view else None,
    }


# ── 导入导出 ──────────────────────────────────────────

@router.get("/export")
async def export_dashboard() -> dict:
    return _store.export_all().to_json()


@router.post("/import")
async def import_dashboard(data: Dict[str, Any], background_tasks: BackgroundTasks) -> dict:
    """整体替换 widget 列表；旧类型标签在校验前迁移。"""
    previous_ids = [w.id for w in _store.widgets]
    try:
        _store.import_all(data)
    except UnsupportedExportVersion as e:
        raise HTTPException(400, str(e))
    except ValidationError as e:
        raise HTTPException(400, f"导入文件格式错误: {e.error_count()} 个字段无效")
    for widget_id in previous_ids:
        _executor.forget(widget_id)
    background_tasks.add_task(_executor.refresh_all)
    return {"message": f"已导入 {len(_store.widgets)} 个 widget", "count": len(_store.widgets)}


# ── 引导 ──────────────────────────────────────────────

@router.get("/tour")
async def get_tour() -> dict:
    return {"has_seen_tour": _store.has_seen_tour}


@router.put("/tour")
async def set_tour(req: TourRequest) -> dict:
    _store.set_has_seen_tour(req.has_seen_tour)
    return {"has_seen_tour": _store.has_seen_tour}


# ── Providers ─────────────────────────────────────────

@router.get("/providers")
async def list_providers() -> list[dict]:
    """Provider 列表（不暴露 API Key）。"""
    return [
        {
            "id": p.id,
            "label": p.label or p.id,
            "endpoints": p.endpoints,
            "intervals": sorted(set(p.interval_values) | set(p.interval_endpoints)),
            "has_api_key": bool(_gateway.api_key_for(p)) if p.api_key_param else True,
        }
        for p in _config.providers
    ]


@router.put("/providers/{provider_id}/api-key")
async def set_provider_api_key(provider_id: str, req: ApiKeyRequest) -> dict:
    if _config.get_provider(provider_id) is None:
        raise HTTPException(404, f"Provider '{provider_id}' 不存在")
    _secrets.set_api_key(provider_id, req.api_key)
    logger.info(f"[{provider_id}] API Key 已保存")
    return {"message": f"API Key saved for {provider_id}"}


# ── 预览与刷新 ────────────────────────────────────────

@router.post("/fetch")
async def preview_fetch(req: FetchRequest) -> Any:
    """直接请求 provider 并返回原始 JSON，用于配置 widget 时预览。"""
    try:
        return await _gateway.fetch(req)
    except FetchError as e:
        raise HTTPException(502, e.failure.model_dump(mode="json"))


@router.post("/refresh/{widget_id}")
async def refresh_widget(widget_id: str, background_tasks: BackgroundTasks, interval: Optional[str] = None) -> dict:
    """手动触发单个 widget 刷新。"""
    widget = _get_widget_or_404(widget_id)
    background_tasks.add_task(_executor.refresh_widget, widget_id, interval)
    return {"message": f"已触发刷新: {widget.name}", "widget_id": widget_id}


@router.post("/refresh")
async def refresh_all(background_tasks: BackgroundTasks) -> dict:
    """手动触发所有 widget 刷新。"""
    widget_ids = [w.id for w in _store.widgets]
    background_tasks.add_task(_executor.refresh_all)
    return {"message": f"已触发刷新 {len(widget_ids)} 个 widget", "widget_ids": widget_ids}
