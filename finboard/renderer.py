"""
View rendering: widget definition + fetched document -> display model.
"""

from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field

from finboard.candles import OHLCSample, extract_candles
from finboard.executor import DEFAULT_INTERVAL
from finboard.formatter import format_value
from finboard.json_path import ABSENT, resolve
from finboard.models import Widget, WidgetType
from finboard.tabular import DEFAULT_PAGE_SIZE, extract_rows, filter_rows, infer_columns, paginate, table_cells


class CardField(BaseModel):
    path: str
    value: str


class CardView(BaseModel):
    type: WidgetType = WidgetType.CARD
    name: str
    fields: List[CardField] = Field(default_factory=list)
    footer: str = ""


class TableView(BaseModel):
    type: WidgetType = WidgetType.TABLE
    name: str
    has_data: bool = False
    columns: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)
    query: str = ""
    page: int = 1
    total_rows: int = 0
    total_pages: int = 0
    window_start: int = 1
    window_end: int = 0


class CandleView(BaseModel):
    type: WidgetType = WidgetType.CANDLE
    name: str
    interval: str = DEFAULT_INTERVAL
    has_data: bool = False
    candles: List[OHLCSample] = Field(default_factory=list)


WidgetView = Union[CardView, TableView, CandleView]


def render_card(widget: Widget, doc: Any) -> CardView:
    mapping = widget.card_mapping()
    fields = [
        CardField(path=p, value=format_value(resolve(doc, p), mapping.format))
        for p in mapping.paths
    ]
    return CardView(
        name=widget.name,
        fields=fields,
        footer=f"Updated every {widget.refresh_ms / 1000:g}s",
    )


def render_table(
    widget: Widget,
    doc: Any,
    query: str = "",
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> TableView:
    mapping = widget.table_mapping()
    rows = extract_rows(doc)
    if rows is ABSENT:
        return TableView(name=widget.name, columns=mapping.columns, query=query)

    columns = mapping.columns or infer_columns(rows)
    current = paginate(filter_rows(rows, query), page, page_size)
    return TableView(
        name=widget.name,
        has_data=True,
        columns=columns,
        rows=table_cells(current.rows, columns),
        query=query,
        page=current.page,
        total_rows=current.total_rows,
        total_pages=current.total_pages,
        window_start=current.window_start,
        window_end=current.window_end,
    )


def render_candles(widget: Widget, doc: Any, interval: Optional[str] = None) -> CandleView:
    widget.candle_mapping()  # raises on a non-candle widget
    candles = extract_candles(doc)
    return CandleView(
        name=widget.name,
        interval=interval or widget.params.get("interval") or DEFAULT_INTERVAL,
        has_data=bool(candles),
        candles=candles,
    )


def render_widget(
    widget: Widget,
    doc: Any,
    query: str = "",
    page: int = 1,
    interval: Optional[str] = None,
) -> WidgetView:
    """Dispatch on the widget type; each mapping is read only by its own renderer."""
    if widget.type == WidgetType.CARD:
        return render_card(widget, doc)
    if widget.type == WidgetType.TABLE:
        return render_table(widget, doc, query=query, page=page)
    return render_candles(widget, doc, interval=interval)
