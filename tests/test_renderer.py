"""Tests for turning fetched documents into widget views."""

import pytest

from finboard.models import Widget, WidgetTypeMismatch
from finboard.renderer import CandleView, CardView, TableView, render_candles, render_card, render_widget


def _widget(draft, **extra) -> Widget:
    return Widget.model_validate({"id": "w1", "refreshMs": 30000, **draft, **extra})


def test_card_scenario(card_draft):
    widget = _widget(card_draft, mapping={"paths": ["c", "missing.path"], "format": "currency"})
    view = render_card(widget, {"c": 189.98, "dp": 1.2})

    assert [(f.path, f.value) for f in view.fields] == [("c", "$189.98"), ("missing.path", "-")]
    assert view.footer == "Updated every 30s"


def test_card_with_jsonpath_field(card_draft):
    widget = _widget(card_draft, mapping={"paths": ["$.quote.price"], "format": "number"})
    view = render_card(widget, {"quote": {"price": 12}})
    assert view.fields[0].value == "12"


def test_table_with_inferred_columns_and_paging(table_draft):
    doc = {"meta": {"count": 12}, "items": [{"headline": f"News {i}", "id": i} for i in range(12)]}
    view = render_widget(_widget(table_draft), doc, page=2)

    assert isinstance(view, TableView)
    assert view.has_data is True
    assert view.columns == ["headline", "id"]
    assert view.rows == [["News 10", "10"], ["News 11", "11"]]
    assert (view.page, view.total_pages, view.total_rows) == (2, 2, 12)


def test_table_filter_applies_before_paging(table_draft):
    doc = [{"headline": "Apple beats"}, {"headline": "Bonds rally"}, {"headline": "apple falls"}]
    view = render_widget(_widget(table_draft), doc, query="apple")
    assert view.rows == [["Apple beats"], ["apple falls"]]
    assert view.total_rows == 2


def test_table_without_tabular_data(table_draft):
    widget = _widget(table_draft, mapping={"columns": ["headline"]})
    view = render_widget(widget, {"error": "nothing here"})
    assert view.has_data is False
    assert view.columns == ["headline"]
    assert view.rows == []


def test_candle_view(candle_draft, daily_series_doc):
    view = render_widget(_widget(candle_draft), daily_series_doc, interval="weekly")

    assert isinstance(view, CandleView)
    assert view.has_data is True
    assert view.interval == "weekly"
    assert [c.close for c in view.candles] == [9.5, 10.5]


def test_candle_view_without_data(candle_draft):
    view = render_candles(_widget(candle_draft), {"Note": "rate limited"})
    assert view.has_data is False
    assert view.interval == "daily"


def test_dispatch_by_type(card_draft):
    assert isinstance(render_widget(_widget(card_draft), {}), CardView)


def test_renderer_rejects_mismatched_mapping(card_draft):
    with pytest.raises(WidgetTypeMismatch):
        render_candles(_widget(card_draft), {})
