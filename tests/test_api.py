"""End-to-end tests for the HTTP API using a mocked provider transport."""

import httpx
import pytest
from fastapi.testclient import TestClient

from finboard.store import MemoryStorage
from main import create_app

QUOTE = {"c": 189.98, "dp": 1.25, "t": 1700000000}
NEWS = [{"headline": f"Headline {i}", "source": "Wire"} for i in range(13)]


def provider_handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "alphavantage.test":
        function = request.url.params.get("function")
        return httpx.Response(200, json={"Time Series (Daily)": {"2024-01-01": {"4. close": "1"}}, "fn": function})
    if request.url.path.endswith("/quote"):
        return httpx.Response(200, json=QUOTE)
    if request.url.path.endswith("/news"):
        return httpx.Response(200, json=NEWS)
    return httpx.Response(404, json={"error": "not found"})


@pytest.fixture()
def storage():
    return MemoryStorage()


@pytest.fixture()
def client(app_config, storage):
    app = create_app(config=app_config, storage=storage, transport=httpx.MockTransport(provider_handler))
    return TestClient(app)


def _create(client, draft) -> dict:
    response = client.post("/api/widgets", json=draft)
    assert response.status_code == 200
    return response.json()


# ── Widgets ───────────────────────────────────────────

def test_create_and_list(client, storage, card_draft):
    created = _create(client, card_draft)
    assert created["name"] == "AAPL Quote"
    assert created["refreshMs"] == 60000

    widgets = client.get("/api/widgets").json()
    assert [w["id"] for w in widgets] == [created["id"]]
    assert widgets[0]["state"]["status"] == "active"
    assert storage.record["state"]["widgets"][0]["id"] == created["id"]


def test_create_rejects_unknown_type(client, card_draft):
    response = client.post("/api/widgets", json={**card_draft, "type": "pie"})
    assert response.status_code == 422


def test_card_data_after_initial_refresh(client, card_draft):
    widget = _create(client, card_draft)
    body = client.get(f"/api/widgets/{widget['id']}/data").json()

    assert body["state"]["status"] == "active"
    fields = body["view"]["fields"]
    assert [(f["path"], f["value"]) for f in fields] == [("c", "$189.98"), ("dp", "$1.25")]


def test_table_data_with_search_and_paging(client, table_draft):
    widget = _create(client, table_draft)

    view = client.get(f"/api/widgets/{widget['id']}/data", params={"page": 2}).json()["view"]
    assert view["columns"] == ["headline", "source"]
    assert view["total_pages"] == 2
    assert view["rows"] == [["Headline 10", "Wire"], ["Headline 11", "Wire"], ["Headline 12", "Wire"]]

    view = client.get(f"/api/widgets/{widget['id']}/data", params={"q": "headline 7"}).json()["view"]
    assert view["rows"] == [["Headline 7", "Wire"]]


def test_candle_interval_refresh(client, candle_draft):
    widget = _create(client, candle_draft)
    view = client.get(f"/api/widgets/{widget['id']}/data").json()["view"]
    assert view["interval"] == "daily"
    assert view["has_data"] is True

    response = client.post(f"/api/refresh/{widget['id']}", params={"interval": "weekly"})
    assert response.status_code == 200
    view = client.get(f"/api/widgets/{widget['id']}/data").json()["view"]
    assert view["interval"] == "weekly"


def test_update_widget(client, card_draft):
    widget = _create(client, card_draft)
    response = client.patch(f"/api/widgets/{widget['id']}", json={"name": "Renamed", "refreshMs": 1000})
    body = response.json()
    assert body["updated"] is True
    assert body["widget"]["name"] == "Renamed"
    assert body["widget"]["refreshMs"] == 1000

    missing = client.patch("/api/widgets/missing", json={"name": "x"}).json()
    assert missing == {"updated": False, "widget": None}


def test_update_with_invalid_value(client, card_draft):
    widget = _create(client, card_draft)
    response = client.patch(f"/api/widgets/{widget['id']}", json={"refreshMs": -5})
    assert response.status_code == 422
    assert client.get(f"/api/widgets/{widget['id']}").json()["refreshMs"] == 60000


def test_delete_widget(client, card_draft):
    widget = _create(client, card_draft)
    assert client.delete(f"/api/widgets/{widget['id']}").status_code == 200
    assert client.get("/api/widgets").json() == []
    assert client.get(f"/api/widgets/{widget['id']}").status_code == 404
    assert client.get(f"/api/widgets/{widget['id']}/data").status_code == 404


def test_reorder(client, card_draft):
    ids = [_create(client, {**card_draft, "name": n})["id"] for n in ("a", "b", "c")]
    response = client.post("/api/widgets/reorder", json={"from_index": 2, "to_index": 0})
    assert [w["id"] for w in response.json()] == [ids[2], ids[0], ids[1]]

    bad = client.post("/api/widgets/reorder", json={"from_index": 0, "to_index": 9})
    assert bad.status_code == 400


# ── Export / import ───────────────────────────────────

def test_export_then_import(client, card_draft, table_draft):
    _create(client, card_draft)
    _create(client, table_draft)
    exported = client.get("/api/export").json()
    assert exported["version"] == 1

    client.delete(f"/api/widgets/{exported['widgets'][0]['id']}")
    response = client.post("/api/import", json=exported)
    assert response.json()["count"] == 2
    assert client.get("/api/export").json() == exported


def test_import_migrates_line_widgets(client):
    legacy = {
        "version": 1,
        "widgets": [
            {"id": "old", "name": "Old chart", "type": "line", "provider": "alphaVantage",
             "endpoint": "TIME_SERIES_DAILY", "params": {"symbol": "IBM"}, "refreshMs": 60000, "mapping": {}},
        ],
    }
    assert client.post("/api/import", json=legacy).status_code == 200
    assert client.get("/api/widgets/old").json()["type"] == "candle"


@pytest.mark.parametrize(
    "payload",
    [
        {"version": 2, "widgets": []},
        {"version": 1, "widgets": [{"id": "broken"}]},
    ],
)
def test_import_rejects_bad_payload(client, card_draft, payload):
    widget = _create(client, card_draft)
    response = client.post("/api/import", json=payload)
    assert response.status_code == 400
    assert [w["id"] for w in client.get("/api/widgets").json()] == [widget["id"]]


# ── Tour / providers ──────────────────────────────────

def test_tour_flag(client, storage):
    assert client.get("/api/tour").json() == {"has_seen_tour": False}
    assert client.put("/api/tour", json={"has_seen_tour": True}).json() == {"has_seen_tour": True}
    assert storage.record["state"]["hasSeenTour"] is True


def test_providers_and_api_key(client, app_config, monkeypatch):
    monkeypatch.delenv("FINBOARD_TEST_KEY", raising=False)
    app_config.get_provider("finnhub").api_key = "${FINBOARD_TEST_KEY}"

    providers = {p["id"]: p for p in client.get("/api/providers").json()}
    assert providers["finnhub"]["has_api_key"] is False
    assert providers["finnhub"]["intervals"] == ["daily", "monthly", "weekly"]
    assert "api_key" not in providers["finnhub"]

    assert client.put("/api/providers/finnhub/api-key", json={"api_key": "secret"}).status_code == 200
    providers = {p["id"]: p for p in client.get("/api/providers").json()}
    assert providers["finnhub"]["has_api_key"] is True

    assert client.put("/api/providers/nope/api-key", json={"api_key": "x"}).status_code == 404


# ── Fetch / refresh ───────────────────────────────────

def test_preview_fetch(client):
    response = client.post("/api/fetch", json={"provider": "finnhub", "endpoint": "/quote", "params": {"symbol": "AAPL"}})
    assert response.status_code == 200
    assert response.json() == QUOTE


def test_preview_fetch_failure(client):
    response = client.post("/api/fetch", json={"provider": "finnhub", "endpoint": "/unknown"})
    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["kind"] == "http"
    assert detail["status_code"] == 404

    response = client.post("/api/fetch", json={"provider": "nobody", "endpoint": "/x"})
    assert response.json()["detail"]["kind"] == "unknown_provider"


def test_refresh_all(client, card_draft, table_draft):
    ids = [_create(client, d)["id"] for d in (card_draft, table_draft)]
    body = client.post("/api/refresh").json()
    assert body["widget_ids"] == ids
    assert client.post("/api/refresh/missing").status_code == 404


def test_create_with_mismatched_mapping(client, card_draft):
    response = client.post("/api/widgets", json={**card_draft, "type": "table"})
    assert response.status_code == 422
    assert client.get("/api/widgets").json() == []


def test_imported_mismatched_mapping_surfaces_on_render(client):
    bad = {
        "version": 1,
        "widgets": [
            {"id": "t1", "name": "News", "type": "table", "provider": "finnhub",
             "endpoint": "/news", "params": {}, "refreshMs": 60000, "mapping": {"paths": ["c"]}},
        ],
    }
    assert client.post("/api/import", json=bad).status_code == 200
    assert client.get("/api/widgets/t1/data").status_code == 422
