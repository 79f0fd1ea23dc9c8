import pytest

from finboard.config_loader import AppConfig, ProviderConfig, StorageConfig
from finboard.store import MemoryStorage, WidgetStore


FINNHUB = ProviderConfig(
    id="finnhub",
    label="Finnhub",
    base_url="https://finnhub.test/api/v1",
    api_key_param="token",
    api_key="demo",
    error_keys=["error"],
    interval_param="resolution",
    interval_values={"daily": "D", "weekly": "W", "monthly": "M"},
    endpoints={"/quote": "Quote", "/stock/candle": "Candles"},
)

ALPHA_VANTAGE = ProviderConfig(
    id="alphaVantage",
    label="Alpha Vantage",
    base_url="https://alphavantage.test/query",
    endpoint_param="function",
    api_key_param="apikey",
    api_key="demo",
    error_keys=["Error Message", "Note", "Information"],
    interval_endpoints={
        "daily": "TIME_SERIES_DAILY",
        "weekly": "TIME_SERIES_WEEKLY",
        "monthly": "TIME_SERIES_MONTHLY",
    },
    endpoints={"TIME_SERIES_DAILY": "Daily Series", "GLOBAL_QUOTE": "Quote"},
)


@pytest.fixture()
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        providers=[FINNHUB.model_copy(deep=True), ALPHA_VANTAGE.model_copy(deep=True)],
        storage=StorageConfig(data_dir=str(tmp_path / "data")),
    )


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def store(storage) -> WidgetStore:
    return WidgetStore(storage)


@pytest.fixture()
def card_draft() -> dict:
    return {
        "name": "AAPL Quote",
        "type": "card",
        "provider": "finnhub",
        "endpoint": "/quote",
        "params": {"symbol": "AAPL"},
        "mapping": {"paths": ["c", "dp"], "format": "currency"},
    }


@pytest.fixture()
def table_draft() -> dict:
    return {
        "name": "Market News",
        "type": "table",
        "provider": "finnhub",
        "endpoint": "/news",
        "params": {"category": "general"},
        "mapping": {"columns": []},
    }


@pytest.fixture()
def candle_draft() -> dict:
    return {
        "name": "AAPL Daily",
        "type": "candle",
        "provider": "alphaVantage",
        "endpoint": "TIME_SERIES_DAILY",
        "params": {"symbol": "AAPL"},
        "mapping": {},
    }


@pytest.fixture()
def daily_series_doc() -> dict:
    return {
        "Meta Data": {"2. Symbol": "AAPL"},
        "Time Series (Daily)": {
            "2024-01-02": {"1. open": "10", "2. high": "11", "3. low": "9", "4. close": "10.5"},
            "2024-01-01": {"1. open": "9", "2. high": "10", "3. low": "8", "4. close": "9.5"},
        },
    }
