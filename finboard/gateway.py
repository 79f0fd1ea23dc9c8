"""
Provider 网关：把 {provider, endpoint, params} 转换为对应 provider 的 HTTP 请求，
返回解析后的 JSON，失败时抛出携带 FetchFailure 的 FetchError。
"""

import json
import logging
import os
import re
from typing import Any, Dict, Optional, Tuple

import httpx

from finboard.config_loader import AppConfig, ProviderConfig
from finboard.models import FailureKind, FetchFailure, FetchRequest
from finboard.secrets_controller import SecretsController

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


class FetchError(Exception):
    """Fetch 失败，failure 描述失败类型。"""

    def __init__(self, failure: FetchFailure):
        self.failure = failure
        super().__init__(failure.message)


def _fail(kind: FailureKind, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
    raise FetchError(FetchFailure(kind=kind, message=message, provider=provider, status_code=status_code))


def _resolve_env(value: str | None) -> str | None:
    """解析 ${ENV_VAR} 占位符为环境变量值，结果为空时返回 None。"""
    if value is None:
        return None
    resolved = _ENV_PATTERN.sub(lambda m: os.getenv(m.group(1), ""), value)
    return resolved or None


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class ProviderGateway:
    """按 provider 配置构造请求并执行。"""

    def __init__(
        self,
        config: AppConfig,
        secrets: SecretsController | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._secrets = secrets
        self._transport = transport

    def api_key_for(self, provider: ProviderConfig) -> str | None:
        if self._secrets is not None:
            stored = self._secrets.get_api_key(provider.id)
            if stored:
                return stored
        return _resolve_env(provider.api_key)

    def build_request(self, request: FetchRequest) -> Tuple[ProviderConfig, str, Dict[str, str]]:
        """返回 (provider, url, query)。"""
        provider = self._config.get_provider(request.provider)
        if provider is None:
            _fail(FailureKind.UNKNOWN_PROVIDER, f"Unknown provider '{request.provider}'", request.provider)

        endpoint = request.endpoint
        params = dict(request.params)

        # K 线周期：Alpha Vantage 换 function，Finnhub 换 resolution
        interval = params.get("interval")
        if isinstance(interval, str):
            if interval in provider.interval_endpoints and endpoint in provider.interval_endpoints.values():
                endpoint = provider.interval_endpoints[interval]
                params.pop("interval")
            elif provider.interval_param and provider.interval_param not in params:
                params.pop("interval")
                params[provider.interval_param] = provider.interval_values.get(interval, interval)

        query = {k: _query_value(v) for k, v in params.items() if v is not None}

        if provider.endpoint_param:
            url = provider.base_url
            query[provider.endpoint_param] = endpoint
        else:
            url = provider.base_url.rstrip("/") + "/" + endpoint.lstrip("/")

        if provider.api_key_param:
            api_key = self.api_key_for(provider)
            if not api_key:
                _fail(FailureKind.AUTH, f"Missing API key for {provider.label or provider.id}", provider.id)
            query[provider.api_key_param] = api_key

        return provider, url, query

    async def fetch(self, request: FetchRequest) -> Any:
        """执行请求，返回 JSON 文档。"""
        provider, url, query = self.build_request(request)
        logger.info(f"[{provider.id}] GET {url} (endpoint={request.endpoint})")

        async with httpx.AsyncClient(transport=self._transport, timeout=provider.timeout) as client:
            try:
                response = await client.get(url, params=query)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.warning(f"[{provider.id}] HTTP {status}: {url}")
                _fail(FailureKind.HTTP, f"{provider.label or provider.id} returned HTTP {status}", provider.id, status)
            except httpx.HTTPError as e:
                logger.warning(f"[{provider.id}] 请求失败: {e}")
                _fail(FailureKind.NETWORK, f"Network error: {e}", provider.id)

        try:
            data = response.json()
        except ValueError:
            _fail(FailureKind.INVALID_JSON, "Response is not valid JSON", provider.id, response.status_code)

        if isinstance(data, dict):
            for key in provider.error_keys:
                if key in data:
                    _fail(FailureKind.PROVIDER_ERROR, str(data[key]), provider.id, response.status_code)

        return data
