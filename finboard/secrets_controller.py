"""
Secrets 控制器：保存各 provider 的 API Key。
统一存储到 secrets.json 文件中，provider id 作为顶层 key。
"""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_SECRETS_FILE = "secrets.json"
_API_KEY = "api_key"


class SecretsController:
    """基于文件的 provider 凭证存储。"""

    def __init__(self, secrets_dir: str | Path):
        self.secrets_dir = Path(secrets_dir)
        self.secrets_dir.mkdir(parents=True, exist_ok=True)
        self.secrets_file = self.secrets_dir / _SECRETS_FILE
        logger.info(f"Secrets 存储文件: {self.secrets_file}")

    def _load_all(self) -> dict[str, Any]:
        if not self.secrets_file.exists():
            return {}
        try:
            with open(self.secrets_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"读取 secrets 文件失败: {e}")
            return {}

    def _save_all(self, data: dict[str, Any]):
        try:
            with open(self.secrets_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except IOError as e:
            logger.error(f"保存 secrets 文件失败: {e}")

    def get_api_key(self, provider_id: str) -> str | None:
        """获取 provider 的 API Key，未设置时返回 None。"""
        return self._load_all().get(provider_id, {}).get(_API_KEY) or None

    def set_api_key(self, provider_id: str, api_key: str):
        all_secrets = self._load_all()
        all_secrets.setdefault(provider_id, {})[_API_KEY] = api_key
        self._save_all(all_secrets)
        logger.debug(f"API Key 已保存: {provider_id}")

    def delete_api_key(self, provider_id: str):
        all_secrets = self._load_all()
        if _API_KEY in all_secrets.get(provider_id, {}):
            del all_secrets[provider_id][_API_KEY]
            self._save_all(all_secrets)
            logger.debug(f"API Key 已删除: {provider_id}")
