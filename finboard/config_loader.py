"""
配置加载器：将 YAML 配置文件解析为 Pydantic 模型。
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ── Provider 配置 ─────────────────────────────────────

class ProviderConfig(BaseModel):
    id: str
    label: str = ""
    base_url: str
    # 承载 endpoint 的查询参数名；为空时将 endpoint 拼接到 URL 路径
    endpoint_param: Optional[str] = None
    api_key_param: Optional[str] = None
    api_key: Optional[str] = None  # 支持 ${ENV_VAR} 占位符
    # 顶层出现这些键时视为 provider 返回的业务错误
    error_keys: List[str] = Field(default_factory=list)
    # K 线周期映射
    interval_param: Optional[str] = None
    interval_values: Dict[str, str] = Field(default_factory=dict)
    interval_endpoints: Dict[str, str] = Field(default_factory=dict)
    endpoints: Dict[str, str] = Field(default_factory=dict, description="endpoint -> 显示名称")
    timeout: float = 30.0


# ── 存储配置 ──────────────────────────────────────────

class StorageConfig(BaseModel):
    data_dir: str = "data"
    db_file: str = "dashboard.json"
    record_name: str = "finboard-dashboard"


# ── 顶层配置 ──────────────────────────────────────────

class AppConfig(BaseModel):
    providers: List[ProviderConfig] = Field(default_factory=list)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    def get_provider(self, provider_id: str) -> Optional[ProviderConfig]:
        for p in self.providers:
            if p.id == provider_id:
                return p
        return None

    def data_path(self) -> Path:
        """数据目录，相对路径基于 FINBOARD_ROOT。"""
        path = Path(self.storage.data_dir)
        if not path.is_absolute():
            path = Path(os.getenv("FINBOARD_ROOT", ".")) / path
        return path


# ── Loading ───────────────────────────────────────────

_CONFIG_SEARCH_PATHS = [
    "config/config.yaml",
    "config.yaml",
]


def find_config_root() -> Path:
    """Find the root config file or directory."""
    base = Path(os.getenv("FINBOARD_ROOT", "."))
    config_dir = base / "config"
    if config_dir.is_dir():
        return config_dir

    for p in _CONFIG_SEARCH_PATHS:
        path = base / p
        if path.exists():
            return path

    return base


def load_all_yamls(root: Path) -> Dict[str, Any]:
    """加载并合并所有 YAML 文件：providers 追加，storage 后者覆盖前者。"""
    combined: Dict[str, Any] = {"providers": [], "storage": {}}

    files: List[Path] = []
    if root.is_file():
        files.append(root)
    elif root.is_dir():
        files.extend(root.glob("**/*.yaml"))
        files.extend(root.glob("**/*.yml"))
        files.sort()

    for f in files:
        try:
            with open(f, "r", encoding="utf-8") as fp:
                content = yaml.safe_load(fp)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"加载配置文件失败 {f}: {e}")
            continue
        if not isinstance(content, dict):
            continue
        combined["providers"].extend(content.get("providers") or [])
        combined["storage"].update(content.get("storage") or {})

    return combined


def load_config(path: Optional[str | Path] = None) -> AppConfig:
    """
    Load and merge configuration from YAML files.
    """
    if path is None:
        path = find_config_root()
    path = Path(path)

    raw = load_all_yamls(path)
    return AppConfig.model_validate(raw)
