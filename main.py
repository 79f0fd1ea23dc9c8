"""
FinBoard 主入口：启动 FastAPI 后端服务。
"""

import logging
import sys
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from finboard import api
from finboard.config_loader import AppConfig, load_config
from finboard.executor import Executor
from finboard.gateway import ProviderGateway
from finboard.secrets_controller import SecretsController
from finboard.store import StateStorage, TinyDBStorage, WidgetStore

# 日志配置
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan 事件处理：启动时刷新所有 widget，关闭时释放存储。"""
    store = app.state.store
    executor = app.state.executor

    if store.widgets:
        logger.info(f"启动时自动刷新 {len(store.widgets)} 个 widget...")
        applied = await executor.refresh_all()
        logger.info(f"启动刷新完成: {len(applied)}/{len(store.widgets)}")
    else:
        logger.info("没有 widget，跳过启动刷新")

    yield  # 应用运行中

    logger.info("正在关闭...")
    storage = app.state.storage
    if isinstance(storage, TinyDBStorage):
        storage.close()


def create_app(
    config: AppConfig | None = None,
    storage: StateStorage | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """创建并配置 FastAPI 应用。"""
    app = FastAPI(
        title="FinBoard API",
        description="Widget dashboard for financial data providers",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── 初始化核心组件 ────────────────────────────────────────
    if config is None:
        logger.info("正在加载配置...")
        config = load_config()
    logger.info(f"已加载 {len(config.providers)} 个 provider 配置")

    data_dir = config.data_path()

    # Provider API Key 存储
    secrets_controller = SecretsController(data_dir)

    # Widget 定义持久化
    if storage is None:
        storage = TinyDBStorage(data_dir / config.storage.db_file, record_name=config.storage.record_name)
    store = WidgetStore(storage)

    gateway = ProviderGateway(config, secrets_controller, transport=transport)

    executor = Executor(store, gateway)

    # 注入依赖到 API 模块
    api.init_api(
        store=store,
        executor=executor,
        gateway=gateway,
        config=config,
        secrets_controller=secrets_controller,
    )

    # 注册 API 路由
    app.include_router(api.router)

    # 将组件存到 app.state，供 lifespan 访问
    app.state.config = config
    app.state.storage = storage
    app.state.store = store
    app.state.executor = executor

    return app


def main():
    """主入口。"""
    port = int(sys.argv[1]) if len(sys.argv) > 1 else 8400

    logger.info(f"🚀 启动 FinBoard 后端 (port={port})...")

    app = create_app()

    uvicorn.run(
        app,
        host="127.0.0.1",
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
