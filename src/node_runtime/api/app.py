"""
FastAPI 应用主文件
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging

from .. import __version__
from .routers import nodes, secrets, monitoring
from .middleware import RequestLoggingMiddleware
from .models import ErrorResponse
from ..config import Settings
from ..core import NodeDispatcher, NodeRegistry
from ..nodes import create_registry
from ..integrations import SecretStore, InMemorySecretStore, EncryptedSecretStore, SecretsManager
from ..exceptions import NodeRuntimeError


logger = logging.getLogger(__name__)


# 错误码 -> HTTP 状态码
ERROR_STATUS_CODES = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid_input": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "missing_secret": status.HTTP_400_BAD_REQUEST,
    "execution_failed": status.HTTP_502_BAD_GATEWAY,
    "transport_error": status.HTTP_502_BAD_GATEWAY,
    "timeout": status.HTTP_504_GATEWAY_TIMEOUT,
    "invalid_output": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_status_code(error: NodeRuntimeError) -> int:
    return ERROR_STATUS_CODES.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def build_secret_store(settings: Settings, registry: NodeRegistry) -> SecretStore:
    """配置了主密钥时使用加密存储"""
    if settings.secrets_master_key:
        return EncryptedSecretStore(SecretsManager(settings.secrets_master_key), registry)
    return InMemorySecretStore(registry)


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[NodeRegistry] = None,
    secret_store: Optional[SecretStore] = None
) -> FastAPI:
    """
    创建 FastAPI 应用

    注册表、分发器和密钥存储在 lifespan 中组装一次，保存在 app.state.runtime。
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        logger.info("Starting Node Runtime API...")

        app_settings = settings or Settings.from_env()
        app_registry = registry or create_registry(app_settings)
        store = secret_store or build_secret_store(app_settings, app_registry)

        app.state.runtime = {
            "settings": app_settings,
            "registry": app_registry,
            "dispatcher": NodeDispatcher(app_registry),
            "secret_store": store
        }

        logger.info(f"Node Runtime API started with {len(app_registry)} nodes")

        yield

        app.state.runtime = {}
        logger.info("Node Runtime API shut down")

    app = FastAPI(
        title="Workflow Node Runtime API",
        description="工作流节点运行时 RESTful API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(nodes.router, prefix="/api/v1/nodes", tags=["nodes"])
    app.include_router(secrets.router, prefix="/api/v1/secrets", tags=["secrets"])
    app.include_router(monitoring.router, prefix="/api/v1", tags=["monitoring"])

    @app.exception_handler(NodeRuntimeError)
    async def runtime_error_handler(request: Request, exc: NodeRuntimeError):
        """分类错误映射为 HTTP 状态码"""
        body = ErrorResponse(
            error=exc.code,
            message=exc.message,
            details=exc.details,
            request_id=getattr(request.state, "request_id", None)
        )
        return JSONResponse(status_code=error_status_code(exc), content=body.model_dump(mode="json"))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """全局异常处理器"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)

        body = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred",
            request_id=getattr(request.state, "request_id", None)
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json")
        )

    @app.get("/", tags=["root"])
    async def root():
        """API根路径"""
        return {
            "name": "Workflow Node Runtime API",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
            "health": "/api/v1/health"
        }

    return app
