"""
FastAPI 依赖注入
"""
from fastapi import HTTPException, Request, status
from typing import Dict, Any
import logging

from ..core import NodeDispatcher, NodeRegistry
from ..integrations import SecretStore


logger = logging.getLogger(__name__)


def get_app_state(request: Request) -> Dict[str, Any]:
    """获取应用状态"""
    return getattr(request.app.state, "runtime", None) or {}


def _require(request: Request, key: str, label: str) -> Any:
    component = get_app_state(request).get(key)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "service_unavailable",
                "message": f"{label} not initialized"
            }
        )
    return component


def get_registry(request: Request) -> NodeRegistry:
    """获取节点注册表"""
    return _require(request, "registry", "Node registry")


def get_dispatcher(request: Request) -> NodeDispatcher:
    """获取节点分发器"""
    return _require(request, "dispatcher", "Node dispatcher")


def get_secret_store(request: Request) -> SecretStore:
    """获取密钥存储"""
    return _require(request, "secret_store", "Secret store")
