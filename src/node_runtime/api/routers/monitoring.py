"""
监控 API 路由
"""
from fastapi import APIRouter, Request
from datetime import datetime
import logging

from ... import __version__
from ..models import HealthCheckResponse
from ..dependencies import get_app_state


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request) -> HealthCheckResponse:
    """健康检查"""
    state = get_app_state(request)
    registry = state.get("registry")

    checks = {
        "registry": registry is not None,
        "dispatcher": state.get("dispatcher") is not None,
        "secret_store": state.get("secret_store") is not None,
        "node_count": len(registry) if registry is not None else 0
    }
    all_healthy = checks["registry"] and checks["dispatcher"] and checks["secret_store"]

    if not all_healthy:
        logger.warning(f"Health check failed: {checks}")

    return HealthCheckResponse(
        status="healthy" if all_healthy else "unhealthy",
        version=__version__,
        timestamp=datetime.utcnow(),
        checks=checks
    )
