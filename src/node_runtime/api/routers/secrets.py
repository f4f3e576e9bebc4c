"""
密钥描述符 API 路由
"""
from fastapi import APIRouter, Depends

from ..models import SecretCatalogResponse
from ..dependencies import get_registry


router = APIRouter()


@router.get("", response_model=SecretCatalogResponse)
async def list_secrets(registry=Depends(get_registry)) -> SecretCatalogResponse:
    """列出所有密钥描述符（不包含任何密钥值）"""
    secrets = [secret.to_dict() for secret in registry.list_secrets()]
    return SecretCatalogResponse(total=len(secrets), secrets=secrets)
