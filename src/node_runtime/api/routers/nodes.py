"""
节点 API 路由
"""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from typing import Dict, Any, Optional
import logging

from ..models import (
    ExecuteNodeRequest, ExecuteNodeResponse, ValidatePropertiesRequest,
    ValidatePropertiesResponse, NodeCatalogResponse, ErrorResponse
)
from ..dependencies import get_registry, get_dispatcher, get_secret_store
from ...core import NodeDispatcher
from ...integrations import SecretStore
from ...exceptions import InvalidInputError


logger = logging.getLogger(__name__)
router = APIRouter()

ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    code: {"model": ErrorResponse} for code in (400, 404, 422, 500, 502, 504)
}


class RequestSecretResolver:
    """
    单次请求的密钥解析器

    请求体中提供的槽位优先，其余槽位从应用的密钥存储解析。
    """

    def __init__(self, node_name: str, provided: Dict[str, str], store: Optional[SecretStore]):
        self.node_name = node_name
        self.provided = provided
        self.store = store

    async def __call__(self, node_name: str, slot: str) -> Optional[Any]:
        # 请求体里的值只属于被执行的节点
        if node_name == self.node_name and slot in self.provided:
            return self.provided[slot]
        if self.store is None:
            return None
        return await self.store.resolve(node_name, slot)


@router.get("", response_model=NodeCatalogResponse)
async def list_nodes(registry=Depends(get_registry)) -> NodeCatalogResponse:
    """列出所有节点定义"""
    nodes = [node.to_dict() for node in registry.list_nodes()]
    return NodeCatalogResponse(total=len(nodes), nodes=nodes)


@router.get("/{node_name}", responses={404: {"model": ErrorResponse}})
async def get_node(node_name: str, registry=Depends(get_registry)) -> Dict[str, Any]:
    """获取单个节点定义"""
    return registry.require(node_name).to_dict()


@router.post("/{node_name}/validate", response_model=ValidatePropertiesResponse)
async def validate_node_properties(
    node_name: str,
    request: ValidatePropertiesRequest,
    dispatcher: NodeDispatcher = Depends(get_dispatcher)
):
    """校验节点属性，不执行节点"""
    try:
        properties = dispatcher.validate_properties(node_name, request.properties)
    except InvalidInputError as e:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ValidatePropertiesResponse(valid=False, errors=e.errors).model_dump()
        )

    return ValidatePropertiesResponse(valid=True, properties=properties)


@router.post("/{node_name}/execute", response_model=ExecuteNodeResponse, responses=ERROR_RESPONSES)
async def execute_node(
    node_name: str,
    request: ExecuteNodeRequest,
    dispatcher: NodeDispatcher = Depends(get_dispatcher),
    secret_store: SecretStore = Depends(get_secret_store)
) -> ExecuteNodeResponse:
    """
    执行节点

    失败以分类错误抛出，由应用的错误处理器映射为 HTTP 状态码。
    """
    resolver = RequestSecretResolver(node_name, request.secrets, secret_store)
    response = await dispatcher.execute(
        node_name,
        request.properties,
        resolver,
        request.context
    )

    if response.is_error:
        raise response.error

    return ExecuteNodeResponse(
        node_name=response.node_name,
        status=response.status,
        output=response.output,
        duration_ms=response.duration_ms,
        trace_id=response.trace_id,
        timestamp=response.timestamp
    )
