"""
节点执行分发器

execute(node_name, raw_properties, secret_resolver, context) 的每一步都是硬边界：
查找定义 → 校验属性 → 解析密钥 → 调用执行函数 → 校验结果。
"""
from typing import Dict, Any, Optional, Union, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
import inspect
import logging
import time
import uuid

from .registry import NodeRegistry
from .validator import SchemaValidator
from .context import ExecutionContext, select_variables
from ..models.node import NodeDefinition
from ..exceptions import (
    NodeRuntimeError, InvalidInputError, MissingSecretError,
    ExecutionFailedError, InvalidOutputError
)
from ..integrations.secret_store import SecretStore


logger = logging.getLogger(__name__)


# 密钥解析器：SecretStore 实例，或 (node_name, slot) -> value 的同步/异步函数
SecretResolver = Union[SecretStore, Callable[[str, str], Any]]


@dataclass
class NodeResponse:
    """节点执行响应"""
    node_name: str
    status: str  # success, error
    output: Any = None
    error: Optional[NodeRuntimeError] = None
    duration_ms: float = 0
    trace_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_success(self) -> bool:
        """是否成功"""
        return self.status == "success"

    @property
    def is_error(self) -> bool:
        """是否错误"""
        return self.status == "error"

    @property
    def error_type(self) -> Optional[str]:
        return type(self.error).__name__ if self.error else None

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        result = {
            "node_name": self.node_name,
            "status": self.status,
            "output": self.output,
            "duration_ms": self.duration_ms,
            "trace_id": self.trace_id,
            "timestamp": self.timestamp.isoformat()
        }
        if self.error:
            result["error"] = self.error.to_dict()
        return result


class NodeDispatcher:
    """节点执行分发器"""

    def __init__(self, registry: NodeRegistry, validator: Optional[SchemaValidator] = None):
        self.registry = registry
        self.validator = validator or SchemaValidator()

    def validate_properties(self, node_name: str, raw_properties: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        校验节点属性（不执行任何节点逻辑）

        Raises:
            NodeNotFoundError: 节点不存在
            InvalidInputError: 属性不合法
        """
        node = self.registry.require(node_name)
        raw = raw_properties if raw_properties is not None else {}
        properties, errors = self.validator.collect_errors(node.properties, raw)
        if errors:
            raise InvalidInputError(node_name, errors)
        return properties

    async def resolve_secrets(
        self,
        node: NodeDefinition,
        secret_resolver: Optional[SecretResolver]
    ) -> Dict[str, Any]:
        """
        解析节点声明的全部密钥槽

        每次调用都重新解析，只使用本节点的名称与槽位。
        """
        secrets: Dict[str, Any] = {}

        for slot, descriptor in node.secrets.items():
            value = None
            if secret_resolver is not None:
                try:
                    value = await _call_resolver(secret_resolver, node.name, slot)
                except Exception as e:
                    logger.warning(f"Secret resolver failed for {node.name}.{slot}: {type(e).__name__}")
                    raise MissingSecretError(node.name, slot, str(e)) from e

            if value is None or value == "":
                if descriptor.schema.is_optional:
                    continue
                raise MissingSecretError(node.name, slot)

            _, errors = self.validator.collect_errors(descriptor.schema, value)
            if errors:
                # 不在错误信息中回显密钥值
                raise MissingSecretError(
                    node.name, slot,
                    f"value does not match secret '{descriptor.name}' schema"
                )
            secrets[slot] = value

        logger.debug(f"Resolved secret slots for {node.name}: {sorted(secrets)}")
        return secrets

    def context_view(
        self,
        node: NodeDefinition,
        properties: Dict[str, Any],
        context: Optional[Union[ExecutionContext, Mapping[str, Any]]]
    ) -> Dict[str, Any]:
        """取出节点声明可读的上下文变量"""
        if context is None or node.input_variables_field is None:
            return {}
        variables = context.readable_variables() if isinstance(context, ExecutionContext) else dict(context)
        return select_variables(variables, properties.get(node.input_variables_field))

    async def dispatch(
        self,
        node_name: str,
        raw_properties: Optional[Dict[str, Any]],
        secret_resolver: Optional[SecretResolver] = None,
        context: Optional[Union[ExecutionContext, Mapping[str, Any]]] = None
    ) -> Any:
        """
        分发并执行一个节点

        Returns:
            通过结果Schema校验的节点结果

        Raises:
            NodeRuntimeError 的子类，不会抛出未分类的异常
        """
        node = self.registry.require(node_name)
        properties = self.validate_properties(node_name, raw_properties)
        secrets = await self.resolve_secrets(node, secret_resolver)
        scope = self.context_view(node, properties, context)

        try:
            result = await node.execute(properties, secrets, scope)
        except ExecutionFailedError as e:
            if e.node_name is None:
                e.node_name = node_name
                e.details["node_name"] = node_name
            raise
        except Exception as e:
            logger.error(f"Node {node_name} raised an unexpected error: {e}", exc_info=True)
            raise ExecutionFailedError(f"Execution failed: {e}", node_name, e) from e

        output, errors = self.validator.collect_errors(node.result, result)
        if errors:
            raise InvalidOutputError(node_name, errors)
        return output

    async def execute(
        self,
        node_name: str,
        raw_properties: Optional[Dict[str, Any]],
        secret_resolver: Optional[SecretResolver] = None,
        context: Optional[Union[ExecutionContext, Mapping[str, Any]]] = None
    ) -> NodeResponse:
        """执行节点并把成功或分类后的失败包装为 NodeResponse"""
        start_time = time.perf_counter()

        try:
            output = await self.dispatch(node_name, raw_properties, secret_resolver, context)
        except NodeRuntimeError as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.warning(f"Node {node_name} failed with {e.code}: {e.message}")
            return NodeResponse(
                node_name=node_name,
                status="error",
                error=e,
                duration_ms=duration_ms
            )

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Node {node_name} executed successfully in {duration_ms:.2f}ms")
        return NodeResponse(
            node_name=node_name,
            status="success",
            output=output,
            duration_ms=duration_ms
        )


async def _call_resolver(resolver: SecretResolver, node_name: str, slot: str) -> Any:
    func = resolver.resolve if isinstance(resolver, SecretStore) else resolver
    value = func(node_name, slot)
    if inspect.isawaitable(value):
        value = await value
    return value
