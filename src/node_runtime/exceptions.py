"""
节点运行时异常定义
"""
from typing import Dict, Any, Optional, List


class NodeRuntimeError(Exception):
    """节点运行时基础异常"""

    code = "runtime_error"
    # 校验与密钥解析阶段的失败发生在任何副作用之前，修正输入后可立即重试
    retry_safe = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "retry_safe": self.retry_safe,
            "details": self.details
        }


class RegistryConfigError(NodeRuntimeError):
    """注册表组装异常（启动期配置错误）"""

    code = "registry_config_error"


class SecretStoreError(NodeRuntimeError):
    """密钥存储异常（解密失败、主密钥不合法等）"""

    code = "secret_store_error"


class NodeNotFoundError(NodeRuntimeError):
    """节点未找到异常"""

    code = "not_found"
    retry_safe = True

    def __init__(self, node_name: str):
        super().__init__(
            f"Node not found: {node_name}",
            {"node_name": node_name}
        )
        self.node_name = node_name


class SchemaValidationError(NodeRuntimeError):
    """Schema验证异常，携带字段级错误"""

    code = "schema_validation_error"

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, {"errors": errors or []})
        self.errors = errors or []

    @property
    def fields(self) -> List[str]:
        """出错的字段路径"""
        return [error["path"] for error in self.errors]


class InvalidInputError(SchemaValidationError):
    """节点输入验证异常"""

    code = "invalid_input"
    retry_safe = True

    def __init__(self, node_name: str, errors: List[Dict[str, Any]]):
        super().__init__(
            f"Invalid properties for node {node_name}: "
            + "; ".join(f"{e['path']}: {e['message']}" for e in errors),
            errors
        )
        self.details["node_name"] = node_name
        self.node_name = node_name


class MissingSecretError(NodeRuntimeError):
    """节点所需密钥缺失或无法解析"""

    code = "missing_secret"
    retry_safe = True

    def __init__(self, node_name: str, slot: str, reason: Optional[str] = None):
        message = f"Missing secret '{slot}' for node {node_name}"
        if reason:
            message += f": {reason}"
        super().__init__(message, {"node_name": node_name, "slot": slot})
        self.node_name = node_name
        self.slot = slot


class ExecutionFailedError(NodeRuntimeError):
    """节点执行函数自身失败"""

    code = "execution_failed"

    def __init__(
        self,
        message: str,
        node_name: Optional[str] = None,
        cause: Optional[Exception] = None,
        logs: Optional[List[str]] = None
    ):
        details: Dict[str, Any] = {}
        if node_name:
            details["node_name"] = node_name
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__
        if logs is not None:
            details["logs"] = list(logs)

        super().__init__(message, details)
        self.node_name = node_name
        self.cause = cause
        self.logs = list(logs) if logs is not None else []


class NodeTimeoutError(ExecutionFailedError):
    """节点执行超时"""

    code = "timeout"

    def __init__(
        self,
        timeout_ms: float,
        node_name: Optional[str] = None,
        logs: Optional[List[str]] = None,
        operation: str = "Request"
    ):
        shown = int(timeout_ms) if float(timeout_ms).is_integer() else timeout_ms
        super().__init__(f"{operation} timeout after {shown}ms", node_name, logs=logs)
        self.details["timeout_ms"] = timeout_ms
        self.timeout_ms = timeout_ms


class TransportError(ExecutionFailedError):
    """网络传输异常"""

    code = "transport_error"

    def __init__(self, message: str, node_name: Optional[str] = None, cause: Optional[Exception] = None):
        super().__init__(f"HTTP request failed: {message}", node_name, cause)


class InvalidOutputError(SchemaValidationError):
    """节点返回值不符合其结果Schema（节点自身缺陷）"""

    code = "invalid_output"

    def __init__(self, node_name: str, errors: List[Dict[str, Any]]):
        super().__init__(
            f"Node {node_name} returned a malformed result: "
            + "; ".join(f"{e['path']}: {e['message']}" for e in errors),
            errors
        )
        self.details["node_name"] = node_name
        self.node_name = node_name
