"""
Pytest 配置和公共 fixtures
"""
import pytest
import httpx
from typing import Dict, Any, List

from node_runtime.models import (
    NodeDefinition, NodePackage, SecretDescriptor, ObjectField, StringField,
    NumberField, ArrayField, BooleanField, lucide_icon
)
from node_runtime.core import build_registry, NodeDispatcher
from node_runtime.config import Settings
from node_runtime.nodes import create_registry
from node_runtime.integrations import MockEmailSender


class RecordingNode:
    """记录每次调用收到的参数，返回预设结果的执行函数"""

    def __init__(self, result: Any = None, error: Exception = None):
        self.result = result
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, properties, secrets, context=None):
        self.calls.append({"properties": properties, "secrets": dict(secrets), "context": context})
        if self.error is not None:
            raise self.error
        if callable(self.result):
            return self.result(properties, secrets, context)
        return self.result


GREETING_PROPERTIES = ObjectField(fields={
    "name": StringField(title="Name"),
    "greeting": StringField(title="Greeting", default="Hello"),
    "excited": BooleanField(required=False)
})

GREETING_RESULT = ObjectField(fields={"message": StringField()})


def make_node(name: str, execute, **kwargs) -> NodeDefinition:
    """创建测试节点"""
    return NodeDefinition(
        name=name,
        title=kwargs.pop("title", name.title()),
        description=kwargs.pop("description", f"{name} test node"),
        icon=kwargs.pop("icon", lucide_icon("Box")),
        properties=kwargs.pop("properties", GREETING_PROPERTIES),
        result=kwargs.pop("result", GREETING_RESULT),
        execute=execute,
        **kwargs
    )


def greet(properties, secrets, context):
    return {"message": f"{properties['greeting']}, {properties['name']}"}


def sum_context(properties, secrets, context):
    return {"total": sum(context.values())}


SUM_PROPERTIES = ObjectField(fields={
    "inputVariables": ArrayField(items=StringField(), default=[])
})

SUM_RESULT = ObjectField(fields={"total": NumberField()})


@pytest.fixture
def greeting_node():
    """返回问候语的测试节点"""
    return RecordingNode(result=greet)


@pytest.fixture
def test_registry(greeting_node):
    """测试节点注册表"""
    alpha_key = SecretDescriptor(
        name="alpha-key", title="Alpha key", description="Key for alpha",
        schema=StringField(title="Key")
    )
    beta_key = SecretDescriptor(
        name="beta-key", title="Beta key", description="Key for beta",
        schema=StringField(title="Key")
    )

    package = NodePackage(
        name="testing",
        nodes=[
            make_node("greeting", greeting_node),
            make_node("alpha", RecordingNode(result={"message": "alpha"}), secrets={"apiKey": alpha_key}),
            make_node("beta", RecordingNode(result={"message": "beta"}), secrets={"apiKey": beta_key}),
            make_node("broken", RecordingNode(result={"msg": 42})),
            make_node("crashing", RecordingNode(error=RuntimeError("disk on fire"))),
            make_node(
                "sum",
                RecordingNode(result=sum_context),
                properties=SUM_PROPERTIES,
                result=SUM_RESULT,
                input_variables_field="inputVariables"
            )
        ],
        secrets=[alpha_key, beta_key]
    )
    return build_registry([package])


@pytest.fixture
def dispatcher(test_registry):
    """测试节点分发器"""
    return NodeDispatcher(test_registry)


@pytest.fixture
def settings():
    """测试配置（不读取环境）"""
    return Settings(http_timeout_ms=30000, sandbox_timeout=10, sandbox_max_log_lines=100)


@pytest.fixture
def mock_email_sender():
    """记录邮件的发送器"""
    return MockEmailSender()


@pytest.fixture
def http_transport():
    """固定返回 200 的 HTTP 传输层"""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"url": str(request.url), "method": request.method})

    return httpx.MockTransport(handler)


@pytest.fixture
def core_registry(settings, mock_email_sender, http_transport):
    """内置节点注册表（邮件与 HTTP 均被替换）"""
    return create_registry(settings, email_sender=mock_email_sender, http_transport=http_transport)
