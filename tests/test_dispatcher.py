"""
节点分发器测试
"""
import pytest
from unittest.mock import Mock, AsyncMock

from node_runtime.core import ExecutionContext
from node_runtime.integrations import InMemorySecretStore
from node_runtime.exceptions import (
    NodeRuntimeError, NodeNotFoundError, InvalidInputError, MissingSecretError,
    ExecutionFailedError, InvalidOutputError
)


class TestDispatch:
    """分发流程测试类"""

    @pytest.mark.asyncio
    async def test_dispatch_success_applies_defaults(self, dispatcher, greeting_node):
        """测试成功执行并填充默认值"""
        result = await dispatcher.dispatch("greeting", {"name": "Ada"})

        assert result == {"message": "Hello, Ada"}
        assert greeting_node.calls[0]["properties"] == {"name": "Ada", "greeting": "Hello"}

    @pytest.mark.asyncio
    async def test_unknown_node(self, dispatcher):
        """测试未知节点"""
        with pytest.raises(NodeNotFoundError):
            await dispatcher.dispatch("nope", {})

    @pytest.mark.asyncio
    async def test_missing_field_then_success(self, dispatcher, greeting_node):
        """测试缺失必填字段报错，补上后成功"""
        with pytest.raises(InvalidInputError) as exc_info:
            await dispatcher.dispatch("greeting", {})

        assert exc_info.value.fields == ["name"]
        assert exc_info.value.retry_safe is True
        assert greeting_node.calls == []

        result = await dispatcher.dispatch("greeting", {"name": "Grace"})
        assert result["message"] == "Hello, Grace"

    @pytest.mark.asyncio
    async def test_execution_failure_is_classified(self, dispatcher):
        """测试执行函数自身异常被分类"""
        with pytest.raises(ExecutionFailedError) as exc_info:
            await dispatcher.dispatch("crashing", {"name": "x"})

        error = exc_info.value
        assert error.message == "Execution failed: disk on fire"
        assert error.node_name == "crashing"
        assert error.details["cause_type"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_malformed_result(self, dispatcher):
        """测试返回值不符合结果Schema"""
        with pytest.raises(InvalidOutputError) as exc_info:
            await dispatcher.dispatch("broken", {"name": "x"})

        assert "message" in exc_info.value.fields

    @pytest.mark.asyncio
    async def test_validate_properties_does_not_execute(self, dispatcher, greeting_node):
        """测试只校验不执行"""
        properties = dispatcher.validate_properties("greeting", {"name": "Ada", "unknown": 1})

        assert properties == {"name": "Ada", "greeting": "Hello"}
        assert greeting_node.calls == []


class TestExecuteResponse:
    """NodeResponse 测试类"""

    @pytest.mark.asyncio
    async def test_success_response(self, dispatcher):
        """测试成功响应"""
        response = await dispatcher.execute("greeting", {"name": "Ada"})

        assert response.is_success
        assert response.output == {"message": "Hello, Ada"}
        assert response.duration_ms >= 0
        assert response.to_dict()["status"] == "success"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("node_name, properties, error_class", [
        ("nope", {}, NodeNotFoundError),
        ("greeting", {"name": 3}, InvalidInputError),
        ("alpha", {"name": "x"}, MissingSecretError),
        ("crashing", {"name": "x"}, ExecutionFailedError),
        ("broken", {"name": "x"}, InvalidOutputError),
    ])
    async def test_no_unclassified_errors(self, dispatcher, node_name, properties, error_class):
        """测试所有失败都是分类错误"""
        response = await dispatcher.execute(node_name, properties)

        assert response.is_error
        assert isinstance(response.error, error_class)
        assert isinstance(response.error, NodeRuntimeError)
        assert response.to_dict()["error"]["code"] == error_class.code


class TestSecretResolution:
    """密钥解析测试类"""

    @pytest.mark.asyncio
    async def test_secret_isolation(self, dispatcher, test_registry):
        """测试节点只能拿到自己的密钥"""
        store = InMemorySecretStore(test_registry)
        store.set_shared("alpha-key", "alpha-secret")
        store.set_shared("beta-key", "beta-secret")

        await dispatcher.dispatch("alpha", {"name": "x"}, store)
        await dispatcher.dispatch("beta", {"name": "x"}, store)
        await dispatcher.dispatch("greeting", {"name": "x"}, store)

        alpha = test_registry.require("alpha").execute
        beta = test_registry.require("beta").execute
        greeting = test_registry.require("greeting").execute
        assert alpha.calls[0]["secrets"] == {"apiKey": "alpha-secret"}
        assert beta.calls[0]["secrets"] == {"apiKey": "beta-secret"}
        assert greeting.calls[0]["secrets"] == {}

    @pytest.mark.asyncio
    async def test_resolver_called_with_own_node_only(self, dispatcher):
        """测试解析器只收到当前节点名称"""
        resolver = Mock(return_value="value")

        await dispatcher.dispatch("alpha", {"name": "x"}, resolver)

        resolver.assert_called_once_with("alpha", "apiKey")

    @pytest.mark.asyncio
    async def test_async_resolver(self, dispatcher, test_registry):
        """测试异步解析函数"""
        resolver = AsyncMock(return_value="async-secret")

        await dispatcher.dispatch("beta", {"name": "x"}, resolver)

        assert test_registry.require("beta").execute.calls[0]["secrets"] == {"apiKey": "async-secret"}

    @pytest.mark.asyncio
    async def test_missing_secret_blocks_execution(self, dispatcher, test_registry):
        """测试缺失密钥时不执行节点"""
        with pytest.raises(MissingSecretError) as exc_info:
            await dispatcher.dispatch("alpha", {"name": "x"}, InMemorySecretStore())

        assert exc_info.value.slot == "apiKey"
        assert test_registry.require("alpha").execute.calls == []

    @pytest.mark.asyncio
    async def test_resolver_failure_is_missing_secret(self, dispatcher):
        """测试解析器异常转换为 MissingSecretError"""
        resolver = Mock(side_effect=KeyError("vault offline"))

        with pytest.raises(MissingSecretError, match="vault offline"):
            await dispatcher.dispatch("alpha", {"name": "x"}, resolver)

    @pytest.mark.asyncio
    async def test_secret_value_not_echoed(self, dispatcher):
        """测试密钥类型不符时不回显值"""
        resolver = Mock(return_value=12345)

        with pytest.raises(MissingSecretError) as exc_info:
            await dispatcher.dispatch("alpha", {"name": "x"}, resolver)

        assert "12345" not in exc_info.value.message


class TestContextView:
    """上下文白名单测试类"""

    @pytest.mark.asyncio
    async def test_only_declared_variables_are_visible(self, dispatcher, test_registry):
        """测试节点只看到声明的上下文变量"""
        context = ExecutionContext(variables={"a": 2, "b": 3, "secret_total": 100})

        result = await dispatcher.dispatch("sum", {"inputVariables": ["a", "b", "absent"]}, None, context)

        assert result == {"total": 5}
        assert test_registry.require("sum").execute.calls[0]["context"] == {"a": 2, "b": 3}

    @pytest.mark.asyncio
    async def test_nodes_without_input_field_get_empty_context(self, dispatcher, greeting_node):
        """测试未声明输入变量的节点拿到空上下文"""
        await dispatcher.dispatch("greeting", {"name": "x"}, None, {"a": 1})

        assert greeting_node.calls[0]["context"] == {}

    @pytest.mark.asyncio
    async def test_node_cannot_mutate_context(self, dispatcher, test_registry):
        """测试节点修改视图不影响上下文"""
        context = ExecutionContext(variables={"a": 1})

        await dispatcher.dispatch("sum", {"inputVariables": ["a"]}, None, context)
        test_registry.require("sum").execute.calls[0]["context"]["a"] = 99

        assert context.get_variable("a") == 1
