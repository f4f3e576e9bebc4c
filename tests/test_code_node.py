"""
代码节点与沙箱测试
"""
import pytest

from node_runtime.core import NodeDispatcher, ExecutionContext, build_registry
from node_runtime.models import NodePackage
from node_runtime.nodes import create_code_node, CodeExecutor
from node_runtime.integrations.sandbox import CodeSandbox, SandboxConfig, SecurityChecker, build_source
from node_runtime.exceptions import ExecutionFailedError, NodeTimeoutError


@pytest.fixture
def sandbox():
    return CodeSandbox(SandboxConfig(timeout_seconds=10, max_log_lines=50))


@pytest.fixture
def code_dispatcher(sandbox):
    node = create_code_node(sandbox)
    return NodeDispatcher(build_registry([NodePackage(name="code", nodes=[node])]))


class TestCodeNode:
    """代码节点测试类"""

    @pytest.mark.asyncio
    async def test_returns_sum_without_logs(self, code_dispatcher):
        """测试返回值与空日志"""
        context = ExecutionContext(variables={"a": 2, "b": 3})

        result = await code_dispatcher.dispatch(
            "code",
            {"code": "return a + b", "inputVariables": ["a", "b"]},
            None,
            context
        )

        assert result == {"output": 5, "logs": []}

    @pytest.mark.asyncio
    async def test_console_capture(self, code_dispatcher):
        """测试 console 输出捕获"""
        code = "\n".join([
            "console.log('count', 3, {'a': [1, 2]})",
            "console.warn('careful')",
            "console.info('fyi')",
            "console.error('bad', True)",
            "print('printed')",
        ])

        result = await code_dispatcher.dispatch("code", {"code": code})

        assert result["output"] is None
        assert result["logs"] == [
            'count 3 {"a": [1, 2]}',
            "WARN: careful",
            "INFO: fyi",
            "ERROR: bad True",
            "printed",
        ]

    @pytest.mark.asyncio
    async def test_log_then_raise_keeps_partial_logs(self, code_dispatcher):
        """测试抛错时保留已有日志并追加 ERROR 行"""
        code = "console.log('x')\nraise ValueError('boom')"

        with pytest.raises(ExecutionFailedError) as exc_info:
            await code_dispatcher.dispatch("code", {"code": code})

        error = exc_info.value
        assert error.message == "Code execution failed: boom"
        assert error.logs == ["x", "ERROR: boom"]
        assert error.details["logs"] == ["x", "ERROR: boom"]
        assert error.node_name == "code"

    @pytest.mark.asyncio
    async def test_absent_variable_is_not_injected(self, code_dispatcher):
        """测试上下文中不存在的声明变量不会被注入"""
        context = ExecutionContext(variables={"present": 1})

        with pytest.raises(ExecutionFailedError) as exc_info:
            await code_dispatcher.dispatch(
                "code",
                {"code": "return missing", "inputVariables": ["present", "missing"]},
                None,
                context
            )

        assert "missing" in exc_info.value.message
        assert exc_info.value.logs[-1].startswith("ERROR:")

    @pytest.mark.asyncio
    async def test_undeclared_context_not_visible(self, code_dispatcher):
        """测试未声明的上下文变量对代码不可见"""
        context = ExecutionContext(variables={"a": 1, "token": "hidden"})

        with pytest.raises(ExecutionFailedError):
            await code_dispatcher.dispatch(
                "code",
                {"code": "return token", "inputVariables": ["a"]},
                None,
                context
            )

    @pytest.mark.asyncio
    async def test_await_is_allowed(self, code_dispatcher):
        """测试代码体可以 await"""
        code = "async def double(x):\n    return x * 2\nreturn await double(21)"

        result = await code_dispatcher.dispatch("code", {"code": code})

        assert result["output"] == 42

    @pytest.mark.asyncio
    async def test_imports_are_blocked(self, code_dispatcher):
        """测试禁止导入"""
        with pytest.raises(ExecutionFailedError, match="Imports are not allowed") as exc_info:
            await code_dispatcher.dispatch("code", {"code": "import os\nreturn os.getcwd()"})

        assert exc_info.value.logs[0].startswith("ERROR: Security violation")

    @pytest.mark.asyncio
    async def test_syntax_error(self, code_dispatcher):
        """测试语法错误"""
        with pytest.raises(ExecutionFailedError, match="SyntaxError"):
            await code_dispatcher.dispatch("code", {"code": "return (1 +"})

    @pytest.mark.asyncio
    async def test_timeout(self):
        """测试执行超时"""
        executor = CodeExecutor(CodeSandbox(SandboxConfig(timeout_seconds=1)))

        with pytest.raises(NodeTimeoutError) as exc_info:
            await executor({"code": "while True:\n    pass"}, {})

        assert exc_info.value.timeout_ms == 1000
        assert exc_info.value.message == "Code execution timeout after 1000ms"

    @pytest.mark.asyncio
    async def test_non_serializable_return(self, code_dispatcher):
        """测试返回值必须可序列化为 JSON"""
        with pytest.raises(ExecutionFailedError, match="not JSON serializable"):
            await code_dispatcher.dispatch("code", {"code": "return {1, 2}"})

    @pytest.mark.asyncio
    async def test_direct_call_injects_every_context_entry(self, sandbox):
        """测试直接调用时注入收到的全部上下文"""
        executor = CodeExecutor(sandbox)

        result = await executor({"code": "return x * y", "inputVariables": []}, {}, {"x": 4, "y": 5})

        assert result == {"output": 20, "logs": []}


class TestSandboxGuards:
    """沙箱静态检查测试类"""

    def test_scope_becomes_parameters(self):
        """测试作用域名称成为函数参数"""
        source = build_source("return a", ["console", "a"])
        assert source.startswith("async def __node_main__(console, a):")

    @pytest.mark.parametrize("code, rule", [
        ("import os", "no_import"),
        ("from os import path", "no_import"),
        ("return ().__class__", "no_dunder"),
        ("return __builtins__", "forbidden_name"),
        ("return eval('1')", "forbidden_name"),
        ("return open('/etc/passwd')", "forbidden_name"),
        ("yield 1", "no_yield"),
    ])
    def test_violations(self, code, rule):
        """测试危险代码被拒绝"""
        sandbox = CodeSandbox()
        _, _, violations = sandbox.prepare(code, {})
        assert rule in {v.rule for v in violations}

    def test_clean_code_passes(self):
        """测试普通代码没有违规"""
        sandbox = CodeSandbox()
        _, params, violations = sandbox.prepare("return sorted(items)[0]", {"items": [3, 1]})
        assert violations == []
        assert params == ["console", "items"]

    def test_invalid_scope_names_skipped(self):
        """测试非法名称不会成为参数"""
        sandbox = CodeSandbox()
        _, params, _ = sandbox.prepare("return 1", {"my-var": 1, "class": 2, "__x": 3, "ok": 4})
        assert params == ["console", "ok"]

    def test_checker_reports_line(self):
        """测试违规行号"""
        import ast

        violations = SecurityChecker().check(ast.parse("x = 1\nimport sys"))
        assert violations[0].line_number == 2


class _PermissiveChecker(SecurityChecker):
    """不做任何检查，用于单独验证子进程环境"""

    def check(self, tree):
        return []


class TestSandboxIsolation:
    """沙箱隔离测试类"""

    LEAK_CODE = (
        "return '{0.log.__func__.__globals__[os].environ[SECRETS_MASTER_KEY]}'"
        ".format(console)"
    )

    @pytest.mark.parametrize("code", [
        "return '{0.log}'.format(console)",
        "return str.format('{0.log}', console)",
        "return '{c.log}'.format_map({'c': console})",
    ])
    def test_format_field_traversal_rejected(self, code):
        """测试格式化字段中的属性路径被拒绝"""
        _, _, violations = CodeSandbox().prepare(code, {})
        assert "no_format" in {v.rule for v in violations}

    @pytest.mark.asyncio
    async def test_format_leak_blocked_by_guard(self, sandbox, monkeypatch):
        """测试无法通过格式化读取主密钥"""
        monkeypatch.setenv("SECRETS_MASTER_KEY", "a" * 64)
        executor = CodeExecutor(sandbox)

        with pytest.raises(ExecutionFailedError, match="format") as exc_info:
            await executor({"code": self.LEAK_CODE}, {}, {})

        assert "a" * 64 not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_child_process_has_empty_environment(self, monkeypatch):
        """测试子进程中读取不到父进程的环境变量"""
        monkeypatch.setenv("SECRETS_MASTER_KEY", "a" * 64)
        sandbox = CodeSandbox(SandboxConfig(timeout_seconds=10))
        sandbox._checker = _PermissiveChecker()

        result = await sandbox.run(self.LEAK_CODE, {})

        assert result.success is False
        assert result.output is None
        assert result.error_type == "KeyError"
        assert all("a" * 64 not in line for line in result.logs)

    def test_f_strings_still_allowed(self):
        """测试 f-string 仍可使用"""
        _, _, violations = CodeSandbox().prepare("return f'{a + 1}'", {"a": 1})
        assert violations == []


class TestCodeExecutorScope:
    """作用域构建测试类"""

    @pytest.mark.asyncio
    async def test_non_string_context_keys_are_skipped(self, sandbox):
        """测试上下文中的非字符串键不会导致执行失败"""
        executor = CodeExecutor(sandbox)

        result = await executor({"code": "return a"}, {}, {"a": 1, 2: "two"})

        assert result == {"output": 1, "logs": []}
