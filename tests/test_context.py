"""
执行上下文与分支运行测试
"""
import pytest

from node_runtime.core import ExecutionContext, NodeResponse, StepSpec, WorkflowRun, select_variables


class TestExecutionContext:
    """执行上下文测试类"""

    def test_view_returns_copy_of_allowed(self):
        """测试白名单视图"""
        context = ExecutionContext(variables={"a": 1, "b": 2})

        view = context.view(["a", "missing"])
        view["a"] = 100

        assert view == {"a": 100}
        assert context.get_variable("a") == 1

    def test_select_variables_without_allow_list(self):
        """测试空白名单"""
        assert select_variables({"a": 1}, None) == {}
        assert select_variables({"a": 1}, []) == {}

    def test_variables_accessors(self):
        """测试变量读写"""
        context = ExecutionContext(workflow_id="wf-1")
        context.set_variable("x", [1, 2])

        assert context.has_variable("x")
        assert context.get_variable("y", "default") == "default"
        assert context.execution_id

    def test_results_only_when_declared(self):
        """测试 results 只在声明时可读，同名变量优先"""
        context = ExecutionContext(variables={"a": 1})
        context.record_step("fetch", NodeResponse(node_name="http-request", status="success", output={"ok": True}))

        assert context.view(["a"]) == {"a": 1}
        assert context.view(["results"]) == {"results": {"fetch": {"ok": True}}}

        context.set_variable("results", "mine")
        assert context.view(["results"]) == {"results": "mine"}


class TestWorkflowRun:
    """分支运行测试类"""

    @pytest.mark.asyncio
    async def test_results_flow_into_context(self, dispatcher):
        """测试结果并入上下文供下游读取"""
        run = WorkflowRun(dispatcher, context=ExecutionContext(variables={"a": 2}))
        run.context.set_variable("b", 3)

        responses = await run.run_branch([
            StepSpec("sum", {"inputVariables": ["a", "b"]}, output_variable="first"),
            StepSpec("greeting", {"name": "Ada"}, output_variable="greeting"),
        ])

        assert all(r.is_success for r in responses)
        assert run.context.get_variable("first") == {"total": 5}
        assert run.context.get_variable("greeting") == {"message": "Hello, Ada"}
        assert run.context.get_step_output("first") == {"total": 5}

    @pytest.mark.asyncio
    async def test_branch_halts_on_first_failure(self, dispatcher, greeting_node):
        """测试第一个失败终止分支"""
        run = WorkflowRun(dispatcher)

        responses = await run.run_branch([
            StepSpec("greeting", {"name": "Ada"}, step_id="one"),
            StepSpec("crashing", {"name": "x"}, output_variable="never"),
            StepSpec("greeting", {"name": "Grace"}, step_id="three"),
        ])

        assert [r.status for r in responses] == ["success", "error"]
        assert responses[-1].error.code == "execution_failed"
        assert not run.context.has_variable("never")
        assert len(greeting_node.calls) == 1
        assert set(run.context.step_results) == {"one", "never"}

    @pytest.mark.asyncio
    async def test_secrets_passed_through(self, dispatcher, test_registry):
        """测试运行器使用同一个解析器"""
        run = WorkflowRun(dispatcher, secret_resolver=lambda node, slot: f"{node}-{slot}")

        response = await run.run_step(StepSpec("alpha", {"name": "x"}))

        assert response.is_success
        assert test_registry.require("alpha").execute.calls[0]["secrets"] == {"apiKey": "alpha-apiKey"}
