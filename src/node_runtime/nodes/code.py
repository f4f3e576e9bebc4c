"""
代码节点

把用户编写的代码作为异步函数体，在沙箱子进程中执行。
"""
from typing import Dict, Any, Optional
import logging

from ..models import (
    NodeDefinition, ObjectField, StringField, ArrayField, AnyField, lucide_icon
)
from ..integrations.sandbox import CodeSandbox
from ..exceptions import ExecutionFailedError, NodeTimeoutError


logger = logging.getLogger(__name__)


CODE_PROPERTIES = ObjectField(fields={
    "code": StringField(
        title="Code",
        description="Body of an async function; use `return` to produce the output",
        widget="textarea"
    ),
    "inputVariables": ArrayField(
        title="Input variables",
        description="Context variables made available to the code",
        items=StringField(),
        default=[]
    )
})

CODE_RESULT = ObjectField(fields={
    "output": AnyField(title="Return value of the code"),
    "logs": ArrayField(title="Captured console output", items=StringField())
})


class CodeExecutor:
    """代码节点执行函数"""

    def __init__(self, sandbox: Optional[CodeSandbox] = None):
        self.sandbox = sandbox or CodeSandbox()

    @staticmethod
    def build_scope(properties: Dict[str, Any], context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        构建代码作用域

        先放入收到的全部上下文条目，再放入上下文中存在的已声明输入变量；
        上下文中不存在的变量不会出现在作用域里。
        """
        context = context or {}
        scope = dict(context)
        for name in properties.get("inputVariables") or []:
            if name in context:
                scope[name] = context[name]
        return scope

    async def __call__(
        self,
        properties: Dict[str, Any],
        secrets: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        scope = self.build_scope(properties, context)
        logger.debug(f"Running code with scope: {list(scope)}")
        result = await self.sandbox.run(properties.get("code", ""), scope)

        if result.timed_out:
            raise NodeTimeoutError(
                self.sandbox.config.timeout_seconds * 1000,
                logs=result.logs,
                operation="Code execution"
            )
        if not result.success:
            raise ExecutionFailedError(
                f"Code execution failed: {result.error}",
                logs=result.logs
            )

        return {"output": result.output, "logs": result.logs}


def create_code_node(sandbox: Optional[CodeSandbox] = None) -> NodeDefinition:
    """创建代码节点定义"""
    return NodeDefinition(
        name="code",
        title="Code",
        description="Run custom code with access to workflow variables",
        icon=lucide_icon("Code"),
        node_type="action",
        category="core",
        properties=CODE_PROPERTIES,
        result=CODE_RESULT,
        execute=CodeExecutor(sandbox),
        input_variables_field="inputVariables"
    )
