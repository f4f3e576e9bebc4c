"""
结构节点：条件、分支、循环、汇合与手动触发

结构节点不产生副作用，只把表达式求值结果交给外层编排器决定走哪个出口。
表达式在代码沙箱中求值，作用域是节点声明的输入变量，声明 results 时
还可以读取已运行步骤的输出。
"""
from typing import Dict, Any, Optional, List
from datetime import datetime
import logging

from ..models import (
    NodeDefinition, ObjectField, StringField, NumberField, EnumField, AnyField,
    ArrayField, lucide_icon, control_output
)
from ..integrations.sandbox import CodeSandbox, stringify
from ..exceptions import ExecutionFailedError, NodeTimeoutError


logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "default"


def input_variables_property() -> ArrayField:
    return ArrayField(
        title="Input variables",
        description="Context variables available to the expression",
        items=StringField(),
        default=[]
    )


class ExpressionEvaluator:
    """在沙箱中对表达式求值，失败映射为分类错误"""

    def __init__(self, sandbox: Optional[CodeSandbox] = None):
        self.sandbox = sandbox or CodeSandbox()

    async def evaluate(self, expression: str, scope: Optional[Dict[str, Any]] = None) -> Any:
        result = await self.sandbox.evaluate(expression, scope or {})

        if result.timed_out:
            raise NodeTimeoutError(
                self.sandbox.config.timeout_seconds * 1000,
                logs=result.logs,
                operation="Expression evaluation"
            )
        if not result.success:
            raise ExecutionFailedError(
                f"Expression evaluation failed: {result.error}",
                logs=result.logs
            )
        return result.output


class IfExecutor:
    """条件为真走 true 出口，否则走 false 出口"""

    def __init__(self, evaluator: ExpressionEvaluator):
        self.evaluator = evaluator

    async def __call__(
        self,
        properties: Dict[str, Any],
        secrets: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        value = await self.evaluator.evaluate(properties["condition"], context)
        return {"branch": "true" if value else "false"}


class SwitchExecutor:
    """
    按表达式的值匹配分支

    值转为字符串后与各 case 的 value 比较，取第一个相等的；都不相等时走 default。
    """

    def __init__(self, evaluator: ExpressionEvaluator):
        self.evaluator = evaluator

    async def __call__(
        self,
        properties: Dict[str, Any],
        secrets: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        value = await self.evaluator.evaluate(properties["expression"], context)
        key = stringify(value)

        for case in properties.get("cases") or []:
            if case["value"] == key:
                return {"branch": case["value"], "value": value}

        logger.debug(f"No case matched {key!r}, taking the default branch")
        return {"branch": DEFAULT_BRANCH, "value": value}


class ForExecutor:
    """对迭代表达式求值，返回元素列表和按批大小切分的批次"""

    def __init__(self, evaluator: ExpressionEvaluator):
        self.evaluator = evaluator

    async def __call__(
        self,
        properties: Dict[str, Any],
        secrets: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        items = await self.evaluator.evaluate(properties["iterator"], context)
        if not isinstance(items, list):
            raise ExecutionFailedError(
                f"Iterator must evaluate to an array, got {type(items).__name__}"
            )

        batch_size = properties.get("batchSize")
        if batch_size is None:
            batches = [items] if items else []
        else:
            if batch_size < 1 or int(batch_size) != batch_size:
                raise ExecutionFailedError(f"batchSize must be a positive integer, got {batch_size}")
            size = int(batch_size)
            batches = [items[i:i + size] for i in range(0, len(items), size)]

        return {
            "itemVariable": properties["itemVariable"],
            "items": items,
            "batches": batches
        }


async def merge_inputs(
    properties: Dict[str, Any],
    secrets: Dict[str, Any],
    context: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """按声明顺序收集各分支写入上下文的值；first 模式只取第一个"""
    context = context or {}
    inputs = [context[name] for name in properties.get("inputVariables") or [] if name in context]
    if properties.get("mode") == "first":
        inputs = inputs[:1]
    return {"inputs": inputs}


async def manual_trigger(
    properties: Dict[str, Any],
    secrets: Dict[str, Any],
    context: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    result = {
        "input": properties.get("input"),
        "triggeredAt": datetime.utcnow().isoformat()
    }
    if properties.get("triggeredBy"):
        result["triggeredBy"] = properties["triggeredBy"]
    return result


def create_control_nodes(sandbox: Optional[CodeSandbox] = None) -> List[NodeDefinition]:
    """创建全部结构节点与手动触发节点"""
    evaluator = ExpressionEvaluator(sandbox)

    if_node = NodeDefinition(
        name="if",
        title="If",
        description="Conditional branch based on an expression",
        icon=lucide_icon("GitBranch"),
        category="core",
        properties=ObjectField(fields={
            "condition": StringField(
                title="Condition",
                description="Expression that evaluates to true or false",
                widget="textarea"
            ),
            "inputVariables": input_variables_property()
        }),
        result=ObjectField(fields={
            "branch": EnumField(values=["true", "false"], description="Output to follow")
        }),
        execute=IfExecutor(evaluator),
        input_variables_field="inputVariables",
        structural=True,
        custom_outputs=[control_output("true", "True"), control_output("false", "False")]
    )

    switch_node = NodeDefinition(
        name="switch",
        title="Switch",
        description="Multiple branches based on expression value",
        icon=lucide_icon("GitMerge"),
        category="core",
        properties=ObjectField(fields={
            "expression": StringField(
                title="Expression",
                description="Expression to evaluate",
                widget="textarea"
            ),
            "cases": ArrayField(
                title="Cases",
                description="List of cases to match against",
                items=ObjectField(fields={
                    "value": StringField(title="Value"),
                    "label": StringField(title="Label", required=False)
                })
            ),
            "inputVariables": input_variables_property()
        }),
        result=ObjectField(fields={
            "branch": StringField(description="Matched case value, or 'default'"),
            "value": AnyField(description="Value of the expression")
        }),
        execute=SwitchExecutor(evaluator),
        input_variables_field="inputVariables",
        structural=True
    )

    for_node = NodeDefinition(
        name="for",
        title="For Loop",
        description="Iterate over an array",
        icon=lucide_icon("Repeat"),
        category="core",
        properties=ObjectField(fields={
            "iterator": StringField(
                title="Iterator",
                description="Expression that returns an array",
                widget="textarea"
            ),
            "itemVariable": StringField(
                title="Item Variable",
                description="Name of the variable for each item",
                min_length=1
            ),
            "batchSize": NumberField(
                title="Batch Size",
                description="Process items in batches (optional)",
                required=False
            ),
            "inputVariables": input_variables_property()
        }),
        result=ObjectField(fields={
            "itemVariable": StringField(),
            "items": ArrayField(items=AnyField()),
            "batches": ArrayField(items=ArrayField(items=AnyField()))
        }),
        execute=ForExecutor(evaluator),
        input_variables_field="inputVariables",
        structural=True,
        custom_outputs=[control_output("body", "Loop Body"), control_output("done", "Done")]
    )

    merge_node = NodeDefinition(
        name="merge",
        title="Merge",
        description="Synchronize multiple branches",
        icon=lucide_icon("Merge"),
        category="core",
        properties=ObjectField(fields={
            "mode": EnumField(
                title="Mode",
                description="Wait for all branches or just the first to complete",
                values=["wait-all", "first"],
                default="wait-all"
            ),
            "inputVariables": ArrayField(
                title="Inputs",
                description="Context variables written by the incoming branches",
                items=StringField(),
                default=[]
            )
        }),
        result=ObjectField(fields={
            "inputs": ArrayField(title="Inputs from all branches", items=AnyField())
        }),
        execute=merge_inputs,
        input_variables_field="inputVariables",
        structural=True
    )

    trigger_node = NodeDefinition(
        name="trigger-manual",
        title="Manual Trigger",
        description="Trigger workflow manually from dashboard or API",
        icon=lucide_icon("PlayCircle"),
        node_type="trigger",
        category="core",
        properties=ObjectField(fields={
            "input": AnyField(title="Input", description="Input data for the run", required=False),
            "triggeredBy": StringField(title="Triggered by", required=False)
        }),
        result=ObjectField(fields={
            "input": AnyField(description="Input data provided when triggering manually"),
            "triggeredBy": StringField(description="User who triggered the workflow", required=False),
            "triggeredAt": StringField(description="Timestamp when workflow was triggered")
        }),
        execute=manual_trigger,
        custom_outputs=[control_output("output", "On Trigger")]
    )

    return [if_node, switch_node, for_node, merge_node, trigger_node]
