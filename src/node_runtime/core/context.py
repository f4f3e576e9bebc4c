"""
执行上下文与上下文传播

同一次工作流运行中的所有节点按引用共享一个上下文；节点只能读取自己
显式声明的输入变量，上下文只在两次节点调用之间由运行器写入。
"""
from typing import Dict, Any, Optional, List, Iterable, TYPE_CHECKING
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4
import logging

if TYPE_CHECKING:
    from .dispatcher import NodeDispatcher, NodeResponse, SecretResolver


logger = logging.getLogger(__name__)

# 声明该名称的节点可以读取已运行步骤的输出
RESULTS_VARIABLE = "results"


@dataclass
class ExecutionContext:
    """执行上下文"""
    workflow_id: str = ""
    execution_id: str = field(default_factory=lambda: str(uuid4()))
    variables: Dict[str, Any] = field(default_factory=dict)
    step_results: Dict[str, "NodeResponse"] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_variable(self, key: str, default: Any = None) -> Any:
        """获取变量值"""
        return self.variables.get(key, default)

    def set_variable(self, key: str, value: Any):
        """设置变量值"""
        self.variables[key] = value

    def has_variable(self, key: str) -> bool:
        return key in self.variables

    def view(self, allowed: Optional[Iterable[str]]) -> Dict[str, Any]:
        """
        按白名单取出变量

        只包含白名单中且上下文里确实存在的变量；返回副本，节点无法借此修改上下文。
        """
        return select_variables(self.readable_variables(), allowed)

    def readable_variables(self) -> Dict[str, Any]:
        """变量表加上 results（步骤 ID -> 输出）；同名变量优先"""
        return {RESULTS_VARIABLE: self.step_outputs(), **self.variables}

    def record_step(self, step_id: str, response: "NodeResponse"):
        """记录步骤结果"""
        self.step_results[step_id] = response

    def get_step_output(self, step_id: str) -> Optional[Any]:
        """获取步骤输出"""
        response = self.step_results.get(step_id)
        return response.output if response is not None else None

    def step_outputs(self) -> Dict[str, Any]:
        """全部步骤的输出，失败步骤为 None"""
        return {step_id: response.output for step_id, response in self.step_results.items()}


def select_variables(variables: Dict[str, Any], allowed: Optional[Iterable[str]]) -> Dict[str, Any]:
    """从变量表中按白名单挑选存在的变量"""
    if not allowed:
        return {}
    return {name: variables[name] for name in allowed if name in variables}


@dataclass
class StepSpec:
    """分支中的一个步骤"""
    node_name: str
    properties: Dict[str, Any] = field(default_factory=dict)
    # 成功结果写回上下文时使用的变量名
    output_variable: Optional[str] = None
    step_id: Optional[str] = None

    @property
    def key(self) -> str:
        return self.step_id or self.output_variable or self.node_name


class WorkflowRun:
    """
    单条依赖链的顺序运行器

    逐个分发步骤，把成功结果按调用方指定的变量名并入上下文；
    第一个失败会终止该分支。
    """

    def __init__(
        self,
        dispatcher: "NodeDispatcher",
        secret_resolver: Optional["SecretResolver"] = None,
        context: Optional[ExecutionContext] = None
    ):
        self.dispatcher = dispatcher
        self.secret_resolver = secret_resolver
        self.context = context or ExecutionContext()

    async def run_step(self, step: StepSpec) -> "NodeResponse":
        """运行单个步骤并传播结果"""
        response = await self.dispatcher.execute(
            step.node_name,
            step.properties,
            self.secret_resolver,
            self.context
        )
        self.context.record_step(step.key, response)

        if response.is_success and step.output_variable:
            self.context.set_variable(step.output_variable, response.output)

        return response

    async def run_branch(self, steps: List[StepSpec]) -> List["NodeResponse"]:
        """
        顺序运行一条分支

        Returns:
            已运行步骤的响应列表；若中途失败，最后一个即失败响应
        """
        responses = []
        for step in steps:
            response = await self.run_step(step)
            responses.append(response)
            if response.is_error:
                logger.warning(
                    f"Branch halted at step '{step.key}' "
                    f"(execution {self.context.execution_id}): {response.error}"
                )
                break
        return responses
