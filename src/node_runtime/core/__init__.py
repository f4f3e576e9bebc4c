"""Core runtime: validation, registry, dispatch and context propagation"""

from .validator import SchemaValidator, apply_defaults
from .registry import NodeRegistry, build_registry
from .dispatcher import NodeDispatcher, NodeResponse, SecretResolver
from .context import ExecutionContext, StepSpec, WorkflowRun, select_variables, RESULTS_VARIABLE

__all__ = [
    "SchemaValidator",
    "apply_defaults",
    "NodeRegistry",
    "build_registry",
    "NodeDispatcher",
    "NodeResponse",
    "SecretResolver",
    "ExecutionContext",
    "StepSpec",
    "WorkflowRun",
    "select_variables",
    "RESULTS_VARIABLE"
]
