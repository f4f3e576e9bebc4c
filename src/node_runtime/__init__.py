"""
Workflow Node Runtime - 工作流节点运行时
"""

__version__ = "0.1.0"

from .core import (
    NodeRegistry, build_registry, NodeDispatcher, NodeResponse,
    ExecutionContext, StepSpec, WorkflowRun, SchemaValidator
)
from .models import NodeDefinition, NodePackage, SecretDescriptor
from .nodes import create_core_packages, create_registry
from .config import Settings

__all__ = [
    "NodeRegistry",
    "build_registry",
    "NodeDispatcher",
    "NodeResponse",
    "ExecutionContext",
    "StepSpec",
    "WorkflowRun",
    "SchemaValidator",
    "NodeDefinition",
    "NodePackage",
    "SecretDescriptor",
    "create_core_packages",
    "create_registry",
    "Settings"
]
