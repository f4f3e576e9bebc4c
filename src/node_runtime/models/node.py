"""
节点定义相关的数据模型
"""
from typing import Dict, Any, Optional, List, Callable, Awaitable
from dataclasses import dataclass, field
from types import MappingProxyType

from .schema import BaseField, ObjectField


# 执行函数签名: async execute(properties, secrets, context=None) -> result
ExecuteFunction = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class IconDefinition:
    """图标定义"""
    library: str  # lucide | simple-icons
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {"library": self.library, "name": self.name}


def lucide_icon(name: str) -> IconDefinition:
    return IconDefinition(library="lucide", name=name)


def simple_icon(name: str) -> IconDefinition:
    return IconDefinition(library="simple-icons", name=name)


def control_output(output_id: str, label: str) -> Dict[str, str]:
    """结构节点的控制流出口"""
    return {"id": output_id, "label": label, "type": "control"}


@dataclass(frozen=True)
class SecretDescriptor:
    """
    密钥描述符

    每个集成只定义一次，由需要它的节点按名称引用。
    """
    name: str
    title: str
    description: str
    schema: BaseField

    def to_dict(self) -> Dict[str, Any]:
        """导出形态: {name, title, description, schema}"""
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "schema": self.schema.to_json_schema()
        }


@dataclass(frozen=True)
class NodeDefinition:
    """节点定义"""
    name: str
    title: str
    description: str
    icon: IconDefinition
    properties: ObjectField
    result: BaseField
    execute: ExecuteFunction = field(compare=False, repr=False)
    node_type: str = "action"  # action | trigger | condition
    category: str = "default-lib"  # core | default-lib | external-lib
    secrets: Dict[str, SecretDescriptor] = field(default_factory=dict)
    # 列出该节点可读取的上下文变量名的属性；None 表示节点不读取上下文
    input_variables_field: Optional[str] = None
    # 结构节点（条件、分支、循环、汇合）只决定控制流走向，由外层编排器解释
    structural: bool = False
    custom_outputs: List[Dict[str, str]] = field(default_factory=list)

    def __post_init__(self):
        # 定义在模块加载时创建，之后不可变
        object.__setattr__(self, "secrets", MappingProxyType(dict(self.secrets)))
        object.__setattr__(self, "custom_outputs", tuple(dict(o) for o in self.custom_outputs))

    def to_dict(self) -> Dict[str, Any]:
        """导出为表单渲染层使用的结构"""
        data = {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "icon": self.icon.to_dict(),
            "nodeType": self.node_type,
            "category": self.category,
            "properties": self.properties.to_json_schema(),
            "result": self.result.to_json_schema()
        }
        if self.secrets:
            data["secrets"] = {slot: secret.to_dict() for slot, secret in self.secrets.items()}
        if self.structural:
            data["isStructural"] = True
        if self.custom_outputs:
            data["customOutputs"] = [dict(o) for o in self.custom_outputs]
        return data


@dataclass(frozen=True)
class NodePackage:
    """一个集成导出的节点与密钥集合"""
    name: str
    nodes: List[NodeDefinition] = field(default_factory=list)
    secrets: List[SecretDescriptor] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "secrets": [secret.to_dict() for secret in self.secrets],
            "nodes": [node.to_dict() for node in self.nodes]
        }
