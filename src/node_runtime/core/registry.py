"""
节点注册表

由各集成导出的节点包一次性组装成不可变目录，
在进程启动时构建并按引用传给分发器。
"""
from typing import Dict, Iterable, Iterator, List, Optional
from types import MappingProxyType
import logging

from ..models.node import NodeDefinition, NodePackage, SecretDescriptor
from ..models.schema import ObjectField
from ..exceptions import RegistryConfigError, NodeNotFoundError


logger = logging.getLogger(__name__)


class NodeRegistry:
    """不可变的节点目录"""

    def __init__(
        self,
        nodes: Dict[str, NodeDefinition],
        secrets: Dict[str, SecretDescriptor]
    ):
        self._nodes = MappingProxyType(dict(nodes))
        self._secrets = MappingProxyType(dict(secrets))

    @property
    def nodes(self) -> "MappingProxyType[str, NodeDefinition]":
        return self._nodes

    @property
    def secrets(self) -> "MappingProxyType[str, SecretDescriptor]":
        return self._secrets

    def get(self, name: str) -> Optional[NodeDefinition]:
        """获取节点定义"""
        return self._nodes.get(name)

    def require(self, name: str) -> NodeDefinition:
        """获取节点定义，不存在时抛出 NodeNotFoundError"""
        node = self._nodes.get(name)
        if node is None:
            raise NodeNotFoundError(name)
        return node

    def list_nodes(self) -> List[NodeDefinition]:
        """按注册顺序列出所有节点"""
        return list(self._nodes.values())

    def list_secrets(self) -> List[SecretDescriptor]:
        """列出所有密钥描述符"""
        return list(self._secrets.values())

    def to_dict(self) -> Dict[str, list]:
        """导出为包形态 {secrets, nodes}"""
        return {
            "secrets": [secret.to_dict() for secret in self._secrets.values()],
            "nodes": [node.to_dict() for node in self._nodes.values()]
        }

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[NodeDefinition]:
        return iter(self._nodes.values())

    def __contains__(self, name: object) -> bool:
        return name in self._nodes


def _register_secret(secrets: Dict[str, SecretDescriptor], secret: SecretDescriptor, source: str):
    existing = secrets.get(secret.name)
    if existing is None:
        secrets[secret.name] = secret
    elif existing != secret:
        raise RegistryConfigError(
            f"Conflicting secret descriptor '{secret.name}' declared by {source}",
            {"secret": secret.name, "package": source}
        )


def build_registry(packages: Iterable[NodePackage]) -> NodeRegistry:
    """
    组装节点注册表

    组装顺序只影响列表顺序，不影响目录内容；两个包声明同名节点属于
    启动期配置错误，不按优先级覆盖。

    Args:
        packages: 各集成导出的节点包

    Returns:
        不可变的 NodeRegistry

    Raises:
        RegistryConfigError: 节点重名、密钥描述符冲突或定义不合法
    """
    nodes: Dict[str, NodeDefinition] = {}
    owners: Dict[str, str] = {}
    secrets: Dict[str, SecretDescriptor] = {}

    for package in packages:
        for secret in package.secrets:
            _register_secret(secrets, secret, package.name)

        for node in package.nodes:
            if node.name in nodes:
                raise RegistryConfigError(
                    f"Duplicate node name '{node.name}' in packages "
                    f"'{owners[node.name]}' and '{package.name}'",
                    {"node_name": node.name, "packages": [owners[node.name], package.name]}
                )
            if not isinstance(node.properties, ObjectField):
                raise RegistryConfigError(
                    f"Node '{node.name}' properties must be an object descriptor",
                    {"node_name": node.name}
                )
            if not callable(node.execute):
                raise RegistryConfigError(
                    f"Node '{node.name}' has no callable execute function",
                    {"node_name": node.name}
                )
            field = node.input_variables_field
            if field is not None and field not in node.properties.fields:
                raise RegistryConfigError(
                    f"Node '{node.name}' declares unknown input variables field '{field}'",
                    {"node_name": node.name, "field": field}
                )

            # 节点引用的密钥也进入目录，保证描述符只有一份
            for secret in node.secrets.values():
                _register_secret(secrets, secret, package.name)

            nodes[node.name] = node
            owners[node.name] = package.name

        logger.info(f"Registered package '{package.name}' with {len(package.nodes)} nodes")

    return NodeRegistry(nodes, secrets)
