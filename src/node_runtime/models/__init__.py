"""Schema descriptor and node definition models"""

from .schema import (
    BaseField, StringField, NumberField, BooleanField, EnumField,
    AnyField, ArrayField, ObjectField, SchemaField
)
from .node import (
    NodeDefinition, NodePackage, SecretDescriptor, IconDefinition,
    ExecuteFunction, lucide_icon, simple_icon, control_output
)

__all__ = [
    "BaseField",
    "StringField",
    "NumberField",
    "BooleanField",
    "EnumField",
    "AnyField",
    "ArrayField",
    "ObjectField",
    "SchemaField",
    "NodeDefinition",
    "NodePackage",
    "SecretDescriptor",
    "IconDefinition",
    "ExecuteFunction",
    "lucide_icon",
    "simple_icon",
    "control_output"
]
