"""
Schema描述符模型

节点的输入、输出以及密钥值都用一棵带类型标签的字段树描述，
可以导出为 JSON Schema 供表单渲染层和校验器使用。
"""
from typing import Dict, Any, Optional, List, Union, Literal, Annotated
from pydantic import BaseModel, ConfigDict, Field, field_validator


class BaseField(BaseModel):
    """字段描述符基类"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    title: Optional[str] = Field(None, description="展示标题")
    description: Optional[str] = Field(None, description="帮助说明")
    widget: Optional[str] = Field(None, description="首选表单控件，如 textarea、select")
    default: Any = Field(None, description="默认值")
    required: bool = Field(True, description="是否必填")

    @property
    def has_default(self) -> bool:
        """是否显式声明了默认值（包括 None 以外的任何值）"""
        return "default" in self.model_fields_set

    @property
    def is_optional(self) -> bool:
        """缺失时不报错：非必填或带默认值"""
        return not self.required or self.has_default

    def _presentation(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {}
        if self.title:
            schema["title"] = self.title
        if self.description:
            schema["description"] = self.description
        if self.widget:
            schema["x-widget"] = self.widget
        if self.has_default:
            schema["default"] = self.default
        return schema

    def to_json_schema(self) -> Dict[str, Any]:
        """导出为 JSON Schema (Draft 7)"""
        raise NotImplementedError


class StringField(BaseField):
    """字符串字段"""
    kind: Literal["string"] = "string"
    format: Optional[Literal["url", "email"]] = None
    min_length: Optional[int] = Field(None, ge=0)

    def to_json_schema(self) -> Dict[str, Any]:
        schema = {"type": "string", **self._presentation()}
        if self.format == "url":
            schema["format"] = "uri"
        elif self.format == "email":
            schema["format"] = "email"
        if self.min_length is not None:
            schema["minLength"] = self.min_length
        return schema


class NumberField(BaseField):
    """数值字段（整数或浮点数，不接受布尔值）"""
    kind: Literal["number"] = "number"

    def to_json_schema(self) -> Dict[str, Any]:
        return {"type": "number", **self._presentation()}


class BooleanField(BaseField):
    """布尔字段"""
    kind: Literal["boolean"] = "boolean"

    def to_json_schema(self) -> Dict[str, Any]:
        return {"type": "boolean", **self._presentation()}


class EnumField(BaseField):
    """字符串枚举字段"""
    kind: Literal["enum"] = "enum"
    values: List[str]

    @field_validator("values")
    @classmethod
    def _check_values(cls, values: List[str]) -> List[str]:
        if not values:
            raise ValueError("enum field needs at least one value")
        if len(set(values)) != len(values):
            raise ValueError("enum values must be unique")
        return values

    def to_json_schema(self) -> Dict[str, Any]:
        schema = {"type": "string", "enum": list(self.values), **self._presentation()}
        schema.setdefault("x-widget", "select")
        return schema


class AnyField(BaseField):
    """任意 JSON 值"""
    kind: Literal["any"] = "any"

    def to_json_schema(self) -> Dict[str, Any]:
        return self._presentation()


class ArrayField(BaseField):
    """数组字段"""
    kind: Literal["array"] = "array"
    items: "SchemaField"

    def to_json_schema(self) -> Dict[str, Any]:
        return {
            "type": "array",
            "items": self.items.to_json_schema(),
            **self._presentation()
        }


class ObjectField(BaseField):
    """
    对象字段

    fields 声明具名子字段；values 声明自由键的值类型（即字符串映射），
    两者可以同时存在。
    """
    kind: Literal["object"] = "object"
    fields: Dict[str, "SchemaField"] = Field(default_factory=dict)
    values: Optional["SchemaField"] = None

    @field_validator("fields", mode="before")
    @classmethod
    def _unique_names(cls, fields: Any) -> Any:
        # 允许以 [(name, field), ...] 形式声明，便于发现重名
        if isinstance(fields, (list, tuple)):
            seen: Dict[str, Any] = {}
            for name, field in fields:
                if name in seen:
                    raise ValueError(f"duplicate field name: {name}")
                seen[name] = field
            fields = seen
        if isinstance(fields, dict):
            for name in fields:
                if not isinstance(name, str) or not name:
                    raise ValueError(f"invalid field name: {name!r}")
        return fields

    def to_json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {
                name: field.to_json_schema() for name, field in self.fields.items()
            },
            **self._presentation()
        }
        required = [name for name, field in self.fields.items() if not field.is_optional]
        if required:
            schema["required"] = required
        if self.values is not None:
            schema["additionalProperties"] = self.values.to_json_schema()
        return schema


SchemaField = Annotated[
    Union[StringField, NumberField, BooleanField, EnumField, AnyField, ArrayField, ObjectField],
    Field(discriminator="kind")
]

ArrayField.model_rebuild()
ObjectField.model_rebuild()
