"""
Schema验证器实现
"""
from typing import Dict, Any, List, Optional, Tuple
from urllib.parse import urlparse
import copy
import json
import logging
import re

from jsonschema import Draft7Validator, FormatChecker

from ..models.schema import BaseField, ObjectField, ArrayField
from ..exceptions import SchemaValidationError


logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# 只注册本项目使用的格式，避免依赖可选的第三方格式校验包
format_checker = FormatChecker(formats=())


@format_checker.checks("uri")
def _is_url(value: Any) -> bool:
    if not isinstance(value, str):
        return True
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)


@format_checker.checks("email")
def _is_email(value: Any) -> bool:
    if not isinstance(value, str):
        return True
    return bool(_EMAIL_RE.match(value))


# jsonschema 关键字到约束名称的映射
_CONSTRAINTS = {
    "required": "required",
    "type": "type",
    "format": "format",
    "enum": "enum",
    "minLength": "min_length",
}

_FORMAT_NAMES = {"uri": "URL", "email": "email"}


def apply_defaults(field: BaseField, value: Any) -> Any:
    """
    按描述符填充默认值并清理未声明的键

    在校验之前执行，因此带默认值的缺失字段不会被报告为缺失。
    返回新的值，不修改入参。
    """
    if isinstance(field, ObjectField) and isinstance(value, dict):
        cleaned: Dict[str, Any] = {}
        for name, child in field.fields.items():
            child_value = value.get(name)
            if child_value is None:
                if child.has_default:
                    cleaned[name] = copy.deepcopy(child.default)
                elif name in value and not child.is_optional:
                    # 保留显式的 None，让类型检查报告它
                    cleaned[name] = None
                continue
            cleaned[name] = apply_defaults(child, child_value)

        if field.values is not None:
            for name, extra in value.items():
                if name not in field.fields:
                    cleaned[name] = apply_defaults(field.values, extra)
        elif not field.fields:
            # 未声明结构的对象原样透传
            cleaned.update(value)
        return cleaned

    if isinstance(field, ArrayField) and isinstance(value, list):
        return [apply_defaults(field.items, item) for item in value]

    return value


class SchemaValidator:
    """Schema验证器"""

    def __init__(self):
        self.validators_cache: Dict[str, Draft7Validator] = {}

    def _get_validator(self, field: BaseField) -> Draft7Validator:
        schema = field.to_json_schema()
        schema_str = json.dumps(schema, sort_keys=True, default=str)
        if schema_str not in self.validators_cache:
            self.validators_cache[schema_str] = Draft7Validator(schema, format_checker=format_checker)
        return self.validators_cache[schema_str]

    def collect_errors(self, field: BaseField, data: Any) -> Tuple[Any, List[Dict[str, Any]]]:
        """
        校验数据并收集所有字段级错误

        Args:
            field: Schema描述符
            data: 待验证的原始数据

        Returns:
            (填充默认值后的数据, 错误列表)；每个错误包含 path、constraint、message
        """
        prepared = apply_defaults(field, data)
        validator = self._get_validator(field)

        errors: List[Dict[str, Any]] = []
        seen = set()
        for error in sorted(validator.iter_errors(prepared), key=lambda e: [str(p) for p in e.absolute_path]):
            for item in self._describe(error):
                key = (item["path"], item["constraint"])
                if key not in seen:
                    seen.add(key)
                    errors.append(item)

        return prepared, errors

    def validate(self, field: BaseField, data: Any) -> Any:
        """
        验证数据是否符合描述符

        Returns:
            填充默认值后的数据

        Raises:
            SchemaValidationError: 数据不合法
        """
        prepared, errors = self.collect_errors(field, data)
        if errors:
            raise SchemaValidationError(self.format_validation_errors(errors), errors)
        return prepared

    def is_valid(self, field: BaseField, data: Any) -> bool:
        """数据是否合法"""
        return not self.collect_errors(field, data)[1]

    def _describe(self, error) -> List[Dict[str, Any]]:
        """将 jsonschema 错误转换为字段级错误"""
        base_path = [str(p) for p in error.absolute_path]
        constraint = _CONSTRAINTS.get(error.validator, str(error.validator))

        if error.validator == "required":
            instance = error.instance if isinstance(error.instance, dict) else {}
            return [
                {
                    "path": _join(base_path + [name]),
                    "constraint": "required",
                    "message": "Required field is missing"
                }
                for name in error.validator_value
                if name not in instance
            ]

        if error.validator == "type":
            message = f"Expected {error.validator_value}, got {_kind_of(error.instance)}"
        elif error.validator == "format":
            label = _FORMAT_NAMES.get(error.validator_value, error.validator_value)
            message = f"Not a valid {label}"
        elif error.validator == "enum":
            message = f"Value {error.instance!r} is not one of {error.validator_value}"
        else:
            message = error.message

        return [{"path": _join(base_path), "constraint": constraint, "message": message}]

    def format_validation_errors(
        self,
        errors: List[Dict[str, Any]],
        max_errors: Optional[int] = None
    ) -> str:
        """
        格式化验证错误为可读字符串

        Args:
            errors: 错误列表
            max_errors: 最多显示的错误数量
        """
        if not errors:
            return "No validation errors"

        displayed = errors[:max_errors] if max_errors else errors
        formatted = "\n".join(f"  - {e['path']}: {e['message']}" for e in displayed)
        remaining = len(errors) - len(displayed)
        if remaining > 0:
            return f"Validation errors:\n{formatted}\n  ... and {remaining} more errors"
        return f"Validation errors:\n{formatted}"


def _join(path: List[str]) -> str:
    return ".".join(path) if path else "root"


def _kind_of(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__
