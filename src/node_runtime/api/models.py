"""
API 请求和响应模型
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class ExecuteNodeRequest(BaseModel):
    """执行节点请求"""
    properties: Dict[str, Any] = Field(default_factory=dict, description="节点属性")
    secrets: Dict[str, str] = Field(
        default_factory=dict,
        description="本次调用使用的密钥（槽位 -> 值），缺省时从密钥存储解析"
    )
    context: Dict[str, Any] = Field(default_factory=dict, description="执行上下文变量")


class ValidatePropertiesRequest(BaseModel):
    """校验属性请求"""
    properties: Dict[str, Any] = Field(default_factory=dict, description="节点属性")


class ExecuteNodeResponse(BaseModel):
    """执行节点响应"""
    node_name: str = Field(..., description="节点名称")
    status: str = Field(..., description="执行状态", examples=["success"])
    output: Any = Field(None, description="节点结果")
    duration_ms: float = Field(..., description="执行时长（毫秒）")
    trace_id: str = Field(..., description="追踪ID")
    timestamp: datetime = Field(..., description="时间戳")


class ValidatePropertiesResponse(BaseModel):
    """校验属性响应"""
    valid: bool = Field(..., description="是否有效")
    properties: Optional[Dict[str, Any]] = Field(None, description="应用默认值后的属性")
    errors: List[Dict[str, Any]] = Field(default_factory=list, description="字段级错误")


class NodeCatalogResponse(BaseModel):
    """节点目录响应"""
    total: int = Field(..., description="节点数量")
    nodes: List[Dict[str, Any]] = Field(..., description="节点定义（导出形态）")


class SecretCatalogResponse(BaseModel):
    """密钥目录响应"""
    total: int = Field(..., description="密钥数量")
    secrets: List[Dict[str, Any]] = Field(..., description="密钥描述符（导出形态）")


class ErrorResponse(BaseModel):
    """错误响应"""
    error: str = Field(..., description="错误类型")
    message: str = Field(..., description="错误信息")
    details: Optional[Dict[str, Any]] = Field(None, description="错误详情")
    request_id: Optional[str] = Field(None, description="请求ID")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="时间戳")


class HealthCheckResponse(BaseModel):
    """健康检查响应"""
    status: str = Field(..., description="健康状态", examples=["healthy", "unhealthy"])
    version: str = Field(..., description="版本号")
    timestamp: datetime = Field(..., description="检查时间")
    checks: Dict[str, Any] = Field(default_factory=dict, description="各组件检查结果")
