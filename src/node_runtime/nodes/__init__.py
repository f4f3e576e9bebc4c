"""
内置节点包
"""
from typing import List, Optional

import httpx

from ..config import Settings
from ..models import NodePackage
from ..core.registry import NodeRegistry, build_registry
from ..integrations.sandbox import CodeSandbox, SandboxConfig
from ..integrations.email import EmailSender, ResendEmailSender
from .code import create_code_node, CodeExecutor
from .http_request import create_http_request_node, HttpRequestExecutor
from .control import create_control_nodes, ExpressionEvaluator
from .resend import create_resend_package, SendEmailExecutor, RESEND_API_KEY_SECRET


def create_core_packages(
    settings: Optional[Settings] = None,
    email_sender: Optional[EmailSender] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None
) -> List[NodePackage]:
    """按配置创建全部内置节点包"""
    settings = settings or Settings()

    sandbox = CodeSandbox(SandboxConfig(
        timeout_seconds=settings.sandbox_timeout,
        max_log_lines=settings.sandbox_max_log_lines
    ))
    core = NodePackage(
        name="core",
        nodes=[
            create_http_request_node(http_transport, settings.http_timeout_ms),
            create_code_node(sandbox),
            *create_control_nodes(sandbox)
        ]
    )
    resend = create_resend_package(
        email_sender or ResendEmailSender(api_url=settings.resend_api_url, transport=http_transport)
    )
    return [core, resend]


def create_registry(
    settings: Optional[Settings] = None,
    email_sender: Optional[EmailSender] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None
) -> NodeRegistry:
    """组装内置节点注册表"""
    return build_registry(create_core_packages(settings, email_sender, http_transport))


__all__ = [
    "create_core_packages",
    "create_registry",
    "create_code_node",
    "create_http_request_node",
    "create_resend_package",
    "create_control_nodes",
    "ExpressionEvaluator",
    "CodeExecutor",
    "HttpRequestExecutor",
    "SendEmailExecutor",
    "RESEND_API_KEY_SECRET"
]
