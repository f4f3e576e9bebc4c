"""
邮件发送集成
"""
from typing import Dict, Any, Optional, List
from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging

import httpx

from ..exceptions import TransportError


logger = logging.getLogger(__name__)

DEFAULT_RESEND_API_URL = "https://api.resend.com/emails"


@dataclass
class EmailMessage:
    """待发送的邮件"""
    from_email: str
    to_email: str
    subject: str
    body: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "from": self.from_email,
            "to": [self.to_email],
            "subject": self.subject,
            "text": self.body
        }


@dataclass
class EmailDeliveryResult:
    """投递结果"""
    success: bool
    message: str
    message_id: Optional[str] = None


class EmailSender(ABC):
    """邮件投递协作者接口"""

    @abstractmethod
    async def send(self, message: EmailMessage, api_key: str) -> EmailDeliveryResult:
        """
        发送一封邮件（不重试）

        服务端拒绝以 success=False 的结果返回；网络层失败抛出 TransportError。
        """
        pass


class ResendEmailSender(EmailSender):
    """通过 Resend HTTP API 发送邮件"""

    def __init__(
        self,
        api_url: str = DEFAULT_RESEND_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_url = api_url
        self.timeout = timeout
        self._transport = transport

    async def send(self, message: EmailMessage, api_key: str) -> EmailDeliveryResult:
        headers = {"Authorization": f"Bearer {api_key}"}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.api_url, json=message.to_payload(), headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Resend request failed: {type(e).__name__}: {e}")
            raise TransportError(str(e) or type(e).__name__, cause=e) from e

        if response.is_success:
            message_id = None
            try:
                data = response.json()
            except ValueError:
                data = None
                logger.warning("Resend returned a non-JSON success body")
            if isinstance(data, dict):
                message_id = data.get("id")
            logger.info(f"Email sent to {message.to_email} (id={message_id})")
            return EmailDeliveryResult(
                success=True,
                message=f"Email {message.from_email} sent to {message.to_email}",
                message_id=message_id
            )

        logger.warning(f"Resend rejected email to {message.to_email}: HTTP {response.status_code}")
        return EmailDeliveryResult(
            success=False,
            message=f"Resend rejected the email with status {response.status_code}: {response.text}"
        )


class MockEmailSender(EmailSender):
    """记录邮件而不真正发送，用于测试和本地运行"""

    def __init__(self, success: bool = True):
        self.success = success
        self.sent: List[EmailMessage] = []

    async def send(self, message: EmailMessage, api_key: str) -> EmailDeliveryResult:
        self.sent.append(message)
        if not self.success:
            return EmailDeliveryResult(success=False, message="Mock sender configured to fail")
        return EmailDeliveryResult(
            success=True,
            message=f"Email {message.from_email} sent to {message.to_email}",
            message_id=f"mock-{len(self.sent)}"
        )
