"""
Resend 集成：API Key 密钥与发送邮件节点
"""
from typing import Dict, Any, Optional
import logging

from ..models import (
    NodeDefinition, NodePackage, SecretDescriptor, ObjectField, StringField,
    BooleanField, simple_icon
)
from ..integrations.email import EmailSender, EmailMessage, ResendEmailSender


logger = logging.getLogger(__name__)


RESEND_API_KEY_SECRET = SecretDescriptor(
    name="resend-api-key",
    title="Resend API Key",
    description="API key for Resend service",
    schema=StringField(title="API Key", description="Your Resend API key")
)

SEND_EMAIL_PROPERTIES = ObjectField(fields={
    "toEmail": StringField(
        title="Recipient",
        description="The email address of the recipient",
        format="email"
    ),
    "fromEmail": StringField(
        title="Sender",
        description="The sender's email address",
        min_length=1
    ),
    "subject": StringField(
        title="Subject",
        description="The subject of the email",
        min_length=1
    ),
    "body": StringField(
        title="Body",
        description="The body content of the email",
        widget="textarea",
        min_length=1
    )
})

SEND_EMAIL_RESULT = ObjectField(fields={
    "success": BooleanField(description="Indicates if the email was sent successfully"),
    "message": StringField(description="A message regarding the send operation")
})


class SendEmailExecutor:
    """发送邮件执行函数，投递委托给 EmailSender"""

    def __init__(self, sender: EmailSender):
        self.sender = sender

    async def __call__(
        self,
        properties: Dict[str, Any],
        secrets: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        message = EmailMessage(
            from_email=properties["fromEmail"],
            to_email=properties["toEmail"],
            subject=properties["subject"],
            body=properties["body"]
        )
        delivery = await self.sender.send(message, secrets["apiKey"])
        if not delivery.success:
            logger.warning(f"Email to {message.to_email} was not delivered: {delivery.message}")
        return {"success": delivery.success, "message": delivery.message}


def create_resend_package(sender: Optional[EmailSender] = None) -> NodePackage:
    """创建 Resend 节点包"""
    send_email = NodeDefinition(
        name="resend-send-email",
        title="Resend send email",
        description="Send an email to a specified recipient",
        icon=simple_icon("SiResend"),
        node_type="action",
        category="default-lib",
        properties=SEND_EMAIL_PROPERTIES,
        result=SEND_EMAIL_RESULT,
        execute=SendEmailExecutor(sender or ResendEmailSender()),
        secrets={"apiKey": RESEND_API_KEY_SECRET}
    )
    return NodePackage(name="resend", nodes=[send_email], secrets=[RESEND_API_KEY_SECRET])
