"""External collaborators: code sandbox, secret store and e-mail delivery"""

from .sandbox import CodeSandbox, SandboxConfig, SandboxResult
from .secret_store import (
    SecretStore, InMemorySecretStore, EncryptedSecretStore, SecretsManager
)
from .email import (
    EmailSender, ResendEmailSender, MockEmailSender, EmailMessage, EmailDeliveryResult
)

__all__ = [
    "CodeSandbox",
    "SandboxConfig",
    "SandboxResult",
    "SecretStore",
    "InMemorySecretStore",
    "EncryptedSecretStore",
    "SecretsManager",
    "EmailSender",
    "ResendEmailSender",
    "MockEmailSender",
    "EmailMessage",
    "EmailDeliveryResult"
]
