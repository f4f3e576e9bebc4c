"""
密钥存储集成

分发器通过 resolve(node_name, slot) 按次解析密钥；存储只返回调用节点
自己声明的槽位对应的值。
"""
from typing import Dict, Any, Optional, TYPE_CHECKING
from abc import ABC, abstractmethod
import base64
import logging
import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.exceptions import InvalidTag

from ..exceptions import SecretStoreError

if TYPE_CHECKING:
    from ..core.registry import NodeRegistry


logger = logging.getLogger(__name__)

IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
SALT_LENGTH = 32
KEY_INFO = b"node-runtime-secret"


class SecretsManager:
    """
    AES-256-GCM 密钥加解密

    密文为 base64(salt | iv | authTag | ciphertext)。
    """

    def __init__(self, master_key_hex: str):
        if not master_key_hex or len(master_key_hex) != 64:
            raise SecretStoreError("Master key must be a 64-character hex string (32 bytes)")
        try:
            self._master_key = bytes.fromhex(master_key_hex)
        except ValueError as e:
            raise SecretStoreError(f"Master key is not valid hex: {e}") from e

    def _derive_key(self, salt: bytes) -> bytes:
        """按每个密文的盐派生独立的数据密钥"""
        hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=salt, info=KEY_INFO)
        return hkdf.derive(self._master_key)

    def encrypt(self, plaintext: str) -> str:
        """加密单个密钥值"""
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)

        sealed = AESGCM(self._derive_key(salt)).encrypt(iv, plaintext.encode("utf-8"), None)
        encrypted, auth_tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]

        return base64.b64encode(salt + iv + auth_tag + encrypted).decode("ascii")

    def decrypt(self, encrypted_data: str) -> str:
        """解密单个密钥值"""
        try:
            combined = base64.b64decode(encrypted_data, validate=True)
        except ValueError as e:
            raise SecretStoreError(f"Encrypted secret is not valid base64: {e}") from e

        header = SALT_LENGTH + IV_LENGTH + AUTH_TAG_LENGTH
        if len(combined) < header:
            raise SecretStoreError("Encrypted secret is truncated")

        salt = combined[:SALT_LENGTH]
        iv = combined[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        auth_tag = combined[SALT_LENGTH + IV_LENGTH:header]
        encrypted = combined[header:]

        try:
            decrypted = AESGCM(self._derive_key(salt)).decrypt(iv, encrypted + auth_tag, None)
        except InvalidTag as e:
            raise SecretStoreError("Failed to decrypt secret: authentication failed") from e

        return decrypted.decode("utf-8")

    def encrypt_secrets(self, secrets: Dict[str, str]) -> Dict[str, str]:
        """批量加密"""
        return {key: self.encrypt(value) for key, value in secrets.items()}

    def decrypt_secrets(self, encrypted_secrets: Dict[str, str]) -> Dict[str, str]:
        """批量解密"""
        decrypted = {}
        for key, value in encrypted_secrets.items():
            try:
                decrypted[key] = self.decrypt(value)
            except SecretStoreError as e:
                raise SecretStoreError(f'Failed to decrypt secret "{key}": {e.message}') from e
        return decrypted

    @staticmethod
    def generate_master_key() -> str:
        """生成新的随机主密钥"""
        return os.urandom(32).hex()


class SecretStore(ABC):
    """密钥存储接口"""

    @abstractmethod
    async def resolve(self, node_name: str, slot: str) -> Optional[Any]:
        """解析某个节点某个槽位的密钥值，不存在时返回 None"""
        pass


class InMemorySecretStore(SecretStore):
    """
    内存密钥存储

    优先使用按 (节点, 槽位) 设置的值；否则在提供注册表时，回退到按
    密钥描述符名称共享的值（同一集成的多个节点共用一个 API Key）。
    """

    def __init__(self, registry: Optional["NodeRegistry"] = None):
        self.registry = registry
        self._node_values: Dict[str, Dict[str, Any]] = {}
        self._shared_values: Dict[str, Any] = {}

    def set(self, node_name: str, slot: str, value: Any):
        """设置某个节点槽位的值"""
        self._node_values.setdefault(node_name, {})[slot] = value

    def set_shared(self, secret_name: str, value: Any):
        """按密钥描述符名称设置共享值"""
        self._shared_values[secret_name] = value

    def _lookup(self, node_name: str, slot: str) -> Optional[Any]:
        node_values = self._node_values.get(node_name, {})
        if slot in node_values:
            return node_values[slot]

        if self.registry is None:
            return None
        node = self.registry.get(node_name)
        if node is None or slot not in node.secrets:
            return None
        return self._shared_values.get(node.secrets[slot].name)

    async def resolve(self, node_name: str, slot: str) -> Optional[Any]:
        return self._lookup(node_name, slot)


class EncryptedSecretStore(InMemorySecretStore):
    """保存密文、在解析时解密的密钥存储"""

    def __init__(self, manager: SecretsManager, registry: Optional["NodeRegistry"] = None):
        super().__init__(registry)
        self.manager = manager

    def set(self, node_name: str, slot: str, value: str):
        super().set(node_name, slot, self.manager.encrypt(value))

    def set_shared(self, secret_name: str, value: str):
        super().set_shared(secret_name, self.manager.encrypt(value))

    def set_encrypted(self, node_name: str, slot: str, encrypted_value: str):
        """直接保存已加密的值（例如从持久层读出）"""
        super().set(node_name, slot, encrypted_value)

    async def resolve(self, node_name: str, slot: str) -> Optional[Any]:
        encrypted = self._lookup(node_name, slot)
        if encrypted is None:
            return None
        return self.manager.decrypt(encrypted)
