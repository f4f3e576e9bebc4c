"""
运行时配置
"""
from typing import Optional
from dataclasses import dataclass
import os

from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class Settings:
    """从环境变量加载的运行时配置"""
    http_timeout_ms: int = 30000
    sandbox_timeout: float = 30
    sandbox_max_log_lines: int = 1000
    resend_api_url: str = "https://api.resend.com/emails"
    secrets_master_key: Optional[str] = None
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """读取环境变量（可选先加载 .env 文件）"""
        if dotenv:
            load_dotenv()

        return cls(
            http_timeout_ms=int(os.getenv("NODE_RUNTIME_HTTP_TIMEOUT_MS", "30000")),
            sandbox_timeout=float(os.getenv("NODE_RUNTIME_SANDBOX_TIMEOUT", "30")),
            sandbox_max_log_lines=int(os.getenv("NODE_RUNTIME_SANDBOX_MAX_LOG_LINES", "1000")),
            resend_api_url=os.getenv("RESEND_API_URL", "https://api.resend.com/emails"),
            secrets_master_key=os.getenv("SECRETS_MASTER_KEY") or None,
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("API_PORT", "8000")),
            api_reload=_env_bool("API_RELOAD", "false"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper()
        )
