"""
API 路由器
"""

from . import nodes, secrets, monitoring

__all__ = ["nodes", "secrets", "monitoring"]
