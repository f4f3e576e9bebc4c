"""
HTTP 请求节点
"""
from typing import Dict, Any, Optional
import asyncio
import logging
import time

import httpx

from ..models import (
    NodeDefinition, ObjectField, StringField, NumberField, EnumField, ArrayField,
    lucide_icon
)
from ..exceptions import NodeTimeoutError, TransportError


logger = logging.getLogger(__name__)

HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH"]
DEFAULT_TIMEOUT_MS = 30000


def build_properties(default_timeout_ms: float = DEFAULT_TIMEOUT_MS) -> ObjectField:
    return ObjectField(fields={
        "method": EnumField(title="Method", description="HTTP method", values=HTTP_METHODS),
        "url": StringField(title="URL", description="Target URL for the request", format="url"),
        "headers": ArrayField(
            title="Headers",
            description="HTTP headers to include",
            required=False,
            items=ObjectField(fields={
                "key": StringField(title="Header Name"),
                "value": StringField(title="Header Value")
            })
        ),
        "body": StringField(
            title="Body",
            description="Request body (for POST, PUT, PATCH)",
            widget="textarea",
            required=False
        ),
        "timeout": NumberField(
            title="Timeout",
            description="Request timeout in milliseconds",
            default=default_timeout_ms
        )
    })


HTTP_RESULT = ObjectField(fields={
    "statusCode": NumberField(title="HTTP status code"),
    "headers": ObjectField(title="Response headers", values=StringField()),
    "body": StringField(title="Response body"),
    "responseTime": NumberField(title="Response time in ms")
})


class HttpRequestExecutor:
    """
    HTTP 请求执行函数

    4xx/5xx 响应作为普通结果返回；只有超时和网络层失败会抛出异常。
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # 测试中注入 httpx.MockTransport
        self._transport = transport

    async def __call__(
        self,
        properties: Dict[str, Any],
        secrets: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        method = properties["method"]
        url = properties["url"]
        timeout_ms = properties.get("timeout") or DEFAULT_TIMEOUT_MS

        headers = {}
        for header in properties.get("headers") or []:
            headers[header["key"]] = header["value"]

        body = properties.get("body")
        content = body if method != "GET" and body else None

        start_time = time.perf_counter()
        try:
            status_code, response_headers, text = await asyncio.wait_for(
                self._send(method, url, headers, content),
                timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            logger.warning(f"{method} {url} timed out after {timeout_ms}ms")
            raise NodeTimeoutError(timeout_ms)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"{method} {url} failed: {type(e).__name__}: {e}")
            raise TransportError(str(e) or type(e).__name__, cause=e) from e

        response_time = (time.perf_counter() - start_time) * 1000
        logger.info(f"{method} {url} -> {status_code} in {response_time:.2f}ms")

        return {
            "statusCode": status_code,
            "headers": response_headers,
            "body": text,
            "responseTime": response_time
        }

    async def _send(self, method: str, url: str, headers: Dict[str, str], content: Optional[str]):
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=None,
            follow_redirects=True
        ) as client:
            response = await client.request(method, url, headers=headers, content=content)
            # 多值响应头合并为逗号分隔的单个值
            flattened: Dict[str, str] = {}
            for key, value in response.headers.multi_items():
                flattened[key] = f"{flattened[key]}, {value}" if key in flattened else value
            return response.status_code, flattened, response.text


def create_http_request_node(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    default_timeout_ms: float = DEFAULT_TIMEOUT_MS
) -> NodeDefinition:
    """创建 HTTP 请求节点定义"""
    return NodeDefinition(
        name="http-request",
        title="HTTP Request",
        description="Make an HTTP request to any URL",
        icon=lucide_icon("ArrowRightLeft"),
        node_type="action",
        category="default-lib",
        properties=build_properties(default_timeout_ms),
        result=HTTP_RESULT,
        execute=HttpRequestExecutor(transport)
    )
