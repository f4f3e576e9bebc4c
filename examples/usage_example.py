"""
节点运行时使用示例
"""
import asyncio
import logging

import httpx

from node_runtime import NodeDispatcher, ExecutionContext, StepSpec, WorkflowRun, Settings
from node_runtime.nodes import create_registry
from node_runtime.integrations import InMemorySecretStore, MockEmailSender


# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def fake_api(request: httpx.Request) -> httpx.Response:
    """模拟的上游 API"""
    return httpx.Response(200, json={"orders": [12.5, 7.25, 30]})


async def example_single_node(dispatcher: NodeDispatcher):
    """单个节点：校验失败与成功"""
    print("\n=== 单个节点 ===")

    response = await dispatcher.execute("http-request", {"method": "GET"})
    print(f"Missing url -> {response.error_type}: {response.error.message}")

    response = await dispatcher.execute("http-request", {
        "method": "GET",
        "url": "https://shop.example.com/orders"
    })
    print(f"Status {response.output['statusCode']} in {response.output['responseTime']:.1f}ms")


async def example_branch(dispatcher: NodeDispatcher, store: InMemorySecretStore):
    """一条分支：请求 → 代码汇总 → 发邮件"""
    print("\n=== 分支运行 ===")

    run = WorkflowRun(dispatcher, store, ExecutionContext(workflow_id="daily-report"))
    responses = await run.run_branch([
        StepSpec(
            "http-request",
            {"method": "GET", "url": "https://shop.example.com/orders"},
            output_variable="orders"
        ),
        StepSpec(
            "code",
            {
                "code": "raw = orders['body']\n"
                        "console.log('raw length', len(raw))\n"
                        "return {'raw': raw}",
                "inputVariables": ["orders"]
            },
            output_variable="summary"
        ),
        StepSpec(
            "resend-send-email",
            {
                "toEmail": "ops@example.com",
                "fromEmail": "reports@example.com",
                "subject": "Daily orders",
                "body": "See dashboard"
            },
            output_variable="notification"
        ),
    ])

    for response in responses:
        print(f"{response.node_name}: {response.status} ({response.duration_ms:.1f}ms)")
    print(f"Context variables: {sorted(run.context.variables)}")


async def main():
    """主函数"""
    settings = Settings(sandbox_timeout=10)
    sender = MockEmailSender()
    registry = create_registry(settings, email_sender=sender, http_transport=httpx.MockTransport(fake_api))
    dispatcher = NodeDispatcher(registry)

    store = InMemorySecretStore(registry)
    store.set_shared("resend-api-key", "re_example")

    await example_single_node(dispatcher)
    await example_branch(dispatcher, store)

    print(f"\nEmails recorded: {len(sender.sent)}")


if __name__ == "__main__":
    asyncio.run(main())
