"""
Workflow Node Runtime CLI
"""
import click
import asyncio
import logging
import yaml
import json
from typing import Dict, Any, Optional

from .config import Settings
from .core import NodeDispatcher
from .nodes import create_registry
from .integrations import InMemorySecretStore, MockEmailSender, SecretsManager


def load_document(path: Optional[str]) -> Dict[str, Any]:
    """读取 JSON 或 YAML 文件"""
    if not path:
        return {}
    with open(path, 'r', encoding='utf-8') as f:
        if path.endswith('.yaml') or path.endswith('.yml'):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} must contain a mapping")
    return data


def parse_secrets(pairs) -> Dict[str, str]:
    """解析 slot=value 形式的密钥参数"""
    secrets = {}
    for pair in pairs:
        slot, sep, value = pair.partition('=')
        if not sep or not slot:
            raise click.BadParameter(f"Expected slot=value, got {pair!r}", param_hint='--secret')
        secrets[slot] = value
    return secrets


@click.group()
@click.option('--log-level', default=None, help='Logging level (defaults to LOG_LEVEL)')
@click.pass_context
def cli(ctx, log_level):
    """Workflow Node Runtime CLI"""
    settings = Settings.from_env()
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    ctx.obj = settings


@cli.command()
@click.pass_obj
def nodes(settings):
    """List registered nodes"""
    registry = create_registry(settings)
    for node in registry.list_nodes():
        secret_slots = ", ".join(node.secrets) or "-"
        click.echo(f"{node.name:<20} {node.category:<12} {node.title}  [secrets: {secret_slots}]")


@cli.command()
@click.argument('node_name')
@click.pass_obj
def describe(settings, node_name):
    """Print a node definition as JSON"""
    registry = create_registry(settings)
    node = registry.get(node_name)
    if node is None:
        raise click.ClickException(f"Node not found: {node_name}")
    click.echo(json.dumps(node.to_dict(), indent=2, ensure_ascii=False))


@cli.command()
@click.argument('node_name')
@click.option('--props', 'props_file', type=click.Path(exists=True), help='Properties file (JSON/YAML)')
@click.option('--context', 'context_file', type=click.Path(exists=True), help='Context variables file (JSON/YAML)')
@click.option('--secret', 'secret_pairs', multiple=True, help='Secret slot value as slot=value')
@click.option('--mock-email', is_flag=True, help='Record e-mails instead of sending them')
@click.pass_obj
def run(settings, node_name, props_file, context_file, secret_pairs, mock_email):
    """Execute a single node"""
    properties = load_document(props_file)
    context = load_document(context_file)
    secrets = parse_secrets(secret_pairs)

    registry = create_registry(settings, email_sender=MockEmailSender() if mock_email else None)
    store = InMemorySecretStore(registry)
    for slot, value in secrets.items():
        store.set(node_name, slot, value)

    dispatcher = NodeDispatcher(registry)
    response = asyncio.run(dispatcher.execute(node_name, properties, store, context))

    click.echo(json.dumps(response.to_dict(), indent=2, ensure_ascii=False, default=str))
    if response.is_error:
        raise SystemExit(1)


@cli.command('generate-key')
def generate_key():
    """Generate a master key for SECRETS_MASTER_KEY"""
    click.echo(SecretsManager.generate_master_key())


@cli.command()
@click.option('--host', default=None, help='Host to bind to')
@click.option('--port', default=None, type=int, help='Port to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
@click.pass_obj
def serve(settings, host, port, reload):
    """Start the API server"""
    import uvicorn

    host = host or settings.api_host
    port = port or settings.api_port
    click.echo(f"Starting API server on {host}:{port}")
    uvicorn.run(
        "node_runtime.api:app",
        host=host,
        port=port,
        reload=reload or settings.api_reload
    )


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
