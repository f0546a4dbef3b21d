#!/usr/bin/env python3
"""
Offline Sync CLI - Command Line Interface
"""

import asyncio
import click
import json

from src.config.config_loader import load_config
from src.core.backend_client import BackendClient
from src.core.host import host_from_config
from src.core.logging_manager import setup_logging
from src.core.operation_queue import OperationQueue
from src.core.storage import DurableStore
from src.core.sync_engine import SyncEngine


def _open_queue(config) -> OperationQueue:
    store = DurableStore(config['storage']['url'])
    return OperationQueue(store, max_attempts=int(config['queue']['max_attempts']))


@click.group()
@click.option('--config', 'config_path', default=None, help='Path to YAML configuration')
@click.pass_context
def cli(ctx, config_path):
    """Offline Sync Command Line Interface"""
    ctx.ensure_object(dict)
    config = load_config(config_path)
    setup_logging(config)
    ctx.obj['config'] = config


@cli.command()
@click.pass_context
def status(ctx):
    """Show queue and host status"""
    config = ctx.obj['config']
    queue = _open_queue(config)
    host = host_from_config(config)

    click.echo("Offline Sync Status:")
    click.echo("=" * 30)
    click.echo(f"Pending operations: {queue.count()}")
    click.echo(f"Failed operations:  {len(queue.failed())}")
    click.echo(f"Backend:            {config['backend']['base_url']}")
    click.echo(f"Platform:           {host.platform}")


@cli.command(name='queue')
@click.option('--failed', is_flag=True, help='Only show failed operations')
@click.pass_context
def list_queue(ctx, failed: bool):
    """List queued operations"""
    queue = _open_queue(ctx.obj['config'])
    operations = queue.failed() if failed else queue.list()

    if not operations:
        click.echo("Queue is empty")
        return

    for op in operations:
        click.echo(json.dumps(op.to_dict(), ensure_ascii=False))


@cli.command()
@click.pass_context
def sync(ctx):
    """Run one sync pass against the backend"""
    config = ctx.obj['config']

    async def run_sync():
        backend_config = config['backend']
        backend = BackendClient(
            base_url=backend_config['base_url'],
            api_key=backend_config.get('api_key', ''),
            timeout_seconds=backend_config.get('timeout_seconds')
        )
        try:
            engine = SyncEngine(_open_queue(config), backend)
            return await engine.sync(), engine.queue.count()
        finally:
            await backend.close()

    report, remaining = asyncio.run(run_sync())
    click.echo(f"Synced {report.synced} operations, {report.failed} failed, {remaining} remaining")


@cli.command()
@click.argument('operation_id')
@click.pass_context
def retry(ctx, operation_id: str):
    """Move a failed operation back to pending"""
    queue = _open_queue(ctx.obj['config'])
    if not queue.retry(operation_id):
        click.echo(f"No failed operation {operation_id}", err=True)
        raise click.Abort()
    click.echo(f"Operation {operation_id} scheduled for retry")


@cli.command()
@click.pass_context
def serve(ctx):
    """Start the HTTP service"""
    from src.main import main
    main(ctx.obj["config"])


if __name__ == '__main__':
    cli()
