#!/usr/bin/env python3
"""
p2pxfer CLI

Command-line interface for point-to-point file transfer.

Usage:
    p2pxfer listen PORT                       # Serve PUT/GET requests
    p2pxfer put IP PORT FILE [REMOTE_NAME]    # Upload a file
    p2pxfer get IP PORT FILE [SAVE_AS]        # Download a file
    p2pxfer show-config                       # Print effective config
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import (
    Progress, SpinnerColumn, TextColumn, BarColumn, DownloadColumn,
    TransferSpeedColumn,
)
from rich.logging import RichHandler

from .config import Config, load_config
from .errors import (
    ConnectFailed, FileOpenFailed, ProtocolMismatch, TransferError,
)
from .transfer import TransferListener, TransferClient, TransferStats

console = Console()


def setup_logging(verbose: bool = False, level_name: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def transfer_progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=console,
        transient=True,
    )


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON config file')
@click.option('--data-dir', default=None, help='Directory for received files')
@click.option('--timeout', type=float, default=None,
              help='Per-operation socket timeout in seconds (default: none)')
@click.pass_context
def cli(ctx, verbose, config_path, data_dir, timeout):
    """p2pxfer - send and receive single files over TCP."""
    config = load_config(Path(config_path) if config_path else None)
    if data_dir:
        config.data_dir = Path(data_dir)
    if timeout is not None:
        config.transfer_timeout = timeout
        config.connect_timeout = timeout

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.argument('port', type=int)
@click.pass_context
def listen(ctx, port):
    """Listen on PORT and serve uploads and downloads."""
    config: Config = ctx.obj['config']
    config.port = port

    async def run():
        listener = TransferListener(config)
        await listener.start()
        console.print(f"Listening on port {listener.port}")
        console.print(f"[dim]Data dir: {config.data_dir} - Press Ctrl+C to stop[/dim]")
        try:
            await listener.serve_forever()
        finally:
            await listener.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Listener stopped[/yellow]")
    except OSError as e:
        console.print(f"[red]Cannot listen on port {port}: {e}[/red]")
        ctx.exit(1)


@cli.command()
@click.argument('ip')
@click.argument('port', type=int)
@click.argument('file')
@click.argument('remote_name', required=False)
@click.pass_context
def put(ctx, ip, port, file, remote_name: Optional[str]):
    """Upload FILE to the listener at IP:PORT."""
    config: Config = ctx.obj['config']
    client = TransferClient(ip, port, config)

    async def run():
        with transfer_progress() as progress:
            task = progress.add_task(f"Sending {file}", total=None)

            def update(stats: TransferStats):
                progress.update(task, total=stats.total_bytes,
                                completed=stats.bytes_transferred)

            return await client.put(file, remote_name, progress=update)

    try:
        result = asyncio.run(run())
    except ConnectFailed:
        console.print("Connection failed")
        ctx.exit(1)
    except FileOpenFailed as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(1)
    except TransferError as e:
        console.print(f"Error: {e}", markup=False)
        ctx.exit(1)

    console.print(f"Server: {result.status}", markup=False)
    if not result.ok:
        console.print(f"[yellow]Upload of {result.remote_name} not confirmed[/yellow]")


@cli.command()
@click.argument('ip')
@click.argument('port', type=int)
@click.argument('file')
@click.argument('save_as', required=False)
@click.pass_context
def get(ctx, ip, port, file, save_as: Optional[str]):
    """Download FILE from the listener at IP:PORT."""
    config: Config = ctx.obj['config']
    client = TransferClient(ip, port, config)

    async def run():
        with transfer_progress() as progress:
            task = progress.add_task(f"Receiving {file}", total=None)

            def update(stats: TransferStats):
                progress.update(task, total=stats.total_bytes,
                                completed=stats.bytes_transferred)

            return await client.get(file, save_as, progress=update)

    try:
        result = asyncio.run(run())
    except ConnectFailed:
        console.print("Connection failed")
        ctx.exit(1)
    except FileOpenFailed as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(1)
    except ProtocolMismatch as e:
        console.print(f"Error: {e.line}", markup=False)
        return
    except TransferError as e:
        console.print(f"Error: {e}", markup=False)
        ctx.exit(1)

    console.print(f"Saved {result.path} ({result.size} bytes)", markup=False)
    if not result.complete:
        console.print(
            f"[yellow]Transfer incomplete: received "
            f"{format_size(result.bytes_received)} of {format_size(result.size)}[/yellow]"
        )


@cli.command('show-config')
@click.pass_context
def show_config(ctx):
    """Print the effective configuration as JSON (usable as a --config file)."""
    config: Config = ctx.obj['config']
    console.print_json(data=config.to_dict())


def main():
    cli()


if __name__ == '__main__':
    main()
