"""
Flowserver CLI entry point.

Usage:
    flowserver [OPTIONS] COMMAND [ARGS]...
    python -m flowserver serve --port 3000
"""

import asyncio
import signal
from pathlib import Path

import click
import yaml
from rich.console import Console

from flowserver import __version__
from flowserver.app import create_app
from flowserver.core.config import Config
from flowserver.core.logging import LoggingConfig, get_uvicorn_log_config, setup_logging
from flowserver.errors import FlowError

console = Console()


def _load_config(config_path: str | None) -> Config:
    if config_path is None:
        return Config()
    config = Config()
    if not config.load_from_file(Path(config_path)):
        raise click.ClickException(f"Could not load config file {config_path}")
    return config


@click.group()
@click.version_option(version=__version__, prog_name="flowserver")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, verbose):
    """Flowserver - minimal application container."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
def version():
    """Show the flowserver version."""
    console.print(f"flowserver {__version__}")


@cli.command()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("--host", default=None, help="Interface to bind (overrides config)")
@click.option("--port", "-p", type=int, default=None, help="Port to bind (overrides config)")
@click.option("--json-logs", is_flag=True, help="Log as JSON lines")
@click.pass_context
def serve(ctx, config_path, host, port, json_logs):
    """Serve the demo application until interrupted."""
    setup_logging(
        LoggingConfig(
            level="debug" if ctx.obj.get("verbose") else "info",
            json_format=json_logs,
        )
    )

    config = _load_config(config_path)
    if host is not None:
        config.set("http.host", host)
    if port is not None:
        config.set("http.port", port)

    flow = create_app(config, log_config=get_uvicorn_log_config())

    try:
        asyncio.run(_run(flow))
    except FlowError as e:
        console.print(f"[bold red]Failed to start server:[/bold red] {e.message}")
        raise SystemExit(1) from e


async def _run(flow) -> None:
    """Start the flow, wait for SIGINT/SIGTERM, then stop it."""
    stop_requested = asyncio.Event()

    flow.on(
        "flow.after_start",
        lambda data: console.print(
            f"[bold green]Server running at "
            f"http://{flow.config.get('http.host')}:{flow.get_engine('http').bound_port}/[/bold green]\n"
            "Press Ctrl+C to stop"
        ),
    )

    await flow.start()

    # Installed after start so they replace uvicorn's own signal capture
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_requested.set)

    try:
        await stop_requested.wait()
    finally:
        console.print("\nShutting down server...")
        await flow.stop()
        console.print("[green]Server stopped gracefully[/green]")


@cli.group()
def config():
    """Inspect configuration."""
    pass


@config.command("show")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="YAML config file")
def config_show(config_path):
    """Print the effective demo configuration as YAML."""
    flow = create_app(_load_config(config_path))
    console.print(
        yaml.safe_dump(flow.config.get_all(), default_flow_style=False).rstrip(),
        markup=False,
        highlight=False,
    )


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
