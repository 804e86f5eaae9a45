"""ipgate server - Main entry point."""

import asyncio
import sys

import click
from rich.console import Console

from ipgate.core.config import (
    GuardSettings,
    ServerConfig,
    flatten_config,
    get_settings,
    load_config_from_file,
)
from ipgate.core.errors import RuleValidationError
from ipgate.observability.logging import LOG_LEVELS, configure_logging
from ipgate.server.app import GateServer

console = Console()

BANNER = """
██╗██████╗  ██████╗  █████╗ ████████╗███████╗
██║██╔══██╗██╔════╝ ██╔══██╗╚══██╔══╝██╔════╝
██║██████╔╝██║  ███╗███████║   ██║   █████╗
██║██╔═══╝ ██║   ██║██╔══██║   ██║   ██╔══╝
██║██║     ╚██████╔╝██║  ██║   ██║   ███████╗
╚═╝╚═╝      ╚═════╝ ╚═╝  ╚═╝   ╚═╝   ╚══════╝
                 GATE SERVER
"""

SETTINGS_KEYS = ("default_ip", "allow_ip_path", "allow_file_name", "allow_file")


@click.command()
@click.option("--host", default=None, help="Bind host (default: 0.0.0.0)")
@click.option("--port", "-p", type=int, default=None, help="Bind port (default: 8081)")
@click.option(
    "--enforce",
    is_flag=True,
    help="Answer denied clients with 403 instead of only annotating requests",
)
@click.option(
    "--trust-proxy-headers",
    is_flag=True,
    help="Take the client address from X-Forwarded-For / X-Real-IP",
)
@click.option(
    "--cache-rules/--no-cache-rules",
    default=False,
    help="Keep one resolved rule set instead of re-reading the rule file per request",
)
@click.option(
    "--cache-ttl",
    type=float,
    default=None,
    help="Seconds before a cached rule set is reloaded (default: never)",
)
@click.option(
    "--strict-rules",
    is_flag=True,
    help="Validate rules at startup and refuse to start on an invalid token",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS),
    default="info",
    help="Log level (default: info)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True),
    help="Load configuration from YAML or TOML file",
)
def main(
    host: str | None,
    port: int | None,
    enforce: bool,
    trust_proxy_headers: bool,
    cache_rules: bool,
    cache_ttl: float | None,
    strict_rules: bool,
    log_level: str,
    config_file: str | None,
):
    """Run the ipgate gate server."""
    configure_logging(log_level)
    console.print(BANNER, style="cyan")

    file_config: dict = {}
    if config_file:
        try:
            file_config = flatten_config(load_config_from_file(config_file))
            console.print(f"Loaded config from {config_file}", style="dim")
        except (OSError, ValueError) as e:
            console.print(f"[red]Failed to load config: {e}[/red]")
            sys.exit(1)

    options = {
        "host": host,
        "port": port,
        "enforce": enforce,
        "trust_proxy_headers": trust_proxy_headers,
        "cache_rules": cache_rules,
        "cache_ttl": cache_ttl,
        "strict_rules": strict_rules,
    }
    server_values = {key: file_config[key] for key in options if key in file_config}
    # Flags only override the config file when given
    server_values.update(
        {key: value for key, value in options.items() if value is not None and value is not False}
    )

    try:
        config = ServerConfig(**server_values)
        settings = build_settings(file_config)
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        sys.exit(1)

    console.print(f"Starting gate server on {config.host}:{config.port}...", style="yellow")
    console.print(f"Mode: {'enforce' if config.enforce else 'annotate only'}", style="dim")
    if config.trust_proxy_headers:
        console.print("Client address: from X-Forwarded-For / X-Real-IP", style="dim")
    if config.cache_rules or settings.cache_rules:
        ttl = config.cache_ttl if config.cache_ttl is not None else settings.cache_ttl
        ttl_str = f"{ttl}s" if ttl is not None else "until refreshed"
        console.print(f"Rule cache: {ttl_str}", style="dim")

    try:
        asyncio.run(run_server(config, settings))
    except RuleValidationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


def build_settings(file_config: dict) -> GuardSettings:
    """Guard settings from the environment, overridden by config file keys."""
    overrides = {key: file_config[key] for key in SETTINGS_KEYS if key in file_config}
    if not overrides:
        return get_settings()
    return GuardSettings(**overrides)


async def run_server(config: ServerConfig, settings: GuardSettings | None = None):
    """Run the gate server."""
    server = GateServer(config, settings)

    try:
        await server.start()
        console.print("Server started, press Ctrl+C to stop", style="green")

        await asyncio.Event().wait()
    except KeyboardInterrupt:
        console.print("\nShutting down...", style="yellow")
    finally:
        await server.stop()


if __name__ == "__main__":
    main()
