"""ipgate CLI - Command line interface."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ipgate.core.config import GuardSettings, flatten_config, get_settings, load_config_from_file
from ipgate.guard.engine import IpGuard, create_ip_guard
from ipgate.guard.rules import classify_token, rule_to_dict
from ipgate.guard.ruleset import RuleSet, RuleSource, StaticRuleSetProvider
from ipgate.guard.validation import find_invalid_token
from ipgate.observability.logging import LOG_LEVELS, configure_logging

console = Console()

BANNER = """
██╗██████╗  ██████╗  █████╗ ████████╗███████╗
██║██╔══██╗██╔════╝ ██╔══██╗╚══██╔══╝██╔════╝
██║██████╔╝██║  ███╗███████║   ██║   █████╗
██║██╔═══╝ ██║   ██║██╔══██║   ██║   ██╔══╝
██║██║     ╚██████╔╝██║  ██║   ██║   ███████╗
╚═╝╚═╝      ╚═════╝ ╚═╝  ╚═╝   ╚═╝   ╚══════╝
          IP allow-list guard
"""

SETTINGS_KEYS = ("default_ip", "allow_ip_path", "allow_file_name", "allow_file")


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True),
    help="Load configuration from YAML or TOML file",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS),
    default="warning",
    help="Log level (default: warning)",
)
@click.pass_context
def main(ctx: click.Context, config_file: str | None, log_level: str):
    """ipgate - check client addresses against an IP allow-list.

    Rules come from two places: the default rules (IPGATE_DEFAULT_IP or
    DEFAULT_IP, RFC1918 ranges when unset) and an allow-list file
    (allow-ip.txt, looked up under ALLOW_IP_PATH, the working directory
    and the home directory).

    Examples:

        ipgate check 10.1.2.3

        ipgate check 8.8.8.8 --rules "8.8.8.0/24" --json

        ipgate validate "10.0.0.0/8|192.168.1.*"
    """
    configure_logging(log_level)

    file_config: dict = {}
    if config_file:
        try:
            file_config = flatten_config(load_config_from_file(config_file))
        except (OSError, ValueError) as e:
            console.print(f"[red]Failed to load config: {e}[/red]")
            sys.exit(1)

    ctx.ensure_object(dict)
    ctx.obj["file_config"] = file_config

    if ctx.invoked_subcommand is None:
        console.print(BANNER, style="cyan")
        console.print("Usage: ipgate check 10.1.2.3", style="yellow")
        console.print("\nCommands:", style="bold")
        console.print("  ipgate check     Check an address against the rules", style="dim")
        console.print("  ipgate validate  Validate a rule string or rule file", style="dim")
        console.print("  ipgate rules     Show the resolved rules", style="dim")
        console.print("  ipgate version   Show version information", style="dim")


def _settings(ctx: click.Context) -> GuardSettings:
    file_config = (ctx.obj or {}).get("file_config", {})
    overrides = {key: file_config[key] for key in SETTINGS_KEYS if key in file_config}
    if not overrides:
        return get_settings()
    return GuardSettings(**overrides)


def _read_rules_file(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Failed to read rules file: {e}[/red]")
        sys.exit(1)


@main.command()
@click.argument("ip")
@click.option("--rules", "-r", help="Default rules to use instead of the configured ones")
@click.option("--file-rules", help="File rules to use instead of the rule file")
@click.option(
    "--rules-file",
    type=click.Path(exists=True, dir_okay=False),
    help="Read file rules from this file",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def check(
    ctx: click.Context,
    ip: str,
    rules: str | None,
    file_rules: str | None,
    rules_file: str | None,
    json_output: bool,
):
    """Check whether an address is allowed.

    Examples:

        ipgate check 192.168.1.10

        ipgate check 172.30.1.20 --file-rules "172.30.1.10-172.30.1.45"
    """
    if file_rules is not None and rules_file is not None:
        raise click.UsageError("Use either --file-rules or --rules-file, not both.")

    if rules is None and file_rules is None and rules_file is None:
        guard = create_ip_guard(_settings(ctx))
    else:
        source = RuleSource(_settings(ctx))
        default_rules = rules if rules is not None else source.default_rules()
        source_path = None
        if rules_file is not None:
            file_rules = _read_rules_file(rules_file)
            source_path = Path(rules_file).absolute()
        elif file_rules is None:
            file_rules, source_path = source.file_rules()
        ruleset = RuleSet.from_strings(default_rules, file_rules, source_path)
        guard = IpGuard(StaticRuleSetProvider(ruleset))

    result = guard.check(ip)

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        verdict = "[green]allowed[/green]" if result.allowed else "[red]denied[/red]"
        console.print(f"[bold]Client:[/bold] {result.client_ip}")
        console.print(f"[bold]Access:[/bold] {verdict}")
        console.print(f"[bold]Reason:[/bold] {result.reason_text}")


@main.command()
@click.argument("rules", required=False)
@click.option(
    "--file",
    "rules_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Validate the rules in this file",
)
@click.pass_context
def validate(ctx: click.Context, rules: str | None, rules_file: str | None):
    """Validate a rule string, a rule file, or the configured rules.

    Exits with status 1 on the first invalid token.

    Examples:

        ipgate validate "10.0.0.0/8|192.168.1.*"

        ipgate validate --file ~/Desktop/allow-ip.txt
    """
    targets: list[tuple[str, str]] = []
    if rules is not None:
        targets.append(("argument", rules))
    if rules_file is not None:
        targets.append((rules_file, _read_rules_file(rules_file)))
    if not targets:
        source = RuleSource(_settings(ctx))
        file_rules, path = source.file_rules()
        targets.append(("default rules", source.default_rules()))
        targets.append((str(path) if path else "rule file", file_rules))

    for label, text in targets:
        invalid = find_invalid_token(text)
        if invalid is not None:
            console.print(
                f"Invalid rule token at #{invalid.position}: [{invalid.token}]",
                markup=False,
                style="red",
            )
            console.print(f"Source: {label}", style="dim")
            sys.exit(1)

    console.print("[green]All rule tokens are valid.[/green]")


@main.command(name="rules")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def show_rules(ctx: click.Context, json_output: bool):
    """Show the resolved rule file, both rule halves and the merged tokens."""
    settings = _settings(ctx)
    ruleset = RuleSource(settings).load()

    rows = []
    for provenance, token in ruleset.tokens:
        rule = classify_token(token)
        row = {"source": provenance.label, "token": token, "type": None}
        if rule is not None:
            row.update(rule_to_dict(rule))
        rows.append(row)

    rules_file = str(ruleset.source_path) if ruleset.source_path else None

    if json_output:
        data = {
            "settings": settings.to_display_dict(),
            "rules_file": rules_file,
            "default_rules": ruleset.default_rules,
            "file_rules": ruleset.file_rules,
            "merged": ruleset.merged,
            "tokens": rows,
        }
        click.echo(json.dumps(data, indent=2))
        return

    console.print(
        Panel(
            f"[bold]Rule file:[/bold] {rules_file or '[dim]not found[/dim]'}\n"
            f"[bold]Default rules:[/bold] {ruleset.default_rules or '[dim]none[/dim]'}\n"
            f"[bold]File rules:[/bold] {ruleset.file_rules or '[dim]none[/dim]'}",
            title="ipgate rules",
        )
    )

    table = Table()
    table.add_column("#", justify="right", style="dim")
    table.add_column("Source", style="cyan")
    table.add_column("Token")
    table.add_column("Type")
    table.add_column("First")
    table.add_column("Last")

    for position, row in enumerate(rows, start=1):
        table.add_row(
            str(position),
            row["source"],
            row["token"],
            row["type"] or "[red]invalid[/red]",
            row.get("first", ""),
            row.get("last", ""),
        )

    console.print(table)


@main.command()
def version():
    """Show version information."""
    from ipgate import __version__

    console.print(BANNER, style="cyan")
    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


if __name__ == "__main__":
    main()
