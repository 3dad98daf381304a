"""Command-line interface for mailfiler.

Provides commands for configuration validation, rule management and
testing messages against the rule list.

Usage:
    python -m mailfiler validate-config
    python -m mailfiler rules list
    python -m mailfiler rules import backup.json
    python -m mailfiler match message.json
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import click
from rich.console import Console
from rich.table import Table

from mailfiler.config import validate_config_file
from mailfiler.core.errors import MailFilerError
from mailfiler.core.logging import configure_logging

if TYPE_CHECKING:
    from mailfiler.config_schema import AppConfig
    from mailfiler.db.store import DatabaseStore
    from mailfiler.engine.filing import FilingService
    from mailfiler.rules.models import Rule

console = Console()

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CLIDeps:
    """Shared dependencies initialized by _init_cli_deps()."""

    config: AppConfig
    db: DatabaseStore
    service: FilingService


async def _init_cli_deps(debug: bool = False) -> CLIDeps:
    """Initialize shared CLI dependencies.

    Loads config, applies its logging settings (unless --debug was given),
    opens the database and builds the filing service. Prints actionable
    error messages and calls sys.exit(1) on failure.
    """
    from mailfiler.config import get_config
    from mailfiler.core.errors import ConfigLoadError, ConfigValidationError, DatabaseError
    from mailfiler.db.store import DatabaseStore
    from mailfiler.engine.filing import FilingService
    from mailfiler.rules.matcher import configure_timeout
    from mailfiler.rules.store import RuleStore

    try:
        config = get_config()
    except (ConfigLoadError, ConfigValidationError) as e:
        console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Create config/config.yaml (see config/config.yaml.example) "
            "or point MAILFILER_CONFIG_PATH at one."
        )
        sys.exit(1)

    if not debug:
        configure_logging(
            log_level=config.logging.level,
            json_output=config.logging.json_output,
        )
    configure_timeout(config.matching.regex_timeout_seconds)

    db = DatabaseStore(config.storage.db_path)
    try:
        await db.initialize()
    except DatabaseError as e:
        console.print(f"[red]Database error:[/red] {e}")
        sys.exit(1)

    service = FilingService(
        RuleStore(db, key=config.storage.rules_key),
        protected_folder_types=config.filing.protected_folder_types,
        auto_create_rules=config.filing.auto_create_rules,
    )

    return CLIDeps(config=config, db=db, service=service)


def _run(coro_factory: Callable[[CLIDeps], Awaitable[T]]) -> T:
    """Run an async command body with initialized dependencies."""
    ctx = click.get_current_context(silent=True)
    debug = bool(ctx and ctx.find_root().obj and ctx.find_root().obj.get("debug"))

    async def runner() -> T:
        deps = await _init_cli_deps(debug)
        return await coro_factory(deps)

    try:
        return asyncio.run(runner())
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)
    except MailFilerError as e:
        console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {path}:[/red] {e}")
        sys.exit(1)


def _flag(active: bool) -> str:
    return "[green]on[/green]" if active else "[dim]off[/dim]"


def _render_rules(rules: list[Rule]) -> Table:
    table = Table(title="Filing rules")
    table.add_column("#", justify="right")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Subject")
    table.add_column("Folder")

    for rule in rules:
        table.add_row(
            str(rule.index),
            f"{_flag(rule.active_from)} {rule.from_}",
            f"{_flag(rule.active_to)} {rule.to}",
            f"{_flag(rule.active_subject)} {rule.subject}",
            rule.folder.path if rule.folder else "[red](none)[/red]",
        )
    return table


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """mailfiler - rule-based folder suggestions for email.

    Logging follows the `logging` section of config.yaml once it is loaded.
    """
    ctx.ensure_object(dict)["debug"] = debug
    log_level = "DEBUG" if debug else "WARNING"
    configure_logging(log_level=log_level, json_output=False)


@cli.command("validate-config")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)
def validate_config(config_path: Path | None) -> None:
    """Validate the configuration file."""
    if config_path:
        console.print(f"Validating config: [cyan]{config_path}[/cyan]")
    else:
        console.print("Validating config: [cyan]config/config.yaml[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.group("rules")
def rules_group() -> None:
    """Inspect and edit the rule list."""


@rules_group.command("list")
def list_rules() -> None:
    """Show all rules in evaluation order."""
    rules = _run(lambda deps: deps.service.list_rules())
    if not rules:
        console.print("No rules defined.")
        return
    console.print(_render_rules(rules))


@rules_group.command("show")
@click.argument("index", type=int)
def show_rule(index: int) -> None:
    """Show one rule as JSON."""
    rule = _run(lambda deps: deps.service.store.get(index))
    console.print_json(data={**rule.to_record(), "index": rule.index})


@rules_group.command("delete")
@click.argument("index", type=int)
@click.option("--yes", is_flag=True, help="Skip confirmation prompt")
def delete_rule(index: int, yes: bool) -> None:
    """Delete a rule. Later rules move up by one position."""
    if not yes:
        click.confirm(f"Delete rule #{index}?", abort=True)
    remaining = _run(lambda deps: deps.service.delete_rule(index))
    console.print(f"[green]✓[/green] Deleted rule #{index}, {len(remaining)} rule(s) left")


@rules_group.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def import_rules(file: Path) -> None:
    """Replace the rule list with the rules in FILE (JSON array)."""
    payload = _read_json(file)
    if _run(lambda deps: deps.service.import_rules(payload)):
        console.print(f"[green]✓[/green] Imported {len(payload)} rule(s) from {file}")
    else:
        console.print(
            f"[red]✗[/red] Import failed: {file} is not a valid rule list. "
            "Every rule needs 'from', 'to', 'subject' and 'folder'. Existing rules were kept."
        )
        sys.exit(1)


@rules_group.command("export")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path), required=False)
def export_rules(file: Path | None) -> None:
    """Write the rule list as JSON to FILE (default: stdout)."""
    records = _run(lambda deps: deps.service.export_rules())
    text = json.dumps(records, indent=2, ensure_ascii=False)
    if file is None:
        click.echo(text)
    else:
        file.write_text(text + "\n", encoding="utf-8")
        console.print(f"[green]✓[/green] Exported {len(records)} rule(s) to {file}")


@cli.command("match")
@click.argument("message_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def match_message(message_file: Path) -> None:
    """Show which rule applies to the message in MESSAGE_FILE (JSON object)."""
    message = _read_json(message_file)
    rule = _run(lambda deps: deps.service.find_rule(message))
    if rule is None:
        console.print("No rule applies to this message.")
        return
    folder = rule.folder.path if rule.folder else "(none)"
    console.print(f"Rule [cyan]#{rule.index}[/cyan] files this message into [cyan]{folder}[/cyan]")


@cli.command("learn")
@click.argument("message_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def learn(message_file: Path) -> None:
    """Record that the message in MESSAGE_FILE was moved by hand."""
    message = _read_json(message_file)
    created = _run(lambda deps: deps.service.handle_moved_messages([message]))
    if created:
        console.print(f"[green]✓[/green] Created rule #{created[0]}")
    else:
        console.print("No rule created.")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
