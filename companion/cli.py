"""
Companion CLI Tool

Command-line access to the generation service, for trying personas and
providers without the app.

Usage:
    companion reply "hi there" --persona "A grumpy wizard"
    companion suggest --persona "A grumpy wizard" --history chat.json
    companion scenario --personality "A grumpy wizard" --theme "lost keys"
    companion image "a lighthouse at dusk" --out lighthouse.png
    companion teaser --personality "A grumpy wizard"
    companion providers
"""
import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from companion import __version__
from companion.config import FALLBACK_PROVIDERS, LOG_LEVELS, PROVIDER_CATALOGUE, get_settings
from companion.core.errors import CompanionError
from companion.schemas import ConversationTurn, Role, history_from_messages
from companion.services.generation import GenerationService

# Load environment variables
load_dotenv()

console = Console()


def setup_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def resolve_log_level(option: str | None) -> str:
    """The --log-level option wins, then LOG_LEVEL from settings."""
    if option:
        return option
    try:
        return get_settings().LOG_LEVEL
    except ValidationError:
        # No keys configured yet; commands report that themselves.
        return "WARNING"


def load_history(path: Path | None) -> list[ConversationTurn]:
    """Read a JSON list of {role|sender, text} objects."""
    if path is None:
        return []
    try:
        messages = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{path} is not valid JSON: {e}", param_hint="--history")
    if not isinstance(messages, list):
        raise click.BadParameter(f"{path} must contain a JSON list", param_hint="--history")
    if not all(isinstance(m, dict) for m in messages):
        raise click.BadParameter(
            f"{path} must contain a list of message objects", param_hint="--history"
        )
    return history_from_messages(messages)


def build_service() -> GenerationService:
    """Create the generation service from settings."""
    return GenerationService.from_settings(get_settings())


def run_with_service(action: Callable[[GenerationService], Awaitable[Any]]) -> Any:
    """Run one async action against a fresh service, exiting on errors."""

    async def runner() -> Any:
        service = build_service()
        try:
            return await action(service)
        finally:
            await service.close()

    try:
        return asyncio.run(runner())
    except ValidationError as e:
        console.print("[red]✗ Invalid configuration[/red]")
        for error in e.errors():
            console.print(f"  {error['msg']}")
        console.print("\nSet GOOGLE_API_KEY and/or OPENROUTER_API_KEY in .env")
        sys.exit(1)
    except CompanionError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="Companion")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Logging verbosity [default: LOG_LEVEL setting, else WARNING]",
)
def main(log_level: str | None):
    """
    Companion - roleplay chat generation with provider fallback.
    """
    setup_logging(resolve_log_level(log_level))


@main.command()
@click.argument("message")
@click.option("--persona", required=True, help="The bot's personality prompt")
@click.option("--provider", default=None, help="Preferred provider id")
@click.option(
    "--history",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with earlier messages",
)
def reply(message: str, persona: str, provider: str | None, history: Path | None):
    """
    Generate the bot's reply to MESSAGE.

    Example:
        companion reply "where are we?" --persona "A ship's captain"
    """
    turns = load_history(history)
    turns.append(ConversationTurn(role=Role.USER, text=message))

    text = run_with_service(lambda s: s.generate_reply(turns, persona, provider))
    console.print(Panel(text, title="Reply", border_style="cyan"))


@main.command()
@click.option("--persona", required=True, help="The bot's personality prompt")
@click.option(
    "--history",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with earlier messages",
)
@click.option("--provider", default=None, help="Preferred provider id")
def suggest(persona: str, history: Path | None, provider: str | None):
    """
    Suggest the user's next message.
    """
    turns = load_history(history)
    text = run_with_service(lambda s: s.generate_suggestion(turns, persona, provider))
    if not text:
        console.print("[yellow]No suggestion available right now[/yellow]")
        return
    console.print(Panel(text, title="Suggestion", border_style="green"))


@main.command()
@click.option("--personality", required=True, help="The persona's personality prompt")
@click.option("--theme", default="", help="What the scenario is about")
@click.option("--provider", default=None, help="Preferred provider id")
def scenario(personality: str, theme: str, provider: str | None):
    """
    Generate an opening line for a new roleplay.

    Example:
        companion scenario --personality "A retired pirate" --theme "a storm at sea"
    """
    text = run_with_service(lambda s: s.generate_scenario(personality, theme, provider))
    console.print(Panel(text, title="Scenario", border_style="magenta"))


@main.command()
@click.argument("prompt")
@click.option(
    "--reference",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Reference image to edit",
)
@click.option(
    "--out",
    "out_path",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    required=True,
    help="Where to write the image",
)
def image(prompt: str, reference: Path | None, out_path: Path):
    """
    Generate an image from PROMPT (or edit --reference).

    Example:
        companion image "make it snow" --reference photo.jpg --out snowy.png
    """
    reference_bytes = reference.read_bytes() if reference else None
    data = run_with_service(lambda s: s.generate_image(prompt, reference_bytes))
    out_path.write_bytes(data)
    console.print(f"[green]✓[/green] Saved {len(data)} bytes to [cyan]{out_path}[/cyan]")


@main.command()
@click.option("--personality", required=True, help="The bot's personality prompt")
def teaser(personality: str):
    """
    Generate a one-line teaser for a bot card.
    """
    text = run_with_service(lambda s: s.generate_teaser(personality))
    console.print(text)


@main.command()
def providers():
    """
    List the provider catalogue and the backup order per mode.
    """
    try:
        settings = get_settings()
    except ValidationError:
        settings = None
        console.print("[yellow]⚠ No provider API keys configured[/yellow]\n")

    table = Table(title="Providers", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Backend")
    table.add_column("Model", style="dim")
    table.add_column("Configured", justify="center")

    for spec in PROVIDER_CATALOGUE.values():
        configured = settings is not None and settings.has_provider(spec.backend)
        model = settings.get_model(spec.id) if settings is not None else spec.model
        table.add_row(
            spec.id,
            spec.name,
            spec.kind.value,
            spec.backend.value,
            model,
            "[green]✓[/green]" if configured else "[red]✗[/red]",
        )
    console.print(table)

    backups = Table(title="Backup order", show_header=True, header_style="bold cyan")
    backups.add_column("Mode", style="cyan")
    backups.add_column("Providers")
    for mode, provider_ids in FALLBACK_PROVIDERS.items():
        backups.add_row(mode.value, " → ".join(provider_ids))
    console.print(backups)

    if settings is not None:
        console.print(f"\nDefault provider: [cyan]{settings.DEFAULT_PROVIDER}[/cyan]")


if __name__ == "__main__":
    main()
