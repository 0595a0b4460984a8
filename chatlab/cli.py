"""Click CLI: wires config, backends, the conversation context and the comparator."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from chatlab.backends.anthropic import AnthropicBackend
from chatlab.backends.base import Backend, BackendError
from chatlab.backends.gemini import GeminiBackend
from chatlab.backends.openai_compat import OpenAICompatibleBackend
from chatlab.comparator import Comparator
from chatlab.context import ContextSettings, ConversationContext
from chatlab.healthcheck import run_health_checks
from chatlab.models import BackendDescriptor
from chatlab.output import print_comparison, print_message, print_stats, save_run
from chatlab.store import FileStore
from config.config_loader import AppConfig, load_config

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

BACKEND_CLASSES: dict[str, type[Backend]] = {
    "anthropic": AnthropicBackend,
    "openai": OpenAICompatibleBackend,
    "gemini": GeminiBackend,
}

_CHAT_HELP = "Commands: /stats  /clear  /preset NAME  /system TEXT  /temperature T  /quit"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_backends(config: AppConfig) -> dict[str, Backend]:
    """Build a backend for every configured model. Returns dict keyed by name.

    Models without an API key are still built; their calls fail with
    Unauthenticated so they show up as errors instead of vanishing.
    """
    backends: dict[str, Backend] = {}
    for name, model_cfg in config.models.items():
        if model_cfg.sdk not in BACKEND_CLASSES:
            logger.warning("Backend '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        backends[name] = BACKEND_CLASSES[model_cfg.sdk](model_cfg)
    return backends


def _determine_panel(config: AppConfig, models_arg: str | None) -> list[str]:
    """Returns the comparison panel names. --models overrides the config."""
    if models_arg:
        return [m.strip() for m in models_arg.split(",") if m.strip()]
    return list(config.defaults.comparison_panel)


def _descriptors(
    config: AppConfig,
    backends: dict[str, Backend],
    panel_names: list[str],
) -> list[BackendDescriptor]:
    """Descriptors for the panel in the given order, skipping unknown names."""
    descriptors: list[BackendDescriptor] = []
    for name in panel_names:
        if name not in backends or name not in config.models:
            logger.warning("Backend '%s' not configured, skipping", name)
            continue
        descriptors.append(
            BackendDescriptor(id=name, display_name=config.models[name].display_name, backend=backends[name])
        )
    return descriptors


def _context_settings(config: AppConfig, compaction: bool) -> ContextSettings:
    return ContextSettings(
        compaction_threshold=config.defaults.compaction_threshold if compaction else None,
        input_price_per_million=config.defaults.input_price_per_million,
        output_price_per_million=config.defaults.output_price_per_million,
    )


async def _handle_command(context: ConversationContext, line: str) -> bool:
    """Apply a slash command. Returns False when the session should end."""
    command, _, arg = line.partition(" ")
    arg = arg.strip()
    if command in ("/quit", "/exit"):
        return False
    if command == "/stats":
        print_stats(context)
    elif command == "/clear":
        await context.clear()
        console.print("[dim]Conversation cleared.[/dim]")
    elif command == "/preset":
        try:
            context.use_preset(arg)
            console.print(f"[dim]System prompt set to preset '{arg}'.[/dim]")
        except KeyError as exc:
            console.print(f"[red]{escape(exc.args[0])}[/red]")
    elif command == "/system":
        context.set_system_prompt(arg or None)
        console.print("[dim]System prompt updated.[/dim]" if arg else "[dim]System prompt removed.[/dim]")
    elif command == "/temperature":
        try:
            context.set_temperature(float(arg) if arg else None)
            console.print(f"[dim]Temperature: {context.settings.temperature}[/dim]")
        except ValueError as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
    else:
        console.print(f"[yellow]Unknown command.[/yellow] {_CHAT_HELP}")
    return True


def _print_error(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")


async def _chat_loop(context: ConversationContext) -> None:
    for message in context.messages:
        print_message(message)
    print_stats(context)
    console.print(f"[dim]{_CHAT_HELP}[/dim]")

    while True:
        try:
            line = await asyncio.to_thread(console.input, "[bold blue]> [/bold blue]")
        except EOFError:
            break
        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            if not await _handle_command(context, line):
                break
            continue

        summaries_before = context.summary_count
        try:
            with console.status("Waiting for reply..."):
                reply = await context.submit(line)
        except BackendError as exc:
            _print_error(exc)
            continue
        if reply is not None:
            print_message(reply)
        if context.summary_count > summaries_before:
            console.print("[green]Older messages were compacted into a summary.[/green]")
        print_stats(context)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """chatlab -- conversation with automatic compaction, plus multi-model comparison.

    \b
    Examples:
      chatlab chat
      chatlab chat --conversation work --preset teacher --temperature 0.3
      chatlab compare "Explain recursion in one paragraph"
      chatlab compare "Best sorting algorithm?" --models llama,gemini
      chatlab check
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        ctx.obj = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


@main.command()
@click.option("--conversation", "conversation_key", default="default", help="Conversation name to load or start")
@click.option("--preset", default=None, help="System prompt preset from settings.yaml")
@click.option("--temperature", default=None, type=click.FloatRange(0.0, 1.0), help="Sampling temperature")
@click.option("--no-compaction", is_flag=True, default=False, help="Never summarize older messages")
@click.pass_obj
def chat(
    config: AppConfig,
    conversation_key: str,
    preset: str | None,
    temperature: float | None,
    no_compaction: bool,
) -> None:
    """Chat with the primary assistant."""
    backends = _build_backends(config)
    assistant = backends.get(config.defaults.assistant)
    if assistant is None:
        console.print(f"[bold red]Error:[/bold red] Assistant '{config.defaults.assistant}' is not configured.")
        sys.exit(1)

    context = ConversationContext(
        assistant,
        key=conversation_key,
        prompts=config.prompts,
        store=FileStore(config.defaults.store_dir),
        settings=_context_settings(config, compaction=not no_compaction),
    )
    if preset:
        try:
            context.use_preset(preset)
        except KeyError as exc:
            console.print(f"[bold red]Error:[/bold red] {escape(exc.args[0])}")
            sys.exit(1)
    if temperature is not None:
        context.set_temperature(temperature)

    console.print(f"\n[bold cyan]chatlab[/bold cyan] -- {assistant.model_string()} [{conversation_key}]")
    asyncio.run(_chat_loop(context))


@main.command()
@click.argument("query")
@click.option("--models", default=None, help="Comma-separated backend list, overrides the configured panel")
@click.option("--save/--no-save", default=True, help="Write the run to a markdown file")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.pass_obj
def compare(
    config: AppConfig,
    query: str,
    models: str | None,
    save: bool,
    output_path: str | None,
) -> None:
    """Send QUERY to several models at once and compare the answers."""
    backends = _build_backends(config)
    synthesizer = backends.get(config.defaults.synthesizer)
    if synthesizer is None:
        console.print(f"[bold red]Error:[/bold red] Synthesizer '{config.defaults.synthesizer}' is not configured.")
        sys.exit(1)

    descriptors = _descriptors(config, backends, _determine_panel(config, models))
    comparator = Comparator(
        synthesizer,
        prompts=config.prompts,
        store=FileStore(config.defaults.store_dir),
    )

    console.print(f"\n[bold cyan]chatlab compare[/bold cyan] -- {', '.join(d.display_name for d in descriptors)}")
    with console.status("Querying models..."):
        run = asyncio.run(comparator.compare(query, descriptors))

    if run is None:
        console.print("[bold red]Error:[/bold red] Query is empty.")
        sys.exit(1)

    print_comparison(run)

    if save:
        output_dir = Path(output_path) if output_path else config.defaults.output_dir
        saved_path = save_run(run, output_dir)
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


@main.command()
@click.pass_obj
def check(config: AppConfig) -> None:
    """Ping every configured backend."""
    backends = _build_backends(config)
    console.print("\n[bold]Checking backends...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(backends))

    failed = 0
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            failed += 1
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {escape(short_err)}")

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
