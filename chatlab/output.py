"""Rich console output and markdown file save for conversations and comparisons."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.json import JSON
from rich.markup import escape
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from chatlab.context import ConversationContext
from chatlab.models import BackendResult, ComparisonRun, Message, Role

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _result_footer(result: BackendResult) -> str:
    return (
        f"{int(result.latency_sec * 1000)}ms | "
        f"{result.input_tokens} in / {result.output_tokens} out"
    )


def _pretty_json(text: str) -> str | None:
    """Return text re-indented with sorted keys if it is a JSON object or array."""
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, (dict, list)):
        return None
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False)


def print_message(message: Message) -> None:
    """Print one conversation message; summaries get their own style.

    Assistant replies that are a JSON object or array are pretty-printed.
    """
    if message.is_summary:
        console.print(Panel(Text(message.content), title="[bold green]Summary[/bold green]", border_style="green"))
        return
    if message.role is Role.USER:
        console.print(Text(f"You: {message.content}", style="bold blue"))
        return
    subtitle = None
    if message.token_usage:
        subtitle = f"{message.token_usage.input_tokens} in / {message.token_usage.output_tokens} out"
    pretty = _pretty_json(message.content)
    body = JSON(pretty) if pretty is not None else Markdown(message.content)
    console.print(Panel(body, title="Assistant", subtitle=subtitle, border_style="dim"))


def print_stats(context: ConversationContext) -> None:
    """Print message, compaction and token counters for a conversation."""
    console.print(
        Text(
            f"Messages: {context.total_message_count} | "
            f"Summaries: {context.summary_count} | "
            f"Compressed: {context.compressed_message_count} | "
            f"Tokens: {context.total_input_tokens} in / {context.total_output_tokens} out | "
            f"Estimated: ${context.estimated_cost:.4f}",
            style="dim",
        )
    )


def print_comparison(run: ComparisonRun) -> None:
    """Print each backend's answer in configuration order, then the synthesis."""
    console.print(Rule(Text(run.query[:80], style="bold cyan")))
    for result in run.results:
        if result.ok:
            console.print(
                Panel(
                    Text(result.response_text),
                    title=f"[bold]{escape(result.display_name)}[/bold]",
                    subtitle=_result_footer(result),
                    border_style="dim",
                )
            )
        else:
            console.print(
                Panel(
                    Text(result.error or "unknown error", style="red"),
                    title=f"[bold]{escape(result.display_name)}[/bold]",
                    border_style="red",
                )
            )
    console.print(Rule("[bold green]Analysis[/bold green]"))
    console.print(Markdown(run.synthesis or ""))


def save_run(run: ComparisonRun, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save a comparison run as a markdown file.

    Args:
        run: The completed ComparisonRun.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the query text.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(run.query)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    succeeded = sum(1 for r in run.results if r.ok)
    lines: list[str] = [
        f"# Model Comparison: {run.query[:80]}",
        "",
        f"**Date:** {run.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Backends:** {', '.join(r.display_name for r in run.results) or 'none'}",
        f"**Succeeded:** {succeeded}/{len(run.results)}",
        "",
        "---",
        "",
    ]

    for result in run.results:
        lines.append(f"## {result.display_name}")
        lines.append("")
        if result.ok:
            lines.append(result.response_text)
            lines.append("")
            lines.append(f"*{_result_footer(result)}*")
        else:
            lines.append(f"**Error:** {result.error}")
        lines.append("")

    lines += [
        "## Analysis",
        "",
        run.synthesis or "",
        "",
    ]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Comparison saved to: %s", filepath)
    return filepath
