"""
Rich terminal display utilities for CLI.

Provides formatted output using the Rich library for:
- Progress indicators
- Completion panels
- Error messages
- Statistics tables
"""

from typing import Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text


console = Console()


def print_header(title: str) -> None:
    """Print a formatted header."""
    console.print()
    console.print(f"[bold cyan]{title}[/bold cyan]")
    console.print("=" * len(title))
    console.print()


def print_success(message: str) -> None:
    """Print a success message with checkmark."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message with X mark."""
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")


def print_separator() -> None:
    """Print a visual separator line."""
    console.print("[dim]" + "─" * 70 + "[/dim]")


def print_completions(prompt: str, completions: List[str]) -> None:
    """
    Print each completion in a panel, prompt dimmed before the generated text.

    Args:
        prompt: The prompt that was continued
        completions: Completion strings (prompt already stripped)
    """
    for i, completion in enumerate(completions, 1):
        body = Text(prompt, style="dim")
        body.append(completion, style="bold white")
        title = f"Completion {i}" if len(completions) > 1 else "Completion"
        console.print(Panel(body, title=f"[bold]{title}[/bold]", border_style="cyan"))


def print_result_stats(
    latency_ms: float,
    decoding_steps: int,
    prompt_tokens: int,
    constraints: Optional[Dict[str, str]] = None
) -> None:
    """
    Print generation statistics in a table.

    Args:
        latency_ms: Generation latency in milliseconds
        decoding_steps: Number of policy invocations
        prompt_tokens: Prompt length in tokens
        constraints: Active constraints, name -> description
    """
    table = Table(title="Generation Statistics", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan", width=20)
    table.add_column("Value", style="white", width=30)

    table.add_row("Latency", f"{latency_ms:.0f} ms")
    table.add_row("Decoding Steps", str(decoding_steps))
    table.add_row("Prompt Tokens", str(prompt_tokens))

    for name, value in (constraints or {}).items():
        table.add_row(name, value, style="yellow")

    console.print()
    console.print(table)
    console.print()


def print_boundary_counts(text: str, cleaned: str, sentences: int, paragraphs: int) -> None:
    """Print boundary counts for a text, with the cleaned text the counts come from."""
    table = Table(title="Boundaries", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan", width=20)
    table.add_column("Value", style="white")

    table.add_row("Input", repr(text))
    table.add_row("Cleaned", repr(cleaned))
    table.add_row("Sentences", str(sentences))
    table.add_row("Paragraphs", str(paragraphs))

    console.print()
    console.print(table)
    console.print()


def create_progress_spinner() -> Progress:
    """Create a progress spinner for long-running operations."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console
    )


def print_model_loading(model_id: str, device: Optional[str]) -> None:
    """Print model loading information."""
    console.print()
    print_info(f"Loading model: [bold]{model_id}[/bold]")
    print_info(f"Device: [bold]{device or 'auto'}[/bold]")
    console.print()
