"""
Main CLI entry point using Typer.

This module defines the command-line interface for TextGen Guard.
It provides three commands: serve, generate, and boundaries.
"""

from pathlib import Path
from typing import List, Optional

import typer
from typing_extensions import Annotated

from textgen_guard.config import ServerConfig
from textgen_guard.utils import setup_logging
from .commands import boundaries_command, generate_command, load_context_files, serve_command
from .display import print_error


# Create Typer app
app = typer.Typer(
    name="textgen-guard",
    help="TextGen Guard - Constrained text generation server",
    add_completion=False,
    rich_markup_mode="rich"
)


ModelOption = Annotated[
    Optional[str],
    typer.Option("--model", "-m", help="Pretrained model ID (default: gpt2 or TEXTGEN_GUARD_MODEL)")
]
DeviceOption = Annotated[
    Optional[str],
    typer.Option("--device", "-d", help="Device: cpu, cuda, mps, or None for auto-detect")
]
MaxLengthOption = Annotated[
    Optional[int],
    typer.Option("--max-length", help="Maximum total tokens (prompt + completion)")
]
NumBeamsOption = Annotated[
    Optional[int],
    typer.Option("--num-beams", help="Beam width")
]
NumReturnOption = Annotated[
    Optional[int],
    typer.Option("--num-return-sequences", "-n", help="Completions returned per request")
]
LogLevelOption = Annotated[
    Optional[str],
    typer.Option("--log-level", help="Log level: DEBUG, INFO, WARNING, ERROR")
]


def _resolve_config(**overrides) -> ServerConfig:
    config = ServerConfig.from_env().override(**overrides)
    config.validate()
    setup_logging(config.log_level)
    return config


@app.command("serve")
def serve(
    model: ModelOption = None,
    device: DeviceOption = None,
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Listen address")
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Listen port")
    ] = None,
    max_length: MaxLengthOption = None,
    num_beams: NumBeamsOption = None,
    num_return_sequences: NumReturnOption = None,
    max_pending: Annotated[
        Optional[int],
        typer.Option("--max-pending", help="Reject requests when this many are already waiting")
    ] = None,
    log_level: LogLevelOption = None,
) -> None:
    """
    Load the model and serve POST /generate.

    Example:
        textgen-guard serve --model gpt2 --port 3030 --num-return-sequences 5
    """
    try:
        config = _resolve_config(
            model_id=model,
            device=device,
            host=host,
            port=port,
            max_length=max_length,
            num_beams=num_beams,
            num_return_sequences=num_return_sequences,
            max_pending_requests=max_pending,
            log_level=log_level,
        )
        serve_command(config)
    except Exception as e:
        print_error(f"Command failed: {e}")
        raise typer.Exit(code=1)


@app.command("generate")
def generate(
    prompt: Annotated[
        str,
        typer.Option("--prompt", "-p", help="Generation prompt")
    ],
    context: Annotated[
        Optional[List[str]],
        typer.Option("--context", "-c", help="Context snippet (can be used multiple times)")
    ] = None,
    context_files: Annotated[
        Optional[List[Path]],
        typer.Option("--context-file", help="File holding one context snippet (repeatable)",
                     exists=True, file_okay=True, dir_okay=False)
    ] = None,
    sentences: Annotated[
        Optional[int],
        typer.Option("--sentences", "-s", min=0, help="Stop after this many sentences")
    ] = None,
    paragraphs: Annotated[
        Optional[int],
        typer.Option("--paragraphs", min=0, help="Stop after this many paragraphs")
    ] = None,
    model: ModelOption = None,
    device: DeviceOption = None,
    max_length: MaxLengthOption = None,
    num_beams: NumBeamsOption = None,
    num_return_sequences: NumReturnOption = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Path to save completions as JSON")
    ] = None,
    log_level: LogLevelOption = None,
) -> None:
    """
    Generate constrained completions for one prompt.

    Example:
        textgen-guard generate \\
            --prompt "The quick brown fox" \\
            --context "the quick brown fox jumps over the lazy dog" \\
            --sentences 1
    """
    try:
        config = _resolve_config(
            model_id=model,
            device=device,
            max_length=max_length,
            num_beams=num_beams,
            num_return_sequences=num_return_sequences,
            log_level=log_level or "WARNING",
        )

        snippets = list(context or [])
        if context_files:
            snippets.extend(load_context_files(context_files))

        generate_command(
            config=config,
            prompt=prompt,
            context=snippets or None,
            sentences=sentences,
            paragraphs=paragraphs,
            output_path=output,
        )
    except Exception as e:
        print_error(f"Command failed: {e}")
        raise typer.Exit(code=1)


@app.command("boundaries")
def boundaries(
    text: Annotated[
        str,
        typer.Option("--text", "-t", help="Text to analyze")
    ],
    model: Annotated[
        str,
        typer.Option("--model", "-m", help="Model ID whose tokenizer to use")
    ] = "gpt2",
) -> None:
    """
    Show how many sentences and paragraphs the policy would count in a text.

    Example:
        textgen-guard boundaries --text "The U.S. economy grew. Prices fell."
    """
    try:
        boundaries_command(text=text, model=model)
    except Exception as e:
        print_error(f"Command failed: {e}")
        raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit")
    ] = False,
) -> None:
    """
    TextGen Guard - Constrained text generation server.

    Caps completions at N sentences / M paragraphs and keeps them grounded in
    caller-supplied context.
    """
    if version:
        from textgen_guard import __version__
        typer.echo(f"TextGen Guard version {__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def cli() -> None:
    """CLI entry point for the console script."""
    app()


if __name__ == "__main__":
    cli()
