"""
CLI command implementations.

This module contains the business logic for each CLI command:
- serve: Run the HTTP server
- generate: One-off constrained generation in the terminal
- boundaries: Show sentence/paragraph counts for a text
"""

import json
from pathlib import Path
from typing import List, Optional

from textgen_guard.config import ServerConfig
from .display import (
    console,
    create_progress_spinner,
    print_boundary_counts,
    print_completions,
    print_error,
    print_header,
    print_info,
    print_model_loading,
    print_result_stats,
    print_separator,
    print_success,
    print_warning,
)


def load_context_files(paths: List[Path]) -> List[str]:
    """
    Read context snippets from text files, one snippet per file.

    Raises:
        ValueError: If a file doesn't exist
    """
    snippets = []
    for path in paths:
        if not path.exists():
            raise ValueError(f"Context file not found: {path}")
        snippets.append(path.read_text())
    return snippets


def serve_command(config: ServerConfig) -> None:
    """
    Execute the serve command.

    Args:
        config: Fully resolved server configuration
    """
    from textgen_guard.server import serve

    print_header("TextGen Guard - Server")
    print_info(f"Model: [bold]{config.model_id}[/bold]")
    print_info(f"Listening on: [bold]http://{config.host}:{config.port}[/bold]")
    print_info(
        f"Beams: [bold]{config.num_beams}[/bold], "
        f"returned sequences: [bold]{config.num_return_sequences}[/bold], "
        f"max length: [bold]{config.max_length}[/bold]"
    )
    print_separator()

    serve(config)


def generate_command(
    config: ServerConfig,
    prompt: str,
    context: Optional[List[str]],
    sentences: Optional[int],
    paragraphs: Optional[int],
    output_path: Optional[Path],
) -> None:
    """
    Execute the generate command.

    Args:
        config: Model and generation settings
        prompt: Generation prompt
        context: Optional context snippets
        sentences: Optional sentence cap
        paragraphs: Optional paragraph cap
        output_path: Optional path to save completions as JSON
    """
    print_header("TextGen Guard - Constrained Generation")

    print_separator()
    print_info(f"Prompt: [bold]{prompt}[/bold]")
    if context:
        print_info(f"Context snippets: [bold]{len(context)}[/bold]")
    if sentences is not None:
        print_info(f"Sentence cap: [bold]{sentences}[/bold]")
    if paragraphs is not None:
        print_info(f"Paragraph cap: [bold]{paragraphs}[/bold]")
    print_separator()

    print_model_loading(config.model_id, config.device)

    from textgen_guard import TextGenerator

    with create_progress_spinner() as progress:
        progress.add_task(description="Loading model...", total=None)
        generator = TextGenerator.from_config(config)

    print_success("Model loaded")

    try:
        with create_progress_spinner() as progress:
            progress.add_task(description="Generating...", total=None)
            result = generator.generate(
                prompt,
                context=context,
                generate_sentences=sentences,
                generate_paragraphs=paragraphs,
            )
    finally:
        generator.close()

    console.print()
    print_completions(prompt, result.completions)
    if not any(result.completions):
        print_warning("Nothing generated: a cap of 0, or no context snippet continues the prompt")

    constraints = {}
    if sentences is not None:
        constraints["Sentence Cap"] = str(sentences)
    if paragraphs is not None:
        constraints["Paragraph Cap"] = str(paragraphs)
    if context:
        constraints["Context Snippets"] = str(len(context))

    print_result_stats(
        latency_ms=result.latency_ms,
        decoding_steps=result.decoding_steps,
        prompt_tokens=result.prompt_tokens,
        constraints=constraints,
    )

    if output_path is not None:
        with open(output_path, "w") as f:
            json.dump({"prompt": prompt, "completions": result.completions}, f, indent=2)
        print_success(f"Saved completions to: {output_path}")


def boundaries_command(text: str, model: str) -> None:
    """
    Execute the boundaries command.

    Only the tokenizer is loaded, not the model.

    Args:
        text: Text to analyze
        model: Model ID whose tokenizer defines the boundary tokens
    """
    from transformers import AutoTokenizer

    from textgen_guard.decoding import BoundaryTokens, RegexBoundaryDetector

    try:
        tokenizer = AutoTokenizer.from_pretrained(model)
    except Exception as e:
        print_error(f"Failed to load tokenizer for {model}: {e}")
        raise SystemExit(1)

    detector = RegexBoundaryDetector(tokenizer, BoundaryTokens.from_tokenizer(tokenizer))
    counts = detector.detect_boundaries(text)

    print_boundary_counts(
        text=text,
        cleaned=detector.clean(text),
        sentences=counts.sentences,
        paragraphs=counts.paragraphs,
    )
