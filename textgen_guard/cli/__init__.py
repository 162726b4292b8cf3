"""
Command-line interface module.

This module provides a rich terminal interface for TextGen Guard using Typer and Rich.

Commands:
    - serve: Load the model and serve POST /generate over HTTP
    - generate: Run one constrained generation from the terminal
    - boundaries: Show the sentence/paragraph counts the policy sees for a text

Example Usage:
    ```bash
    # Start the server
    textgen-guard serve --model gpt2 --port 3030

    # Five completions per request
    textgen-guard serve --num-beams 5 --num-return-sequences 5

    # One-off generation, grounded and capped
    textgen-guard generate \\
        --prompt "The quick" \\
        --context "the quick brown fox jumps over the lazy dog" \\
        --sentences 1

    # Check the abbreviation heuristic
    textgen-guard boundaries --text "Dr. Smith met the U.S. envoy."
    ```
"""

from .main import app

__all__ = ["app"]
