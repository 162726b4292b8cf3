"""
TextGen Guard: Constrained Decoding for Bounded, Grounded Text Completions

TextGen Guard serves completions from a pretrained language model over HTTP
while restricting, at every decoding step, which tokens the model may emit.

Key Features:
    - Stop after N sentences and/or M paragraphs
    - Keep output a verbatim continuation of caller-supplied context snippets
    - Boundary/END token IDs resolved from the tokenizer, not hard-coded
    - One shared model, serialized behind a lock, with optional backpressure
    - FastAPI server and Typer CLI

Quick Start:
    ```python
    from textgen_guard import TextGenerator
    from textgen_guard.config import ServerConfig

    generator = TextGenerator.from_config(ServerConfig(model_id="gpt2"))

    result = generator.generate(
        prompt="The quick brown fox",
        context=["the quick brown fox jumps over the lazy dog."],
        generate_sentences=1,
    )
    print(result.completions[0])
    ```

Architecture:
    1. Boundary Detector: regex cleanup + re-tokenize → sentence/paragraph counts
    2. Context Matcher: tokens that continue the generated suffix inside a snippet
    3. Decoding Policy: caps first, then context, else the full vocabulary
    4. Logits Processor: masks disallowed tokens inside `model.generate`
    5. Generator: locks the model, runs generation, strips the echoed prompt
"""

__version__ = "0.1.0"

# Main API exports - these are the primary user-facing classes
from textgen_guard.api import GenerationResult, TextGenerator  # noqa: F401

__all__ = [
    "TextGenerator",
    "GenerationResult",
]
