"""
High-level Python API for TextGen Guard.

This module provides the main user-facing API for constrained text generation.
"""

from textgen_guard.generator import GenerationResult, TextGenerator, strip_prompt

# Re-export for convenience
__all__ = ["TextGenerator", "GenerationResult", "strip_prompt"]
