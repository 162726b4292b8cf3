"""
Exception hierarchy for TextGen Guard.

Errors raised inside the core propagate to the caller; the HTTP layer maps
them to status codes (busy → 503, anything else → 500).
"""


class TextGenGuardError(Exception):
    """Base class for all TextGen Guard errors."""


class ModelLoadError(TextGenGuardError):
    """The model or tokenizer could not be loaded. Fatal at startup."""


class GenerationError(TextGenGuardError):
    """A generation call failed; no partial completion is returned."""


class GeneratorBusyError(TextGenGuardError):
    """Too many requests are already waiting for the model lock."""
