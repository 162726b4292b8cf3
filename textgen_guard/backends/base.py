"""
Backend abstraction - the language model the decoding policy constrains.

A backend owns one model and its tokenizer. The generator only needs three
things from it: the tokenizer (to build policies), a `generate` call that
accepts a per-step logits processor, and some metadata for logging and the
health endpoint.

Backend Protocol:
    - generate(): Run generation and return full decoded sequences
    - get_tokenizer(): Tokenizer used for prompts, context and policy checks
    - get_model_info(): Model metadata
    - close(): Release the model at shutdown

Backends are not thread-safe. `TextGenerator` serializes access to them.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class Backend(ABC):
    """
    Abstract base class for model backends.

    Attributes:
        model_id: Pretrained resource identifier
        device: Device the model runs on (cpu, cuda, mps)
    """

    model_id: str = "unknown"
    device: Optional[str] = None

    @abstractmethod
    def generate(
        self,
        prompt: str,
        logits_processor: Optional[Any] = None,
        max_length: int = 200,
        num_beams: int = 1,
        num_return_sequences: int = 1,
        **kwargs
    ) -> List[str]:
        """
        Generate completions for a single prompt.

        Args:
            prompt: Input prompt
            logits_processor: Optional per-step processor restricting tokens
            max_length: Maximum total length in tokens (prompt included)
            num_beams: Beam width
            num_return_sequences: Number of sequences to return
            **kwargs: Backend-specific generation options

        Returns:
            List[str]: Decoded sequences, each starting with the echoed prompt
        """

    @abstractmethod
    def get_tokenizer(self) -> Any:
        """Return the tokenizer instance."""

    @abstractmethod
    def get_model_info(self) -> Dict[str, Any]:
        """
        Get model metadata.

        Returns:
            Dict with at least model_id, device and vocab_size
        """

    def close(self) -> None:
        """Release model resources. Default: nothing to release."""

    def __repr__(self) -> str:
        info = self.get_model_info()
        return (
            f"{self.__class__.__name__}("
            f"model={info.get('model_id', 'unknown')}, "
            f"device={info.get('device', 'unknown')})"
        )
