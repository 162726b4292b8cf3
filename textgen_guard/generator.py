"""
Completion orchestrator - one shared model, one generation at a time.

This is the core class that ties all components together:
    1. Load the model backend once (process lifetime)
    2. Resolve END/boundary token IDs from the tokenizer
    3. Per request: lock the model and tokenizer
    4. Build a DecodingPolicy bound to the request's prompt/context/caps
    5. Generate with the policy applied as a logits processor
    6. Strip the echoed prompt from every returned sequence

Concurrency:
    The model and the tokenizer are each guarded by a `threading.Lock`, held
    for the whole generation call, so at most one generation runs at a time.
    Waiting requests are woken in whatever order the lock grants it (Python's
    Lock is not fair). This single-flight behavior is the intended capacity
    limit for a shared, non-thread-safe model. With `max_pending_requests`
    set, requests arriving while that many are already waiting fail fast
    with GeneratorBusyError instead of queueing.

Usage:
    ```python
    from textgen_guard import TextGenerator
    from textgen_guard.config import ServerConfig

    generator = TextGenerator.from_config(ServerConfig(model_id="gpt2"))

    result = generator.generate(
        prompt="The quick brown fox",
        generate_sentences=1,
    )
    print(result.completions[0])
    ```
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from textgen_guard.backends.base import Backend
from textgen_guard.config import ServerConfig
from textgen_guard.decoding import (
    AllowedTokensLogitsProcessor,
    BoundaryDetector,
    BoundaryTokens,
    DecodingPolicy,
    unconstrained_vocabulary,
)
from textgen_guard.exceptions import GenerationError, GeneratorBusyError, TextGenGuardError
from textgen_guard.utils import measure_time

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """
    Result of one generation call.

    Attributes:
        completions: Completion strings with the prompt removed, one per returned sequence
        latency_ms: Time spent in the model's generate call, in milliseconds
        decoding_steps: Number of times the model consulted the policy
        prompt_tokens: Prompt length in tokens
    """
    completions: List[str]
    latency_ms: float
    decoding_steps: int
    prompt_tokens: int


def strip_prompt(sequences: Sequence[str], prompt: str) -> List[str]:
    """
    Remove the echoed prompt from each sequence by character length.

    The prompt length is measured once, in characters, and every sequence is
    sliced at that offset. Sequences that do not start with the prompt (the
    tokenizer did not round-trip it exactly) are still sliced at the same
    offset and logged.

    Example:
        ```python
        strip_prompt(["Hello world. Bye."], "Hello")
        # [" world. Bye."]
        ```
    """
    prompt_len = len(prompt)
    completions = []
    for sequence in sequences:
        if not sequence.startswith(prompt):
            logger.warning(
                "Generated sequence does not start with the prompt; "
                "character-offset slicing may be misaligned"
            )
        completions.append(sequence[prompt_len:])
    return completions


class TextGenerator:
    """
    Serializes constrained generation over a shared backend.

    Attributes:
        backend: Loaded model backend (borrowed under the model lock)
        config: Generation and capacity settings
        boundary_tokens: END/boundary IDs resolved from the tokenizer
        vocabulary: Unconstrained allowed set, shared read-only by all policies
    """

    def __init__(
        self,
        backend: Backend,
        config: Optional[ServerConfig] = None,
        detector_factory: Optional[Callable[[Any, BoundaryTokens], BoundaryDetector]] = None,
    ):
        """
        Initialize generator.

        Args:
            backend: Backend with a loaded model and tokenizer
            config: Settings (defaults to ServerConfig())
            detector_factory: Optional factory `(tokenizer, boundary_tokens) -> BoundaryDetector`
                              to replace the default regex heuristic
        """
        self.backend = backend
        self.config = config or ServerConfig()
        self.detector_factory = detector_factory

        tokenizer = backend.get_tokenizer()
        self.boundary_tokens = BoundaryTokens.from_tokenizer(tokenizer)
        self.vocabulary = unconstrained_vocabulary(tokenizer)

        self._model_lock = threading.Lock()
        self._tokenizer_lock = threading.Lock()
        self._pending_lock = threading.Lock()
        self._waiting = 0
        self._closed = False

        logger.info(
            f"TextGenerator ready: {backend!r}, vocab={len(self.vocabulary)}, "
            f"max_pending={self.config.max_pending_requests}"
        )

    @classmethod
    def from_config(cls, config: ServerConfig) -> "TextGenerator":
        """
        Load the configured model and build a generator around it.

        Raises:
            ModelLoadError: If the model or tokenizer cannot be loaded
        """
        from textgen_guard.backends.transformers_backend import TransformersBackend

        config.validate()
        backend = TransformersBackend(config.model_id, device=config.device)
        return cls(backend, config)

    @property
    def waiting(self) -> int:
        """Requests currently queued for the model lock."""
        return self._waiting

    @property
    def busy(self) -> bool:
        """True while a generation holds the model lock."""
        return self._model_lock.locked()

    def build_policy(
        self,
        prompt: str,
        context: Optional[Sequence[str]] = None,
        generate_sentences: Optional[int] = None,
        generate_paragraphs: Optional[int] = None,
    ) -> DecodingPolicy:
        """Build the per-request policy. Call with the tokenizer lock held."""
        tokenizer = self.backend.get_tokenizer()
        detector = None
        if self.detector_factory is not None:
            detector = self.detector_factory(tokenizer, self.boundary_tokens)

        return DecodingPolicy.for_request(
            tokenizer,
            self.boundary_tokens,
            prompt=prompt,
            context=context,
            generate_sentences=generate_sentences,
            generate_paragraphs=generate_paragraphs,
            detector=detector,
            vocabulary=self.vocabulary,
        )

    def generate(
        self,
        prompt: str,
        context: Optional[Sequence[str]] = None,
        generate_sentences: Optional[int] = None,
        generate_paragraphs: Optional[int] = None,
    ) -> GenerationResult:
        """
        Generate constrained completions for one request.

        Blocks until the model is free, then for the whole call.

        Args:
            prompt: Non-empty prompt
            context: Optional reference snippets to stay grounded in
            generate_sentences: Stop after this many sentences
            generate_paragraphs: Stop after this many paragraphs

        Returns:
            GenerationResult with one completion per returned sequence

        Raises:
            ValueError: If the prompt is empty or a cap is negative
            GeneratorBusyError: If the waiting queue is full
            GenerationError: If generation fails
        """
        if not prompt:
            raise ValueError("prompt must not be empty")
        for name, cap in (("generate_sentences", generate_sentences),
                          ("generate_paragraphs", generate_paragraphs)):
            if cap is not None and cap < 0:
                raise ValueError(f"{name} must be >= 0")
        if self._closed:
            raise GenerationError("Generator is closed")

        self._enqueue()
        try:
            self._model_lock.acquire()
        finally:
            with self._pending_lock:
                self._waiting -= 1

        try:
            with self._tokenizer_lock:
                return self._generate_locked(prompt, context, generate_sentences, generate_paragraphs)
        finally:
            self._model_lock.release()

    def _enqueue(self) -> None:
        limit = self.config.max_pending_requests
        with self._pending_lock:
            if limit is not None and self._waiting >= limit and self._model_lock.locked():
                logger.warning(f"Rejecting request: {self._waiting} already waiting (limit {limit})")
                raise GeneratorBusyError(
                    f"Generator busy: {self._waiting} request(s) already waiting"
                )
            self._waiting += 1

    def _generate_locked(
        self,
        prompt: str,
        context: Optional[Sequence[str]],
        generate_sentences: Optional[int],
        generate_paragraphs: Optional[int],
    ) -> GenerationResult:
        if self._closed:
            raise GenerationError("Generator is closed")

        try:
            policy = self.build_policy(prompt, context, generate_sentences, generate_paragraphs)
            processor = AllowedTokensLogitsProcessor(policy)

            logger.info(
                f"Generating: prompt_tokens={policy.prompt_length}, "
                f"sentences={generate_sentences}, paragraphs={generate_paragraphs}, "
                f"contexts={len(context) if context else 0}"
            )

            with measure_time() as timer:
                sequences = self.backend.generate(
                    prompt=prompt,
                    logits_processor=processor,
                    **self.config.generation_kwargs()
                )
        except TextGenGuardError:
            raise
        except Exception as e:
            logger.error(f"Generation failed: {e}")
            raise GenerationError(str(e)) from e

        completions = strip_prompt(sequences, prompt)
        latency_ms = timer.elapsed_ms

        logger.info(
            f"Generated {len(completions)} completion(s) in {latency_ms:.0f} ms "
            f"({processor.steps} decoding steps)"
        )

        return GenerationResult(
            completions=completions,
            latency_ms=latency_ms,
            decoding_steps=processor.steps,
            prompt_tokens=policy.prompt_length,
        )

    def get_info(self) -> Dict[str, Any]:
        """Get generator information."""
        info = self.backend.get_model_info()
        info.update({
            'busy': self.busy,
            'waiting': self.waiting,
            'num_beams': self.config.num_beams,
            'num_return_sequences': self.config.num_return_sequences,
            'max_length': self.config.max_length,
        })
        return info

    def close(self) -> None:
        """Release the backend. Waits for an in-flight generation to finish."""
        with self._model_lock:
            if self._closed:
                return
            self._closed = True
            self.backend.close()
        logger.info("TextGenerator closed")

    def __repr__(self) -> str:
        return f"TextGenerator(backend={self.backend!r}, beams={self.config.num_beams})"
