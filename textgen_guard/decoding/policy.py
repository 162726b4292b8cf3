"""
Decoding policy - decide which tokens may be generated next.

A `DecodingPolicy` is built once per generation call from the request
(prompt, optional context, optional sentence/paragraph caps) and is then asked,
once per decoding step and per beam, which token IDs are allowed next.

Precedence (first match wins):
    1. Sentence cap reached   -> {END}
    2. Paragraph cap reached  -> {END}
    3. Context supplied       -> grounded continuations | {END}
    4. Otherwise              -> full vocabulary (special tokens excluded)

The policy keeps no state between calls. Everything is re-derived from the
token history it is given, so beam search can call it with any candidate row
in any order.

Caps are compared with equality. A cap of 0 is reached before the first token,
so generation stops immediately.

Usage:
    ```python
    from textgen_guard.decoding import BoundaryTokens, DecodingPolicy

    tokens = BoundaryTokens.from_tokenizer(tokenizer)
    policy = DecodingPolicy.for_request(
        tokenizer,
        tokens,
        prompt="Once upon a time",
        generate_sentences=2,
    )

    allowed = policy.allowed_tokens(input_ids[0].tolist())
    ```
"""

import logging
from typing import Any, FrozenSet, List, Optional, Sequence

from textgen_guard.decoding.boundaries import (
    BoundaryDetector,
    BoundaryTokens,
    RegexBoundaryDetector,
)
from textgen_guard.decoding.context_matcher import continuation_candidates

logger = logging.getLogger(__name__)


def unconstrained_vocabulary(tokenizer: Any) -> FrozenSet[int]:
    """
    Every token ID the tokenizer knows, minus its special (reserved) tokens.

    Args:
        tokenizer: HuggingFace-style tokenizer

    Returns:
        frozenset of allowed IDs

    Example:
        ```python
        vocab = unconstrained_vocabulary(gpt2_tokenizer)
        len(vocab)        # 50256
        50256 in vocab    # False, <|endoftext|> is reserved
        ```
    """
    special = set(getattr(tokenizer, "all_special_ids", None) or [])
    eos_token_id = getattr(tokenizer, "eos_token_id", None)
    if eos_token_id is not None:
        special.add(eos_token_id)
    return frozenset(i for i in range(len(tokenizer)) if i not in special)


class DecodingPolicy:
    """
    Per-request token allowance policy.

    Attributes:
        tokenizer: Tokenizer borrowed for decoding/re-tokenizing (not owned)
        boundary_tokens: END and boundary IDs for this vocabulary
        prompt_length: Number of prompt tokens at the start of every history
        generate_sentences: Sentence cap, or None
        generate_paragraphs: Paragraph cap, or None
        context_ids: Tokenized context snippets, or None
        detector: Boundary detection strategy
        vocabulary: Allowed set when nothing constrains the step
    """

    def __init__(
        self,
        tokenizer: Any,
        boundary_tokens: BoundaryTokens,
        prompt_length: int,
        generate_sentences: Optional[int] = None,
        generate_paragraphs: Optional[int] = None,
        context_ids: Optional[Sequence[Sequence[int]]] = None,
        detector: Optional[BoundaryDetector] = None,
        vocabulary: Optional[FrozenSet[int]] = None,
    ):
        if prompt_length < 0:
            raise ValueError("prompt_length must be >= 0")

        self.tokenizer = tokenizer
        self.boundary_tokens = boundary_tokens
        self.prompt_length = prompt_length
        self.generate_sentences = generate_sentences
        self.generate_paragraphs = generate_paragraphs
        self.context_ids = (
            tuple(tuple(ids) for ids in context_ids) if context_ids is not None else None
        )
        self.detector = detector or RegexBoundaryDetector(tokenizer, boundary_tokens)
        self.vocabulary = vocabulary if vocabulary is not None else unconstrained_vocabulary(tokenizer)
        self.end_only = frozenset([boundary_tokens.end_id])

    @classmethod
    def for_request(
        cls,
        tokenizer: Any,
        boundary_tokens: BoundaryTokens,
        prompt: str,
        context: Optional[Sequence[str]] = None,
        generate_sentences: Optional[int] = None,
        generate_paragraphs: Optional[int] = None,
        detector: Optional[BoundaryDetector] = None,
        vocabulary: Optional[FrozenSet[int]] = None,
    ) -> "DecodingPolicy":
        """
        Build a policy from raw request fields.

        The prompt is tokenized the same way the backend tokenizes it for
        generation (special tokens included), so `prompt_length` lines up with
        the model's input IDs. Each context snippet is tokenized on its own,
        without special tokens.
        """
        prompt_length = len(tokenizer.encode(prompt))

        context_ids = None
        if context is not None:
            context_ids = [tokenizer.encode(snippet, add_special_tokens=False) for snippet in context]

        return cls(
            tokenizer,
            boundary_tokens,
            prompt_length=prompt_length,
            generate_sentences=generate_sentences,
            generate_paragraphs=generate_paragraphs,
            context_ids=context_ids,
            detector=detector,
            vocabulary=vocabulary,
        )

    @property
    def has_context(self) -> bool:
        return self.context_ids is not None

    def generated_ids(self, previous_token_ids: Sequence[int]) -> List[int]:
        """Token IDs after the prompt."""
        return list(previous_token_ids[self.prompt_length:])

    def allowed_tokens(self, previous_token_ids: Sequence[int]) -> FrozenSet[int]:
        """
        Return the token IDs allowed at the next position.

        Args:
            previous_token_ids: Full history for one row (prompt + generated)

        Returns:
            frozenset of allowed token IDs
        """
        generated_ids = self.generated_ids(previous_token_ids)

        if self.generate_sentences is not None or self.generate_paragraphs is not None:
            text = self.tokenizer.decode(generated_ids, skip_special_tokens=True)
            counts = self.detector.detect_boundaries(text)

            if self.generate_sentences is not None and counts.sentences == self.generate_sentences:
                logger.debug(f"Sentence cap {self.generate_sentences} reached, forcing END")
                return self.end_only

            if self.generate_paragraphs is not None and counts.paragraphs == self.generate_paragraphs:
                logger.debug(f"Paragraph cap {self.generate_paragraphs} reached, forcing END")
                return self.end_only

        if self.has_context:
            return continuation_candidates(self.context_ids, generated_ids, self.boundary_tokens.end_id)

        return self.vocabulary

    __call__ = allowed_tokens

    def __repr__(self) -> str:
        return (
            f"DecodingPolicy(prompt_length={self.prompt_length}, "
            f"sentences={self.generate_sentences}, "
            f"paragraphs={self.generate_paragraphs}, "
            f"contexts={len(self.context_ids) if self.has_context else 0})"
        )
