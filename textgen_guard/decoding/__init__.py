"""
Constrained decoding engine module.

This module implements the per-step decoding policy that restricts which tokens
the model may emit, so output respects sentence/paragraph caps and, when
context snippets are given, stays a verbatim continuation of those snippets.

Components:
    - boundaries: Count sentence/paragraph boundaries (regex cleanup + re-tokenize)
    - context_matcher: Tokens that continue the generated suffix inside a snippet
    - policy: DecodingPolicy combining caps and context with fixed precedence
    - logits_processor: HuggingFace LogitsProcessor applying the policy as a mask

Key Algorithm - one decoding step:
    1. Take the tokens generated after the prompt
    2. Decode them and count sentence/paragraph boundaries
    3. A reached cap allows only the END token
    4. With context, allow only grounded continuations (plus END)
    5. Otherwise allow the whole vocabulary

Example:
    ```python
    from textgen_guard.decoding import (
        AllowedTokensLogitsProcessor,
        BoundaryTokens,
        DecodingPolicy,
    )

    tokens = BoundaryTokens.from_tokenizer(tokenizer)
    policy = DecodingPolicy.for_request(
        tokenizer, tokens,
        prompt="The fox",
        context=["the quick brown fox jumps over the lazy dog"],
        generate_sentences=1,
    )
    processor = AllowedTokensLogitsProcessor(policy)
    model.generate(..., logits_processor=LogitsProcessorList([processor]))
    ```
"""

from textgen_guard.decoding.boundaries import (
    BoundaryCounts,
    BoundaryDetector,
    BoundaryTokens,
    RegexBoundaryDetector,
    classify,
    count_boundaries,
)
from textgen_guard.decoding.context_matcher import (
    continuation_candidates,
    find_subsequence,
)
from textgen_guard.decoding.policy import DecodingPolicy, unconstrained_vocabulary
from textgen_guard.decoding.logits_processor import AllowedTokensLogitsProcessor

__all__ = [
    "BoundaryCounts",
    "BoundaryDetector",
    "BoundaryTokens",
    "RegexBoundaryDetector",
    "classify",
    "count_boundaries",
    "continuation_candidates",
    "find_subsequence",
    "DecodingPolicy",
    "unconstrained_vocabulary",
    "AllowedTokensLogitsProcessor",
]
