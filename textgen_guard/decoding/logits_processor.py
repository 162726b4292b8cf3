"""
Logits Processor - apply a DecodingPolicy during HuggingFace generation.

During generation the model produces logits (scores) for every token in the
vocabulary. We ask the policy which tokens are allowed for each row of
`input_ids` and set the logits of every other token to -inf, so the model can
only pick allowed tokens.

Flow:
    1. Model computes logits for all tokens
    2. generate() calls the processor with (input_ids, scores)
    3. For each row (one per beam), the policy returns the allowed set
    4. Scores outside the allowed set are set to -inf
    5. Beam search continues from the masked scores

Usage:
    ```python
    from transformers import AutoModelForCausalLM, AutoTokenizer, LogitsProcessorList
    from textgen_guard.decoding import AllowedTokensLogitsProcessor

    processor = AllowedTokensLogitsProcessor(policy)

    output = model.generate(
        input_ids,
        logits_processor=LogitsProcessorList([processor]),
        num_beams=5,
        max_length=200
    )
    ```
"""

import logging
from typing import Dict, FrozenSet, Tuple

import torch
from torch import Tensor

logger = logging.getLogger(__name__)


class AllowedTokensLogitsProcessor:
    """
    LogitsProcessor that masks every token the policy does not allow.

    This implements the HuggingFace LogitsProcessor interface:
        __call__(input_ids: Tensor, scores: Tensor) -> Tensor

    Attributes:
        policy: DecodingPolicy for the current request
        steps: Number of calls made so far (for logging)
    """

    def __init__(self, policy):
        """
        Initialize AllowedTokensLogitsProcessor.

        Args:
            policy: Object with `allowed_tokens(token_ids) -> FrozenSet[int]`
                    and a `vocabulary` attribute for the unconstrained case
        """
        self.policy = policy
        self.steps = 0
        self._mask_cache: Dict[Tuple[int, str], Tensor] = {}

        logger.debug(f"AllowedTokensLogitsProcessor initialized with {policy!r}")

    def __call__(self, input_ids: Tensor, scores: Tensor) -> Tensor:
        """
        Mask disallowed tokens for every row.

        Args:
            input_ids: Tensor of shape (batch_size * num_beams, seq_len)
            scores: Tensor of shape (batch_size * num_beams, vocab_size)

        Returns:
            Tensor: scores with disallowed tokens set to -inf (modified in place)
        """
        self.steps += 1
        vocab_size = scores.shape[1]

        for row in range(input_ids.shape[0]):
            allowed = self.policy.allowed_tokens(input_ids[row].tolist())
            mask = self._get_mask(allowed, vocab_size, scores.device)
            scores[row, mask] = float('-inf')

        return scores

    def _get_mask(self, allowed: FrozenSet[int], vocab_size: int, device: torch.device) -> Tensor:
        # The unconstrained vocabulary is the same object every step; build its mask once.
        if allowed is getattr(self.policy, 'vocabulary', None):
            key = (vocab_size, str(device))
            mask = self._mask_cache.get(key)
            if mask is None:
                mask = self._create_mask(allowed, vocab_size, device)
                self._mask_cache[key] = mask
            return mask

        return self._create_mask(allowed, vocab_size, device)

    @staticmethod
    def _create_mask(allowed: FrozenSet[int], vocab_size: int, device: torch.device) -> Tensor:
        """
        Create boolean mask for disallowed tokens.

        Args:
            allowed: Set of allowed token IDs
            vocab_size: Width of the scores tensor
            device: Torch device (cpu/cuda/mps)

        Returns:
            Tensor: Boolean mask where True = disallowed (should be masked)

        Example:
            ```python
            mask = AllowedTokensLogitsProcessor._create_mask({1, 5}, 8, 'cpu')
            # tensor([True, False, True, True, True, False, True, True])
            ```
        """
        mask = torch.ones(vocab_size, dtype=torch.bool, device=device)

        # IDs beyond the scores width (tokenizer larger than the LM head) are dropped
        valid = [token_id for token_id in allowed if 0 <= token_id < vocab_size]
        if valid:
            indices = torch.tensor(valid, device=device, dtype=torch.long)
            mask[indices] = False

        return mask

    def __repr__(self) -> str:
        return f"AllowedTokensLogitsProcessor(policy={self.policy!r}, steps={self.steps})"
