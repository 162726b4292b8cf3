"""
Context matcher - keep generation on a verbatim path through reference text.

When a request carries context snippets, the generated tokens must stay a
literal substring of one of them. At each step we look for every
non-overlapping occurrence of the generated suffix inside each snippet and
collect the token that immediately follows each occurrence:

    context:   [the, quick, brown, fox, jumps]
    generated: [the, quick]
    matches:    ^^^^^^^^^^  -> next token "brown"

    candidates = {brown} | {END}

The END token is always a candidate so generation can stop when no
continuation exists. With nothing generated yet, every token of every snippet
is a valid opening token.

Cost per step is O(total context length x suffix length), fine for short
reference passages.
"""

import logging
from typing import FrozenSet, List, Optional, Sequence, Set

logger = logging.getLogger(__name__)


def find_subsequence(
    haystack: Sequence[int],
    needle: Sequence[int],
    start: int = 0,
) -> Optional[int]:
    """
    Find the first index >= `start` where `needle` occurs contiguously in `haystack`.

    Args:
        haystack: Sequence to search
        needle: Non-empty sequence to find
        start: First index to consider

    Returns:
        Start index of the match, or None if there is none

    Example:
        ```python
        find_subsequence([1, 2, 3, 1, 2], [1, 2])           # 0
        find_subsequence([1, 2, 3, 1, 2], [1, 2], start=1)  # 3
        find_subsequence([1, 2, 3], [4])                    # None
        ```
    """
    width = len(needle)
    if width == 0:
        raise ValueError("needle must not be empty")

    first = needle[0]
    last_start = len(haystack) - width
    for i in range(start, last_start + 1):
        if haystack[i] == first and list(haystack[i:i + width]) == list(needle):
            return i
    return None


def next_tokens(context_ids: Sequence[int], generated_ids: Sequence[int]) -> List[int]:
    """
    Tokens that follow each non-overlapping occurrence of `generated_ids`.

    A match that ends at the last position of the context contributes nothing.
    The search resumes right after each match.
    """
    candidates = []
    position = 0
    while True:
        start = find_subsequence(context_ids, generated_ids, position)
        if start is None:
            break
        end = start + len(generated_ids)
        if end < len(context_ids):
            candidates.append(context_ids[end])
        position = end
    return candidates


def continuation_candidates(
    context_sequences: Sequence[Sequence[int]],
    generated_ids: Sequence[int],
    end_id: int,
) -> FrozenSet[int]:
    """
    Compute the tokens allowed next under context grounding.

    Args:
        context_sequences: One token sequence per context snippet
        generated_ids: Tokens generated so far (prompt excluded)
        end_id: End-of-sequence token, always allowed

    Returns:
        Union of candidates across snippets, plus `end_id`

    Example:
        ```python
        continuation_candidates([[5, 6, 7, 8]], [5, 6], end_id=0)
        # frozenset({7, 0})

        continuation_candidates([[5, 6, 7, 8]], [], end_id=0)
        # frozenset({5, 6, 7, 8, 0})
        ```
    """
    allowed: Set[int] = {end_id}

    if len(generated_ids) == 0:
        for context_ids in context_sequences:
            allowed.update(context_ids)
        return frozenset(allowed)

    for context_ids in context_sequences:
        allowed.update(next_tokens(context_ids, generated_ids))

    logger.debug(
        f"Context continuation after {len(generated_ids)} tokens: "
        f"{len(allowed)} allowed token(s)"
    )
    return frozenset(allowed)
