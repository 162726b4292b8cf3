"""
Boundary detection - count sentences and paragraphs in generated text.

The decoding policy stops generation once a requested number of sentences or
paragraphs has been produced. It has to answer in token IDs, so boundaries are
counted at the token level: the text is re-tokenized and occurrences of the
sentence-boundary IDs (".", "?", "!") and paragraph-boundary IDs ("\\n",
"\\n\\n") are counted.

Counting raw tokens over-counts: the period in "U.S." or "3.14" is the same
token as a sentence-ending period. So the text first goes through a regex
cleanup that deletes common false positives, then gets re-tokenized:

    "The U.S. economy grew."  --clean-->  "The  economy grew."  -->  1 sentence

The cleanup is a fixed heuristic, not a full sentence splitter. Titles outside
its short list ("Gen.", "Capt.") still count as sentence ends. It lives
behind the `BoundaryDetector` interface so it can be swapped or tuned without
touching the policy.

Usage:
    ```python
    from transformers import AutoTokenizer
    from textgen_guard.decoding import BoundaryTokens, RegexBoundaryDetector

    tokenizer = AutoTokenizer.from_pretrained("gpt2")
    tokens = BoundaryTokens.from_tokenizer(tokenizer)
    detector = RegexBoundaryDetector(tokenizer, tokens)

    counts = detector.detect_boundaries("Hello. World.\\n")
    # BoundaryCounts(sentences=2, paragraphs=1)
    ```
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, Optional, Pattern, Sequence, Union

logger = logging.getLogger(__name__)

SENTENCE_MARKERS = (".", "?", "!")
PARAGRAPH_MARKERS = ("\n", "\n\n")

# False-positive sentence enders, removed before counting:
#   "3.14"           decimal numbers (must precede the abbreviation rule)
#   "U.S.", "e.g."   letter/digit abbreviations
#   "Mr. S", "Dr. J" known title, space, capital letter
DEFAULT_CLEANUP_PATTERN = (
    r"\d+\.\d+"
    r"|[a-zA-Z0-9]?\.[a-zA-Z0-9]*\."
    r"|\b(?:Mr|Mrs|Ms|Dr|St|Jr|Sr|Prof)\.\s[A-Z]"
)


@dataclass(frozen=True)
class BoundaryCounts:
    """Number of sentence and paragraph boundaries found in a text."""
    sentences: int
    paragraphs: int


@dataclass(frozen=True)
class BoundaryTokens:
    """
    Reserved token IDs used by the decoding policy.

    Attributes:
        end_id: End-of-sequence token that stops generation
        sentence_ids: Tokens that end a sentence
        paragraph_ids: Tokens that end a paragraph
    """
    end_id: int
    sentence_ids: FrozenSet[int]
    paragraph_ids: FrozenSet[int]

    @classmethod
    def from_tokenizer(
        cls,
        tokenizer: Any,
        sentence_markers: Iterable[str] = SENTENCE_MARKERS,
        paragraph_markers: Iterable[str] = PARAGRAPH_MARKERS,
    ) -> "BoundaryTokens":
        """
        Resolve boundary IDs from the tokenizer's own vocabulary.

        Each marker must encode to exactly one token; markers that do not are
        skipped with a warning.

        Args:
            tokenizer: HuggingFace-style tokenizer
            sentence_markers: Strings that end a sentence
            paragraph_markers: Strings that end a paragraph

        Returns:
            BoundaryTokens for this vocabulary

        Raises:
            ValueError: If the tokenizer has no EOS token

        Example:
            ```python
            tokens = BoundaryTokens.from_tokenizer(gpt2_tokenizer)
            # BoundaryTokens(end_id=50256,
            #                sentence_ids=frozenset({13, 30, 0}),
            #                paragraph_ids=frozenset({198, 628}))
            ```
        """
        end_id = getattr(tokenizer, "eos_token_id", None)
        if end_id is None:
            raise ValueError("Tokenizer has no eos_token_id; cannot resolve END token")

        tokens = cls(
            end_id=end_id,
            sentence_ids=_single_token_ids(tokenizer, sentence_markers),
            paragraph_ids=_single_token_ids(tokenizer, paragraph_markers),
        )
        logger.info(
            f"Resolved boundary tokens: end={tokens.end_id}, "
            f"sentence={sorted(tokens.sentence_ids)}, "
            f"paragraph={sorted(tokens.paragraph_ids)}"
        )
        return tokens


def _single_token_ids(tokenizer: Any, markers: Iterable[str]) -> FrozenSet[int]:
    ids = set()
    for marker in markers:
        encoded = tokenizer.encode(marker, add_special_tokens=False)
        if len(encoded) != 1:
            logger.warning(
                f"Boundary marker {marker!r} encodes to {len(encoded)} tokens, skipping"
            )
            continue
        ids.add(encoded[0])
    return frozenset(ids)


class BoundaryDetector(ABC):
    """
    Strategy interface for counting sentence and paragraph boundaries.

    Implementations must be pure: the same text always yields the same counts.
    """

    @abstractmethod
    def detect_boundaries(self, text: str) -> BoundaryCounts:
        """Count sentence and paragraph boundaries in `text`."""


class RegexBoundaryDetector(BoundaryDetector):
    """
    Two-pass detector: regex cleanup, then token counting.

    Attributes:
        tokenizer: Tokenizer used to re-tokenize the cleaned text
        boundary_tokens: Sentence/paragraph IDs to count
        pattern: Compiled cleanup regex
    """

    def __init__(
        self,
        tokenizer: Any,
        boundary_tokens: BoundaryTokens,
        pattern: Union[str, Pattern, None] = None,
    ):
        self.tokenizer = tokenizer
        self.boundary_tokens = boundary_tokens
        if pattern is None:
            pattern = DEFAULT_CLEANUP_PATTERN
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern

    def clean(self, text: str) -> str:
        """Remove abbreviation and decimal patterns from `text`."""
        return self.pattern.sub("", text)

    def detect_boundaries(self, text: str) -> BoundaryCounts:
        cleaned = self.clean(text)
        token_ids = self.tokenizer.encode(cleaned, add_special_tokens=False)
        return count_boundaries(token_ids, self.boundary_tokens)

    def __repr__(self) -> str:
        return f"RegexBoundaryDetector(pattern={self.pattern.pattern!r})"


def count_boundaries(token_ids: Sequence[int], boundary_tokens: BoundaryTokens) -> BoundaryCounts:
    """Count boundary IDs in an already-tokenized sequence."""
    sentences = 0
    paragraphs = 0
    for token_id in token_ids:
        if token_id in boundary_tokens.sentence_ids:
            sentences += 1
        if token_id in boundary_tokens.paragraph_ids:
            paragraphs += 1
    return BoundaryCounts(sentences=sentences, paragraphs=paragraphs)


def classify(
    text: str,
    tokenizer: Any,
    boundary_tokens: Optional[BoundaryTokens] = None,
) -> BoundaryCounts:
    """
    Count boundaries in `text` with the default regex detector.

    Convenience wrapper for one-off use (CLI, notebooks). The policy holds its
    own detector instance instead.
    """
    if boundary_tokens is None:
        boundary_tokens = BoundaryTokens.from_tokenizer(tokenizer)
    return RegexBoundaryDetector(tokenizer, boundary_tokens).detect_boundaries(text)
