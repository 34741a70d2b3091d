from __future__ import annotations

import math
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from fit_repo.config import SizeValidation
from fit_repo.settings import get_settings

if TYPE_CHECKING:
    from fit_repo.settings import Settings

DEFAULT_PROMPT_TOKEN_LIMIT = 120_000


@runtime_checkable
class TokenEstimator(Protocol):
    """Anything that can count tokens for a piece of text."""

    def __call__(self, text: str) -> int: ...


class RatioTokenEstimator:
    """Approximate tokens as ``ceil(len(text) * tokens_per_char)``."""

    def __init__(self, tokens_per_char: float) -> None:
        self.tokens_per_char = tokens_per_char

    def __call__(self, text: str) -> int:
        return math.ceil(len(text) * self.tokens_per_char)


class BudgetCalculator:
    """Turn token budgets into character budgets.

    The first chunk may use every token not reserved for the prompt template
    and the response. Later chunks also leave room for the summary carried
    over from earlier chunks. Character budgets are floored so they never
    over-allocate.
    """

    def __init__(self, settings: Settings | None = None, estimator: TokenEstimator | None = None) -> None:
        self.settings = settings or get_settings()
        self.estimator = estimator or RatioTokenEstimator(self.settings.tokens_per_char)

    def estimate_tokens(self, text: str) -> int:
        return self.estimator(text)

    def tokens_to_chars(self, tokens: int) -> int:
        return math.floor(tokens / self.settings.tokens_per_char)

    @property
    def available_content_tokens(self) -> int:
        return self.settings.available_content_tokens

    @property
    def first_chunk_chars(self) -> int:
        return self.tokens_to_chars(self.available_content_tokens)

    @property
    def subsequent_chunk_tokens(self) -> int:
        return self.available_content_tokens - self.settings.chunking_context_summary_tokens

    @property
    def subsequent_chunk_chars(self) -> int:
        return self.tokens_to_chars(self.subsequent_chunk_tokens)

    def chunk_char_limit(self, chunk_index: int) -> int:
        return self.first_chunk_chars if chunk_index == 0 else self.subsequent_chunk_chars


def estimate_tokens(text: str, settings: Settings | None = None) -> int:
    """Estimate the number of tokens in ``text`` with the configured ratio."""
    return BudgetCalculator(settings).estimate_tokens(text)


def estimate_prompt_size(
    settings: Settings | None = None,
    estimator: TokenEstimator | None = None,
    **components: str | None,
) -> int:
    """Estimate the token size of a prompt assembled from several parts.

    Args:
        settings: Budget settings, defaults to the process-wide ones.
        estimator: Token counter, defaults to the ratio estimate.
        **components: Named prompt parts (base prompt, code, story, ...). Empty
            or missing parts are ignored.

    Returns:
        int: the estimated token count of all parts together.
    """
    calc = BudgetCalculator(settings, estimator)
    return calc.estimate_tokens("".join(part for part in components.values() if part))


def validate_content_size(
    base_prompt: str,
    code_content: str,
    max_tokens: int = DEFAULT_PROMPT_TOKEN_LIMIT,
    settings: Settings | None = None,
    estimator: TokenEstimator | None = None,
) -> SizeValidation:
    """Check that a prompt and its code payload fit within ``max_tokens``."""
    calc = BudgetCalculator(settings, estimator)
    estimated = estimate_prompt_size(
        calc.settings,
        calc.estimator,
        base_prompt=base_prompt,
        code_content=code_content,
    )
    if estimated <= max_tokens:
        return SizeValidation(valid=True, estimated_tokens=estimated)

    excess = estimated - max_tokens
    reduction = math.ceil(excess / calc.settings.tokens_per_char)
    return SizeValidation(
        valid=False,
        estimated_tokens=estimated,
        recommendation=(
            f"Content exceeds token limit by {excess} tokens. "
            f"Consider reducing content by {reduction} characters."
        ),
    )
