from __future__ import annotations

import math
from typing import TYPE_CHECKING

from fit_repo.budget import BudgetCalculator
from fit_repo.config import FitLevel
from fit_repo.format_detection import validate_format
from fit_repo.logging import logger
from fit_repo.truncation import truncate, truncate_default, truncate_with_priority

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fit_repo.budget import TokenEstimator
    from fit_repo.settings import Settings

VALIDATION_MIN_CHARS = 100
VALIDATION_WARN_CHARS = 1000
BASELINE_TOKEN_SHARE = 0.8
AGGRESSIVE_RATIO = 1.5
MODERATE_RATIO = 1.2


def choose_fit_level(estimated_tokens: int, max_context_tokens: int) -> FitLevel:
    """Pick a truncation level from how far ``estimated_tokens`` exceeds the context."""
    if estimated_tokens > max_context_tokens * AGGRESSIVE_RATIO:
        return FitLevel.AGGRESSIVE
    if estimated_tokens > max_context_tokens * MODERATE_RATIO:
        return FitLevel.MODERATE
    return FitLevel.CONSERVATIVE


def choose_target_limit(estimated_tokens: int, settings: Settings) -> tuple[FitLevel, int]:
    level = choose_fit_level(estimated_tokens, settings.max_context_tokens)
    return level, math.floor(settings.max_code_content_chars * level.fraction)


def smart_fit(
    content: str,
    priority_paths: Sequence[str] | None = None,
    *,
    settings: Settings | None = None,
    estimator: TokenEstimator | None = None,
) -> str:
    """Fit a repository dump into one blob, truncating only as much as needed.

    A plain boundary-aware truncation is tried first. It is kept when it lands
    well inside the context window and either no priority files were asked for
    or it did not cut anything. Otherwise the original content is reduced with
    per-file line budgets, using a character target that shrinks the further
    the content is over budget.

    Args:
        content (str): the repository dump
        priority_paths (Sequence[str] | None): files that deserve a larger allowance
        settings (Settings | None): budget settings
        estimator (TokenEstimator | None): token counter, defaults to the ratio estimate

    Returns:
        str: the fitted content
    """
    calc = BudgetCalculator(settings, estimator)
    settings = calc.settings
    priority = list(priority_paths or [])

    if len(content) > VALIDATION_MIN_CHARS:
        is_valid, _warnings = validate_format(content)
        if not is_valid and len(content) > VALIDATION_WARN_CHARS:
            logger.warning("Proceeding with truncation despite format issues - results may be unpredictable")

    estimated = calc.estimate_tokens(content)
    baseline = truncate(content, settings=settings)
    baseline_tokens = calc.estimate_tokens(baseline)

    if baseline_tokens <= settings.max_context_tokens * BASELINE_TOKEN_SHARE and (
        not priority or len(baseline) == len(content)
    ):
        return baseline

    level, target = choose_target_limit(estimated, settings)
    logger.info(
        "Content approaching token limits (%s estimated tokens), using %s truncation (target: %s chars)",
        estimated,
        level,
        target,
    )

    if priority:
        return truncate_with_priority(content, target, priority, settings=settings)
    return truncate_default(content, target, settings=settings)
