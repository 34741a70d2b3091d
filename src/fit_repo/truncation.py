"""Truncate a repository dump to a character budget.

Two strategies live here:

- :func:`truncate` makes a single boundary-aware cut, snapping to the last
  file header or ``---`` section marker when one sits near the limit.
- :func:`truncate_by_line_budget` walks the dump line by line and keeps a
  bounded number of lines per file, while always keeping blank lines, file
  headers and the fences needed to close any fence it emitted.
  :func:`truncate_with_priority` and :func:`truncate_default` are the two
  line-budget policies used by the fitting dispatcher.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from fit_repo.config import FENCE, FILE_HEADER_PATTERN
from fit_repo.exceptions import InvalidBudgetError
from fit_repo.format_detection import count_fence_lines
from fit_repo.logging import logger
from fit_repo.settings import get_settings

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from fit_repo.settings import Settings

    LineBudgetFn = Callable[[str], int]

BOUNDARY_THRESHOLD = 0.8
SECTION_MARKER = "\n---"

_HEADER_BOUNDARY = re.compile(r"(?:^|\n)#{1,6}[ \t]*File:[ \t]*\S")


def _check_limit(name: str, value: int) -> None:
    if value <= 0:
        raise InvalidBudgetError(name=name, value=value)


def ensure_fences_closed(content: str) -> str:
    """Append a closing fence when ``content`` holds an odd number of fence lines."""
    if count_fence_lines(content) % 2:
        return f"{content}\n{FENCE}"
    return content


def find_last_header_index(content: str) -> int:
    """Index of the newline starting the last file header (0 if it opens the text), or -1."""
    last = -1
    for m in _HEADER_BOUNDARY.finditer(content):
        last = m.start()
    return last


def truncate(content: str, max_chars: int | None = None, *, settings: Settings | None = None) -> str:
    """Cut ``content`` to ``max_chars``, preferring a file or section boundary.

    Content already within the limit is returned unchanged, which makes the
    function idempotent. When cutting, the last file header or ``\\n---``
    marker found past 80% of the limit becomes the cut point (headers win),
    otherwise the raw limit is used. The truncation marker is always appended
    after a cut. Fences opened before the cut are not repaired.

    Args:
        content (str): the repository dump
        max_chars (int | None): character budget, defaults to the raw character ceiling
        settings (Settings | None): budget settings

    Returns:
        str: the content, possibly cut and followed by the truncation marker
    """
    settings = settings or get_settings()
    if max_chars is None:
        max_chars = settings.max_code_content_chars
    _check_limit("max_chars", max_chars)

    if len(content) <= max_chars:
        return content

    logger.info("Content is %s chars, truncating to %s chars", len(content), max_chars)

    candidate = content[:max_chars]
    last_header = find_last_header_index(candidate)
    last_section = candidate.rfind(SECTION_MARKER)
    threshold = max_chars * BOUNDARY_THRESHOLD

    cutoff = max_chars
    if last_header > threshold:
        cutoff = last_header
    elif last_section > threshold:
        cutoff = last_section

    return content[:cutoff] + settings.truncation_message


def normalize_path(path: str) -> str:
    return path.replace("\\", "/")


def is_priority_file(file_path: str, priority_files: Sequence[str]) -> bool:
    """Whether ``file_path`` matches one of ``priority_files``.

    Paths match when equal, or when one ends with ``/`` plus the other, after
    normalizing backslashes. Unrelated files sharing a suffix can match too.
    """
    normalized = normalize_path(file_path)
    for priority in priority_files:
        candidate = normalize_path(priority)
        if (
            normalized == candidate
            or normalized.endswith(f"/{candidate}")
            or candidate.endswith(f"/{normalized}")
        ):
            return True
    return False


def truncate_by_line_budget(
    content: str,
    limit: int,
    line_budget: LineBudgetFn,
    *,
    settings: Settings | None = None,
) -> str:
    """Keep at most ``line_budget(path)`` lines of every file, within ``limit`` chars.

    The scan is a single pass over lines with a running character total. Text
    before the first header is kept as is. Blank lines, file headers and the
    closing fence of every fence that was emitted are kept even past a file's
    line budget, so emitted fences stay paired and files never merge. The scan
    stops once the running total exceeds ``limit``; a fence still open at that
    point gets a synthetic closing line.

    Args:
        content (str): the repository dump
        limit (int): character budget
        line_budget (LineBudgetFn): maps a file path to its line allowance
        settings (Settings | None): budget settings

    Returns:
        str: the reduced content, followed by the truncation marker when
            anything was dropped
    """
    settings = settings or get_settings()
    _check_limit("limit", limit)

    lines = content.split("\n")
    kept: list[str] = []
    running = 0
    path: str | None = None
    budget = 0
    emitted = 0
    in_fence = False
    open_emitted = False
    dropped = False

    for i, line in enumerate(lines):
        stripped = line.strip()
        header = FILE_HEADER_PATTERN.match(line)

        if header:
            if in_fence and open_emitted:
                kept.append(FENCE)
                running += len(FENCE) + 1
            path = header.group(1).strip()
            budget = line_budget(path)
            emitted = 0
            in_fence = open_emitted = False
            keep = True
        else:
            under = path is None or emitted < budget
            is_fence = stripped.startswith(FENCE)
            if is_fence and in_fence:
                keep = open_emitted
                in_fence = open_emitted = False
            elif is_fence:
                keep = under
                in_fence = True
                open_emitted = keep
            else:
                keep = under or not stripped
            if keep and under and path is not None:
                emitted += 1

        if not keep:
            dropped = True
            continue

        kept.append(line)
        running += len(line) + 1
        if running > limit:
            if i < len(lines) - 1:
                dropped = True
            break

    if in_fence and open_emitted:
        kept.append(FENCE)

    result = "\n".join(kept)

    if len(result) > limit:
        return ensure_fences_closed(result[:limit]) + settings.truncation_message
    if dropped:
        return result + settings.truncation_message
    return result


def truncate_with_priority(
    content: str,
    limit: int,
    priority_files: Sequence[str],
    *,
    settings: Settings | None = None,
) -> str:
    """Line-budget truncation granting priority files twice the usual allowance."""
    settings = settings or get_settings()
    base = settings.aggressive_truncation_lines
    seen: set[str] = set()

    def line_budget(path: str) -> int:
        if is_priority_file(path, priority_files):
            if path not in seen:
                seen.add(path)
                logger.info("Preserving priority file: %s", path)
            return base * 2
        return base

    return truncate_by_line_budget(content, limit, line_budget, settings=settings)


def truncate_default(content: str, limit: int, *, settings: Settings | None = None) -> str:
    """Line-budget truncation with the same allowance for every file."""
    settings = settings or get_settings()
    base = settings.aggressive_truncation_lines
    return truncate_by_line_budget(content, limit, lambda _path: base, settings=settings)
