"""Sniff which file-header convention a repository dump uses.

Detection is advisory: nothing here raises, callers keep going with whatever
format was found and the fitting code degrades to whole-block treatment when
no header is recognised.
"""

from __future__ import annotations

import re

from fit_repo.config import FENCE, HeaderFormat
from fit_repo.logging import logger

MIN_VALIDATED_LENGTH = 10

HEADER_FORMATS: tuple[HeaderFormat, ...] = (
    HeaderFormat(
        name="standard",
        pattern=re.compile(r"^#{1,6}\s*File:\s*", re.MULTILINE),
        is_supported=True,
    ),
    HeaderFormat(
        name="lowercase",
        pattern=re.compile(r"^#{1,6}\s*file:\s*", re.MULTILINE),
        is_supported=False,
        warning_message='Detected lowercase "file:" headers - expected "File:" with capital F',
    ),
    HeaderFormat(
        name="source-header",
        pattern=re.compile(r"^#{1,6}\s*Source:\s*", re.MULTILINE),
        is_supported=False,
        warning_message='Detected "Source:" headers instead of "File:" - format not supported',
    ),
    HeaderFormat(
        name="path-header",
        pattern=re.compile(r"^#{1,6}\s*Path:\s*", re.MULTILINE),
        is_supported=False,
        warning_message='Detected "Path:" headers instead of "File:" - format not supported',
    ),
    HeaderFormat(
        name="codeblock-header",
        pattern=re.compile(r"^```[^\n]*\n[^\n]*File:\s*", re.MULTILINE),
        is_supported=False,
        warning_message="Detected file headers inside code blocks - format not supported",
    ),
)

UNKNOWN_FORMAT = HeaderFormat(
    name="unknown",
    is_supported=False,
    warning_message="No recognized file header format found - content may not be a repository dump",
)

_ANY_HEADER = re.compile(r"^#{1,6}\s*(\w+):\s*", re.MULTILINE)


def detect_format(text: str) -> HeaderFormat:
    """Return the first known header format found in ``text``.

    Formats are tried in priority order, the supported one first.

    Args:
        text (str): the repository dump

    Returns:
        HeaderFormat: the matching format, or ``UNKNOWN_FORMAT``
    """
    for fmt in HEADER_FORMATS:
        if fmt.pattern is not None and fmt.pattern.search(text):
            return fmt
    return UNKNOWN_FORMAT


def count_fence_lines(text: str) -> int:
    """Count lines whose stripped text opens or closes a code fence."""
    return sum(1 for line in text.split("\n") if line.strip().startswith(FENCE))


def validate_format(text: str) -> tuple[bool, list[str]]:
    """Check a dump against the supported convention and log advisories.

    Args:
        text (str): the repository dump

    Returns:
        tuple[bool, list[str]]: whether the format is usable, and the warnings found
    """
    if not text or len(text) < MIN_VALIDATED_LENGTH:
        return True, []

    warnings: list[str] = []
    fmt = detect_format(text)
    if not fmt.is_supported:
        warnings.append(f"Unsupported header format detected: {fmt.name}")
        if fmt.warning_message:
            warnings.append(fmt.warning_message)
        warnings.append('Expected file headers like "## File: path/to/file.ext" and fenced code')
        for w in warnings:
            logger.warning(w)
        return False, warnings

    keys = {m.group(1).lower() for m in _ANY_HEADER.finditer(text)}
    if len(keys) > 1:
        warnings.append(f"Mixed header formats detected: {', '.join(sorted(keys))}")

    fences = count_fence_lines(text)
    if fences % 2:
        warnings.append(f"Unbalanced code fences detected ({fences} markers)")

    for w in warnings:
        logger.warning(w)
    return True, warnings
