from __future__ import annotations

from collections.abc import Callable

import pytest

from fit_repo.settings import Settings

DumpFileFn = Callable[..., str]


def dump_file(path: str, lines: int, *, fence: bool = True, lang: str = "python") -> str:
    """One file section as a repository flattener writes it."""
    body = [f"// {path} line {i}: some code" for i in range(lines)]
    if fence:
        body = [f"```{lang}", *body, "```"]
    return "\n".join([f"## File: {path}", "", *body, ""])


@pytest.fixture
def small_settings() -> Settings:
    """3200 chars for the first chunk, 2400 for later ones, 5 lines per file."""
    return Settings(
        max_context_tokens=1000,
        max_code_content_chars=4000,
        aggressive_truncation_lines=5,
        llm_max_tokens=0,
        quest_response_tokens=0,
        chunking_response_tokens=100,
        chunking_prompt_tokens=100,
        chunking_context_summary_tokens=200,
    )


@pytest.fixture
def make_file() -> DumpFileFn:
    return dump_file
