"""
fit_repo — Fit a flattened repository dump into an LLM context budget.

Overview
--------
Takes the markdown dump produced by a repository flattener (files introduced by
``## File: path`` headers, code in fenced blocks) and either:

1) **fits** it into a single blob (``--mode fit``), truncating as little as
   possible and giving ``--priority`` files twice the usual line allowance, or
2) **chunks** it (``--mode chunk``) into ordered, fence-balanced parts written
   as markdown (``.md``) or JSON lines (``.jsonl``).

Budgets come from environment variables / ``.env`` (``MAX_CONTEXT_TOKENS``,
``TOKENS_PER_CHAR``, ...) or a YAML file given with ``--config``.

Usage
-----
    uv run python -m fit_repo.cli --input repo_for_llm.md --output fitted.md
    uv run python -m fit_repo.cli --input repo_for_llm.md --mode chunk --output parts.jsonl
    uv run python -m fit_repo.cli --input - --priority src/app.py --output - < dump.md
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from fit_repo.cache import make_cache_key
from fit_repo.chunking import ContentChunker
from fit_repo.fitting import smart_fit
from fit_repo.logging import logger, setup_logging
from fit_repo.output_construction import build_jsonl, build_markdown
from fit_repo.settings import load_settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fit_repo.cache import FitCache
    from fit_repo.settings import Settings

STDIO = "-"


class RunOptions(BaseModel):
    """Options parsed from the command line."""

    model_config = ConfigDict(frozen=True)

    input: str = Field(..., description="Repository dump to read, '-' for stdin.")
    output: str = Field(default=STDIO, description="Output file, '-' for stdout.")
    mode: Literal["fit", "chunk"] = Field(default="fit", description="Fit into one blob or chunk.")
    format: str = Field(default="", description="Force chunk output format.")
    priority: list[str] = Field(default_factory=list, description="Priority file paths.")
    config: str = Field(default="", description="YAML settings file.")
    log_file: str = Field(default="", description="Log file path.")
    compact: bool = Field(default=False, description="Reduce markdown verbosity.")
    verbose: bool = Field(default=False, description="Log at DEBUG level.")


def parse_args(argv: Sequence[str] | None = None) -> RunOptions:
    p = argparse.ArgumentParser(
        description="Fit a repository dump into an LLM context budget.",
    )
    p.add_argument("--input", type=str, required=True, help="Repository dump, '-' for stdin.")
    p.add_argument("--output", type=str, default=STDIO, help="Output file, '-' for stdout.")
    p.add_argument(
        "--mode",
        choices=["fit", "chunk"],
        default="fit",
        help="Fit into one blob or split into chunks.",
    )
    p.add_argument(
        "--format",
        type=str,
        choices=["md", "jsonl"],
        default="",
        help="Force chunk output format.",
    )
    p.add_argument(
        "--priority",
        action="append",
        default=[],
        help="Priority file path (repeatable).",
    )
    p.add_argument("--config", type=str, default="", help="YAML settings file.")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")
    p.add_argument("--compact", action="store_true", help="Reduce markdown verbosity.")
    p.add_argument("--verbose", action="store_true", help="Log per-module chunk plans (DEBUG).")
    args = p.parse_args(argv)
    return RunOptions(**vars(args))


def read_input(source: str) -> str:
    if source == STDIO:
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def render(content: str, opts: RunOptions, chunker: ContentChunker) -> str:
    settings = chunker.budget.settings
    if opts.mode == "fit":
        return smart_fit(content, opts.priority, settings=settings)

    result = chunker.chunk(content)
    fmt = (opts.format or "").strip().lower()
    if not fmt:
        fmt = "jsonl" if Path(opts.output).suffix.lower() == ".jsonl" else "md"
    if fmt == "jsonl":
        return build_jsonl(result)
    return build_markdown(result, compact=opts.compact)


def cache_key(opts: RunOptions, settings: Settings) -> str | None:
    """Key for a run's rendered output, or None when reading stdin.

    The effective settings are part of the key, so a different ``--config``
    file, ``.env`` or environment never reuses an earlier result.
    """
    if opts.input == STDIO:
        return None
    options = opts.model_dump(include={"mode", "priority", "format", "output", "compact"})
    options["priority"] = sorted(opts.priority)
    options["settings"] = settings.model_dump(mode="json")
    return make_cache_key(opts.input, options)


def main(argv: Sequence[str] | None = None, cache: FitCache[str] | None = None) -> int:
    """Run the command line.

    ``cache`` is for callers that invoke ``main`` repeatedly in one process,
    e.g. ``TTLCache.from_settings(settings)``. A one-shot run does not cache.
    """
    opts = parse_args(argv)
    if opts.log_file or opts.verbose:
        setup_logging(opts.log_file or None, logging.DEBUG if opts.verbose else logging.INFO, force=True)

    settings = load_settings(config_file=opts.config or None)
    key = cache_key(opts, settings) if cache is not None else None

    rendered = cache.get(key) if cache is not None and key else None
    if rendered is None:
        content = read_input(opts.input)
        rendered = render(content, opts, ContentChunker(settings))
        if cache is not None and key:
            cache.set(key, rendered)
    else:
        logger.info("Using cached result for %s", opts.input)

    if opts.output == STDIO:
        sys.stdout.write(rendered)
    else:
        Path(opts.output).write_text(rendered, encoding="utf-8")
        print(f"Wrote {opts.output} mode={opts.mode} chars={len(rendered)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
