#!/usr/bin/env python3
"""Bulk ``meta = with lib;`` refactoring with per-file verification and revert."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from .adapters.git import GitVersionControl
from .adapters.nix import NixMetaEvaluator, NixSearchCatalog
from .config import RefactorConfig
from .ledger import ProgressLedger, load_string_set
from .logging_setup import configure_logging
from .orchestrator import Orchestrator

EXIT_USAGE_ERROR = 5


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Rewrite 'meta = with lib;' blocks across a package tree, verifying every "
            "edit with the evaluator and reverting anything that changes meaning."
        )
    )
    parser.add_argument(
        "--mode",
        choices=("run", "status"),
        default="run",
        help="run executes the pipeline; status prints ledger counts without touching files.",
    )
    parser.add_argument("--root", type=Path, help="Package tree root (default: current directory).")
    parser.add_argument("--state-dir", type=Path, help="Directory for the ledger files (default: --root).")
    parser.add_argument("--log-file", type=Path, help="Append-only log file (default: <state-dir>/meta_refactor.log).")
    parser.add_argument("--workers", type=int, help="Number of worker threads (default: 16).")
    parser.add_argument("--queue-size", type=int, help="Task queue capacity (default: 2x workers).")
    parser.add_argument("--command-timeout", type=int, help="Timeout in seconds for catalog and evaluator calls.")
    parser.add_argument("--revert-timeout", type=int, help="Timeout in seconds for each revert.")
    parser.add_argument("--max-file-size", type=int, help="Largest file in bytes that will be patched.")
    parser.add_argument("--checkpoint-interval", type=float, help="Seconds between ledger checkpoints.")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RefactorConfig:
    config = RefactorConfig.from_env(args.root)
    state_dir = args.state_dir.absolute() if args.state_dir else None
    log_file = args.log_file
    if log_file is None and state_dir is not None:
        log_file = state_dir / config.log_file.name
    return config.with_overrides(
        state_dir=state_dir,
        log_file=log_file,
        workers=args.workers,
        queue_size=args.queue_size,
        command_timeout_s=args.command_timeout,
        revert_timeout_s=args.revert_timeout,
        max_file_size_bytes=args.max_file_size,
        checkpoint_interval_s=args.checkpoint_interval,
    ).validate()


def print_status(config: RefactorConfig, console: Optional[Console] = None) -> None:
    console = console or Console()
    ledger = ProgressLedger.load(config.processed_path, config.skipped_path)
    failed = load_string_set(config.failed_path)
    table = Table(title=f"Refactor ledger: {config.state_dir}")
    table.add_column("Set")
    table.add_column("Entries", justify="right")
    table.add_column("File")
    table.add_row("processed", str(len(ledger.processed)), str(config.processed_path))
    table.add_row("skipped", str(len(ledger.skipped)), str(config.skipped_path))
    table.add_row("failed last run", str(len(failed)), str(config.failed_path))
    console.print(table)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = build_config(args)
    except SystemExit as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_USAGE_ERROR
    if not config.root.is_dir():
        print(f"--root {config.root} is not a directory", file=sys.stderr)
        return EXIT_USAGE_ERROR

    if args.mode == "status":
        print_status(config)
        return 0

    config.ensure_state_dir()
    configure_logging(config.log_file)
    orchestrator = Orchestrator(
        config,
        catalog=NixSearchCatalog(config.root, timeout_s=config.command_timeout_s),
        evaluator=NixMetaEvaluator(config.root, timeout_s=config.command_timeout_s),
        vcs=GitVersionControl(config.root, timeout_s=config.revert_timeout_s),
    )
    return orchestrator.run()


if __name__ == "__main__":
    sys.exit(main())
