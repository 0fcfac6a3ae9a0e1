"""Persisted progress ledger: which units reached a terminal state in earlier runs."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable, Set

from jsonschema import Draft202012Validator

from .schemas import LEDGER_SET_SCHEMA

logger = logging.getLogger(__name__)

_VALIDATOR = Draft202012Validator(LEDGER_SET_SCHEMA)


def _fsync_directory(directory: Path) -> None:
    try:
        dir_fd = os.open(str(directory), os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except OSError:
        pass


def load_string_set(path: Path) -> Set[str]:
    """Load a ledger set; anything unreadable degrades to an empty set with a warning."""
    if not path.exists():
        return set()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Could not load or parse %s: %s. Starting fresh.", path, exc)
        return set()

    errors = sorted(_VALIDATOR.iter_errors(payload), key=lambda e: list(e.path))
    if errors:
        location = " -> ".join(str(part) for part in errors[0].path) or "<root>"
        logger.warning("Ignoring %s: %s: %s. Starting fresh.", path, location, errors[0].message)
        return set()
    return set(payload)


def save_string_set(items: Iterable[object], path: Path) -> None:
    """Write ``items`` as a sorted JSON array via temp file, fsync and rename."""
    data = sorted({str(item) for item in items})
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp.{os.getpid()}")
    logger.info("Saving %d items to %s...", len(data), path)
    try:
        with tmp_path.open("w", encoding="utf-8") as handle:
            handle.write(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass
    _fsync_directory(path.parent)


class ProgressLedger:
    """Processed and skipped unit sets.

    Not thread-safe on its own; :class:`~recipe_refactor.state.PipelineState`
    guards every mutation with its ledger lock.
    """

    def __init__(self, processed_path: Path, skipped_path: Path):
        self.processed_path = processed_path
        self.skipped_path = skipped_path
        self.processed: Set[str] = set()
        self.skipped: Set[str] = set()

    @classmethod
    def load(cls, processed_path: Path, skipped_path: Path) -> "ProgressLedger":
        ledger = cls(processed_path, skipped_path)
        ledger.processed = load_string_set(processed_path)
        ledger.skipped = load_string_set(skipped_path)
        overlap = ledger.processed & ledger.skipped
        if overlap:
            logger.warning(
                "%d units are recorded as both processed and skipped; keeping them as processed.", len(overlap)
            )
            ledger.skipped -= overlap
        return ledger

    def handled(self) -> Set[str]:
        return self.processed | self.skipped

    def mark_processed(self, unit_id: str) -> None:
        self.skipped.discard(unit_id)
        self.processed.add(unit_id)

    def mark_skipped(self, unit_id: str) -> None:
        if unit_id not in self.processed:
            self.skipped.add(unit_id)

    def save(self) -> None:
        save_string_set(self.processed, self.processed_path)
        save_string_set(self.skipped, self.skipped_path)
