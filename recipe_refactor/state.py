"""Shared run state handed to the producer, workers and recovery."""
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Set

from .ledger import ProgressLedger, load_string_set, save_string_set

logger = logging.getLogger(__name__)


def write_durably(path: Path, text: str) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(text)
        handle.flush()
        os.fsync(handle.fileno())


class PipelineState:
    def __init__(self, ledger: ProgressLedger, failed_path: Path):
        self.ledger = ledger
        self.failed_path = failed_path
        self.previous_failures: Set[str] = load_string_set(failed_path)
        self.stop_event = threading.Event()

        self.ledger_lock = threading.Lock()
        self.in_flight_lock = threading.Lock()
        self.failed_files_lock = threading.Lock()
        self.revert_lock = threading.Lock()

        self._in_flight: Dict[str, Path] = {}
        self._failed_files: Set[Path] = set()
        self._sealed = False

    # ledger
    def already_handled(self) -> Set[str]:
        with self.ledger_lock:
            return self.ledger.handled()

    def mark_skipped(self, unit_id: str) -> None:
        with self.ledger_lock:
            self.ledger.mark_skipped(unit_id)

    def mark_processed(self, unit_id: str) -> bool:
        """Record a verified unit; refused once the shutdown sweep has sealed the run."""
        with self.ledger_lock:
            if self._sealed:
                return False
            self.ledger.mark_processed(unit_id)
            return True

    def write_unless_sealed(self, path: Path, text: str) -> bool:
        """Write a patch unless the shutdown sweep has already sealed the run.

        Shares the ledger lock with :meth:`seal`, so a file is either written
        before the sweep looks at it or not written at all.
        """
        with self.ledger_lock:
            if self._sealed:
                return False
            write_durably(path, text)
            return True

    def seal(self) -> None:
        with self.ledger_lock:
            self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def checkpoint(self) -> bool:
        with self.ledger_lock:
            try:
                self.ledger.save()
            except OSError as exc:
                logger.error("Could not save progress ledger: %s", exc)
                return False
        return True

    # in-flight registry
    def register(self, unit_id: str, source_path: Path) -> None:
        with self.in_flight_lock:
            self._in_flight[unit_id] = source_path

    def unregister(self, unit_id: str) -> None:
        with self.in_flight_lock:
            self._in_flight.pop(unit_id, None)

    def in_flight(self) -> Dict[str, Path]:
        with self.in_flight_lock:
            return dict(self._in_flight)

    def unfinished_in_flight(self) -> Dict[str, Path]:
        """In-flight units whose outcome is unknown; accepted ones are only waiting to unregister."""
        with self.in_flight_lock:
            snapshot = dict(self._in_flight)
        with self.ledger_lock:
            return {unit_id: path for unit_id, path in snapshot.items() if unit_id not in self.ledger.processed}

    # failed files
    def add_failed(self, source_path: Path) -> None:
        with self.failed_files_lock:
            self._failed_files.add(source_path)

    def failed_files(self) -> List[Path]:
        with self.failed_files_lock:
            return sorted(self._failed_files)

    def save_failed(self) -> None:
        try:
            save_string_set(self.failed_files(), self.failed_path)
        except OSError as exc:
            logger.error("Could not save failed paths to %s: %s", self.failed_path, exc)
