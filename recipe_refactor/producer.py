from __future__ import annotations

import logging
import queue
from pathlib import Path
from typing import Iterable, Optional, Set

from .models import RunSummary, Task
from .resolver import RESOLVE_DEFER, RESOLVE_SKIP, UnitResolver
from .state import PipelineState

logger = logging.getLogger(__name__)

ROUTINE = {"routine": True}


class Producer:
    """Scans the catalog once and feeds eligible tasks into the bounded queue."""

    def __init__(
        self,
        resolver: UnitResolver,
        state: PipelineState,
        task_queue: "queue.Queue[Task]",
        *,
        summary: Optional[RunSummary] = None,
        poll_interval_s: float = 1.0,
        progress_every: int = 500,
    ):
        self.resolver = resolver
        self.state = state
        self.task_queue = task_queue
        self.summary = summary or RunSummary()
        self.poll_interval_s = poll_interval_s
        self.progress_every = progress_every
        self._claimed_paths: Set[Path] = set()

    def _enqueue(self, task: Task) -> bool:
        while not self.state.stop_event.is_set():
            try:
                self.task_queue.put(task, timeout=self.poll_interval_s)
            except queue.Full:
                continue
            return True
        return False

    def run(self, unit_ids: Iterable[str]) -> None:
        units = list(unit_ids)
        total = len(units)
        already_handled = self.state.already_handled()
        logger.info("Producer starting: scanning %d packages for tasks...", total)
        for index, unit_id in enumerate(units, start=1):
            if self.state.stop_event.is_set():
                logger.warning("Producer stopping early at [%d/%d].", index - 1, total)
                break
            if index % self.progress_every == 0:
                logger.info("Producer progress [%d/%d]...", index, total)
            if unit_id in already_handled:
                continue
            self.summary.bump("scanned")
            try:
                self._handle(unit_id)
            except Exception:
                self.summary.bump("deferred")
                logger.exception("Producer error for '%s': Unexpected error. Will retry.", unit_id)
        logger.info("Producer finished: all potential packages have been scanned.")

    def _handle(self, unit_id: str) -> None:
        resolution = self.resolver.resolve(unit_id)
        if resolution.kind == RESOLVE_SKIP:
            logger.info("'%s': %s, permanently skipping.", unit_id, resolution.reason, extra=ROUTINE)
            self.state.mark_skipped(unit_id)
            self.summary.bump("skipped")
            return
        if resolution.kind == RESOLVE_DEFER:
            logger.warning("'%s': %s. Will retry next run.", unit_id, resolution.reason, extra=ROUTINE)
            self.summary.bump("deferred")
            return

        task = resolution.task
        if task.source_path in self._claimed_paths:
            logger.info(
                "'%s': %s already has a task this run. Will retry next run.",
                unit_id,
                task.source_path,
                extra=ROUTINE,
            )
            self.summary.bump("deferred")
            return
        if self._enqueue(task):
            self._claimed_paths.add(task.source_path)
            self.summary.bump("enqueued")
