"""Run lifecycle: wiring, shutdown signal handling, checkpoints and the cleanup critical section."""
from __future__ import annotations

import logging
import queue
import signal
import threading
import time
from typing import Any, Dict, List, Optional

from .adapters.base import Catalog, Evaluator, VersionControl
from .config import RefactorConfig
from .errors import CatalogError
from .ledger import ProgressLedger
from .models import RunSummary, Task
from .oracle import Oracle
from .producer import Producer
from .recovery import Recovery
from .resolver import UnitResolver
from .state import PipelineState
from .worker import Worker

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CATALOG_FAILURE = 2
EXIT_MANUAL_INTERVENTION = 3

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def build_state(config: RefactorConfig) -> PipelineState:
    ledger = ProgressLedger.load(config.processed_path, config.skipped_path)
    return PipelineState(ledger, config.failed_path)


class Orchestrator:
    def __init__(
        self,
        config: RefactorConfig,
        *,
        catalog: Catalog,
        evaluator: Evaluator,
        vcs: VersionControl,
        state: Optional[PipelineState] = None,
    ):
        self.config = config
        self.catalog = catalog
        self.state = state or build_state(config)
        self.summary = RunSummary()
        self.task_queue: "queue.Queue[Task]" = queue.Queue(maxsize=config.effective_queue_size)
        self.oracle = Oracle(evaluator, ignore_keys=config.ignored_meta_keys)
        self.recovery = Recovery(self.state, vcs)
        self.producer = Producer(
            UnitResolver(catalog, config),
            self.state,
            self.task_queue,
            summary=self.summary,
            poll_interval_s=config.poll_interval_s,
            progress_every=config.progress_every,
        )
        self.workers: List[Worker] = []
        self.producer_thread: Optional[threading.Thread] = None
        self.unrestored: List[Any] = []
        self._previous_handlers: Dict[int, Any] = {}

    def request_stop(self, reason: str = "Shutdown requested") -> None:
        if not self.state.stop_event.is_set():
            logger.warning("%s. Stopping new tasks and cleaning up...", reason)
            self.state.stop_event.set()

    def _handle_signal(self, signum, frame) -> None:
        self.request_stop(f"Shutdown signal {signal.Signals(signum).name} received")

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in SHUTDOWN_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def run(self, *, install_signal_handlers: bool = True) -> int:
        logger.info("--- Run started ---")
        if install_signal_handlers:
            self._install_signal_handlers()
        try:
            if self.state.previous_failures:
                logger.info(
                    "%d files were reverted during the previous run; their units will be retried.",
                    len(self.state.previous_failures),
                )
            try:
                units = self.catalog.list_units()
            except CatalogError as exc:
                logger.critical("Fatal: Failed to list packages. Exiting. Error: %s", exc)
                return EXIT_CATALOG_FAILURE
            handled = self.state.already_handled()
            pending = [unit_id for unit_id in units if unit_id not in handled]
            logger.info("Found %d packages; %d still need scanning.", len(units), len(pending))
            self._start(pending)
            self._await_drain()
        except KeyboardInterrupt:
            logger.warning("Main thread interrupted.")
        finally:
            self._shutdown()
            self._restore_signal_handlers()
        if self.unrestored:
            return EXIT_MANUAL_INTERVENTION
        return EXIT_OK

    def _start(self, pending: List[str]) -> None:
        self.producer_thread = threading.Thread(
            target=self.producer.run, args=(pending,), name="Producer", daemon=True
        )
        self.producer_thread.start()
        self.workers = [
            Worker(
                f"Worker-{index}",
                self.task_queue,
                self.state,
                self.oracle,
                self.recovery,
                summary=self.summary,
                poll_interval_s=self.config.poll_interval_s,
            )
            for index in range(1, self.config.workers + 1)
        ]
        for worker in self.workers:
            worker.start()

    def _await_drain(self) -> None:
        last_save = time.monotonic()
        while self.producer_thread.is_alive() or self.task_queue.unfinished_tasks:
            if self.state.stop_event.wait(self.config.poll_interval_s):
                break
            if time.monotonic() - last_save >= self.config.checkpoint_interval_s:
                self.state.checkpoint()
                last_save = time.monotonic()

    def _discard_unclaimed(self) -> int:
        discarded = 0
        while True:
            try:
                self.task_queue.get_nowait()
            except queue.Empty:
                return discarded
            self.task_queue.task_done()
            discarded += 1

    def _shutdown(self) -> None:
        logger.info("Main loop finished. Starting cleanup...")
        self.state.stop_event.set()
        join_timeout = self.config.worker_join_timeout_s
        if self.producer_thread is not None:
            self.producer_thread.join(timeout=join_timeout)
        discarded = self._discard_unclaimed()
        if discarded:
            logger.info("Dropped %d queued tasks that were never started; they will be retried.", discarded)
            self.summary.bump("deferred", discarded)
        for worker in self.workers:
            worker.join(timeout=join_timeout)

        self.unrestored = self.recovery.sweep(persist=self.producer_thread is not None)
        self.summary.bump("swept", len(self.state.failed_files()))
        self.state.checkpoint()
        if self.unrestored:
            logger.critical(
                "%d files could not be restored and need manual inspection: %s",
                len(self.unrestored),
                ", ".join(str(path) for path in self.unrestored),
            )
        logger.info("Run summary: %s", self.summary.to_dict())
        logger.info("--- Run finished ---")
