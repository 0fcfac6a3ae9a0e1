"""Worker threads running patch -> re-verify -> accept-or-revert per task."""
from __future__ import annotations

import logging
import queue
import threading
from pathlib import Path
from typing import Any, Optional

from .errors import EvaluationError, PatchError, VerificationError
from .models import OUTCOME_ACCEPTED, OUTCOME_REVERTED, RunSummary, Task, TaskOutcome
from .oracle import Oracle
from .recovery import Recovery
from .state import PipelineState
from .transformer import rewrite_meta_block

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_CLAIMED = "claimed"
STATE_EVALUATING_BEFORE = "evaluating_before"
STATE_PATCHED = "patched"
STATE_EVALUATING_AFTER = "evaluating_after"
STATE_ACCEPTED = "accepted"
STATE_REVERTING = "reverting"

ALLOWED_WORKER_TRANSITIONS: dict[str, set[str]] = {
    STATE_IDLE: {STATE_CLAIMED},
    STATE_CLAIMED: {STATE_EVALUATING_BEFORE, STATE_REVERTING},
    STATE_EVALUATING_BEFORE: {STATE_PATCHED, STATE_REVERTING},
    STATE_PATCHED: {STATE_EVALUATING_AFTER, STATE_REVERTING},
    STATE_EVALUATING_AFTER: {STATE_ACCEPTED, STATE_REVERTING},
    STATE_ACCEPTED: {STATE_IDLE, STATE_REVERTING},
    STATE_REVERTING: {STATE_IDLE},
}

REASON_PRE_EVALUATION = "pre-evaluation failed"
REASON_NO_CHANGE = "patch produced no change"
REASON_POST_EVALUATION = "post-evaluation failed"
REASON_DRIFT = "semantic drift"
REASON_SHUTDOWN = "shutdown before patch"
REASON_SEALED = "run already sealed by shutdown sweep"
REASON_UNEXPECTED = "unexpected error"


def assert_transition_allowed(current: str, target: str) -> None:
    if target not in ALLOWED_WORKER_TRANSITIONS.get(current, set()):
        raise RuntimeError(f"Illegal worker transition: {current} -> {target}")


class _Reverting(Exception):
    def __init__(self, reason: str, detail: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.detail = detail


def rewritten_text(path: Path) -> str:
    """Return the new content of ``path``; raises :class:`PatchError` when there is nothing to rewrite."""
    original = path.read_text(encoding="utf-8")
    rewritten = rewrite_meta_block(original)
    if rewritten is None:
        raise PatchError(f"{REASON_NO_CHANGE}: anchor block not found in {path}", reason="anchor_not_found")
    if rewritten == original:
        raise PatchError(f"{REASON_NO_CHANGE}: block in {path} is already transformed", reason="already_transformed")
    return rewritten


class Worker(threading.Thread):
    def __init__(
        self,
        name: str,
        task_queue: "queue.Queue[Task]",
        state: PipelineState,
        oracle: Oracle,
        recovery: Recovery,
        *,
        summary: Optional[RunSummary] = None,
        poll_interval_s: float = 1.0,
    ):
        super().__init__(name=name, daemon=True)
        self.task_queue = task_queue
        self.state = state
        self.oracle = oracle
        self.recovery = recovery
        self.summary = summary
        self.poll_interval_s = poll_interval_s
        self.phase = STATE_IDLE

    def _advance(self, target: str) -> None:
        assert_transition_allowed(self.phase, target)
        self.phase = target

    def run(self) -> None:
        while not self.state.stop_event.is_set():
            try:
                task = self.task_queue.get(timeout=self.poll_interval_s)
            except queue.Empty:
                continue
            try:
                outcome = self.process(task)
                if self.summary is not None:
                    self.summary.record(outcome)
            except Exception:
                logger.exception("Worker crashed while handling '%s'; reverting its file.", task.unit_id)
                self.phase = STATE_IDLE
                self.recovery.revert_task(task.unit_id, task.source_path)
            finally:
                self.task_queue.task_done()

    def process(self, task: Task) -> TaskOutcome:
        self._advance(STATE_CLAIMED)
        self.state.register(task.unit_id, task.source_path)
        try:
            return self._process_registered(task)
        finally:
            self.state.unregister(task.unit_id)
            self._advance(STATE_IDLE)

    def _process_registered(self, task: Task) -> TaskOutcome:
        logger.info("Processing '%s'...", task.unit_id)
        stage = self.phase
        try:
            if self.state.stop_event.is_set():
                raise _Reverting(REASON_SHUTDOWN, "shutdown requested before the task started")
            self._advance(STATE_EVALUATING_BEFORE)
            stage = self.phase
            before = self._capture(task, REASON_PRE_EVALUATION)

            stage = "patching"
            try:
                text = rewritten_text(task.source_path)
            except PatchError as exc:
                raise _Reverting(REASON_NO_CHANGE, str(exc)) from exc
            if not self.state.write_unless_sealed(task.source_path, text):
                raise _Reverting(REASON_SHUTDOWN, "shutdown sweep already ran; file left untouched")
            self._advance(STATE_PATCHED)

            self._advance(STATE_EVALUATING_AFTER)
            stage = self.phase
            after = self._capture(task, REASON_POST_EVALUATION)

            if not self.oracle.equivalent(before, after):
                diff = self.oracle.describe(before, after)
                error = VerificationError("Meta verification failed: JSON representation changed.", diff=diff)
                raise _Reverting(REASON_DRIFT, f"{error}\n{error.diff}")

            self._advance(STATE_ACCEPTED)
            stage = self.phase
            if not self.state.mark_processed(task.unit_id):
                raise _Reverting(REASON_SEALED, "verified result arrived after the shutdown sweep started")
            logger.info("[SUCCESS] '%s': Refactored and verified.", task.unit_id)
            return TaskOutcome(task.unit_id, OUTCOME_ACCEPTED)
        except _Reverting as exc:
            self._log_failure(task, exc.reason, exc.detail)
            return self._revert(task, stage, exc.reason)
        except Exception as exc:
            logger.exception("Worker failed on '%s' during %s.", task.unit_id, stage)
            return self._revert(task, stage, f"{REASON_UNEXPECTED}: {exc}")

    def _capture(self, task: Task, reason: str) -> Any:
        try:
            return self.oracle.capture(task)
        except EvaluationError as exc:
            raise _Reverting(reason, str(exc)) from exc

    def _log_failure(self, task: Task, reason: str, detail: str) -> None:
        if reason in (REASON_PRE_EVALUATION, REASON_POST_EVALUATION):
            logger.error("'%s': Meta evaluation failed (%s). Reverting file.\n%s", task.unit_id, reason, detail)
        elif reason == REASON_SHUTDOWN:
            logger.warning("'%s': Not patched (%s). Reverting file. %s", task.unit_id, reason, detail)
        elif reason == REASON_DRIFT:
            logger.error("'%s': Verification mismatch (%s). Reverting file.\n%s", task.unit_id, reason, detail)
        else:
            logger.error("Worker failed on '%s': %s. Reverting file.\n%s", task.unit_id, reason, detail)

    def _revert(self, task: Task, stage: str, reason: str) -> TaskOutcome:
        self._advance(STATE_REVERTING)
        self.recovery.revert_task(task.unit_id, task.source_path)
        return TaskOutcome(task.unit_id, OUTCOME_REVERTED, stage=stage, reason=reason)
