from __future__ import annotations

import threading
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

OUTCOME_ACCEPTED = "accepted"
OUTCOME_REVERTED = "reverted"


@dataclass(frozen=True)
class Task:
    unit_id: str
    attr_path: str
    source_path: Path


@dataclass(frozen=True)
class TaskOutcome:
    unit_id: str
    status: str
    stage: Optional[str] = None
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status == OUTCOME_ACCEPTED


@dataclass
class RunSummary:
    """Counters reported at the end of a run; safe to bump from any thread."""

    scanned: int = 0
    enqueued: int = 0
    skipped: int = 0
    deferred: int = 0
    accepted: int = 0
    reverted: int = 0
    swept: int = 0

    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def bump(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)

    def record(self, outcome: TaskOutcome) -> None:
        self.bump("accepted" if outcome.accepted else "reverted")

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {item.name: getattr(self, item.name) for item in fields(self) if not item.name.startswith("_")}
