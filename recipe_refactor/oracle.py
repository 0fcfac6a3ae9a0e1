from __future__ import annotations

from typing import AbstractSet, Any

from deepdiff import DeepDiff

from .adapters.base import Evaluator
from .config import IGNORED_META_KEYS
from .errors import EvaluationError
from .models import Task


def normalize_meta(obj: Any, ignore_keys: AbstractSet[str] = IGNORED_META_KEYS) -> Any:
    """Strip ``ignore_keys`` from every mapping level of ``obj``."""
    if isinstance(obj, dict):
        return {key: normalize_meta(value, ignore_keys) for key, value in obj.items() if key not in ignore_keys}
    if isinstance(obj, list):
        return [normalize_meta(item, ignore_keys) for item in obj]
    return obj


def equivalent(before: Any, after: Any, ignore_keys: AbstractSet[str] = IGNORED_META_KEYS) -> bool:
    """Exact equality of the normalized snapshots; sequence order is significant."""
    return normalize_meta(before, ignore_keys) == normalize_meta(after, ignore_keys)


def describe_difference(before: Any, after: Any) -> str:
    """Human-readable structural diff, for logs only."""
    diff = DeepDiff(before, after, ignore_order=True, report_repetition=True)
    if not diff:
        return "No structural difference when ignoring order; sequence order changed."
    return diff.pretty()


class Oracle:
    def __init__(self, evaluator: Evaluator, *, ignore_keys: AbstractSet[str] = IGNORED_META_KEYS):
        self.evaluator = evaluator
        self.ignore_keys = ignore_keys

    def capture(self, task: Task) -> Any:
        try:
            return self.evaluator.evaluate(task.attr_path)
        except EvaluationError:
            raise
        except Exception as exc:
            raise EvaluationError(f"Evaluator raised {type(exc).__name__}: {exc}") from exc

    def normalize(self, snapshot: Any) -> Any:
        return normalize_meta(snapshot, self.ignore_keys)

    def equivalent(self, before: Any, after: Any) -> bool:
        return equivalent(before, after, self.ignore_keys)

    def describe(self, before: Any, after: Any) -> str:
        return describe_difference(self.normalize(before), self.normalize(after))
