from __future__ import annotations

import unittest
from pathlib import Path

from recipe_refactor.errors import EvaluationError
from recipe_refactor.models import Task
from recipe_refactor.oracle import Oracle, describe_difference, equivalent, normalize_meta


class _StaticEvaluator:
    def __init__(self, result=None, error: Exception | None = None):
        self.result = result
        self.error = error

    def evaluate(self, attr_path: str):
        if self.error is not None:
            raise self.error
        return self.result


TASK = Task(unit_id="nixpkgs/demo", attr_path="demo", source_path=Path("pkgs/demo/default.nix"))


class NormalizeMetaTests(unittest.TestCase):
    def test_strips_position_keys_at_every_level(self) -> None:
        snapshot = {
            "position": "pkgs/demo/default.nix:12",
            "license": {"spdxId": "MIT"},
            "maintainers": [{"github": "alice", "maintainersPosition": 3}],
        }
        self.assertEqual(
            normalize_meta(snapshot),
            {"license": {"spdxId": "MIT"}, "maintainers": [{"github": "alice"}]},
        )

    def test_custom_ignore_keys(self) -> None:
        self.assertEqual(normalize_meta({"a": 1, "b": 2}, {"b"}), {"a": 1})

    def test_scalars_pass_through(self) -> None:
        self.assertEqual(normalize_meta("x"), "x")
        self.assertIsNone(normalize_meta(None))


class EquivalenceTests(unittest.TestCase):
    def test_position_only_changes_are_equivalent(self) -> None:
        before = {"position": "a.nix:1", "description": "demo"}
        after = {"position": "a.nix:9", "description": "demo"}
        self.assertTrue(equivalent(before, after))

    def test_list_order_matters(self) -> None:
        self.assertFalse(equivalent({"platforms": ["x86_64-linux", "aarch64-linux"]},
                                    {"platforms": ["aarch64-linux", "x86_64-linux"]}))

    def test_added_key_is_drift(self) -> None:
        self.assertFalse(equivalent({"broken": False}, {"broken": False, "available": True}))

    def test_describe_difference_names_the_changed_key(self) -> None:
        text = describe_difference({"license": "mit"}, {"license": "gpl3"})
        self.assertIn("root['license']", text)

    def test_describe_difference_for_reordered_lists(self) -> None:
        text = describe_difference({"platforms": ["a", "b"]}, {"platforms": ["b", "a"]})
        self.assertIn("sequence order changed", text)


class OracleTests(unittest.TestCase):
    def test_capture_returns_evaluator_result(self) -> None:
        oracle = Oracle(_StaticEvaluator({"description": "demo"}))
        self.assertEqual(oracle.capture(TASK), {"description": "demo"})

    def test_capture_keeps_evaluation_errors(self) -> None:
        error = EvaluationError("undefined variable 'licenses'")
        oracle = Oracle(_StaticEvaluator(error=error))
        with self.assertRaises(EvaluationError) as ctx:
            oracle.capture(TASK)
        self.assertIs(ctx.exception, error)

    def test_capture_wraps_unexpected_errors(self) -> None:
        oracle = Oracle(_StaticEvaluator(error=ValueError("bad json")))
        with self.assertRaises(EvaluationError) as ctx:
            oracle.capture(TASK)
        self.assertIn("ValueError", str(ctx.exception))

    def test_instance_ignore_keys_are_used(self) -> None:
        oracle = Oracle(_StaticEvaluator(), ignore_keys=frozenset({"stamp"}))
        self.assertTrue(oracle.equivalent({"stamp": 1, "a": 1}, {"stamp": 2, "a": 1}))
        self.assertFalse(oracle.equivalent({"position": 1}, {"position": 2}))
        self.assertIn("root['a']", oracle.describe({"stamp": 1, "a": 1}, {"stamp": 2, "a": 2}))


if __name__ == "__main__":
    unittest.main()
