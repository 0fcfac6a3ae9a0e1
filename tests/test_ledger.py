from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from recipe_refactor.ledger import ProgressLedger, load_string_set, save_string_set


class LedgerFileTests(unittest.TestCase):
    def test_missing_file_is_an_empty_set(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(load_string_set(Path(tmp) / "absent.json"), set())

    def test_corrupt_file_degrades_with_warning(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "processed.json"
            path.write_text("[\"nixpkgs/a\",", encoding="utf-8")
            with self.assertLogs("recipe_refactor.ledger", level="WARNING") as logs:
                self.assertEqual(load_string_set(path), set())
            self.assertIn("Starting fresh", logs.output[0])

    def test_wrong_shape_degrades_with_warning(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "processed.json"
            for payload in ({"nixpkgs/a": True}, ["nixpkgs/a", 3], ["nixpkgs/a", "nixpkgs/a"], [""]):
                path.write_text(json.dumps(payload), encoding="utf-8")
                with self.assertLogs("recipe_refactor.ledger", level="WARNING"):
                    self.assertEqual(load_string_set(path), set())

    def test_save_writes_sorted_array_and_leaves_no_temp_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "skipped.json"
            save_string_set({"nixpkgs/zlib", "nixpkgs/curl", "nixpkgs/bash"}, path)

            self.assertEqual(json.loads(path.read_text(encoding="utf-8")), ["nixpkgs/bash", "nixpkgs/curl", "nixpkgs/zlib"])
            self.assertTrue(path.read_text(encoding="utf-8").endswith("]\n"))
            self.assertEqual([p.name for p in path.parent.iterdir()], ["skipped.json"])
            self.assertEqual(load_string_set(path), {"nixpkgs/zlib", "nixpkgs/curl", "nixpkgs/bash"})

    def test_save_accepts_paths(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "failed.json"
            save_string_set([Path("/r/b.nix"), Path("/r/a.nix")], path)
            self.assertEqual(json.loads(path.read_text(encoding="utf-8")), ["/r/a.nix", "/r/b.nix"])


class ProgressLedgerTests(unittest.TestCase):
    def test_overlap_is_kept_as_processed(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            processed = Path(tmp) / "processed.json"
            skipped = Path(tmp) / "skipped.json"
            save_string_set(["nixpkgs/a"], processed)
            save_string_set(["nixpkgs/a", "nixpkgs/b"], skipped)

            with self.assertLogs("recipe_refactor.ledger", level="WARNING"):
                ledger = ProgressLedger.load(processed, skipped)

            self.assertEqual(ledger.processed, {"nixpkgs/a"})
            self.assertEqual(ledger.skipped, {"nixpkgs/b"})
            self.assertEqual(ledger.handled(), {"nixpkgs/a", "nixpkgs/b"})

    def test_sets_stay_disjoint(self) -> None:
        ledger = ProgressLedger(Path("p.json"), Path("s.json"))
        ledger.mark_skipped("nixpkgs/a")
        ledger.mark_processed("nixpkgs/a")
        ledger.mark_skipped("nixpkgs/a")
        self.assertEqual(ledger.processed, {"nixpkgs/a"})
        self.assertEqual(ledger.skipped, set())

    def test_save_then_load(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            ledger = ProgressLedger(Path(tmp) / "p.json", Path(tmp) / "s.json")
            ledger.mark_processed("nixpkgs/a")
            ledger.mark_skipped("nixpkgs/b")
            ledger.save()

            reloaded = ProgressLedger.load(ledger.processed_path, ledger.skipped_path)
            self.assertEqual(reloaded.processed, {"nixpkgs/a"})
            self.assertEqual(reloaded.skipped, {"nixpkgs/b"})


if __name__ == "__main__":
    unittest.main()
