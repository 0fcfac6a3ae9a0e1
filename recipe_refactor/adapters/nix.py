from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List

from ..errors import CatalogError, CommandError, EvaluationError, ResolutionError
from ..process import run_command
from .base import Catalog, Evaluator

CATALOG_PREFIX = "nixpkgs/"


class NixSearchCatalog(Catalog):
    """Package catalog backed by ``nix-search-tv``."""

    def __init__(self, root: Path, *, timeout_s: float, executable: str = "nix-search-tv"):
        self.root = root
        self.timeout_s = timeout_s
        self.executable = executable

    def list_units(self) -> List[str]:
        try:
            result = run_command([self.executable, "print"], timeout=self.timeout_s, cwd=self.root)
        except CommandError as exc:
            raise CatalogError(f"Failed to list packages.\n{exc.details}") from exc
        return [
            line
            for line in (raw.strip() for raw in result.stdout.splitlines())
            if line.startswith(CATALOG_PREFIX) and line.count("/") == 1
        ]

    def resolve(self, unit_id: str) -> str:
        try:
            result = run_command([self.executable, "source", unit_id], timeout=self.timeout_s, cwd=self.root)
        except CommandError as exc:
            raise ResolutionError(f"Failed to get source for '{unit_id}'.\n{exc.details}") from exc
        return result.stdout.strip()

    def attribute_path(self, unit_id: str) -> str:
        _, _, attr_path = unit_id.partition("/")
        return attr_path.strip()


class NixMetaEvaluator(Evaluator):
    """Evaluates ``<attr>.meta`` of the package set rooted at ``root``."""

    def __init__(self, root: Path, *, timeout_s: float, executable: str = "nix"):
        self.root = root
        self.timeout_s = timeout_s
        self.executable = executable

    def evaluate(self, attr_path: str) -> Any:
        command = [self.executable, "eval", "--impure", "--json", "--file", ".", f"{attr_path}.meta"]
        try:
            result = run_command(command, timeout=self.timeout_s, cwd=self.root)
        except CommandError as exc:
            raise EvaluationError(exc.details) from exc
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise EvaluationError(f"Evaluator returned malformed JSON for '{attr_path}': {exc}") from exc
