from __future__ import annotations

from pathlib import Path
from typing import Any, List, Protocol


class Catalog(Protocol):
    def list_units(self) -> List[str]:
        ...

    def resolve(self, unit_id: str) -> str:
        ...

    def attribute_path(self, unit_id: str) -> str:
        ...


class Evaluator(Protocol):
    def evaluate(self, attr_path: str) -> Any:
        ...


class VersionControl(Protocol):
    def revert(self, path: Path) -> None:
        ...
