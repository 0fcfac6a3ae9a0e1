"""Eligibility filters that turn a catalog identifier into a task."""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .adapters.base import Catalog
from .config import RefactorConfig
from .errors import ResolutionError
from .models import Task
from .transformer import count_anchors

RESOLVE_TASK = "task"
RESOLVE_SKIP = "skip"
RESOLVE_DEFER = "defer"

SOURCE_URL_RE = re.compile(r"/nixpkgs/blob/[^/]+/((?:pkgs|lib)/.+\.nix)$")


@dataclass(frozen=True)
class Resolution:
    """``skip`` is permanent (recorded in the ledger); ``defer`` is retried next run."""

    kind: str
    reason: str = ""
    task: Optional[Task] = None

    @classmethod
    def skip(cls, reason: str) -> "Resolution":
        return cls(RESOLVE_SKIP, reason)

    @classmethod
    def defer(cls, reason: str) -> "Resolution":
        return cls(RESOLVE_DEFER, reason)


def source_path_from_url(url: str) -> Optional[str]:
    match = SOURCE_URL_RE.search(url.strip())
    return match.group(1) if match else None


class UnitResolver:
    def __init__(self, catalog: Catalog, config: RefactorConfig):
        self.catalog = catalog
        self.config = config

    def is_excluded(self, unit_id: str) -> bool:
        return any(pattern in unit_id for pattern in self.config.excluded_name_patterns)

    def resolve(self, unit_id: str) -> Resolution:
        if self.is_excluded(unit_id):
            return Resolution.skip("excluded package set")

        try:
            url = self.catalog.resolve(unit_id)
        except ResolutionError as exc:
            return Resolution.defer(f"failed to get source: {exc}")

        relative = source_path_from_url(url)
        if relative is None:
            return Resolution.defer(f"could not parse source URL: {url}")

        source_path = self.config.root / relative
        if source_path.suffix != self.config.source_suffix or self.config.generated_marker in relative:
            return Resolution.skip(f"path {relative} is unsuitable")

        if not source_path.exists():
            return Resolution.defer(f"file {source_path} does not exist")
        if source_path.stat().st_size > self.config.max_file_size_bytes:
            return Resolution.skip(f"file {source_path} is too large")

        anchors = count_anchors(source_path.read_text(encoding="utf-8"))
        if anchors == 0:
            return Resolution.skip("no 'meta = with lib;' block")
        if anchors > 1:
            return Resolution.skip(f"file contains {anchors} 'meta = with lib;' blocks")

        task = Task(unit_id=unit_id, attr_path=self.catalog.attribute_path(unit_id), source_path=source_path)
        return Resolution(RESOLVE_TASK, task=task)
