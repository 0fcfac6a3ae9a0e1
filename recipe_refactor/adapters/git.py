from __future__ import annotations

from pathlib import Path

from ..errors import CommandError, RevertError
from ..process import run_command
from .base import VersionControl


class GitVersionControl(VersionControl):
    def __init__(self, root: Path, *, timeout_s: float, executable: str = "git"):
        self.root = root
        self.timeout_s = timeout_s
        self.executable = executable

    def revert(self, path: Path) -> None:
        try:
            run_command([self.executable, "restore", "--", str(path)], timeout=self.timeout_s, cwd=self.root)
        except CommandError as exc:
            raise RevertError(exc.details) from exc
