"""Per-task revert and the single-threaded shutdown sweep."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from .adapters.base import VersionControl
from .state import PipelineState

logger = logging.getLogger(__name__)


class Recovery:
    def __init__(self, state: PipelineState, vcs: VersionControl):
        self.state = state
        self.vcs = vcs

    def _restore(self, path: Path) -> bool:
        try:
            self.vcs.revert(path)
        except Exception as exc:
            logger.critical("FAILED TO RESTORE %s! Manual intervention required. Error: %s", path, exc)
            return False
        return True

    def revert_task(self, unit_id: str, path: Path) -> bool:
        """Record ``path`` as failed and restore it; only the restore itself is serialized."""
        self.state.add_failed(path)
        with self.state.revert_lock:
            restored = self._restore(path)
        if restored:
            logger.info("'%s': File successfully restored.", unit_id)
        return restored

    def sweep(self, *, persist: bool = True) -> List[Path]:
        """Restore every file that failed this run or whose task never finished.

        Seals the state first so a worker that outlives its join timeout can
        no longer patch a file or record an accept. Returns the paths that
        could not be restored. With ``persist=False`` the previous run's
        failed-paths file is left as it is.
        """
        self.state.seal()
        stranded = self.state.unfinished_in_flight()
        if stranded:
            logger.warning("Reverting %d in-flight tasks due to shutdown...", len(stranded))
            for unit_id, path in sorted(stranded.items()):
                logger.warning("'%s': Task did not finish; marking %s as failed.", unit_id, path)
                self.state.add_failed(path)

        failed = self.state.failed_files()
        unrestored: List[Path] = []
        if failed:
            logger.warning("Performing secondary, single-threaded restore for %d files...", len(failed))
            with self.state.revert_lock:
                for path in failed:
                    if self._restore(path):
                        logger.info("Secondary restore successful for: %s", path)
                    else:
                        unrestored.append(path)
        if persist:
            self.state.save_failed()
        return unrestored
