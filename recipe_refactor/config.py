from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, FrozenSet, Optional

DEFAULT_WORKERS = 16
DEFAULT_COMMAND_TIMEOUT_S = 120
DEFAULT_REVERT_TIMEOUT_S = 10
DEFAULT_MAX_FILE_SIZE_BYTES = 100 * 1024
DEFAULT_CHECKPOINT_INTERVAL_S = 60.0

PROCESSED_FILE_NAME = ".meta_refactor_processed.json"
SKIPPED_FILE_NAME = ".meta_refactor_skipped.json"
FAILED_FILE_NAME = ".meta_refactor_failed_paths.json"
LOG_FILE_NAME = "meta_refactor.log"

# Meta keys that only describe where an attribute was defined.
IGNORED_META_KEYS: FrozenSet[str] = frozenset(
    {"position", "maintainersPosition", "metaPosition", "teamsPosition"}
)

EXCLUDED_PACKAGE_SETS: FrozenSet[str] = frozenset(
    {
        "haskellPackages",
        "androidenv",
        "gnomeExtensions",
        "emacsPackages",
        "chickenPackages",
        "sbclPackages",
        "vimPlugins",
        "rubyPackages",
        "perl540Packages",
        "perl538Packages",
        "lua52Packages",
        "python313Packages",
    }
)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise SystemExit(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise SystemExit(f"{name} must be a number, got {raw!r}") from exc


def _env_set(name: str, default: FrozenSet[str]) -> FrozenSet[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class RefactorConfig:
    root: Path
    state_dir: Path
    log_file: Path
    workers: int = DEFAULT_WORKERS
    queue_size: Optional[int] = None
    command_timeout_s: int = DEFAULT_COMMAND_TIMEOUT_S
    revert_timeout_s: int = DEFAULT_REVERT_TIMEOUT_S
    max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES
    checkpoint_interval_s: float = DEFAULT_CHECKPOINT_INTERVAL_S
    poll_interval_s: float = 1.0
    worker_join_timeout_s: float = 2.0
    progress_every: int = 500
    source_suffix: str = ".nix"
    generated_marker: str = "generated"
    excluded_name_patterns: FrozenSet[str] = field(default_factory=lambda: EXCLUDED_PACKAGE_SETS)
    ignored_meta_keys: FrozenSet[str] = field(default_factory=lambda: IGNORED_META_KEYS)

    @classmethod
    def from_env(cls, root: Optional[Path] = None) -> "RefactorConfig":
        resolved_root = Path(root or os.getenv("RECIPE_REFACTOR_ROOT", ".")).absolute()
        state_dir = Path(os.getenv("RECIPE_REFACTOR_STATE_DIR", str(resolved_root)))
        log_file = Path(os.getenv("RECIPE_REFACTOR_LOG_FILE", str(state_dir / LOG_FILE_NAME)))
        return cls(
            root=resolved_root,
            state_dir=state_dir,
            log_file=log_file,
            workers=_env_int("RECIPE_REFACTOR_WORKERS", DEFAULT_WORKERS),
            command_timeout_s=_env_int("RECIPE_REFACTOR_COMMAND_TIMEOUT", DEFAULT_COMMAND_TIMEOUT_S),
            revert_timeout_s=_env_int("RECIPE_REFACTOR_REVERT_TIMEOUT", DEFAULT_REVERT_TIMEOUT_S),
            max_file_size_bytes=_env_int("RECIPE_REFACTOR_MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE_BYTES),
            checkpoint_interval_s=_env_float("RECIPE_REFACTOR_CHECKPOINT_INTERVAL", DEFAULT_CHECKPOINT_INTERVAL_S),
            excluded_name_patterns=_env_set("RECIPE_REFACTOR_EXCLUDED_SETS", EXCLUDED_PACKAGE_SETS),
        )

    def with_overrides(self, **overrides: Any) -> "RefactorConfig":
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})

    def validate(self) -> "RefactorConfig":
        if self.workers <= 0:
            raise SystemExit("workers must be > 0")
        if self.queue_size is not None and self.queue_size <= 0:
            raise SystemExit("queue size must be > 0")
        if self.command_timeout_s <= 0 or self.revert_timeout_s <= 0:
            raise SystemExit("command timeouts must be > 0")
        if self.max_file_size_bytes <= 0:
            raise SystemExit("max file size must be > 0")
        if self.checkpoint_interval_s <= 0 or self.poll_interval_s <= 0:
            raise SystemExit("checkpoint and poll intervals must be > 0")
        return self

    @property
    def effective_queue_size(self) -> int:
        return self.queue_size or self.workers * 2

    @property
    def processed_path(self) -> Path:
        return self.state_dir / PROCESSED_FILE_NAME

    @property
    def skipped_path(self) -> Path:
        return self.state_dir / SKIPPED_FILE_NAME

    @property
    def failed_path(self) -> Path:
        return self.state_dir / FAILED_FILE_NAME

    def ensure_state_dir(self) -> Path:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        return self.state_dir
