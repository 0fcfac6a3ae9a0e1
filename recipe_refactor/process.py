"""Bounded subprocess invocation for the external catalog, evaluator and VCS tools."""
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional

from .errors import CommandError


def _render(command: list[str]) -> str:
    return " ".join(command)


def run_command(
    command: list[str],
    *,
    timeout: float,
    cwd: Optional[Path] = None,
) -> subprocess.CompletedProcess:
    """Run ``command`` to completion and return its captured output.

    Every failure mode (nonzero exit, timeout, missing executable) surfaces as
    :class:`CommandError` with whatever output the process produced.
    """
    try:
        return subprocess.run(
            command,
            check=True,
            capture_output=True,
            text=True,
            encoding="utf-8",
            timeout=timeout,
            cwd=str(cwd) if cwd is not None else None,
        )
    except subprocess.CalledProcessError as exc:
        raise CommandError(
            f"Command '{_render(command)}' failed with exit code {exc.returncode}.",
            command=command,
            returncode=exc.returncode,
            stdout=exc.stdout,
            stderr=exc.stderr,
        ) from exc
    except subprocess.TimeoutExpired as exc:
        stdout = exc.stdout.decode("utf-8", "replace") if isinstance(exc.stdout, bytes) else exc.stdout
        stderr = exc.stderr.decode("utf-8", "replace") if isinstance(exc.stderr, bytes) else exc.stderr
        raise CommandError(
            f"Command '{_render(command)}' timed out after {timeout} seconds.",
            command=command,
            stdout=stdout,
            stderr=stderr,
        ) from exc
    except OSError as exc:
        raise CommandError(f"Command '{_render(command)}' could not be started: {exc}", command=command) from exc
